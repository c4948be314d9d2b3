"""Name-based resolution of call sites to known function symbols."""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import CallSite, FunctionSymbol

NameLookup = Mapping[str, Tuple[FunctionSymbol, ...]]


def build_name_lookup(symbols: Iterable[FunctionSymbol]) -> NameLookup:
    """Index *symbols* by name.

    Every symbol is filed under its full (possibly ``Class.method``) name.
    Qualified methods are also filed under the bare method name so that
    ``this.method()`` calls resolve.  Buckets keep extraction order and the
    returned mapping is read-only.
    """
    buckets: Dict[str, List[FunctionSymbol]] = {}
    for symbol in symbols:
        buckets.setdefault(symbol.name, []).append(symbol)
        if symbol.class_name and "." in symbol.name:
            method_name = symbol.name.rsplit(".", 1)[-1]
            buckets.setdefault(method_name, []).append(symbol)
    return MappingProxyType({name: tuple(bucket) for name, bucket in buckets.items()})


def resolve_call_target(
    call_site: CallSite,
    caller_file_path: str,
    lookup: NameLookup,
) -> Optional[FunctionSymbol]:
    """Resolve *call_site* to a symbol and record the result on the call site.

    Same-file candidates win; otherwise the candidate with the lowest
    ``(file_path, start line)`` is chosen.  Unresolved call sites are left
    untouched.
    """
    candidates = lookup.get(call_site.callee)
    if not candidates:
        return None

    same_file = [c for c in candidates if c.file_path == caller_file_path]
    if same_file:
        target = min(same_file, key=lambda c: c.range.start)
    else:
        target = min(candidates, key=lambda c: (c.file_path, c.range.start))

    call_site.resolved = True
    call_site.target_id = target.id
    return target
