"""Tree-sitter extraction of function symbols and call sites.

Handles TypeScript, TSX and JavaScript (including JSX and the module/commonjs
extension variants).  Tree-sitter produces a concrete syntax tree even for
source with syntax errors, so a half-edited file still yields whatever
functions and calls can be recognised.

Two independent extractions run over a parsed file:

- ``collect_symbols`` walks the tree once and emits a ``FunctionSymbol`` for
  every named function declaration, class method (abstract methods and
  overload signatures included) and variable initialised with an arrow
  function / function expression.
- ``collect_call_sites`` finds call expressions starting inside a line range.
  Call sites come back unresolved; resolution lives in ``resolver``.
"""

from __future__ import annotations

import enum
import functools
import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from tree_sitter import Language, Parser as TSParser

from .models import CallSite, FunctionSymbol, LineRange, SymbolKind
from .ranges import range_intersects_changes

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

# language -> (grammar module, function returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

TRUNCATION_MARKER = "  // ... truncated ..."

_FUNCTION_DECLARATION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
})
# bodiless class members: abstract methods and overload signatures
_METHOD_SIGNATURE_TYPES = frozenset({
    "abstract_method_signature",
    "method_signature",
})
_CLASS_DECLARATION_TYPES = frozenset({
    "class_declaration",
    "abstract_class_declaration",
})
# "function" is the pre-0.21 tree-sitter-javascript name of function_expression
_FUNCTION_VALUE_TYPES = frozenset({
    "arrow_function",
    "function_expression",
    "function",
    "generator_function",
})


class NodeShape(enum.Enum):
    """Closed set of syntax shapes the symbol walker distinguishes."""

    FUNCTION_DECLARATION = "function_declaration"
    METHOD_DECLARATION = "method_declaration"
    METHOD_SIGNATURE = "method_signature"
    ARROW_VARIABLE = "arrow_variable"
    CLASS_DECLARATION = "class_declaration"
    OTHER = "other"


def classify_node(node: Any) -> NodeShape:
    node_type = node.type
    if node_type in _FUNCTION_DECLARATION_TYPES:
        if node.child_by_field_name("name") is not None:
            return NodeShape.FUNCTION_DECLARATION
    elif node_type == "method_definition":
        if node.child_by_field_name("name") is not None:
            return NodeShape.METHOD_DECLARATION
    elif node_type in _METHOD_SIGNATURE_TYPES:
        if node.child_by_field_name("name") is not None:
            return NodeShape.METHOD_SIGNATURE
    elif node_type == "variable_declarator":
        value = node.child_by_field_name("value")
        if value is not None and value.type in _FUNCTION_VALUE_TYPES:
            return NodeShape.ARROW_VARIABLE
    elif node_type in _CLASS_DECLARATION_TYPES:
        if node.child_by_field_name("name") is not None:
            return NodeShape.CLASS_DECLARATION
    return NodeShape.OTHER


@functools.lru_cache(maxsize=None)
def load_language(language: str) -> Language:
    """Load (once per process) the compiled tree-sitter grammar for *language*."""
    try:
        mod_name, func_name = _GRAMMAR_MODULES[language]
    except KeyError:
        raise ValueError(f"No grammar module mapped for language '{language}'") from None
    mod = importlib.import_module(mod_name)
    return Language(getattr(mod, func_name)())


def language_for_path(file_path: str) -> Optional[str]:
    dot = file_path.rfind(".")
    if dot == -1:
        return None
    return LANGUAGE_MAP.get(file_path[dot:].lower())


@dataclass
class ParsedSource:
    """A parsed file plus the line tables extraction needs."""

    file_path: str
    source: str
    tree: Any
    lines: List[str] = field(default_factory=list)
    byte_lines: List[bytes] = field(default_factory=list)

    @property
    def root(self) -> Any:
        return self.tree.root_node

    def column_of(self, node: Any) -> int:
        """1-indexed character column of *node*'s first character."""
        row, byte_col = node.start_point[0], node.start_point[1]
        prefix = self.byte_lines[row][:byte_col] if row < len(self.byte_lines) else b""
        return len(prefix.decode("utf-8", errors="replace")) + 1


class TreeSitterParser:
    """Parses TS/JS source into ``ParsedSource`` trees.

    Each instance owns its own tree-sitter ``Parser`` objects (one per
    grammar, created on first use); compiled grammars are shared.
    """

    def __init__(self) -> None:
        self._parsers: Dict[str, TSParser] = {}

    def supports_file(self, file_path: str) -> bool:
        return language_for_path(file_path) is not None

    def _parser_for(self, language: str) -> TSParser:
        parser = self._parsers.get(language)
        if parser is None:
            parser = TSParser(load_language(language))
            self._parsers[language] = parser
            logger.debug("Loaded tree-sitter parser for %s", language)
        return parser

    def parse(self, source: str, file_path: str) -> ParsedSource:
        language = language_for_path(file_path)
        if language is None:
            raise ValueError(f"Unsupported file type: {file_path}")
        source_bytes = source.encode("utf-8")
        tree = self._parser_for(language).parse(source_bytes)
        return ParsedSource(
            file_path=file_path,
            source=source,
            tree=tree,
            lines=[line.rstrip("\r") for line in source.split("\n")],
            byte_lines=source_bytes.split(b"\n"),
        )


# ===================================================================
# Symbol extraction
# ===================================================================

class _SymbolCollector:
    """Walks a parsed file and collects ``FunctionSymbol`` objects."""

    def __init__(
        self,
        parsed: ParsedSource,
        changed_ranges: Sequence[LineRange],
        max_snippet_lines: int,
    ) -> None:
        self.parsed = parsed
        self.changed_ranges = changed_ranges
        self.max_snippet_lines = max_snippet_lines
        self.symbols: List[FunctionSymbol] = []
        self._seen_ids: Set[str] = set()

    def collect(self) -> List[FunctionSymbol]:
        # explicit stack keeps pre-order without recursing per tree level
        stack: List[Tuple[Any, Optional[str]]] = [(self.parsed.root, None)]
        while stack:
            node, class_name = stack.pop()
            shape = classify_node(node)

            if shape is NodeShape.FUNCTION_DECLARATION:
                name = _text(node.child_by_field_name("name"))
                self._add(node, node, name, name, "function")
            elif shape is NodeShape.METHOD_DECLARATION:
                name = _text(node.child_by_field_name("name"))
                full_name = f"{class_name}.{name}" if class_name else name
                self._add(node, node, name, full_name, "method", class_name)
            elif shape is NodeShape.METHOD_SIGNATURE:
                # interface and object-type members are not symbols
                if class_name and node.parent is not None and node.parent.type == "class_body":
                    name = _text(node.child_by_field_name("name"))
                    self._add(node, node, name, f"{class_name}.{name}", "method", class_name)
            elif shape is NodeShape.ARROW_VARIABLE:
                name = _text(node.child_by_field_name("name"))
                value = node.child_by_field_name("value")
                self._add(node, value, name, name, "arrow")
            elif shape is NodeShape.CLASS_DECLARATION:
                # members only; the class itself is not a symbol
                class_label = _text(node.child_by_field_name("name"))
                body = node.child_by_field_name("body")
                if body is not None:
                    stack.extend((member, class_label) for member in reversed(body.named_children))
                continue

            stack.extend((child, class_name) for child in reversed(node.children))
        return self.symbols

    def _add(
        self,
        node: Any,
        func_node: Any,
        name: str,
        full_name: str,
        kind: SymbolKind,
        class_name: Optional[str] = None,
    ) -> None:
        line_range = node_line_range(node)
        symbol_id = f"{self.parsed.file_path}:{full_name}:{line_range.start}"
        if symbol_id in self._seen_ids:
            logger.debug("Duplicate symbol id %s skipped", symbol_id)
            return
        self._seen_ids.add(symbol_id)
        self.symbols.append(FunctionSymbol(
            id=symbol_id,
            name=full_name,
            signature=build_signature(func_node, name),
            file_path=self.parsed.file_path,
            range=line_range,
            is_changed=range_intersects_changes(line_range, self.changed_ranges),
            kind=kind,
            snippet=build_snippet(self.parsed.lines, line_range, self.max_snippet_lines),
            class_name=class_name,
        ))


def collect_symbols(
    parsed: ParsedSource,
    changed_ranges: Sequence[LineRange],
    max_snippet_lines: int = 20,
) -> List[FunctionSymbol]:
    """Return every function-like symbol in *parsed*, in source order."""
    return _SymbolCollector(parsed, changed_ranges, max_snippet_lines).collect()


def node_line_range(node: Any) -> LineRange:
    return LineRange(node.start_point[0] + 1, node.end_point[0] + 1)


def build_signature(func_node: Any, name: str) -> str:
    """Render ``name(params): returnType`` from a function-like node."""
    params: List[str] = []
    param_list = func_node.child_by_field_name("parameters")
    if param_list is not None:
        params = [_text(p) for p in param_list.named_children if p.type != "comment"]
    else:
        # `x => x` has a bare parameter instead of formal_parameters
        single = func_node.child_by_field_name("parameter")
        if single is not None:
            params = [_text(single)]

    signature = f"{name}({', '.join(params)})"
    return_type = func_node.child_by_field_name("return_type")
    if return_type is not None:
        type_text = _text(return_type).lstrip(":").strip()
        if type_text:
            signature += f": {type_text}"
    return signature


def build_snippet(lines: Sequence[str], line_range: LineRange, max_snippet_lines: int) -> str:
    """Source lines in *line_range*, middle-truncated past *max_snippet_lines*."""
    start_idx = max(0, line_range.start - 1)
    end_idx = min(len(lines), line_range.end)
    snippet_lines = list(lines[start_idx:end_idx])

    if len(snippet_lines) > max_snippet_lines:
        half = max_snippet_lines // 2
        # the first line always survives, even under a budget of 0 or 1
        head = snippet_lines[:max(half, 1)]
        tail = snippet_lines[len(snippet_lines) - half:]
        snippet_lines = head + [TRUNCATION_MARKER] + tail
    return "\n".join(snippet_lines)


# ===================================================================
# Call-site extraction
# ===================================================================

def collect_call_sites(parsed: ParsedSource, function_range: LineRange) -> List[CallSite]:
    """Return unresolved call sites whose call starts inside *function_range*."""
    call_sites: List[CallSite] = []
    stack: List[Any] = [parsed.root]
    while stack:
        node = stack.pop()
        start_line = node.start_point[0] + 1
        end_line = node.end_point[0] + 1
        # no descendant can start inside the range
        if end_line < function_range.start or start_line > function_range.end:
            continue

        if node.type == "call_expression" and start_line >= function_range.start:
            callee = _callee_name(node)
            if callee:
                call_sites.append(CallSite(
                    callee=callee,
                    line=start_line,
                    column=parsed.column_of(node),
                ))
        stack.extend(reversed(node.children))
    return call_sites


def _callee_name(call_node: Any) -> Optional[str]:
    """Name the target of a call expression, or None if it has no usable name."""
    arguments = call_node.child_by_field_name("arguments")
    if arguments is not None and arguments.type == "template_string":
        return None  # tagged template, not a call

    func = call_node.child_by_field_name("function")
    if func is None:
        return None
    if func.type == "identifier":
        return _text(func)
    if func.type == "member_expression":
        prop = func.child_by_field_name("property")
        if prop is None:
            return None
        prop_name = _text(prop)
        obj = func.child_by_field_name("object")
        if obj is not None and obj.type == "this":
            return prop_name
        if obj is not None and obj.type == "identifier":
            return f"{_text(obj)}.{prop_name}"
        return prop_name
    return None


# ===================================================================
# Source-text convenience wrappers
# ===================================================================

def extract_functions(
    source: str,
    file_path: str,
    changed_ranges: Sequence[LineRange],
    max_snippet_lines: int = 20,
    parser: Optional[TreeSitterParser] = None,
) -> List[FunctionSymbol]:
    parsed = (parser or TreeSitterParser()).parse(source, file_path)
    return collect_symbols(parsed, changed_ranges, max_snippet_lines)


def extract_call_sites(
    source: str,
    file_path: str,
    function_range: LineRange,
    parser: Optional[TreeSitterParser] = None,
) -> List[CallSite]:
    parsed = (parser or TreeSitterParser()).parse(source, file_path)
    return collect_call_sites(parsed, function_range)


def _text(node: Any) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")
