"""Core data models shared by extraction, resolution, and graph assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

SymbolKind = Literal["function", "method", "arrow", "class", "external"]

EXTERNAL_FILE_PATH = "(external)"
EXTERNAL_ID_PREFIX = "external:"


@dataclass(frozen=True)
class LineRange:
    """1-indexed, inclusive line span."""
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Invalid line range: start {self.start} > end {self.end}")

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass
class FileChangedRanges:
    file_path: str
    changed_ranges: List[LineRange]


@dataclass(frozen=True)
class Hunk:
    """One post-image span of added lines."""
    start_line: int
    line_count: int

    def __post_init__(self):
        """Validate the hunk schema."""
        for attr in ("start_line", "line_count"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Hunk {attr} must be an integer, got {value!r}")
        if self.start_line < 1:
            raise ValueError(f"Hunk start_line must be >= 1, got {self.start_line}")
        if self.line_count < 0:
            raise ValueError(f"Hunk line_count must be >= 0, got {self.line_count}")

    @classmethod
    def from_raw(cls, raw: Union["Hunk", Mapping[str, Any]]) -> "Hunk":
        if isinstance(raw, Hunk):
            return raw
        if not isinstance(raw, Mapping):
            raise ValueError(f"Hunk must be a mapping, got {type(raw).__name__}")
        missing = [k for k in ("start_line", "line_count") if k not in raw]
        if missing:
            raise ValueError(f"Hunk is missing field(s): {', '.join(missing)}")
        return cls(start_line=raw["start_line"], line_count=raw["line_count"])


@dataclass
class FileDiff:
    """Structured hunks for one file, as supplied by a diff provider."""
    file_path: str
    hunks: List[Union[Hunk, Mapping[str, Any]]] = field(default_factory=list)


@dataclass(frozen=True)
class FunctionSymbol:
    id: str
    name: str
    signature: str
    file_path: str
    range: LineRange
    is_changed: bool
    kind: SymbolKind
    snippet: str
    class_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "signature": self.signature,
            "filePath": self.file_path,
            "range": self.range.to_dict(),
            "isChanged": self.is_changed,
            "kind": self.kind,
            "snippet": self.snippet,
        }
        if self.class_name is not None:
            data["className"] = self.class_name
        return data


@dataclass
class CallSite:
    callee: str
    line: int
    column: int
    resolved: bool = False
    target_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "callee": self.callee,
            "line": self.line,
            "column": self.column,
            "resolved": self.resolved,
        }
        if self.target_id is not None:
            data["targetId"] = self.target_id
        return data


@dataclass
class GraphNode:
    id: str
    symbol: FunctionSymbol
    calls: List[CallSite] = field(default_factory=list)
    called_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol.to_dict(),
            "calls": [c.to_dict() for c in self.calls],
            "calledBy": list(self.called_by),
        }


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    call_site: CallSite
    is_external: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "callSite": self.call_site.to_dict(),
            "isExternal": self.is_external,
        }


@dataclass
class CallGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    total_functions: int = 0
    was_capped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "totalFunctions": self.total_functions,
            "wasCapped": self.was_capped,
        }


@dataclass(frozen=True)
class GraphBuildOptions:
    max_nodes: int = 80
    max_edges: int = 150
    show_external: bool = True
    max_snippet_lines: int = 20

    def __post_init__(self):
        """Reject negative or non-integer limits."""
        for attr in ("max_nodes", "max_edges", "max_snippet_lines"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{attr} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{attr} must be >= 0, got {value}")
        if not isinstance(self.show_external, bool):
            raise ValueError(f"show_external must be a boolean, got {self.show_external!r}")
