"""Graph export helpers for JSON and DOT outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

from .models import CallGraph


def graph_to_json(graph: CallGraph, indent: int = 2) -> str:
    return json.dumps(graph.to_dict(), indent=indent)


def export_json(graph: CallGraph, output_file: Path) -> None:
    output_file.write_text(graph_to_json(graph), encoding="utf-8")


def graph_to_dot(graph: CallGraph) -> str:
    """Render *graph* as Graphviz DOT; changed functions are filled, external calls dashed."""
    lines: List[str] = ["digraph CodeFlow {"]
    lines.append("  rankdir=LR;")
    lines.append('  node [shape=box, fontname="monospace"];')

    for node in graph.nodes:
        symbol = node.symbol
        if symbol.kind == "external":
            label = f"{symbol.name}\\n(external)"
            attrs = 'style=dashed'
        else:
            label = f"{symbol.name}\\n{symbol.file_path}:{symbol.range.start}"
            attrs = 'style=filled, fillcolor="#fde68a"' if symbol.is_changed else ""
        attr_text = f", {attrs}" if attrs else ""
        lines.append(f'  "{_esc(node.id)}" [label="{_esc(label)}"{attr_text}];')

    for edge in graph.edges:
        style = " [style=dashed]" if edge.is_external else ""
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}"{style};')

    lines.append("}")
    return "\n".join(lines)


def export_dot(graph: CallGraph, output_file: Path) -> None:
    output_file.write_text(graph_to_dot(graph), encoding="utf-8")


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
