"""Assemble a bounded one-hop call graph around changed functions."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .models import (
    EXTERNAL_FILE_PATH,
    EXTERNAL_ID_PREFIX,
    CallGraph,
    CallSite,
    FileChangedRanges,
    FunctionSymbol,
    GraphBuildOptions,
    GraphEdge,
    GraphNode,
    LineRange,
)
from .parser import ParsedSource, TreeSitterParser, collect_call_sites, collect_symbols
from .ranges import is_parseable_file
from .resolver import build_name_lookup, resolve_call_target

logger = logging.getLogger(__name__)

EXTERNAL_SNIPPET = "// External function\n// Not in changed files"


def external_symbol(callee: str) -> FunctionSymbol:
    """Placeholder symbol for a call target outside the known symbol set."""
    return FunctionSymbol(
        id=f"{EXTERNAL_ID_PREFIX}{callee}",
        name=callee,
        signature=f"{callee}()",
        file_path=EXTERNAL_FILE_PATH,
        range=LineRange(0, 0),
        is_changed=False,
        kind="external",
        snippet=EXTERNAL_SNIPPET,
    )


def edge_id(source_id: str, target_id: str, line: int) -> str:
    return f"{source_id}->{target_id}:{line}"


class CallGraphBuilder:
    """Builds a ``CallGraph`` from changed ranges and file contents.

    ``build`` keeps no state between calls: every map it fills is local to
    the invocation, so one builder can serve any number of builds.
    """

    def __init__(
        self,
        options: Optional[GraphBuildOptions] = None,
        parser: Optional[TreeSitterParser] = None,
    ) -> None:
        self.options = options or GraphBuildOptions()
        self.parser = parser or TreeSitterParser()

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def build(
        self,
        changed_files: Sequence[FileChangedRanges],
        file_contents: Mapping[str, str],
    ) -> CallGraph:
        parsed_files, all_functions = self._extract_symbols(changed_files, file_contents)
        if not all_functions:
            return CallGraph()

        lookup = build_name_lookup(all_functions)

        edges: List[GraphEdge] = []
        edge_ids: Set[str] = set()
        neighbor_ids: Dict[str, None] = {}
        calls_by_function: Dict[str, List[CallSite]] = {}
        called_by_function: Dict[str, List[str]] = {}

        def add_edge(source: str, target: str, call: CallSite, is_external: bool = False) -> None:
            eid = edge_id(source, target, call.line)
            if eid in edge_ids:
                return
            edge_ids.add(eid)
            edges.append(GraphEdge(
                id=eid, source=source, target=target, call_site=call, is_external=is_external,
            ))

        def record_caller(target_id: str, caller_id: str) -> None:
            callers = called_by_function.setdefault(target_id, [])
            if caller_id not in callers:
                callers.append(caller_id)

        changed_functions = [fn for fn in all_functions if fn.is_changed]

        # Forward pass: outgoing calls of changed functions
        for fn in changed_functions:
            calls = collect_call_sites(parsed_files[fn.file_path], fn.range)
            for call in calls:
                target = resolve_call_target(call, fn.file_path, lookup)
                if target is not None:
                    neighbor_ids[target.id] = None
                    record_caller(target.id, fn.id)
                    add_edge(fn.id, target.id, call)
                elif self.options.show_external:
                    external_id = f"{EXTERNAL_ID_PREFIX}{call.callee}"
                    call.target_id = external_id
                    neighbor_ids[external_id] = None
                    add_edge(fn.id, external_id, call, is_external=True)
            calls_by_function[fn.id] = calls

        # Backward pass: one-hop callers of changed functions
        for fn in all_functions:
            if fn.is_changed:
                continue
            for call in collect_call_sites(parsed_files[fn.file_path], fn.range):
                target = resolve_call_target(call, fn.file_path, lookup)
                if target is None or not target.is_changed:
                    continue
                neighbor_ids[fn.id] = None
                record_caller(target.id, fn.id)
                add_edge(fn.id, target.id, call)
                calls_by_function.setdefault(fn.id, []).append(call)

        included_ids: Dict[str, None] = {fn.id: None for fn in changed_functions}
        included_ids.update(neighbor_ids)

        return self._materialize(
            all_functions, included_ids, edges, calls_by_function, called_by_function,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _extract_symbols(
        self,
        changed_files: Sequence[FileChangedRanges],
        file_contents: Mapping[str, str],
    ) -> Tuple[Dict[str, ParsedSource], List[FunctionSymbol]]:
        parsed_files: Dict[str, ParsedSource] = {}
        all_functions: List[FunctionSymbol] = []

        for changed_file in changed_files:
            file_path = changed_file.file_path
            if file_path in parsed_files or not is_parseable_file(file_path):
                continue
            source = file_contents.get(file_path)
            if source is None:
                continue
            try:
                parsed = self.parser.parse(source, file_path)
                functions = collect_symbols(
                    parsed, changed_file.changed_ranges, self.options.max_snippet_lines,
                )
            except Exception as exc:
                logger.warning("Failed to parse %s: %s", file_path, exc)
                continue
            parsed_files[file_path] = parsed
            all_functions.extend(functions)
            logger.debug("Extracted %d symbols from %s", len(functions), file_path)

        return parsed_files, all_functions

    def _materialize(
        self,
        all_functions: List[FunctionSymbol],
        included_ids: Dict[str, None],
        edges: List[GraphEdge],
        calls_by_function: Dict[str, List[CallSite]],
        called_by_function: Dict[str, List[str]],
    ) -> CallGraph:
        max_nodes = self.options.max_nodes
        nodes: List[GraphNode] = []
        was_capped = False

        for fn in all_functions:
            if fn.id not in included_ids:
                continue
            if len(nodes) >= max_nodes:
                was_capped = True
                break
            nodes.append(GraphNode(
                id=fn.id,
                symbol=fn,
                calls=calls_by_function.get(fn.id, []),
                called_by=called_by_function.get(fn.id, []),
            ))

        if self.options.show_external:
            emitted_external: Set[str] = set()
            for edge in edges:
                if not edge.is_external or edge.target in emitted_external:
                    continue
                if len(nodes) >= max_nodes:
                    was_capped = True
                    break
                emitted_external.add(edge.target)
                callee = edge.target[len(EXTERNAL_ID_PREFIX):]
                nodes.append(GraphNode(id=edge.target, symbol=external_symbol(callee)))

        node_ids = {n.id for n in nodes}
        kept_edges = [e for e in edges if e.source in node_ids and e.target in node_ids]
        if len(kept_edges) > self.options.max_edges:
            kept_edges = kept_edges[:self.options.max_edges]
            was_capped = True

        logger.debug(
            "Call graph: %d/%d nodes, %d edges, capped=%s",
            len(nodes), len(included_ids), len(kept_edges), was_capped,
        )
        return CallGraph(
            nodes=nodes,
            edges=kept_edges,
            total_functions=len(included_ids),
            was_capped=was_capped,
        )


def build_graph(
    changed_files: Sequence[FileChangedRanges],
    file_contents: Mapping[str, str],
    options: Optional[GraphBuildOptions] = None,
) -> CallGraph:
    """Build the call graph for *changed_files* using their *file_contents*."""
    return CallGraphBuilder(options).build(changed_files, file_contents)
