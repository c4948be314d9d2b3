"""Tests for call-graph assembly."""

from typing import Dict, List

from codeflow_cli.graph_builder import CallGraphBuilder, build_graph
from codeflow_cli.models import FileChangedRanges, GraphBuildOptions, LineRange
from codeflow_cli.parser import TreeSitterParser


def _changed(path: str, *ranges) -> FileChangedRanges:
    return FileChangedRanges(file_path=path, changed_ranges=[LineRange(s, e) for s, e in ranges])


def _node_names(graph) -> List[str]:
    return [n.symbol.name for n in graph.nodes]


def test_changed_function_and_its_callee():
    source = "function a() {\n  b();\n}\nfunction b() {}\n"
    graph = build_graph([_changed("x.ts", (2, 2))], {"x.ts": source})

    assert _node_names(graph) == ["a", "b"]
    assert [(e.source, e.target) for e in graph.edges] == [("x.ts:a:1", "x.ts:b:4")]
    assert graph.edges[0].id == "x.ts:a:1->x.ts:b:4:2"
    assert graph.total_functions == 2
    assert graph.was_capped is False


def test_forward_and_backward_neighbors(sample_ts_code: str):
    graph = build_graph([_changed("src/cart.ts", (5, 5))], {"src/cart.ts": sample_ts_code})

    assert _node_names(graph) == ["addItem", "recalculate", "checkout"]
    assert [e.id for e in graph.edges] == [
        "src/cart.ts:addItem:3->src/cart.ts:recalculate:8:5",
        "src/cart.ts:checkout:23->src/cart.ts:addItem:3:24",
    ]
    assert graph.total_functions == 3

    nodes = {n.symbol.name: n for n in graph.nodes}
    assert nodes["addItem"].called_by == ["src/cart.ts:checkout:23"]
    assert nodes["recalculate"].called_by == ["src/cart.ts:addItem:3"]
    assert [c.callee for c in nodes["checkout"].calls] == ["addItem"]
    assert nodes["checkout"].calls[0].resolved is True


def test_no_transitive_expansion(sample_ts_code: str):
    # recalculate changed: addItem is a caller, but checkout (caller of addItem) is two hops away
    graph = build_graph([_changed("src/cart.ts", (9, 9))], {"src/cart.ts": sample_ts_code})
    names = _node_names(graph)

    assert "addItem" in names
    assert "checkout" not in names


def test_external_calls_shown():
    source = "function a() {\n  doStuff();\n}\n"
    graph = build_graph([_changed("x.ts", (1, 3))], {"x.ts": source})

    assert [n.id for n in graph.nodes] == ["x.ts:a:1", "external:doStuff"]
    external = graph.nodes[1].symbol
    assert external.kind == "external"
    assert external.file_path == "(external)"
    assert external.range == LineRange(0, 0)
    assert external.signature == "doStuff()"
    assert [(e.target, e.is_external) for e in graph.edges] == [("external:doStuff", True)]
    assert graph.total_functions == 2


def test_external_calls_hidden():
    source = "function a() {\n  doStuff();\n}\n"
    options = GraphBuildOptions(show_external=False)
    graph = build_graph([_changed("x.ts", (1, 3))], {"x.ts": source}, options)

    assert [n.id for n in graph.nodes] == ["x.ts:a:1"]
    assert graph.edges == []
    assert graph.total_functions == 1
    # the unresolved call is still listed on the caller
    assert [c.callee for c in graph.nodes[0].calls] == ["doStuff"]
    assert graph.nodes[0].calls[0].target_id is None


def test_method_calls_via_this(sample_ts_code: str):
    graph = build_graph([_changed("src/cart.ts", (15, 15))], {"src/cart.ts": sample_ts_code})

    assert [n.id for n in graph.nodes] == [
        "src/cart.ts:CartView.render:14",
        "src/cart.ts:CartView.header:18",
        "external:formatPrice",
    ]
    assert [e.id for e in graph.edges] == [
        "src/cart.ts:CartView.render:14->src/cart.ts:CartView.header:18:15",
        "src/cart.ts:CartView.render:14->external:formatPrice:15",
    ]


def test_node_cap_keeps_first_in_extraction_order():
    source = "".join(f"function f{i}() {{}}\n" for i in range(200))
    options = GraphBuildOptions(max_nodes=80)
    graph = build_graph([_changed("many.ts", (1, 200))], {"many.ts": source}, options)

    assert len(graph.nodes) == 80
    assert _node_names(graph) == [f"f{i}" for i in range(80)]
    assert graph.was_capped is True
    assert graph.total_functions == 200


def test_exact_node_budget_is_not_capped():
    source = "".join(f"function f{i}() {{}}\n" for i in range(5))
    graph = build_graph([_changed("few.ts", (1, 5))], {"few.ts": source}, GraphBuildOptions(max_nodes=5))

    assert len(graph.nodes) == 5
    assert graph.was_capped is False


def test_external_nodes_use_remaining_budget():
    source = "function a() {\n  one();\n  two();\n  three();\n}\n"
    graph = build_graph([_changed("x.ts", (2, 2))], {"x.ts": source}, GraphBuildOptions(max_nodes=2))

    assert [n.id for n in graph.nodes] == ["x.ts:a:1", "external:one"]
    assert [e.target for e in graph.edges] == ["external:one"]
    assert graph.was_capped is True
    assert graph.total_functions == 4


def test_edge_cap():
    source = "function a() {\n" + "".join(f"  ext{i}();\n" for i in range(5)) + "}\n"
    graph = build_graph([_changed("x.ts", (1, 1))], {"x.ts": source}, GraphBuildOptions(max_edges=2))

    assert len(graph.nodes) == 6
    assert len(graph.edges) == 2
    assert graph.was_capped is True


def test_repeated_call_on_one_line_yields_one_edge():
    source = "function a() {\n  b(); b();\n}\nfunction b() {}\n"
    graph = build_graph([_changed("x.ts", (2, 2))], {"x.ts": source})

    assert [e.id for e in graph.edges] == ["x.ts:a:1->x.ts:b:4:2"]
    assert len(graph.nodes[0].calls) == 2
    assert len({e.id for e in graph.edges}) == len(graph.edges)


def test_same_file_callee_preferred_across_files():
    file_a = "export function run() {}\nexport function main() {\n  run();\n}\n"
    file_b = "export function run() {}\n"
    graph = build_graph(
        [_changed("b.ts", (1, 1)), _changed("a.ts", (2, 4))],
        {"a.ts": file_a, "b.ts": file_b},
    )

    main_edges = [e for e in graph.edges if e.source == "a.ts:main:2"]
    assert [e.target for e in main_edges] == ["a.ts:run:1"]


def test_cross_file_call_resolution():
    util = "export function formatPrice(n: number): string {\n  return `$${n}`;\n}\n"
    view = "export function show(n: number) {\n  return formatPrice(n);\n}\n"
    graph = build_graph(
        [_changed("view.ts", (2, 2)), _changed("util.ts", (3, 3))],
        {"view.ts": view, "util.ts": util},
    )

    assert [e.id for e in graph.edges] == ["view.ts:show:1->util.ts:formatPrice:1:2"]
    assert all(not e.is_external for e in graph.edges)


def test_determinism(sample_ts_code: str):
    changed = [_changed("src/cart.ts", (5, 5), (15, 15))]
    contents = {"src/cart.ts": sample_ts_code}

    first = build_graph(changed, contents)
    second = build_graph(changed, contents)

    assert [n.id for n in first.nodes] == [n.id for n in second.nodes]
    assert [e.id for e in first.edges] == [e.id for e in second.edges]
    assert first.to_dict() == second.to_dict()


def test_builder_reuse_keeps_no_state(sample_ts_code: str):
    builder = CallGraphBuilder()
    contents = {"src/cart.ts": sample_ts_code}

    builder.build([_changed("src/cart.ts", (15, 15))], contents)
    graph = builder.build([_changed("src/cart.ts", (5, 5))], contents)

    assert _node_names(graph) == ["addItem", "recalculate", "checkout"]


class _ExplodingParser(TreeSitterParser):
    def parse(self, source: str, file_path: str):
        if file_path == "bad.ts":
            raise RuntimeError("boom")
        return super().parse(source, file_path)


def test_parse_failure_skips_only_that_file():
    contents: Dict[str, str] = {
        "bad.ts": "function broken() {}\n",
        "good.ts": "function fine() {\n  broken();\n}\n",
    }
    builder = CallGraphBuilder(parser=_ExplodingParser())
    graph = builder.build([_changed("bad.ts", (1, 1)), _changed("good.ts", (2, 2))], contents)

    assert [n.id for n in graph.nodes] == ["good.ts:fine:1", "external:broken"]


def test_files_without_source_or_unsupported_are_ignored():
    graph = build_graph(
        [_changed("README.md", (1, 3)), _changed("missing.ts", (1, 1))],
        {"README.md": "# title\n"},
    )
    assert graph.nodes == []
    assert graph.total_functions == 0
    assert graph.was_capped is False


def test_edges_only_reference_emitted_nodes(sample_ts_code: str):
    graph = build_graph(
        [_changed("src/cart.ts", (1, 26))],
        {"src/cart.ts": sample_ts_code},
        GraphBuildOptions(max_nodes=3),
    )
    node_ids = {n.id for n in graph.nodes}
    assert graph.was_capped is True
    assert all(e.source in node_ids and e.target in node_ids for e in graph.edges)


def test_to_dict_uses_renderer_keys():
    source = "function a() {\n  doStuff();\n}\n"
    payload = build_graph([_changed("x.ts", (2, 2))], {"x.ts": source}).to_dict()

    assert payload["totalFunctions"] == 2
    assert payload["wasCapped"] is False
    assert payload["nodes"][0]["symbol"]["filePath"] == "x.ts"
    assert payload["nodes"][0]["symbol"]["isChanged"] is True
    assert payload["edges"][0]["isExternal"] is True
    assert payload["edges"][0]["callSite"]["targetId"] == "external:doStuff"


def test_this_call_resolves_to_abstract_method():
    source = (
        "abstract class Job {\n"
        "  abstract run(): void;\n"
        "  start() {\n"
        "    this.run();\n"
        "  }\n"
        "}\n"
    )
    graph = build_graph([_changed("job.ts", (4, 4))], {"job.ts": source})

    assert [n.id for n in graph.nodes] == ["job.ts:Job.run:2", "job.ts:Job.start:3"]
    assert [e.id for e in graph.edges] == ["job.ts:Job.start:3->job.ts:Job.run:2:4"]
    assert not any(e.is_external for e in graph.edges)
