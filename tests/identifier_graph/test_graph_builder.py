"""Tests for method graph assembly."""

import pytest

from identifier_graph.fact_extractor import FactExtractor
from identifier_graph.graph_builder import (
    MethodGraphBuilder,
    build_method_graph,
    edge_signature,
    format_graph,
    graph_edges,
    graph_nodes,
    node_signature,
)
from identifier_graph.java_parser import JavaSourceParser
from identifier_graph.models import MethodFacts, NodeKind, ReferenceKind, Relation
from identifier_graph.tabular_encoder import encode_graph


ROOT = NodeKind.ROOT
PARAM = NodeKind.PARAM
IMPORT = NodeKind.IMPORT
VAR = NodeKind.VAR
CALL = NodeKind.CALL
ID = NodeKind.ID


def graph_of(source: str, merge_redeclared_types: bool = True):
    """Build the graph of the first method of a Java source."""
    method = JavaSourceParser().parse_methods(source)[0]
    facts = FactExtractor().extract(method)
    return build_method_graph(facts, merge_redeclared_types=merge_redeclared_types)


def edge_triples(graph):
    """(source label, relation, target label) of every edge in insertion order."""
    return [(e.source.label, e.relation, e.target.label) for e in graph_edges(graph)]


class TestScenarios:
    """End-to-end scenarios from Java source to encoded rows."""

    def test_parameter_and_unanchored_call(self):
        graph = graph_of("class A { void run(int x) { foo(); } }")

        assert [(n.sequence_id, n.label, n.kind) for n in graph_nodes(graph)] == [
            (0, "run", ROOT),
            (1, "x", PARAM),
            (2, "foo", CALL),
        ]
        assert edge_triples(graph) == [
            ("run", Relation.PARAMETER, "x"),
            ("run", Relation.CONTAINS, "foo"),
        ]

        encoded = encode_graph(graph)
        assert encoded.node_rows == [(0, "run", 0), (1, "x", 1), (2, "foo", 4)]
        assert encoded.edge_rows == [(1, 0, 1), (8, 0, 2)]

    def test_variable_initialized_from_call(self):
        graph = graph_of("class B { void m(int a) { String s = helper(a); } }")

        assert [(n.label, n.kind) for n in graph_nodes(graph)] == [
            ("m", ROOT),
            ("a", PARAM),
            ("s", VAR),
            ("String", IMPORT),
            ("helper", CALL),
        ]
        assert edge_triples(graph) == [
            ("m", Relation.PARAMETER, "a"),
            ("m", Relation.DEFINES, "s"),
            ("m", Relation.DEPENDS_ON, "String"),
            ("s", Relation.TYPE, "String"),
            ("s", Relation.CALLS, "helper"),
            ("helper", Relation.ARG, "a"),
        ]

    def test_cast_of_undeclared_name_creates_variable(self):
        """A cast of an unknown name declares a variable carrying the cast type."""
        graph = graph_of("class C { void m() { Foo f = (Foo) obj; } }")

        assert [(n.label, n.kind) for n in graph_nodes(graph)] == [
            ("m", ROOT),
            ("f", VAR),
            ("Foo", IMPORT),
            ("obj", VAR),
        ]
        assert edge_triples(graph) == [
            ("m", Relation.DEFINES, "f"),
            ("m", Relation.DEPENDS_ON, "Foo"),
            ("f", Relation.TYPE, "Foo"),
            ("m", Relation.DEFINES, "obj"),
            ("obj", Relation.TYPE, "Foo"),
        ]

    def test_redeclared_variable_merges_types(self):
        source = "class D { void m() { if (c) { String x = a(); } else { Integer x = b(); } } }"
        graph = graph_of(source)

        var_nodes = [n for n in graph_nodes(graph) if n.kind == VAR]
        assert [n.label for n in var_nodes] == ["x"]

        triples = edge_triples(graph)
        assert triples.count(("m", Relation.DEFINES, "x")) == 1
        assert ("x", Relation.TYPE, "String") in triples
        assert ("x", Relation.TYPE, "Integer") in triples
        assert ("x", Relation.CALLS, "a") in triples
        assert ("x", Relation.CALLS, "b") in triples

    def test_redeclared_variable_keeps_first_type(self):
        source = "class D { void m() { if (c) { String x = a(); } else { Integer x = b(); } } }"
        graph = graph_of(source, merge_redeclared_types=False)

        triples = edge_triples(graph)
        assert ("x", Relation.TYPE, "String") in triples
        assert ("x", Relation.TYPE, "Integer") not in triples
        assert ("Integer", IMPORT) not in node_signature(graph)

    def test_reassignment_from_initializing_call(self):
        graph = graph_of("class A { void m() { String s = make(); s = make(); } }")
        triples = edge_triples(graph)
        assert ("s", Relation.CALLS, "make") in triples
        assert ("s", Relation.RELATED_TO, "make") not in triples

    def test_format_graph(self):
        graph = graph_of("class A { void run(int x) { foo(); } }")
        assert format_graph(graph) == (
            "run\n"
            "===\n"
            "graph {\n"
            "\tnode: run / ROOT\n"
            "\tnode: x / PARAM\n"
            "\tnode: foo / CALL\n"
            "\n"
            "\tedge: run --PARAMETER-> x\n"
            "\tedge: run --CONTAINS-> foo\n"
            "}\n"
        )


class TestAssemblyPasses:
    """Test the rules of each pass on hand-written facts."""

    def setup_method(self):
        """Set up test fixtures."""
        self.builder = MethodGraphBuilder("m")

    def test_root_node(self):
        assert self.builder.root == 0
        assert self.builder.get_node("m", ROOT) == 0
        assert self.builder.nodes()[0].kind == ROOT

    def test_exception_depends_on(self):
        self.builder.set_exception_nodes(["IOException", "IOException"])
        assert [(n.label, n.kind) for n in self.builder.nodes()] == [("m", ROOT), ("IOException", IMPORT)]
        assert len(self.builder.edges()) == 1

    def test_parameter_and_variable_share_a_type(self):
        self.builder.set_parameter_nodes([("p", "Foo")])
        self.builder.set_variable_nodes([("v", "Foo")])

        imports = [n for n in self.builder.nodes() if n.kind == IMPORT]
        assert len(imports) == 1
        triples = [(e.source.label, e.relation, e.target.label) for e in self.builder.edges()]
        assert triples.count(("m", Relation.DEPENDS_ON, "Foo")) == 1

    def test_same_label_different_kinds(self):
        """Identity is (label, kind): a parameter and a variable may share a name."""
        self.builder.set_parameter_nodes([("x", None)])
        self.builder.set_variable_nodes([("x", None)])
        assert self.builder.get_node("x", PARAM) == 1
        assert self.builder.get_node("x", VAR) == 2

    def test_cast_of_declared_variable(self):
        self.builder.set_variable_nodes([("v", None)])
        self.builder.set_variable_casts([("v", "Bar")])

        assert self.builder.get_node("v", VAR) == 1
        assert self.builder.has_edge(1, self.builder.get_node("Bar", IMPORT), Relation.TYPE)

    def test_call_var_dependency_requires_both_nodes(self):
        self.builder.set_variable_nodes([("v", None)])
        self.builder.set_call_nodes(["c"])
        self.builder.set_call_var_dependency([("c", "v"), ("c", "missing"), ("missing", "v")])

        edges = self.builder.edges()
        calls = [e for e in edges if e.relation == Relation.CALLS]
        assert len(calls) == 1
        assert self.builder.get_node("missing", ID) is None

    def test_call_var_dependency_skips_existing_edge(self):
        self.builder.set_variable_nodes([("v", None)])
        self.builder.set_call_nodes(["c"])
        v = self.builder.get_node("v", VAR)
        c = self.builder.get_node("c", CALL)
        self.builder.add_edge(v, c, Relation.SCOPE)

        self.builder.set_call_var_dependency([("c", "v")])
        assert not self.builder.has_edge(v, c, Relation.CALLS)

    def test_scope_resolves_any_kind(self):
        self.builder.set_parameter_nodes([("list", None)])
        self.builder.set_call_nodes(["add"])
        self.builder.set_call_scopes([("add", "list")])

        assert self.builder.has_edge(1, 2, Relation.SCOPE)

    def test_scope_picks_earliest_node(self):
        self.builder.set_parameter_nodes([("x", None)])
        self.builder.set_variable_nodes([("x", None)])
        self.builder.set_call_nodes(["get"])
        self.builder.set_call_scopes([("get", "x")])

        param = self.builder.get_node("x", PARAM)
        call = self.builder.get_node("get", CALL)
        assert self.builder.has_edge(param, call, Relation.SCOPE)
        assert not self.builder.has_any_edge(self.builder.get_node("x", VAR), call)

    def test_scope_never_resolves_to_root(self):
        self.builder.set_call_nodes(["next"])
        self.builder.set_call_scopes([("next", "m")])

        scope = self.builder.get_node("m", ID)
        assert scope is not None
        assert self.builder.has_edge(scope, self.builder.get_node("next", CALL), Relation.SCOPE)

    def test_unknown_scope_becomes_id(self):
        self.builder.set_call_nodes(["println"])
        self.builder.set_call_scopes([("println", "out"), ("println", "out")])

        out = self.builder.get_node("out", ID)
        assert out is not None
        scopes = [e for e in self.builder.edges() if e.relation == Relation.SCOPE]
        assert len(scopes) == 1

    def test_scope_of_unknown_call_is_skipped(self):
        self.builder.set_call_scopes([("missing", "out")])
        assert self.builder.get_node("out", ID) is None
        assert self.builder.edges() == []

    def test_unresolved_variable_argument_becomes_id(self):
        self.builder.set_call_nodes(["f"])
        self.builder.set_call_arguments([("f", ("y", ReferenceKind.VAR))])

        y = self.builder.get_node("y", ID)
        assert y is not None
        assert self.builder.has_edge(self.builder.get_node("f", CALL), y, Relation.ARG)

    def test_unresolved_call_argument_is_skipped(self):
        self.builder.set_call_nodes(["f"])
        self.builder.set_call_arguments([("f", ("g", ReferenceKind.CALL))])

        assert self.builder.get_node("g", ID) is None
        assert self.builder.get_node("g", CALL) is None
        assert self.builder.edges() == []

    def test_argument_prefers_parameter_over_variable(self):
        self.builder.set_parameter_nodes([("x", None)])
        self.builder.set_variable_nodes([("x", None)])
        self.builder.set_call_nodes(["f"])
        self.builder.set_call_arguments([("f", ("x", ReferenceKind.VAR))])

        f = self.builder.get_node("f", CALL)
        assert self.builder.has_edge(f, self.builder.get_node("x", PARAM), Relation.ARG)
        assert not self.builder.has_edge(f, self.builder.get_node("x", VAR), Relation.ARG)

    def test_argument_of_unknown_call_is_skipped(self):
        self.builder.set_call_arguments([("missing", ("y", ReferenceKind.VAR))])
        assert self.builder.get_node("y", ID) is None

    def test_assignment_to_unknown_target_is_skipped(self):
        self.builder.set_var_assigns([("field", ("y", ReferenceKind.VAR))])
        assert self.builder.get_node("field", ID) is None
        assert self.builder.get_node("y", ID) is None

    def test_assignment_sources(self):
        self.builder.set_variable_nodes([("v", None)])
        self.builder.set_call_nodes(["make"])
        self.builder.set_var_assigns([
            ("v", ("make", ReferenceKind.CALL)),
            ("v", ("other", ReferenceKind.VAR)),
            ("v", ("unknown", ReferenceKind.CALL)),
            ("v", ("other", ReferenceKind.VAR)),
        ])

        v = self.builder.get_node("v", VAR)
        related = [e for e in self.builder.edges() if e.relation == Relation.RELATED_TO]
        assert [e.target.label for e in related] == ["make", "other"]
        assert all(e.source.sequence_id == v for e in related)
        assert self.builder.get_node("other", ID) is not None
        assert self.builder.get_node("unknown", ID) is None

    def test_assignment_skips_already_joined_source(self):
        """A variable already calling its source gets no RELATED_TO edge to it."""
        self.builder.set_variable_nodes([("s", None)])
        self.builder.set_call_nodes(["make"])
        self.builder.set_call_var_dependency([("make", "s")])
        self.builder.set_var_assigns([("s", ("make", ReferenceKind.CALL))])

        s = self.builder.get_node("s", VAR)
        make = self.builder.get_node("make", CALL)
        assert self.builder.has_edge(s, make, Relation.CALLS)
        assert not self.builder.has_edge(s, make, Relation.RELATED_TO)

    def test_argument_added_next_to_other_relation(self):
        """ARG only skips an identical ARG edge."""
        self.builder.set_call_nodes(["f", "g"])
        f = self.builder.get_node("f", CALL)
        g = self.builder.get_node("g", CALL)
        self.builder.add_edge(f, g, Relation.SCOPE)
        self.builder.set_call_arguments([("f", ("g", ReferenceKind.CALL))])
        assert self.builder.has_edge(f, g, Relation.ARG)

    def test_unconnected_nodes_are_contained(self):
        self.builder.set_call_nodes(["a", "b"])
        self.builder.set_call_scopes([("b", "a")])
        self.builder.check_unconnected_nodes()

        triples = [(e.source.label, e.relation, e.target.label) for e in self.builder.edges()]
        assert ("a", Relation.SCOPE, "b") in triples
        assert ("m", Relation.CONTAINS, "a") not in triples
        assert ("m", Relation.CONTAINS, "b") not in triples

    def test_duplicate_edges_are_ignored(self):
        self.builder.set_call_nodes(["c"])
        assert self.builder.add_edge(0, 1, Relation.CONTAINS)
        assert not self.builder.add_edge(0, 1, Relation.CONTAINS)
        assert self.builder.add_edge(0, 1, Relation.DEPENDS_ON)
        assert len(self.builder.edges()) == 2


class TestBuildMethodGraph:
    """Test whole-graph helpers."""

    def setup_method(self):
        self.facts = MethodFacts(
            name="process",
            exceptions=["IOException"],
            parameters=[("input", "Reader"), ("limit", None)],
            variables=[("line", "String"), ("count", None)],
            casts=[("raw", "Buffer")],
            calls=["readLine", "trim", "emit"],
            call_var_dependency=[("readLine", "line")],
            call_scopes=[("readLine", "input"), ("trim", "line"), ("emit", "sink")],
            call_arguments=[("emit", ("line", ReferenceKind.VAR)), ("emit", ("trim", ReferenceKind.CALL))],
            var_assigns=[("count", ("limit", ReferenceKind.VAR))],
        )

    def test_every_node_is_connected(self):
        graph = build_method_graph(self.facts)
        for node_id in graph.nodes:
            if node_id != 0:
                assert graph.degree(node_id) > 0

    def test_single_root(self):
        graph = build_method_graph(self.facts)
        roots = [n for n in graph_nodes(graph) if n.kind == ROOT]
        assert len(roots) == 1
        assert roots[0].sequence_id == 0

    def test_sequence_ids_are_dense(self):
        graph = build_method_graph(self.facts)
        assert [n.sequence_id for n in graph_nodes(graph)] == list(range(graph.number_of_nodes()))

    def test_deterministic(self):
        first = build_method_graph(self.facts)
        second = build_method_graph(self.facts)
        assert encode_graph(first).node_rows == encode_graph(second).node_rows
        assert encode_graph(first).edge_rows == encode_graph(second).edge_rows
        assert node_signature(first) == node_signature(second)
        assert edge_signature(first) == edge_signature(second)

    def test_graph_metadata(self):
        graph = build_method_graph(self.facts)
        assert graph.graph["method"] == "process"
        assert graph.graph["root"] == 0

    @pytest.mark.parametrize("label, kind", [
        ("IOException", IMPORT),
        ("Reader", IMPORT),
        ("raw", VAR),
        ("sink", ID),
    ])
    def test_expected_nodes(self, label, kind):
        graph = build_method_graph(self.facts)
        assert (label, kind) in node_signature(graph)
