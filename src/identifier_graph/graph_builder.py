"""Graph assembly engine turning method facts into an identifier multigraph."""

from typing import Dict, List, Optional, Set, Tuple

import networkx as nx

from .logger import get_logger
from .models import (
    IdentifierNode,
    MethodFacts,
    NodeKind,
    Reference,
    ReferenceKind,
    Relation,
    RelationEdge,
    TypedName,
)


ROOT_ID = 0

NodeKey = Tuple[str, NodeKind]
EdgeSignature = Tuple[str, NodeKind, str, NodeKind, Relation]


class MethodGraphBuilder:
    """
    Builds the directed, labeled multigraph of one method.

    Nodes are keyed by their sequence id (insertion order, ROOT is 0) and carry
    ``label`` and ``kind`` attributes. A node is identified by (label, kind):
    the builder never creates a second node for an existing pair. Edges are
    keyed by their Relation, so a (source, target, relation) triple exists at
    most once while differently labeled parallel edges are allowed.

    The passes must run once, in the order used by build_graph():
    exceptions, parameters, variables, casts, calls, call/variable
    dependencies, call scopes, call arguments, assignments, closing pass.
    """

    def __init__(self, method_name: str, merge_redeclared_types: bool = True):
        """
        Initialize the builder with the ROOT node of the method.

        Args:
            method_name: Label of the ROOT node
            merge_redeclared_types: Attach the declared type of a re-declared
                variable to the existing variable node
        """
        self.logger = get_logger()
        self.merge_redeclared_types = merge_redeclared_types
        self.graph = nx.MultiDiGraph(method=method_name, root=ROOT_ID)
        self._nodes: Dict[NodeKey, int] = {}
        self._labels: Dict[str, List[int]] = {}
        self._edge_counter = 0
        self.root = self._add_node(method_name, NodeKind.ROOT)

        self.logger.debug(f"Building graph for method: {method_name}")

    def build_graph(self, facts: MethodFacts) -> nx.MultiDiGraph:
        """
        Run every assembly pass over the facts of the method.

        Args:
            facts: Relation views extracted from the method

        Returns:
            The finalized graph, every node reachable from ROOT
        """
        self.set_exception_nodes(facts.exceptions)
        self.set_parameter_nodes(facts.parameters)
        self.set_variable_nodes(facts.variables)
        self.set_variable_casts(facts.casts)
        self.set_call_nodes(facts.calls)
        self.set_call_var_dependency(facts.call_var_dependency)
        self.set_call_scopes(facts.call_scopes)
        self.set_call_arguments(facts.call_arguments)
        self.set_var_assigns(facts.var_assigns)
        self.check_unconnected_nodes()
        return self.graph

    # Assembly passes

    def set_exception_nodes(self, exceptions: List[str]):
        """The method depends on each exception it throws."""
        for exception in exceptions:
            self._get_or_create_import(exception)

    def set_parameter_nodes(self, parameters: List[TypedName]):
        """Add parameters, their types, and the ROOT --PARAMETER-> edges."""
        for name, param_type in parameters:
            param = self._get_or_create(name, NodeKind.PARAM)
            self.add_edge(self.root, param, Relation.PARAMETER)
            if param_type is not None:
                type_node = self._get_or_create_import(param_type)
                self.add_edge(param, type_node, Relation.TYPE)

    def set_variable_nodes(self, variables: List[TypedName]):
        """
        Add local variables declared in the method body.

        The first declaration of a name creates the VAR node and its DEFINES
        edge. A re-declaration creates nothing new; its type is attached to
        the existing node when merge_redeclared_types is set.

        Args:
            variables: (name, type) pairs in declaration order
        """
        for name, var_type in variables:
            var = self.get_node(name, NodeKind.VAR)
            if var is None:
                var = self._add_node(name, NodeKind.VAR)
                self.add_edge(self.root, var, Relation.DEFINES)
            elif not self.merge_redeclared_types:
                continue
            if var_type is not None:
                type_node = self._get_or_create_import(var_type)
                self.add_edge(var, type_node, Relation.TYPE)

    def set_variable_casts(self, casts: List[Tuple[str, str]]):
        """Add var --TYPE-> type for each cast, creating the variable or type when missing."""
        for expression, cast_type in casts:
            var = self.get_node(expression, NodeKind.VAR)
            if var is None:
                var = self._add_node(expression, NodeKind.VAR)
                self.add_edge(self.root, var, Relation.DEFINES)
            type_node = self._get_or_create_import(cast_type)
            self.add_edge(var, type_node, Relation.TYPE)

    def set_call_nodes(self, calls: List[str]):
        """Add one CALL node per distinct call name, incoming edges come later."""
        for call in calls:
            self._get_or_create(call, NodeKind.CALL)

    def set_call_var_dependency(self, dependencies: List[Tuple[str, str]]):
        """
        Relate a variable to the call it is initialized from.
          e.g., Foo var = call(...);
        """
        for call_label, var_label in dependencies:
            call = self.get_node(call_label, NodeKind.CALL)
            var = self.get_node(var_label, NodeKind.VAR)
            if call is not None and var is not None and not self.has_any_edge(var, call):
                self.add_edge(var, call, Relation.CALLS)

    def set_call_scopes(self, scopes: List[Tuple[str, str]]):
        """
        Relate the scope of a call to the call.
          e.g., scope.call(...);

        The scope token matches a node of any kind (ROOT excluded). An
        unknown token becomes an ID node.

        Args:
            scopes: (call name, scope token) pairs
        """
        for call_label, scope_label in scopes:
            call = self.get_node(call_label, NodeKind.CALL)
            if call is None:
                continue
            scope = self.find_by_label(scope_label)
            if scope is None:
                scope = self._add_node(scope_label, NodeKind.ID)
                self.add_edge(scope, call, Relation.SCOPE)
            elif not self.has_any_edge(scope, call):
                self.add_edge(scope, call, Relation.SCOPE)

    def set_call_arguments(self, arguments: List[Tuple[str, Reference]]):
        """
        Add call --ARG-> argument edges.

        An unresolved variable argument becomes an ID node. An unresolved
        call argument is skipped.

        Args:
            arguments: (call name, (argument name, kind)) pairs
        """
        for call_label, reference in arguments:
            call = self.get_node(call_label, NodeKind.CALL)
            if call is None:
                continue
            argument = self._resolve_reference(reference)
            if argument is not None:
                self.add_edge(call, argument, Relation.ARG)

    def set_var_assigns(self, assigns: List[Tuple[str, Reference]]):
        """
        Add var --RELATED_TO-> source edges for assignments.

        The target must already be a VAR node, assignments to anything else
        are skipped. Sources resolve like call arguments. No edge is added
        when the target is already joined to the source by any edge, e.g.
        ``String s = make(); s = make();`` keeps only ``s --CALLS-> make``.

        Args:
            assigns: (target name, (source name, kind)) pairs
        """
        for var_label, reference in assigns:
            var = self.get_node(var_label, NodeKind.VAR)
            if var is None:
                continue
            source = self._resolve_reference(reference)
            if source is not None and not self.has_any_edge(var, source):
                self.add_edge(var, source, Relation.RELATED_TO)

    def check_unconnected_nodes(self):
        """Anchor every node without any incident edge to ROOT."""
        for node_id in list(self.graph.nodes):
            if node_id == self.root:
                continue
            if self.graph.degree(node_id) == 0:
                self.add_edge(self.root, node_id, Relation.CONTAINS)

    # Lookups

    def get_node(self, label: str, kind: NodeKind) -> Optional[int]:
        """Get the id of the node with this label and kind."""
        return self._nodes.get((label, kind))

    def find_by_label(self, label: str) -> Optional[int]:
        """Get the earliest non-ROOT node with this label, whatever its kind."""
        for node_id in self._labels.get(label, []):
            if node_id != self.root:
                return node_id
        return None

    def has_edge(self, source: int, target: int, relation: Relation) -> bool:
        return self.graph.has_edge(source, target, key=relation)

    def has_any_edge(self, source: int, target: int) -> bool:
        """Check whether any edge goes from source to target."""
        return self.graph.has_edge(source, target)

    def add_edge(self, source: int, target: int, relation: Relation) -> bool:
        """
        Add an edge unless the same (source, target, relation) triple exists.

        Returns:
            True if the edge was added
        """
        if self.has_edge(source, target, relation):
            return False
        self.graph.add_edge(source, target, key=relation, relation=relation, order=self._edge_counter)
        self._edge_counter += 1
        return True

    def nodes(self) -> List[IdentifierNode]:
        """Nodes in insertion order."""
        return graph_nodes(self.graph)

    def edges(self) -> List[RelationEdge]:
        """Edges in insertion order."""
        return graph_edges(self.graph)

    def get_graph(self) -> nx.MultiDiGraph:
        return self.graph

    # Node creation

    def _add_node(self, label: str, kind: NodeKind) -> int:
        node_id = self.graph.number_of_nodes()
        self.graph.add_node(node_id, label=label, kind=kind)
        self._nodes[(label, kind)] = node_id
        self._labels.setdefault(label, []).append(node_id)
        return node_id

    def _get_or_create(self, label: str, kind: NodeKind) -> int:
        node_id = self.get_node(label, kind)
        if node_id is None:
            node_id = self._add_node(label, kind)
        return node_id

    def _get_or_create_import(self, label: str) -> int:
        """Get the IMPORT node of a type, the method depends on it."""
        type_node = self._get_or_create(label, NodeKind.IMPORT)
        self.add_edge(self.root, type_node, Relation.DEPENDS_ON)
        return type_node

    def _resolve_reference(self, reference: Reference) -> Optional[int]:
        name, kind = reference
        if kind == ReferenceKind.CALL:
            return self.get_node(name, NodeKind.CALL)
        node_id = self.get_node(name, NodeKind.PARAM)
        if node_id is None:
            node_id = self.get_node(name, NodeKind.VAR)
        if node_id is None:
            node_id = self._get_or_create(name, NodeKind.ID)
        return node_id


def build_method_graph(facts: MethodFacts, merge_redeclared_types: bool = True) -> nx.MultiDiGraph:
    """Build the finalized graph of one method from its facts."""
    builder = MethodGraphBuilder(facts.name, merge_redeclared_types=merge_redeclared_types)
    return builder.build_graph(facts)


def graph_nodes(graph: nx.MultiDiGraph) -> List[IdentifierNode]:
    """Nodes of a method graph in sequence id order."""
    return [
        IdentifierNode(label=data["label"], kind=data["kind"], sequence_id=node_id)
        for node_id, data in sorted(graph.nodes(data=True), key=lambda item: item[0])
    ]


def graph_edges(graph: nx.MultiDiGraph) -> List[RelationEdge]:
    """Edges of a method graph in insertion order."""
    nodes = {node.sequence_id: node for node in graph_nodes(graph)}
    ordered = sorted(graph.edges(keys=True, data=True), key=lambda item: item[3]["order"])
    return [
        RelationEdge(source=nodes[source], target=nodes[target], relation=relation)
        for source, target, relation, _ in ordered
    ]


def node_signature(graph: nx.MultiDiGraph) -> Set[Tuple[str, NodeKind]]:
    """Id-free set of (label, kind) pairs of a graph."""
    return {(data["label"], data["kind"]) for _, data in graph.nodes(data=True)}


def edge_signature(graph: nx.MultiDiGraph) -> Set[EdgeSignature]:
    """Id-free set of (source label, source kind, target label, target kind, relation)."""
    signature = set()
    for source, target, relation in graph.edges(keys=True):
        source_data = graph.nodes[source]
        target_data = graph.nodes[target]
        signature.add((source_data["label"], source_data["kind"],
                       target_data["label"], target_data["kind"], relation))
    return signature


def format_graph(graph: nx.MultiDiGraph) -> str:
    """Render a method graph as text, one node or edge per line."""
    name = graph.graph.get("method", "")
    lines = [name, "=" * len(name), "graph {"]
    for node in graph_nodes(graph):
        lines.append(f"\tnode: {node.label} / {node.kind.name}")
    lines.append("")
    for edge in graph_edges(graph):
        lines.append(f"\tedge: {edge}")
    lines.append("}")
    return "\n".join(lines) + "\n"
