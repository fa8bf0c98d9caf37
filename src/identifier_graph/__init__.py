"""Identifier relation graphs of Java methods, encoded as numeric tables."""

from .models import (
    NodeKind,
    Relation,
    ReferenceKind,
    IdentifierNode,
    RelationEdge,
    MethodFacts,
    CorpusRecord,
)
from .config import IdentifierGraphConfig
from .java_parser import JavaMethod, JavaParseError, JavaSourceParser
from .fact_extractor import FactExtractor, is_valid_identifier, parse_scope_token
from .graph_builder import MethodGraphBuilder, build_method_graph, format_graph
from .tabular_encoder import EncodedGraph, GraphOutputError, GraphTableWriter, encode_graph
from .pipeline import CorpusSummary, IdentifierGraphPipeline, MethodGraphResult

__all__ = [
    "NodeKind",
    "Relation",
    "ReferenceKind",
    "IdentifierNode",
    "RelationEdge",
    "MethodFacts",
    "CorpusRecord",
    "IdentifierGraphConfig",
    "JavaMethod",
    "JavaParseError",
    "JavaSourceParser",
    "FactExtractor",
    "is_valid_identifier",
    "parse_scope_token",
    "MethodGraphBuilder",
    "build_method_graph",
    "format_graph",
    "EncodedGraph",
    "GraphOutputError",
    "GraphTableWriter",
    "encode_graph",
    "CorpusSummary",
    "IdentifierGraphPipeline",
    "MethodGraphResult",
]
