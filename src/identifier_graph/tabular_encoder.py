"""Tabular encoding of method graphs into node, edge and count streams."""

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .config import IdentifierGraphConfig
from .graph_builder import graph_edges, graph_nodes
from .logger import get_logger


NodeRow = Tuple[int, str, int]
EdgeRow = Tuple[int, int, int]

NODES = "nodes"
EDGES = "edges"
NODE_COUNT = "node_count"
EDGE_COUNT = "edge_count"


class GraphOutputError(Exception):
    """Raised when an output stream cannot be opened or written."""


@dataclass
class EncodedGraph:
    """Rows contributed by one method graph to the output streams."""
    method: str
    node_rows: List[NodeRow] = field(default_factory=list)
    edge_rows: List[EdgeRow] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.node_rows)

    @property
    def edge_count(self) -> int:
        return len(self.edge_rows)


def encode_graph(graph: nx.MultiDiGraph) -> EncodedGraph:
    """
    Flatten a method graph into numeric rows.

    Node rows are (sequence_id, label, kind_code) in sequence id order, edge
    rows are (relation_code, source_sequence_id, target_sequence_id) in edge
    insertion order.

    Args:
        graph: Finalized method graph

    Returns:
        EncodedGraph holding the rows of the method
    """
    node_rows = [(node.sequence_id, node.label, node.kind.code) for node in graph_nodes(graph)]
    edge_rows = [
        (edge.relation.code, edge.source.sequence_id, edge.target.sequence_id)
        for edge in graph_edges(graph)
    ]
    return EncodedGraph(method=graph.graph.get("method", ""), node_rows=node_rows, edge_rows=edge_rows)


def _render_rows(rows: List[tuple]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


class GraphTableWriter:
    """
    Writes encoded method graphs to the four corpus-wide CSV streams.

    The node-count and edge-count streams hold one row per method, in the same
    order, and partition the node and edge streams: prefix sums over the counts
    give the row range of each method.

    Example:
        with GraphTableWriter(output_dir) as writer:
            writer.write(encode_graph(graph))
    """

    def __init__(self, output_dir: str, config: Optional[IdentifierGraphConfig] = None):
        """
        Initialize the writer. Streams are opened by open() or on entering the context.

        Args:
            output_dir: Directory receiving the four streams
            config: Configuration holding the stream file names
        """
        self.config = config or IdentifierGraphConfig()
        self.output_dir = Path(output_dir)
        self.logger = get_logger()
        self._handles: Dict[str, io.TextIOBase] = {}
        self.methods_written = 0
        self.nodes_written = 0
        self.edges_written = 0

    @property
    def paths(self) -> Dict[str, Path]:
        return {
            NODES: self.output_dir / self.config.nodes_file,
            EDGES: self.output_dir / self.config.edges_file,
            NODE_COUNT: self.output_dir / self.config.node_count_file,
            EDGE_COUNT: self.output_dir / self.config.edge_count_file,
        }

    def open(self):
        """Open the four streams, truncating previous content."""
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            for stream, path in self.paths.items():
                self._handles[stream] = open(path, "w", encoding="utf-8", newline="")
        except OSError as e:
            self.close()
            raise GraphOutputError(f"Failed to open output streams in {self.output_dir}: {e}") from e
        self.logger.debug(f"Opened output streams in {self.output_dir}")

    def write(self, encoded: EncodedGraph):
        """
        Append the rows of one method to every stream.

        Every row is rendered before anything is written, so a failure never
        leaves a partial row behind. The count streams are written last: a
        method whose write fails has no count row, and its node or edge rows
        are uncounted trailing rows that split_rows() ignores.

        Raises:
            GraphOutputError: If the streams are not open or a write fails
        """
        if not self._handles:
            raise GraphOutputError("Output streams are not open")

        chunks = {
            NODES: _render_rows(encoded.node_rows),
            EDGES: _render_rows(encoded.edge_rows),
            NODE_COUNT: _render_rows([(encoded.node_count,)]),
            EDGE_COUNT: _render_rows([(encoded.edge_count,)]),
        }
        try:
            for stream in (NODES, EDGES, NODE_COUNT, EDGE_COUNT):
                chunk = chunks[stream]
                handle = self._handles[stream]
                handle.write(chunk)
                handle.flush()
        except OSError as e:
            raise GraphOutputError(f"Failed to write graph of {encoded.method}: {e}") from e

        self.methods_written += 1
        self.nodes_written += encoded.node_count
        self.edges_written += encoded.edge_count

    def close(self):
        """Close every open stream."""
        errors = []
        for stream, handle in self._handles.items():
            try:
                handle.close()
            except OSError as e:
                errors.append(f"{stream}: {e}")
        self._handles.clear()
        if errors:
            raise GraphOutputError(f"Failed to close output streams: {', '.join(errors)}")

    def __enter__(self) -> "GraphTableWriter":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def read_count_stream(path: Path) -> List[int]:
    """Read a node-count or edge-count stream."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        return [int(row[0]) for row in csv.reader(f) if row]


def split_rows(rows: List[List[str]], counts: List[int]) -> List[List[List[str]]]:
    """Partition corpus rows into per-method chunks using a count stream."""
    chunks = []
    start = 0
    for count in counts:
        chunks.append(rows[start:start + count])
        start += count
    return chunks
