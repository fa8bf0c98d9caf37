"""Corpus pipeline turning Java sources into encoded method graphs."""

import json
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import networkx as nx
from pydantic import ValidationError

from .config import IdentifierGraphConfig
from .fact_extractor import FactExtractor
from .graph_builder import MethodGraphBuilder, format_graph, graph_edges, graph_nodes
from .java_parser import JavaMethod, JavaParseError, JavaSourceParser, read_source
from .logger import get_logger
from .models import CorpusRecord
from .parallel import parallel_map
from .tabular_encoder import EncodedGraph, GraphTableWriter, encode_graph


@dataclass
class MethodGraphResult:
    """Finalized graph of one method and where it came from."""
    origin: str
    method: str
    graph: nx.MultiDiGraph


@dataclass
class SourceUnit:
    """One unit of work: a source file to read or an in-memory source."""
    origin: str
    path: Optional[str] = None
    source: Optional[str] = None


@dataclass
class SourceOutcome:
    """Encoded graphs of one source unit."""
    origin: str
    encoded: List[EncodedGraph] = field(default_factory=list)
    rendered: List[str] = field(default_factory=list)
    failed_methods: int = 0
    error: Optional[str] = None


@dataclass
class CorpusSummary:
    """Counters of a corpus run."""
    sources: int = 0
    skipped_sources: int = 0
    methods: int = 0
    failed_methods: int = 0
    nodes: int = 0
    edges: int = 0
    output_dir: Optional[str] = None
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": self.sources,
            "skipped_sources": self.skipped_sources,
            "methods": self.methods,
            "failed_methods": self.failed_methods,
            "nodes": self.nodes,
            "edges": self.edges,
            "output_dir": self.output_dir,
            "execution_time": self.execution_time,
        }


class IdentifierGraphPipeline:
    """
    Builds identifier graphs for every method of a corpus and encodes them
    into the node, edge and count tables.

    Methods are independent: each gets its own MethodGraphBuilder, and a
    method whose extraction or assembly fails is skipped without affecting
    the others.
    """

    def __init__(self, config: Optional[IdentifierGraphConfig] = None):
        """Initialize the pipeline."""
        self.config = config or IdentifierGraphConfig()
        self.logger = get_logger()
        self.parser = JavaSourceParser()
        self.extractor = FactExtractor(filter_identifiers=self.config.filter_identifiers)
        self._performance_metrics = {}

    def get_performance_metrics(self) -> Dict[str, float]:
        """Get performance metrics for all operations."""
        return self._performance_metrics.copy()

    def build_method_graph(self, method: JavaMethod) -> nx.MultiDiGraph:
        """
        Extract the facts of a method and assemble its graph.

        Args:
            method: Parsed method declaration

        Returns:
            The finalized method graph
        """
        facts = self.extractor.extract(method)
        builder = MethodGraphBuilder(facts.name, merge_redeclared_types=self.config.merge_redeclared_types)
        return builder.build_graph(facts)

    def process_source(self, source: Union[str, bytes], origin: str = "<memory>") -> List[MethodGraphResult]:
        """
        Build the graph of every method in a Java source.

        Args:
            source: Compilation unit or method snippet
            origin: Name used in logs and results

        Returns:
            One MethodGraphResult per method that could be built
        """
        results, _ = self._process_source(source, origin)
        return results

    def process_file(self, path: Union[str, Path]) -> List[MethodGraphResult]:
        """
        Build the graph of every method in a Java source file.

        Raises:
            JavaParseError: If the file cannot be read or decoded
        """
        source = read_source(Path(path), self.config.encoding)
        return self.process_source(source, origin=str(path))

    def iter_source_files(self, root: Union[str, Path]) -> Iterator[Path]:
        """
        Walk a directory for source files with a configured extension.

        A path naming a file is yielded as is. Files are sorted so that runs
        over the same tree are identical.
        """
        root = Path(root)
        if root.is_file():
            yield root
            return
        if not root.is_dir():
            self.logger.warning(f"Input path does not exist: {root}")
            return

        extensions = {ext.lower() for ext in self.config.source_extensions}
        for path in sorted(root.rglob("*")):
            if path.is_file() and path.suffix.lower() in extensions:
                yield path

    def iter_corpus(self, corpus_path: Union[str, Path]) -> Iterator[CorpusRecord]:
        """
        Read a line-delimited JSON corpus.

        Each line is an object holding the source under the configured code
        field. Blank lines are ignored and malformed records are skipped.

        Args:
            corpus_path: Path of the .jsonl corpus

        Yields:
            Validated CorpusRecord objects
        """
        code_field = self.config.corpus_code_field
        with open(corpus_path, "r", encoding=self.config.encoding) as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                    if not isinstance(payload, dict):
                        raise ValueError("record is not a JSON object")
                    payload = dict(payload)
                    payload["code"] = payload.get(code_field)
                    yield CorpusRecord.model_validate(payload)
                except (ValueError, ValidationError) as e:
                    self.logger.source_skipped(f"corpus record {corpus_path}:{line_number}", str(e))

    def iter_units(self, inputs: Iterable[Union[str, Path]],
                   corpus: Optional[Union[str, Path]] = None) -> Iterator[SourceUnit]:
        """Expand input paths and corpus records into source units."""
        for root in inputs:
            for path in self.iter_source_files(root):
                yield SourceUnit(origin=str(path), path=str(path))

        if corpus is not None:
            for record in self.iter_corpus(corpus):
                yield SourceUnit(origin=record.origin, source=record.code)

    def encode_unit(self, unit: SourceUnit, render: bool = False) -> SourceOutcome:
        """
        Build and encode the method graphs of one source unit.

        Args:
            unit: Source unit to process
            render: Also render each graph as text

        Returns:
            SourceOutcome with one EncodedGraph per built method
        """
        outcome = SourceOutcome(origin=unit.origin)
        try:
            source = unit.source
            if source is None:
                source = read_source(Path(unit.path), self.config.encoding)
        except JavaParseError as e:
            outcome.error = str(e)
            return outcome

        results, outcome.failed_methods = self._process_source(source, unit.origin)
        for result in results:
            outcome.encoded.append(encode_graph(result.graph))
            if render:
                outcome.rendered.append(format_graph(result.graph))
        return outcome

    def run(self, inputs: Iterable[Union[str, Path]],
            corpus: Optional[Union[str, Path]] = None,
            output_dir: Optional[Union[str, Path]] = None,
            graph_printer: Optional[Callable[[str], None]] = None) -> CorpusSummary:
        """
        Process a corpus and write the four output streams.

        With more than one worker configured, source units are processed by a
        process pool. Results are written in input order either way, so the
        output does not depend on the worker count.

        Args:
            inputs: Source files or directories
            corpus: Optional line-delimited JSON corpus
            output_dir: Output directory, config.output_dir when None
            graph_printer: Receives the text rendering of every graph

        Returns:
            CorpusSummary of the run

        Raises:
            GraphOutputError: If an output stream cannot be opened or written
            FileNotFoundError: If the corpus file does not exist, raised before
                any output stream is opened
        """
        if corpus is not None and not Path(corpus).is_file():
            raise FileNotFoundError(f"Corpus file not found: {corpus}")

        start_time = time.time()
        output_dir = Path(output_dir or self.config.output_dir)
        summary = CorpusSummary(output_dir=str(output_dir))
        units = self.iter_units(inputs, corpus)
        render = graph_printer is not None

        self.logger.info(f"Starting corpus run, writing to {output_dir}")

        if self.config.parallel:
            worker = partial(_encode_unit_worker, config_dict=self.config.to_dict(), render=render)
            outcomes = parallel_map(units, worker, max_workers=self.config.max_workers)
        else:
            outcomes = (self.encode_unit(unit, render=render) for unit in units)

        with GraphTableWriter(str(output_dir), self.config) as writer:
            for outcome in outcomes:
                summary.sources += 1
                if outcome.error is not None:
                    summary.skipped_sources += 1
                    self.logger.source_skipped(outcome.origin, outcome.error)
                    continue

                summary.failed_methods += outcome.failed_methods
                for encoded in outcome.encoded:
                    writer.write(encoded)
                if graph_printer is not None:
                    for text in outcome.rendered:
                        graph_printer(text)

                self.logger.debug(f"Processed {outcome.origin}: {len(outcome.encoded)} methods")

            summary.methods = writer.methods_written
            summary.nodes = writer.nodes_written
            summary.edges = writer.edges_written

        summary.execution_time = time.time() - start_time
        self._performance_metrics['run'] = summary.execution_time

        self.logger.run_completed(summary.methods, summary.sources, summary.nodes, summary.edges,
                                  summary.failed_methods, summary.skipped_sources, summary.execution_time)
        return summary

    def get_graph_statistics(self, graph: nx.MultiDiGraph) -> Dict[str, Any]:
        """
        Get statistics of a method graph.

        Returns:
            Dictionary with node and edge counts per kind and relation
        """
        node_kinds = {}
        for node in graph_nodes(graph):
            node_kinds[node.kind.name] = node_kinds.get(node.kind.name, 0) + 1

        relations = {}
        for edge in graph_edges(graph):
            relations[edge.relation.name] = relations.get(edge.relation.name, 0) + 1

        return {
            'method': graph.graph.get('method'),
            'total_nodes': graph.number_of_nodes(),
            'total_edges': graph.number_of_edges(),
            'node_kinds': node_kinds,
            'relations': relations,
            'is_directed': graph.is_directed(),
            'density': nx.density(graph) if graph.number_of_nodes() > 1 else 0
        }

    def serialize_graph(self, graph: nx.MultiDiGraph) -> Dict[str, Any]:
        """
        Serialize a method graph for persistence or exchange.

        Returns:
            JSON-friendly dictionary of nodes, edges and metadata
        """
        return {
            'method': graph.graph.get('method'),
            'nodes': [
                {'id': node.sequence_id, 'label': node.label, 'kind': node.kind.name}
                for node in graph_nodes(graph)
            ],
            'edges': [
                {
                    'source': edge.source.sequence_id,
                    'target': edge.target.sequence_id,
                    'relation': edge.relation.name,
                }
                for edge in graph_edges(graph)
            ],
            'metadata': {
                'directed': graph.is_directed(),
                'node_count': graph.number_of_nodes(),
                'edge_count': graph.number_of_edges()
            }
        }

    def _process_source(self, source: Union[str, bytes], origin: str) -> Tuple[List[MethodGraphResult], int]:
        start_time = time.time()
        results = []
        failed = 0

        methods = self.parser.parse_methods(source)
        for method in methods:
            try:
                graph = self.build_method_graph(method)
            except Exception as e:
                failed += 1
                self.logger.method_skipped(origin, method.name, e)
                continue
            self.logger.graph_built(origin, method.name, graph.number_of_nodes(), graph.number_of_edges())
            results.append(MethodGraphResult(origin=origin, method=method.name, graph=graph))

        self._performance_metrics['process_source'] = time.time() - start_time
        self.logger.debug(f"Built {len(results)} of {len(methods)} method graphs from {origin}")
        return results, failed


def _encode_unit_worker(unit: SourceUnit, config_dict: Dict[str, Any], render: bool = False) -> SourceOutcome:
    """Process one source unit in a worker with a pipeline of its own."""
    pipeline = IdentifierGraphPipeline(IdentifierGraphConfig.from_dict(config_dict))
    return pipeline.encode_unit(unit, render=render)
