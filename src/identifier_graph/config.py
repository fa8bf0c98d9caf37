"""Configuration settings for the identifier graph builder."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class IdentifierGraphConfig:
    """Configuration class for fact extraction, graph assembly and table output."""

    # Fact extraction settings
    filter_identifiers: bool = True

    # Graph assembly settings
    merge_redeclared_types: bool = True

    # Corpus settings
    source_extensions: List[str] = field(default_factory=lambda: [".java"])
    encoding: str = "utf-8"
    corpus_code_field: str = "code"
    max_workers: Optional[int] = None

    # Output settings
    output_dir: str = "output"
    nodes_file: str = "node-features.csv"
    edges_file: str = "edges.csv"
    node_count_file: str = "num-node-list.csv"
    edge_count_file: str = "num-edge-list.csv"

    log_level: str = "INFO"

    def __post_init__(self):
        """Apply environment overrides."""
        env_log_level = os.getenv("IDENTIFIER_GRAPH_LOG_LEVEL")
        env_output_dir = os.getenv("IDENTIFIER_GRAPH_OUTPUT_DIR")
        env_workers = os.getenv("IDENTIFIER_GRAPH_WORKERS")

        if env_log_level:
            self.log_level = env_log_level

        if env_output_dir:
            self.output_dir = env_output_dir

        if env_workers:
            try:
                self.max_workers = int(env_workers)
            except ValueError:
                raise ValueError(f"IDENTIFIER_GRAPH_WORKERS must be an integer, got {env_workers!r}")

    @property
    def parallel(self) -> bool:
        """Whether files are processed by a worker pool."""
        return self.max_workers is not None and self.max_workers > 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "filter_identifiers": self.filter_identifiers,
            "merge_redeclared_types": self.merge_redeclared_types,
            "source_extensions": list(self.source_extensions),
            "encoding": self.encoding,
            "corpus_code_field": self.corpus_code_field,
            "max_workers": self.max_workers,
            "output_dir": self.output_dir,
            "nodes_file": self.nodes_file,
            "edges_file": self.edges_file,
            "node_count_file": self.node_count_file,
            "edge_count_file": self.edge_count_file,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "IdentifierGraphConfig":
        """Create configuration from dictionary."""
        return cls(**config_dict)

    @classmethod
    def from_file(cls, config_path: str) -> "IdentifierGraphConfig":
        """Load configuration from a JSON or YAML file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                config_dict = json.load(f)
            elif path.suffix.lower() in ['.yml', '.yaml']:
                import yaml
                config_dict = yaml.safe_load(f) or {}
            else:
                raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        return cls.from_dict(config_dict)

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.source_extensions:
            issues.append("source_extensions must not be empty")

        for ext in self.source_extensions:
            if not ext.startswith("."):
                issues.append(f"source extension must start with '.': {ext}")

        if self.max_workers is not None and self.max_workers <= 0:
            issues.append("max_workers must be positive")

        file_names = [self.nodes_file, self.edges_file, self.node_count_file, self.edge_count_file]
        if len(set(file_names)) != len(file_names):
            issues.append("output file names must be distinct")

        if not self.corpus_code_field:
            issues.append("corpus_code_field must not be empty")

        if self.log_level.upper() not in LOG_LEVELS:
            issues.append(f"log_level must be one of {', '.join(LOG_LEVELS)}: {self.log_level}")

        return issues
