"""Command line entry point for building identifier graphs of a Java corpus."""

import argparse
import json
import sys
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from .config import IdentifierGraphConfig
from .logger import get_logger, set_log_level
from .pipeline import IdentifierGraphPipeline
from .tabular_encoder import GraphOutputError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="identifier-graph",
        description="Build identifier relation graphs of Java methods and encode them as CSV tables",
    )
    parser.add_argument("inputs", nargs="*", help="Java source files or directories")
    parser.add_argument("--corpus", help="Line-delimited JSON corpus of sources")
    parser.add_argument("--output", "-o", help="Output directory for the CSV tables")
    parser.add_argument("--config", "-c", help="Configuration file (JSON or YAML)")
    parser.add_argument("--workers", "-w", type=int, help="Number of worker processes")
    parser.add_argument("--no-identifier-filter", action="store_true",
                        help="Keep relations whose tokens are not valid identifiers")
    parser.add_argument("--print-graphs", action="store_true", help="Print every method graph")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    return parser


def load_config(args: argparse.Namespace) -> IdentifierGraphConfig:
    """Build the configuration from the config file and the command line overrides."""
    config = IdentifierGraphConfig.from_file(args.config) if args.config else IdentifierGraphConfig()
    if args.output:
        config.output_dir = args.output
    if args.workers is not None:
        config.max_workers = args.workers
    if args.no_identifier_filter:
        config.filter_identifiers = False
    if args.log_level:
        config.log_level = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)
    logger = get_logger()

    if not args.inputs and not args.corpus:
        parser.print_usage(sys.stderr)
        logger.error("No input given: pass source paths and/or --corpus")
        return 1

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    issues = config.validate()
    if issues:
        for issue in issues:
            logger.error(f"Invalid configuration: {issue}")
        return 1

    set_log_level(config.log_level)

    printer = (lambda text: sys.stdout.write(text + "\n")) if args.print_graphs else None
    pipeline = IdentifierGraphPipeline(config)
    try:
        summary = pipeline.run(args.inputs, corpus=args.corpus, graph_printer=printer)
    except GraphOutputError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Cannot read input: {e}")
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
