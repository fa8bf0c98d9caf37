"""Logging for identifier graph corpus runs."""

import logging
import sys
from typing import Optional, TextIO


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class GraphBuilderLogger:
    """
    Logger of the identifier graph builder.

    Besides the plain level methods it has one helper per corpus event, so
    that skipped inputs and run summaries are reported the same way by the
    sequential and the parallel driver.
    """

    def __init__(self, name: str = "identifier_graph", level: str = "INFO",
                 stream: Optional[TextIO] = None):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            stream: Console stream, stderr by default so stdout stays free for output
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        # Avoid duplicate handlers
        if not self.logger.handlers:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(handler)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    # Corpus events

    def graph_built(self, origin: str, method: str, nodes: int, edges: int):
        self.logger.debug(f"Graph of {method} ({origin}): {nodes} nodes, {edges} edges")

    def method_skipped(self, origin: str, method: str, error: Exception):
        """A method failed extraction or assembly, its siblings are unaffected."""
        self.logger.warning(f"Skipping method {method} of {origin}: {type(error).__name__}: {error}")

    def source_skipped(self, origin: str, reason: str):
        self.logger.warning(f"Skipping {origin}: {reason}")

    def run_completed(self, methods: int, sources: int, nodes: int, edges: int,
                      failed_methods: int, skipped_sources: int, seconds: float):
        """Report the counters of a corpus run."""
        self.logger.info(f"Corpus run completed: {methods} methods from {sources} sources, "
                         f"{nodes} nodes, {edges} edges in {seconds:.3f}s")
        if failed_methods or skipped_sources:
            self.logger.warning(f"{failed_methods} methods failed, {skipped_sources} sources skipped")


# Global logger instance
_logger = GraphBuilderLogger()


def get_logger() -> GraphBuilderLogger:
    """Get the global logger instance."""
    return _logger


def set_log_level(level: str):
    """Set the global log level."""
    _logger.logger.setLevel(getattr(logging, level.upper()))
