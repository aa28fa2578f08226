"""Core modules for stepgraph."""

from stepgraph.core.config import GraphConfig, RunConfig
from stepgraph.core.logging import configure_logging, LogLevel, LogComponent

__all__ = [
    'GraphConfig',
    'RunConfig',
    'configure_logging',
    'LogLevel',
    'LogComponent'
]
