"""Logging configuration with pretty formatting for stepgraph."""

import logging
import sys
from typing import Optional, Dict, Any
from enum import Enum, IntEnum
from datetime import datetime

# ANSI Color Codes
class Colors:
    """ANSI color codes for pretty terminal output."""
    HEADER = '\033[95m'      # Pink
    INFO = '\033[94m'        # Blue
    SUCCESS = '\033[92m'     # Green
    WARNING = '\033[93m'     # Yellow
    ERROR = '\033[91m'       # Red
    RESET = '\033[0m'        # Reset
    BOLD = '\033[1m'         # Bold
    DIM = '\033[2m'          # Dim

PRETTY_FORMAT = (
    "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
)

DETAILED_FORMAT = (
    f"{Colors.DIM}%(asctime)s{Colors.RESET} │ "
    f"%(colored_level)-40s │ "
    f"{Colors.DIM}%(name)s{Colors.RESET} │ "
    "%(message)s"
)

class PrettyFormatter(logging.Formatter):
    """Formatter that adds a colored level label with a symbol."""

    level_colors = {
        'DEBUG': (Colors.DIM, '·'),
        'VERBOSE': (Colors.DIM, '…'),
        'INFO': (Colors.INFO, 'ℹ'),
        'STEP': (Colors.SUCCESS, '▶'),
        'WARNING': (Colors.WARNING, '⚠'),
        'ERROR': (Colors.ERROR, '✖'),
        'CRITICAL': (Colors.ERROR + Colors.BOLD, '‼'),
    }

    def format(self, record):
        color, symbol = self.level_colors.get(record.levelname, (Colors.RESET, '•'))
        record.colored_level = f"{color}{symbol} {record.levelname}{Colors.RESET}"
        message = super().format(record)

        # Separator line for errors and warnings
        if record.levelno >= logging.WARNING:
            message = f"{message}\n{Colors.DIM}{'─' * 80}{Colors.RESET}"
        return message

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).strftime(datefmt or '%H:%M:%S')

class LogComponent(str, Enum):
    """Components that can be logged."""
    GRAPH = "stepgraph.core.graph"
    CHANNELS = "stepgraph.core.graph.channels"
    SCHEDULER = "stepgraph.core.graph.scheduler"
    INTERRUPTS = "stepgraph.core.graph.interrupts"
    STREAM = "stepgraph.core.graph.stream"
    NODES = "stepgraph.core.graph.nodes"
    CHECKPOINT = "stepgraph.core.checkpoint"
    CONFIG = "stepgraph.core.config"

class LogLevel(IntEnum):
    """Log levels mapped to logging module levels."""
    DEBUG = logging.DEBUG
    VERBOSE = 15  # Custom lower-than-INFO level
    INFO = logging.INFO
    STEP = 25     # Custom level for superstep summaries
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

# Register custom log levels
logging.addLevelName(LogLevel.VERBOSE, "VERBOSE")
logging.addLevelName(LogLevel.STEP, "STEP")

def configure_logging(
    default_level: LogLevel = LogLevel.INFO,
    component_levels: Optional[Dict[LogComponent, LogLevel]] = None,
    pretty: bool = True,
    log_file: Optional[str] = None
) -> None:
    """Configure the ``stepgraph`` logger tree with pretty formatting.

    Handlers are attached to the package root logger, not to the process root
    logger, so applications keep control of their own logging setup.
    """
    handlers = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        PrettyFormatter(DETAILED_FORMAT) if pretty else logging.Formatter(PRETTY_FORMAT)
    )
    handlers.append(console_handler)

    # File handler if specified (without colors)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PRETTY_FORMAT))
        handlers.append(file_handler)

    package_logger = logging.getLogger("stepgraph")
    package_logger.setLevel(default_level.value)
    package_logger.propagate = False

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
    for handler in handlers:
        package_logger.addHandler(handler)

    if not component_levels:
        component_levels = {
            LogComponent.GRAPH: default_level,
            LogComponent.SCHEDULER: LogLevel.STEP,
            LogComponent.CHECKPOINT: default_level,
        }

    for component, level in component_levels.items():
        logging.getLogger(component.value).setLevel(level.value)

def get_logger(component: LogComponent) -> logging.Logger:
    """Get a logger for a specific component."""
    return logging.getLogger(component.value)

def log_step(logger: logging.Logger, message: str) -> None:
    """Log a superstep summary at STEP level."""
    if logger.isEnabledFor(LogLevel.STEP):
        logger.log(LogLevel.STEP, message)

def log_verbose(logger: logging.Logger, message: str) -> None:
    """Log a message at VERBOSE level."""
    if logger.isEnabledFor(LogLevel.VERBOSE):
        logger.log(LogLevel.VERBOSE, message)

def log_state(logger: logging.Logger, state: Dict[str, Any], prefix: str = "") -> None:
    """Log a state dictionary in a readable format at DEBUG level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    for key, value in state.items():
        if isinstance(value, dict):
            logger.debug(f"{prefix}{key}:")
            log_state(logger, value, prefix + "  ")
        else:
            logger.debug(f"{prefix}{key}: {value!r}")
