"""Error types raised by the graph engine.

Every failure the engine reports derives from :class:`StepGraphError`.
:class:`InterruptSignal` sits outside that hierarchy. It is a
pause request, not a failure, and the scheduler never lets it reach callers.
"""

from typing import List, Optional


class StepGraphError(Exception):
    """Base class for all stepgraph errors."""


class GraphDefinitionError(StepGraphError, ValueError):
    """The graph structure is invalid. Raised at build or compile time."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = list(problems or [])
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class RoutingError(StepGraphError):
    """A conditional edge produced a target outside its declared set."""

    def __init__(self, source: str, target: object, allowed: List[str]):
        self.source = source
        self.target = target
        self.allowed = list(allowed)
        super().__init__(
            f"Router on '{source}' returned {target!r}; expected one of {self.allowed}"
        )


class NodeExecutionError(StepGraphError):
    """A node failed. The step it ran in was not committed."""

    def __init__(self, node_id: str, error: BaseException):
        self.node_id = node_id
        self.error = error
        super().__init__(f"Node '{node_id}' failed: {type(error).__name__}: {error}")


class CheckpointIOError(StepGraphError):
    """The checkpoint store could not read or write."""


class InvalidUpdateError(StepGraphError):
    """A state update referenced unknown channels or had the wrong shape."""


class EmptyInputError(StepGraphError):
    """A run was started without input on a thread that has nothing to resume."""


class GraphRecursionError(StepGraphError):
    """A run exceeded its superstep budget without reaching END."""


class InterruptSignal(Exception):
    """Raised by a node body to pause the run before its step is committed."""

    def __init__(self, reason: object = None):
        self.reason = reason
        super().__init__(reason)


def interrupt(reason: object = None) -> None:
    """Pause the current run from inside a node."""
    raise InterruptSignal(reason)
