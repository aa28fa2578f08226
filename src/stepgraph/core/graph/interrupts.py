"""Static breakpoints and dynamic interrupt handling.

Static breakpoints are node sets fixed at compile time. ``interrupt_before``
markers are attached when a node lands on the next frontier, so the thread
pauses with that node pending; ``interrupt_after`` markers are attached once
the node's update has been committed.

A node body pauses the run dynamically by raising ``InterruptSignal`` (see
:func:`stepgraph.core.errors.interrupt`). The step is then discarded and the
frontier rewound, so the same node runs again on resume.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from stepgraph.core.checkpoint.base import Interrupt, InterruptWhen
from stepgraph.core.errors import InterruptSignal
from stepgraph.core.graph.state import Task
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.INTERRUPTS)


class InterruptController:
    """Decides where a run pauses.

    Attributes:
        before: Nodes to pause ahead of
        after: Nodes to pause behind
    """

    def __init__(self, interrupt_before: Optional[Iterable[str]] = None, interrupt_after: Optional[Iterable[str]] = None):
        self.before = frozenset(interrupt_before or ())
        self.after = frozenset(interrupt_after or ())

    @property
    def enabled(self) -> bool:
        return bool(self.before or self.after)

    def static_markers(self, executed: Sequence[str], frontier: Sequence[str]) -> List[Interrupt]:
        """Markers for a committed step.

        Args:
            executed: Nodes whose updates the step committed
            frontier: Nodes scheduled to run next
        """
        markers = [
            Interrupt(node_id=node_id, reason="interrupt_after", when=InterruptWhen.AFTER)
            for node_id in executed if node_id in self.after
        ]
        markers += [
            Interrupt(node_id=node_id, reason="interrupt_before", when=InterruptWhen.BEFORE)
            for node_id in frontier if node_id in self.before
        ]
        for marker in markers:
            logger.info(f"Breakpoint {marker.when.value} '{marker.node_id}'")
        return markers

    @staticmethod
    def dynamic_markers(signals: Sequence[Tuple[str, InterruptSignal]]) -> List[Interrupt]:
        """Markers for nodes that raised ``InterruptSignal``, in frontier order."""
        markers = []
        for node_id, signal in signals:
            logger.info(f"Node '{node_id}' interrupted: {signal.reason!r}")
            markers.append(Interrupt(node_id=node_id, reason=signal.reason, when=InterruptWhen.DURING))
        return markers

    @staticmethod
    def tasks_for(next_nodes: Sequence[str], interrupts: Sequence[Interrupt]) -> List[Task]:
        """Pending tasks with the markers that name them."""
        return [
            Task(
                id=f"{index}:{node_id}",
                name=node_id,
                interrupts=[m for m in interrupts if m.node_id == node_id],
            )
            for index, node_id in enumerate(next_nodes)
        ]
