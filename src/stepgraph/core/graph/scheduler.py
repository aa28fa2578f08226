"""Superstep scheduler.

A run is a sequence of supersteps. Each superstep:

1. runs every frontier node concurrently on its own copy of the state
2. classifies each outcome as a result, an interrupt or a failure
3. on failure, raises ``NodeExecutionError`` and commits nothing
4. on interrupt, commits the unchanged state with the same frontier
5. otherwise merges the updates in frontier order, evaluates edges against the
   merged state and commits a checkpoint for the next frontier

Progress is reported as :class:`StreamEvent` items from :meth:`Scheduler.run`.
"""

import asyncio
import contextlib
import copy
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from stepgraph.core.checkpoint.base import BaseCheckpointSaver, Checkpoint, CheckpointSource, Interrupt
from stepgraph.core.config import RunConfig
from stepgraph.core.errors import (
    EmptyInputError,
    GraphRecursionError,
    InterruptSignal,
    InvalidUpdateError,
    NodeExecutionError,
)
from stepgraph.core.graph.edges import END, START
from stepgraph.core.graph.nodes.base.node import normalize_update
from stepgraph.core.graph.state import RunStatus
from stepgraph.core.graph.stream import EventKind, StreamEvent, StreamWriter
from stepgraph.core.logging import get_logger, LogComponent, log_state, log_step, log_verbose

if TYPE_CHECKING:
    from stepgraph.core.graph.compiled import CompiledGraph

logger = get_logger(LogComponent.SCHEDULER)


class NodeResult(BaseModel):
    """A node finished and produced an update."""
    node_id: str
    update: Dict[str, Any]


class NodePaused(BaseModel):
    """A node raised ``InterruptSignal``."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    node_id: str
    signal: InterruptSignal


class NodeFailed(BaseModel):
    """A node raised any other exception."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    node_id: str
    error: Exception


NodeOutcome = Union[NodeResult, NodePaused, NodeFailed]


def dedupe(node_ids: Sequence[str]) -> List[str]:
    """Drop repeats, keeping first occurrences in order."""
    return list(dict.fromkeys(node_ids))


async def next_frontier(graph: "CompiledGraph", executed: Sequence[str], values: Dict[str, Any]) -> List[str]:
    """Successors of ``executed`` in order: static edges, then branches.

    Routers receive a copy of the merged state. END is dropped, so an empty
    result means the run is finished.

    Raises:
        RoutingError: If a router picks an undeclared target
        NodeExecutionError: If a router raises
    """
    frontier = []
    for node_id in executed:
        frontier.extend(graph.edges.get(node_id, []))
        for branch in graph.branches.get(node_id, []):
            frontier.append(await branch.route(copy.deepcopy(values)))
    return [node_id for node_id in dedupe(frontier) if node_id != END]


def coerce_input(node_id: str, value: Any) -> Dict[str, Any]:
    """Normalize run input or a manual update to a channel update."""
    try:
        return normalize_update(node_id, value)
    except InvalidUpdateError:
        raise InvalidUpdateError(
            f"Expected a dict or pydantic model as input, got {type(value).__name__}"
        ) from None


class Scheduler:
    """Executes one invocation of a compiled graph on one thread.

    Attributes:
        status: Lifecycle state of the run
        values: Latest committed channel values
        checkpoint: Latest checkpoint written or loaded by the run
    """

    def __init__(self, graph: "CompiledGraph", saver: BaseCheckpointSaver, config: RunConfig):
        self.graph = graph
        self.saver = saver
        self.config = config
        self.status = RunStatus.IDLE
        self.values: Dict[str, Any] = {}
        self.checkpoint: Optional[Checkpoint] = None
        self.recursion_limit = config.recursion_limit or graph.config.recursion_limit
        limit = graph.config.max_concurrency
        self._semaphore = asyncio.Semaphore(limit) if limit else None

    async def _commit(
        self,
        values: Dict[str, Any],
        next_nodes: List[str],
        source: CheckpointSource,
        writes: List[Tuple[str, str, Any]],
        interrupts: List[Interrupt],
    ) -> Checkpoint:
        parent = self.checkpoint
        checkpoint = Checkpoint(
            thread_id=self.config.thread_id,
            parent_checkpoint_id=parent.checkpoint_id if parent else None,
            values=values,
            next=next_nodes,
            step=(parent.step if parent else -1) + 1,
            pending_writes=writes,
            interrupts=interrupts,
            source=source,
        )
        await self.saver.put(self.config, checkpoint)
        self.checkpoint = checkpoint
        self.values = values
        if self.graph.config.debug:
            logger.debug(f"State after checkpoint {checkpoint.checkpoint_id} (step {checkpoint.step}):")
            log_state(logger, values, prefix="  ")
        return checkpoint

    async def _run_node(
        self,
        node_id: str,
        values: Dict[str, Any],
        step: int,
        emit: Callable[[StreamEvent], None],
    ) -> NodeOutcome:
        node = self.graph.nodes[node_id]
        emit(StreamEvent(event=EventKind.NODE_START, step=step, node=node_id))
        log_verbose(logger, f"Step {step}: running '{node_id}'")
        writer = StreamWriter(node_id, step, emit)
        limiter = self._semaphore if self._semaphore is not None else contextlib.nullcontext()
        try:
            async with limiter:
                result = await node.process(copy.deepcopy(values), self.config, writer)
            update = normalize_update(node_id, result)
            self.graph.state_schema.check_update(update)
        except InterruptSignal as signal:
            return NodePaused(node_id=node_id, signal=signal)
        except Exception as e:
            logger.error(f"Node '{node_id}' failed: {type(e).__name__}: {e}")
            return NodeFailed(node_id=node_id, error=e)
        return NodeResult(node_id=node_id, update=update)

    async def _execute(
        self,
        frontier: List[str],
        values: Dict[str, Any],
        step: int,
        emit: Callable[[StreamEvent], None],
    ) -> List[NodeOutcome]:
        return list(await asyncio.gather(*(self._run_node(n, values, step, emit) for n in frontier)))

    async def _start(self, input: Any) -> AsyncIterator[StreamEvent]:
        """Load or initialize the thread, yielding events for an input commit."""
        self.checkpoint = await self.saver.get(self.config)

        if input is None:
            if self.checkpoint is None:
                where = f"checkpoint '{self.config.checkpoint_id}'" if self.config.checkpoint_id else "a checkpoint"
                raise EmptyInputError(f"Thread '{self.config.thread_id}' has no {where} to resume from")
            self.values = self.checkpoint.values
            logger.info(f"Resuming thread '{self.config.thread_id}' at step {self.checkpoint.step} with next={self.checkpoint.next}")
            return

        update = coerce_input(START, input)
        self.graph.input_schema.check_update(update)
        base = self.checkpoint.values if self.checkpoint else self.graph.state_schema.initial_values()
        values = self.graph.state_schema.apply(base, [(START, update)])
        frontier = await next_frontier(self.graph, [START], values)
        markers = self.graph.interrupts.static_markers([], frontier)
        writes = [(START, channel, value) for channel, value in update.items()]
        checkpoint = await self._commit(values, frontier, CheckpointSource.INPUT, writes, markers)
        yield StreamEvent(event=EventKind.STEP_END, step=checkpoint.step, data=values)
        if markers:
            yield StreamEvent(event=EventKind.INTERRUPT, step=checkpoint.step, data=markers)

    async def run(self, input: Any) -> AsyncIterator[StreamEvent]:
        """Execute supersteps until END, an interrupt, or an error.

        Args:
            input: Channel update to start a run, or ``None`` to resume

        Yields:
            StreamEvent items describing progress
        """
        self.status = RunStatus.RUNNING
        try:
            async with contextlib.aclosing(self._start(input)) as events:
                async for event in events:
                    yield event
            if self.checkpoint.interrupts and input is not None:
                self.status = RunStatus.INTERRUPTED
                return

            frontier = list(self.checkpoint.next)
            steps = 0
            while True:
                frontier = [n for n in frontier if n != END]
                if not frontier:
                    self.status = RunStatus.COMPLETED
                    logger.info(f"Thread '{self.config.thread_id}' completed at step {self.checkpoint.step}")
                    return
                if steps >= self.recursion_limit:
                    raise GraphRecursionError(
                        f"Recursion limit of {self.recursion_limit} reached without hitting END; "
                        f"pending nodes {frontier}"
                    )
                steps += 1

                async with contextlib.aclosing(self._superstep(frontier)) as events:
                    async for event in events:
                        yield event
                if self.checkpoint.interrupts:
                    self.status = RunStatus.INTERRUPTED
                    return
                frontier = list(self.checkpoint.next)
        except Exception:
            self.status = RunStatus.FAILED
            raise

    async def _superstep(self, frontier: List[str]) -> AsyncIterator[StreamEvent]:
        step = self.checkpoint.step + 1
        values = self.values
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.ensure_future(self._execute(frontier, values, step, queue.put_nowait))
        getter: Optional[asyncio.Future] = None
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield getter.result()
                    continue
                getter.cancel()
                break
            while not queue.empty():
                yield queue.get_nowait()
            outcomes = task.result()
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        failures = [o for o in outcomes if isinstance(o, NodeFailed)]
        if failures:
            first = failures[0]
            raise NodeExecutionError(first.node_id, first.error) from first.error

        paused = [o for o in outcomes if isinstance(o, NodePaused)]
        if paused:
            markers = self.graph.interrupts.dynamic_markers([(o.node_id, o.signal) for o in paused])
            checkpoint = await self._commit(values, list(frontier), CheckpointSource.INTERRUPT, [], markers)
            yield StreamEvent(event=EventKind.INTERRUPT, step=checkpoint.step, data=markers)
            return

        results = [o for o in outcomes if isinstance(o, NodeResult)]
        merged = self.graph.state_schema.apply(values, [(r.node_id, r.update) for r in results])
        next_nodes = await next_frontier(self.graph, frontier, merged)
        markers = self.graph.interrupts.static_markers(frontier, next_nodes)
        writes = [(r.node_id, channel, value) for r in results for channel, value in r.update.items()]
        checkpoint = await self._commit(merged, next_nodes, CheckpointSource.LOOP, writes, markers)
        log_step(logger, f"Step {checkpoint.step}: ran {frontier} -> next {next_nodes}")

        for result in results:
            yield StreamEvent(event=EventKind.NODE_END, step=checkpoint.step, node=result.node_id, data=result.update)
        yield StreamEvent(event=EventKind.STEP_END, step=checkpoint.step, data=merged)
        if markers:
            yield StreamEvent(event=EventKind.INTERRUPT, step=checkpoint.step, data=markers)
