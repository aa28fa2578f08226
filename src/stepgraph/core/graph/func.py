"""Functional API: workflows written as plain functions.

``@entrypoint`` turns a function into a durable workflow without declaring a
graph. It compiles to a single-node graph, so runs share the scheduler's
checkpoints, interrupts and streaming. Whatever the function saves is kept
on the thread and handed back to the next call through
:func:`get_previous_state`.

``@task`` marks a unit of work inside a workflow. Calling a task schedules it
on the event loop and returns a future, so several tasks can run at once.

Typical Usage:
    ```python
    @task
    async def reply(messages):
        return AIMessage(f"You said {messages[-1].content}")

    @entrypoint(checkpointer=MemorySaver())
    async def chat(message: str):
        messages = (get_previous_state() or {}).get("messages", [])
        messages = messages + [HumanMessage(message)]
        messages.append(await reply(messages))
        return entrypoint.final(value=messages[-1], save={"messages": messages})

    await chat.invoke("hi", {"thread_id": "1"})
    ```

A workflow paused by ``interrupt()`` is resumed with ``invoke(None, config)``
and re-runs the function from the top.
"""

import asyncio
import contextvars
import functools
import inspect
from typing import Any, AsyncIterator, Callable, Dict, Optional

from pydantic import BaseModel

from stepgraph.core.checkpoint.base import BaseCheckpointSaver
from stepgraph.core.config import GraphConfig
from stepgraph.core.graph.base import StateGraph
from stepgraph.core.graph.compiled import CompiledGraph
from stepgraph.core.graph.state import StateSnapshot
from stepgraph.core.graph.stream import ModeSpec
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.NODES)

INPUT_KEY = "input"
OUTPUT_KEY = "output"
SAVED_KEY = "saved"

_previous_state: contextvars.ContextVar[Any] = contextvars.ContextVar("stepgraph_previous_state")


class Final(BaseModel):
    """Return value that separates what a call returns from what it saves.

    Attributes:
        value: Returned to the caller
        save: Stored on the thread for the next call
    """
    value: Any = None
    save: Any = None


def get_previous_state() -> Any:
    """Value saved by the previous call on this thread, or ``None``.

    Raises:
        RuntimeError: If called outside an entrypoint
    """
    try:
        return _previous_state.get()
    except LookupError:
        raise RuntimeError("get_previous_state() can only be called inside an entrypoint") from None


async def _call(fn: Callable[..., Any], *args, **kwargs) -> Any:
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class TaskFunction:
    """A function scheduled as a task when called. Create with :func:`task`."""

    def __init__(self, fn: Callable[..., Any], name: Optional[str] = None):
        self.fn = fn
        self.name = name or fn.__name__
        functools.update_wrapper(self, fn)

    def __call__(self, *args, **kwargs) -> "asyncio.Future[Any]":
        return asyncio.ensure_future(self._run(*args, **kwargs))

    async def _run(self, *args, **kwargs) -> Any:
        logger.debug(f"Running task '{self.name}'")
        try:
            return await _call(self.fn, *args, **kwargs)
        except Exception as e:
            logger.error(f"Task '{self.name}' failed: {type(e).__name__}: {e}")
            raise


def task(fn: Optional[Callable[..., Any]] = None, *, name: Optional[str] = None):
    """Decorator marking a function as a task.

    Usable bare (``@task``) or with a name (``@task(name="summarize")``).
    """
    if fn is None:
        return lambda f: TaskFunction(f, name=name)
    return TaskFunction(fn, name=name)


class Entrypoint:
    """A workflow function compiled to a single-node graph.

    Attributes:
        name: Node id of the workflow, also its key in ``updates`` streams
        graph: The compiled graph that runs the function
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        checkpointer: Optional[BaseCheckpointSaver] = None,
        name: Optional[str] = None,
        config: Optional[GraphConfig] = None,
    ):
        self.fn = fn
        self.name = name or fn.__name__
        params = inspect.signature(fn).parameters
        self._injects = {key for key in ("config", "writer") if key in params}
        functools.update_wrapper(self, fn)

        builder = StateGraph(
            {INPUT_KEY: None, OUTPUT_KEY: None, SAVED_KEY: None},
            output_schema={OUTPUT_KEY: None},
        )
        builder.add_node(self.name, self._run)
        builder.set_entry_point(self.name)
        builder.set_finish_point(self.name)
        self.graph: CompiledGraph = builder.compile(checkpointer=checkpointer, config=config)

    async def _run(self, state: Dict[str, Any], config, writer) -> Dict[str, Any]:
        token = _previous_state.set(state.get(SAVED_KEY))
        try:
            extra = {"config": config, "writer": writer}
            result = await _call(self.fn, state[INPUT_KEY], **{k: extra[k] for k in self._injects})
        finally:
            _previous_state.reset(token)
        if isinstance(result, Final):
            return {OUTPUT_KEY: result.value, SAVED_KEY: result.save}
        return {OUTPUT_KEY: result, SAVED_KEY: result}

    def _input(self, input: Any) -> Optional[Dict[str, Any]]:
        # Clear the last output so a paused call does not return a stale value.
        return None if input is None else {INPUT_KEY: input, OUTPUT_KEY: None}

    async def invoke(self, input: Any, config: Any = None) -> Any:
        """Run the workflow and return its value.

        Args:
            input: Argument passed to the function, or ``None`` to resume
            config: Run config; needs a ``thread_id`` when a checkpointer is set

        Returns:
            The function's return value (``Final.value`` when it returns a
            ``Final``), or ``None`` if the run paused
        """
        result = await self.graph.invoke(self._input(input), config)
        return result.get(OUTPUT_KEY)

    async def stream(self, input: Any, config: Any = None, mode: ModeSpec = "updates") -> AsyncIterator[Any]:
        """Run the workflow, yielding items as ``CompiledGraph.stream`` does."""
        async for item in self.graph.stream(self._input(input), config, mode=mode):
            yield item

    async def get_state(self, config: Any) -> StateSnapshot:
        """Snapshot of the thread; ``values["saved"]`` holds the saved state."""
        return await self.graph.get_state(config)


def entrypoint(
    checkpointer: Optional[BaseCheckpointSaver] = None,
    name: Optional[str] = None,
    config: Optional[GraphConfig] = None,
) -> Callable[[Callable[..., Any]], Entrypoint]:
    """Decorator turning a function into an :class:`Entrypoint`.

    Args:
        checkpointer: Store for the thread's saved state
        name: Workflow name; defaults to the function name
        config: Execution settings
    """
    def decorator(fn: Callable[..., Any]) -> Entrypoint:
        return Entrypoint(fn, checkpointer=checkpointer, name=name, config=config)
    return decorator


entrypoint.final = Final
