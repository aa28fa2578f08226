"""Tool execution node.

:class:`ToolNode` runs the tool calls requested by the last ``AIMessage`` of a
message history and answers each with a ``ToolMessage``. Tools are plain
callables or Mirascope ``BaseTool`` subclasses:

    ```python
    class CalculatorTool(BaseTool):
        expression: str

        def call(self) -> str:
            return str(eval(self.expression))

    builder.add_node("tools", ToolNode([CalculatorTool, get_weather]))
    builder.add_conditional_edges("agent", tools_condition)
    ```
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Literal, Sequence, Type, Union

from mirascope.core import BaseTool

from stepgraph.core.errors import InterruptSignal
from stepgraph.core.graph.edges import END
from stepgraph.core.graph.messages import AIMessage, Message, ToolCall, ToolMessage, coerce_message
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.NODES)

ToolLike = Union[Callable[..., Any], Type[BaseTool]]


def _is_base_tool(tool: Any) -> bool:
    return inspect.isclass(tool) and issubclass(tool, BaseTool)


def tool_name(tool: ToolLike) -> str:
    """Name under which a model refers to ``tool``."""
    if _is_base_tool(tool):
        return tool._name()
    return getattr(tool, "__name__", type(tool).__name__)


def _last_ai_message(state: Any, messages_key: str) -> AIMessage:
    if isinstance(state, dict):
        messages = state.get(messages_key) or []
    else:
        messages = state
    for raw in reversed(list(messages)):
        message = coerce_message(raw)
        if isinstance(message, Message) and message.role == "assistant":
            return message if isinstance(message, AIMessage) else AIMessage.model_validate(message.model_dump())
    raise ValueError(f"No AIMessage found in '{messages_key}'")


class ToolNode:
    """Node body that executes pending tool calls.

    Attributes:
        tools_by_name: Registered tools keyed by name
        handle_tool_errors: Turn tool exceptions into error ``ToolMessage``s
            instead of failing the node. Interrupts raised by a tool always
            propagate and pause the run.
        messages_key: State channel holding the history
    """

    def __init__(
        self,
        tools: Sequence[ToolLike],
        handle_tool_errors: bool = True,
        messages_key: str = "messages",
    ):
        self.tools_by_name: Dict[str, ToolLike] = {tool_name(t): t for t in tools}
        self.handle_tool_errors = handle_tool_errors
        self.messages_key = messages_key
        self.__name__ = "tools"

    async def _invoke(self, call: ToolCall) -> Any:
        tool = self.tools_by_name[call.name]
        if _is_base_tool(tool):
            result = tool(**call.args).call()
        else:
            result = tool(**call.args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _run_call(self, call: ToolCall) -> ToolMessage:
        if call.name not in self.tools_by_name:
            logger.warning(f"Model requested unknown tool '{call.name}'")
            return ToolMessage(
                f"Error: '{call.name}' is not a valid tool; choose from {list(self.tools_by_name)}",
                tool_call_id=call.id,
                name=call.name,
                status="error",
            )
        try:
            result = await self._invoke(call)
        except InterruptSignal:
            raise
        except Exception as e:
            if not self.handle_tool_errors:
                raise
            logger.error(f"Tool '{call.name}' failed: {e}")
            return ToolMessage(
                f"Error: {type(e).__name__}: {e}",
                tool_call_id=call.id,
                name=call.name,
                status="error",
            )
        logger.debug(f"Tool '{call.name}' returned {result!r}")
        return ToolMessage(result if isinstance(result, str) else str(result), tool_call_id=call.id, name=call.name)

    async def __call__(self, state: Dict[str, Any]) -> Dict[str, List[ToolMessage]]:
        message = _last_ai_message(state, self.messages_key)
        results = await asyncio.gather(*(self._run_call(call) for call in message.tool_calls))
        return {self.messages_key: list(results)}


def tools_condition(state: Any, messages_key: str = "messages") -> Literal["tools", "__end__"]:
    """Route to ``"tools"`` when the last AI message requested tool calls, else END."""
    try:
        message = _last_ai_message(state, messages_key)
    except ValueError:
        return END
    return "tools" if message.tool_calls else END
