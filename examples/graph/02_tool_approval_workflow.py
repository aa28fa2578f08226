"""
Tool Approval Workflow Example

This example demonstrates:
1. A message-history state with add_messages
2. ToolNode running Mirascope tools requested by an assistant node
3. A static breakpoint that pauses before any tool runs
4. Inspecting the paused state and resuming with invoke(None, ...)

The assistant here is a scripted stand-in for an LLM call so the example
runs offline: it asks for the calculator once, then answers.
"""

import asyncio
from typing import Literal

from mirascope.core import BaseTool
from pydantic import Field

from stepgraph import END, START, AIMessage, HumanMessage, MemorySaver, MessagesState, StateGraph, ToolNode
from stepgraph.core.graph.messages import ToolCall, ToolMessage
from stepgraph.core.logging import Colors, configure_logging, get_logger, LogComponent, LogLevel

logger = get_logger(LogComponent.GRAPH)


class CalculatorTool(BaseTool):
    """Adds two integers."""

    a: int = Field(..., description="First operand")
    b: int = Field(..., description="Second operand")

    def call(self) -> str:
        return str(self.a + self.b)


def assistant(state: MessagesState):
    """Request a tool call, or answer once a tool result is available."""
    last = state["messages"][-1]
    if isinstance(last, ToolMessage):
        return {"messages": [AIMessage(f"The answer is {last.content}.")]}
    call = ToolCall(name="CalculatorTool", args={"a": 19, "b": 23})
    return {"messages": [AIMessage("", tool_calls=[call])]}


def route(state: MessagesState) -> Literal["action", "__end__"]:
    last = state["messages"][-1]
    return "action" if getattr(last, "tool_calls", None) else END


async def main():
    """Run the approval workflow."""
    configure_logging(default_level=LogLevel.INFO)

    builder = StateGraph(MessagesState)
    builder.add_node("agent", assistant)
    builder.add_node("action", ToolNode([CalculatorTool]))
    builder.add_edge(START, "agent")
    builder.add_conditional_edges("agent", route)
    builder.add_edge("action", "agent")

    graph = builder.compile(checkpointer=MemorySaver(), interrupt_before=["action"])
    thread = {"thread_id": "approval"}

    await graph.invoke({"messages": [HumanMessage("What is 19 + 23?")]}, thread)

    snapshot = await graph.get_state(thread)
    pending = snapshot.values["messages"][-1].tool_calls[0]
    print(f"\n{Colors.WARNING}Paused before:{Colors.RESET} {snapshot.next}")
    print(f"Pending call: {pending.name}({pending.args})")

    # A human would approve here; resuming runs the tool and the assistant
    logger.info("Approved, resuming")
    result = await graph.invoke(None, thread)

    print(f"\n{Colors.SUCCESS}Conversation:{Colors.RESET}")
    for message in result["messages"]:
        print(f"{message.role}: {message.content or message.model_dump(include={'tool_calls'})}")


if __name__ == "__main__":
    asyncio.run(main())
