"""
Streaming Workflow Example

This example demonstrates:
1. Parallel branches fanning out from one node
2. stream() in "updates" mode, one item per finished node
3. Custom progress events emitted through the injected writer
4. Combining modes to receive (mode, payload) tuples

The workflow:
- plan splits a topic into two drafts written in parallel
- Both drafts land in an appending channel
- merge joins them once the parallel step commits
"""

import asyncio
from typing import Annotated, List, TypedDict

from stepgraph import END, START, StateGraph, append
from stepgraph.core.graph import StreamWriter
from stepgraph.core.logging import Colors, configure_logging, LogLevel


class StoryState(TypedDict):
    topic: str
    drafts: Annotated[List[str], append]
    story: str


def plan(state: StoryState):
    return {"topic": state["topic"].strip().lower()}


async def write_opening(state: StoryState, writer: StreamWriter):
    for word in ("Once", "upon", "a", "time"):
        writer({"token": word})
        await asyncio.sleep(0.05)
    return {"drafts": [f"Once upon a time there was a {state['topic']}."]}


async def write_ending(state: StoryState, writer: StreamWriter):
    writer({"token": "fin"})
    await asyncio.sleep(0.1)
    return {"drafts": [f"And the {state['topic']} lived happily ever after."]}


def merge(state: StoryState):
    return {"story": " ".join(state["drafts"])}


def build_graph():
    builder = StateGraph(StoryState)
    builder.add_node("plan", plan)
    builder.add_node("opening", write_opening)
    builder.add_node("ending", write_ending)
    builder.add_node("merge", merge)
    builder.add_edge(START, "plan")
    builder.add_edge("plan", "opening")
    builder.add_edge("plan", "ending")
    builder.add_edge("opening", "merge")
    builder.add_edge("ending", "merge")
    builder.add_edge("merge", END)
    return builder.compile()


async def main():
    """Stream the workflow in two ways."""
    configure_logging(default_level=LogLevel.WARNING)
    graph = build_graph()

    print(f"{Colors.INFO}Updates:{Colors.RESET}")
    async for update in graph.stream({"topic": "  Dragon "}, mode="updates"):
        print(update)

    print(f"\n{Colors.INFO}Events and values:{Colors.RESET}")
    async for mode, payload in graph.stream({"topic": "robot"}, mode=["events", "values"]):
        if mode == "events" and payload.event.value == "custom":
            print(f"  {payload.node}: {payload.data['token']}")
        elif mode == "values":
            print(f"{Colors.SUCCESS}state:{Colors.RESET} {payload}")


if __name__ == "__main__":
    asyncio.run(main())
