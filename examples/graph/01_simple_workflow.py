"""
Simple Workflow Example

This example demonstrates:
1. Declaring state channels with a TypedDict and reducers
2. Building a linear graph with StateGraph
3. Running it with invoke() and an in-memory checkpointer

The workflow:
- Starts from a single number
- Each node appends the next value
- The final state holds the full sequence
"""

import asyncio
from typing import Annotated, List, TypedDict

from stepgraph import END, MemorySaver, StateGraph, append
from stepgraph.core.logging import Colors, configure_logging, get_logger, LogComponent, LogLevel


class CounterState(TypedDict):
    """Sequence of numbers; each node adds to the end."""
    numbers: Annotated[List[int], append]
    label: str


def add_one(state: CounterState):
    return {"numbers": [state["numbers"][-1] + 1]}


def double(state: CounterState):
    return {"numbers": [state["numbers"][-1] * 2]}


async def finish(state: CounterState):
    await asyncio.sleep(0)
    return {"label": f"{len(state['numbers'])} values"}


async def main():
    """Run the simple workflow."""
    configure_logging(default_level=LogLevel.INFO)
    logger = get_logger(LogComponent.GRAPH)
    logger.info("Starting workflow...")

    builder = StateGraph(CounterState)
    builder.chain([add_one, double, finish])
    builder.add_edge("finish", END)

    graph = builder.compile(checkpointer=MemorySaver())
    thread = {"thread_id": "simple"}

    try:
        result = await graph.invoke({"numbers": [1]}, thread)
    except Exception as e:
        logger.error(f"Workflow failed: {str(e)}")
        raise

    print(f"\n{Colors.SUCCESS}Result:{Colors.RESET}")
    print(f"Numbers: {result['numbers']}")
    print(f"Label: {result['label']}")

    # Every committed step is kept as a checkpoint
    print(f"\n{Colors.INFO}History (newest first):{Colors.RESET}")
    for snapshot in await graph.get_state_history(thread):
        print(f"step {snapshot.step}: {snapshot.values['numbers']} next={snapshot.next}")


if __name__ == "__main__":
    asyncio.run(main())
