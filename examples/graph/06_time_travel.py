"""
Time Travel Example

This example demonstrates:
1. Listing a thread's checkpoint history
2. Forking from a past checkpoint with update_state()
3. Resuming the fork while the original history stays intact
"""

import asyncio
from typing import Annotated, List, TypedDict

from stepgraph import END, START, MemorySaver, StateGraph, append
from stepgraph.core.logging import Colors, configure_logging, LogLevel


class NumbersState(TypedDict):
    numbers: Annotated[List[int], append]


def add_one(state: NumbersState):
    return {"numbers": [state["numbers"][-1] + 1]}


def add_two(state: NumbersState):
    return {"numbers": [state["numbers"][-1] + 2]}


async def main():
    """Run once, then replay from the middle with a different value."""
    configure_logging(default_level=LogLevel.WARNING)

    builder = StateGraph(NumbersState)
    builder.add_node("add_one", add_one)
    builder.add_node("add_two", add_two)
    builder.add_edge(START, "add_one")
    builder.add_edge("add_one", "add_two")
    builder.add_edge("add_two", END)
    graph = builder.compile(checkpointer=MemorySaver())
    thread = {"thread_id": "travel"}

    result = await graph.invoke({"numbers": [0]}, thread)
    print(f"{Colors.SUCCESS}Original run:{Colors.RESET} {result['numbers']}")

    history = await graph.get_state_history(thread)
    for snapshot in history:
        print(f"  step {snapshot.step}: {snapshot.values['numbers']} next={snapshot.next}")

    # The checkpoint written after add_one, about to run add_two
    after_add_one = next(s for s in history if s.next == ["add_two"])
    fork = await graph.update_state(after_add_one.config, {"numbers": [10]})
    forked = await graph.invoke(None, fork)
    print(f"\n{Colors.INFO}Forked run:{Colors.RESET} {forked['numbers']}")

    print(f"{Colors.DIM}Checkpoints on thread: {len(await graph.get_state_history(thread))}{Colors.RESET}")


if __name__ == "__main__":
    asyncio.run(main())
