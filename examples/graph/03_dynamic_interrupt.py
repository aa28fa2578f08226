"""
Dynamic Interrupt Example

This example demonstrates:
1. Pausing from inside a node with interrupt()
2. Reading the interrupt reason from the thread's state
3. Editing state with update_state() and resuming from the new checkpoint

The workflow:
- step_1 and step_3 pass the text through
- step_2 refuses input longer than five characters
- The human shortens the text, and the run completes
"""

import asyncio
from typing import TypedDict

from stepgraph import MemorySaver, StateGraph, interrupt
from stepgraph.core.logging import Colors, configure_logging, LogLevel


class TextState(TypedDict):
    input: str


def step_1(state: TextState):
    print("---step 1---")


def step_2(state: TextState):
    if len(state["input"]) > 5:
        interrupt(f"Received input that is longer than 5 characters: {state['input']}")
    print("---step 2---")


def step_3(state: TextState):
    print("---step 3---")


async def main():
    """Run the dynamic interrupt workflow."""
    configure_logging(default_level=LogLevel.INFO)

    builder = StateGraph(TextState)
    builder.chain([step_1, step_2, step_3])
    builder.set_finish_point("step_3")
    graph = builder.compile(checkpointer=MemorySaver())
    thread = {"thread_id": "dynamic"}

    await graph.invoke({"input": "hello world"}, thread)
    snapshot = await graph.get_state(thread)
    print(f"\n{Colors.WARNING}Interrupted:{Colors.RESET} {snapshot.interrupts[0].reason}")
    print(f"Next: {snapshot.next}")

    # Resuming without a change pauses again at the same node
    await graph.invoke(None, thread)
    print(f"Still waiting on: {(await graph.get_state(thread)).next}")

    await graph.update_state(thread, {"input": "short"})
    result = await graph.invoke(None, thread)
    print(f"\n{Colors.SUCCESS}Completed with:{Colors.RESET} {result}")


if __name__ == "__main__":
    asyncio.run(main())
