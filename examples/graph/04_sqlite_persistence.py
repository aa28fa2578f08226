"""
SQLite Persistence Example

This example demonstrates:
1. Persisting checkpoints to a file with SqliteSaver
2. Pausing a run, closing the database, and resuming in a new session
3. Message histories surviving the round trip with their types intact

Run it twice: the second run finds the thread already complete.
"""

import asyncio
from pathlib import Path

from stepgraph import END, START, AIMessage, HumanMessage, MessagesState, SqliteSaver, StateGraph
from stepgraph.core.logging import Colors, configure_logging, get_logger, LogComponent, LogLevel

DB_PATH = Path(__file__).parent / "data" / "checkpoints.db"
THREAD = {"thread_id": "persistent-chat"}

logger = get_logger(LogComponent.GRAPH)


def greet(state: MessagesState):
    name = state["messages"][-1].content
    return {"messages": [AIMessage(f"Hello, {name}!")]}


def farewell(state: MessagesState):
    return {"messages": [AIMessage("Goodbye for now.")]}


def build_graph() -> StateGraph:
    builder = StateGraph(MessagesState)
    builder.add_node("greet", greet)
    builder.add_node("farewell", farewell)
    builder.add_edge(START, "greet")
    builder.add_edge("greet", "farewell")
    builder.add_edge("farewell", END)
    return builder


async def first_session():
    """Run until the breakpoint, then close the database."""
    async with SqliteSaver.from_conn_string(str(DB_PATH)) as saver:
        graph = build_graph().compile(checkpointer=saver, interrupt_before=["farewell"])
        snapshot = await graph.get_state(THREAD)
        if snapshot.config and snapshot.config.checkpoint_id:
            logger.info("Thread already exists, skipping the first session")
            return
        await graph.invoke({"messages": [HumanMessage("Ada")]}, THREAD)
        print(f"{Colors.WARNING}Paused before:{Colors.RESET} {(await graph.get_state(THREAD)).next}")


async def second_session():
    """Reopen the database and finish the thread."""
    async with SqliteSaver.from_conn_string(str(DB_PATH)) as saver:
        graph = build_graph().compile(checkpointer=saver, interrupt_before=["farewell"])
        snapshot = await graph.get_state(THREAD)
        if snapshot.next:
            await graph.invoke(None, THREAD)
        state = await graph.get_state(THREAD)

    print(f"\n{Colors.SUCCESS}Stored conversation:{Colors.RESET}")
    for message in state.values["messages"]:
        print(f"[{type(message).__name__}] {message.content}")


async def main():
    """Run both sessions against the same database file."""
    configure_logging(default_level=LogLevel.INFO)
    await first_session()
    await second_session()


if __name__ == "__main__":
    asyncio.run(main())
