"""Shared test fixtures for stepgraph tests.

Provides a checkpoint store, a thread config, and a small numeric graph whose
nodes each append one value to a list channel.
"""

from typing import Annotated, Any, Dict, List, TypedDict

import pytest

from stepgraph.core.checkpoint import MemorySaver
from stepgraph.core.graph import END, START, StateGraph, append


class NumbersState(TypedDict):
    """State with a single appending list channel."""
    numbers: Annotated[List[int], append]


def add_one(state: Dict[str, Any]) -> Dict[str, Any]:
    return {"numbers": [state["numbers"][-1] + 1]}


def add_two(state: Dict[str, Any]) -> Dict[str, Any]:
    return {"numbers": [state["numbers"][-1] + 2]}


def build_numbers_graph() -> StateGraph:
    """START -> add_one -> add_two -> END."""
    builder = StateGraph(NumbersState)
    builder.add_node("add_one", add_one)
    builder.add_node("add_two", add_two)
    builder.add_edge(START, "add_one")
    builder.add_edge("add_one", "add_two")
    builder.add_edge("add_two", END)
    return builder


@pytest.fixture
def saver() -> MemorySaver:
    """Fixture providing an in-memory checkpoint store."""
    return MemorySaver()


@pytest.fixture
def thread() -> Dict[str, str]:
    """Fixture providing a run config for one thread."""
    return {"thread_id": "thread-1"}


@pytest.fixture
def numbers_builder() -> StateGraph:
    """Fixture providing the numeric graph builder."""
    return build_numbers_graph()
