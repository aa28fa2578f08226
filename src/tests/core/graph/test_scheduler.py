"""Tests for superstep execution."""

import asyncio
from typing import Annotated, Any, Dict, List, Literal, TypedDict

import pytest
from pydantic import BaseModel

from stepgraph.core.checkpoint import CheckpointSource, MemorySaver
from stepgraph.core.config import GraphConfig
from stepgraph.core.errors import (
    EmptyInputError,
    GraphRecursionError,
    InvalidUpdateError,
    NodeExecutionError,
    RoutingError,
)
from stepgraph.core.graph import END, START, StateGraph, append
from stepgraph.core.graph.channels import Channel
from stepgraph.core.graph.state import RunStatus


def increment(state: Dict[str, Any]) -> Dict[str, Any]:
    return {"foo": state["foo"] + [state["foo"][-1] + 1]}


def build_foo_graph() -> StateGraph:
    """Three nodes extending an overwrite channel that defaults to []."""
    builder = StateGraph({"foo": Channel(default=list)})
    for node_id in ("node1", "node2", "node3"):
        builder.add_node(node_id, increment)
    builder.chain(["node1", "node2", "node3"])
    builder.add_edge("node3", END)
    return builder


class FanState(TypedDict):
    log: Annotated[List[str], append]


def build_fan_graph(delays: Dict[str, float]) -> StateGraph:
    """START -> (b, c) -> d -> END with per-node delays."""
    builder = StateGraph(FanState)

    def make(node_id: str):
        async def body(state):
            await asyncio.sleep(delays.get(node_id, 0))
            return {"log": [node_id]}
        return body

    for node_id in ("a", "b", "c", "d"):
        builder.add_node(node_id, make(node_id))
    builder.add_edge(START, "a")
    builder.add_edge("a", "b")
    builder.add_edge("a", "c")
    builder.add_edge("b", "d")
    builder.add_edge("c", "d")
    builder.add_edge("d", END)
    return builder


class TestBasicExecution:
    """Test end-to-end runs."""

    async def test_numeric_scenario(self):
        """Each node appends last + 1 through an overwrite channel."""
        graph = build_foo_graph().compile()
        result = await graph.invoke({"foo": [0]})
        assert result == {"foo": [0, 1, 2, 3]}

    async def test_append_channel(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        graph = numbers_builder.compile(checkpointer=saver)
        result = await graph.invoke({"numbers": [0]}, thread)
        assert result == {"numbers": [0, 1, 3]}

    async def test_checkpoint_chain(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        """One input checkpoint plus one per superstep, linked by parent ids."""
        graph = numbers_builder.compile(checkpointer=saver)
        await graph.invoke({"numbers": [0]}, thread)
        history = await saver.list(thread)
        assert [c.source for c in reversed(history)] == [
            CheckpointSource.INPUT,
            CheckpointSource.LOOP,
            CheckpointSource.LOOP,
        ]
        assert [c.step for c in reversed(history)] == [0, 1, 2]
        assert history[0].parent_checkpoint_id == history[1].checkpoint_id
        assert history[0].next == []
        assert history[0].pending_writes == [("add_two", "numbers", [3])]

    async def test_fan_out_merges_in_frontier_order(self):
        """Concurrent nodes merge in frontier order regardless of finish order."""
        graph = build_fan_graph({"b": 0.05, "c": 0}).compile()
        result = await graph.invoke({"log": []})
        assert result["log"] == ["a", "b", "c", "d"]

    async def test_determinism(self):
        """Different timings give the same final state."""
        slow_b = await build_fan_graph({"b": 0.03}).compile().invoke({"log": []})
        slow_c = await build_fan_graph({"c": 0.03}).compile().invoke({"log": []})
        assert slow_b == slow_c

    async def test_join_runs_once(self):
        """A node reached from two predecessors is scheduled once."""
        result = await build_fan_graph({}).compile().invoke({"log": []})
        assert result["log"].count("d") == 1

    async def test_sync_and_async_nodes(self):
        builder = StateGraph({"value": None})

        def sync_node(state):
            return {"value": 1}

        async def async_node(state):
            return {"value": state["value"] + 1}

        builder.chain([sync_node, async_node])
        builder.add_edge("async_node", END)
        assert await builder.compile().invoke({"value": 0}) == {"value": 2}

    async def test_pydantic_update(self):
        """Only the fields a model sets are written."""

        class Update(BaseModel):
            a: int = 0
            b: int = 0

        builder = StateGraph({"a": None, "b": None})
        builder.add_node("set_b", lambda state: Update(b=5))
        builder.add_edge(START, "set_b")
        builder.add_edge("set_b", END)
        assert await builder.compile().invoke({"a": 1}) == {"a": 1, "b": 5}

    async def test_nodes_get_copies(self):
        """Mutating the input state inside a node has no effect."""
        builder = StateGraph({"items": Channel(default=list)})

        def vandal(state):
            state["items"].append("mutated")
            return None

        builder.add_node("vandal", vandal)
        builder.add_edge(START, "vandal")
        builder.add_edge("vandal", END)
        assert await builder.compile().invoke({"items": ["x"]}) == {"items": ["x"]}

    async def test_config_injection(self, saver: MemorySaver):
        seen = []
        builder = StateGraph({"value": None})

        def node(state, config):
            seen.append(config.thread_id)
            return None

        builder.add_node("node", node)
        builder.add_edge(START, "node")
        builder.add_edge("node", END)
        await builder.compile(checkpointer=saver).invoke({"value": 1}, {"thread_id": "t-9"})
        assert seen == ["t-9"]


class TestRouting:
    """Test conditional edges at run time."""

    @staticmethod
    def build(router) -> StateGraph:
        builder = StateGraph({"route": None, "visited": append})
        builder.add_node("start", lambda state: {"visited": ["start"]})
        builder.add_node("left", lambda state: {"visited": ["left"]})
        builder.add_node("right", lambda state: {"visited": ["right"]})
        builder.add_edge(START, "start")
        builder.add_conditional_edges("start", router, ["left", "right"])
        builder.add_edge("left", END)
        builder.add_edge("right", END)
        return builder

    async def test_router_sees_state(self):
        graph = self.build(lambda state: state["route"]).compile()
        result = await graph.invoke({"route": "right"})
        assert result["visited"] == ["start", "right"]

    async def test_async_router(self):
        async def router(state) -> Literal["left", "right"]:
            return "left"

        result = await self.build(router).compile().invoke({"route": None})
        assert result["visited"] == ["start", "left"]

    async def test_router_can_end(self):
        result = await self.build(lambda state: END).compile().invoke({"route": None})
        assert result["visited"] == ["start"]

    async def test_undeclared_target(self, saver: MemorySaver, thread):
        """An undeclared target raises and leaves the checkpoint chain unchanged."""
        graph = self.build(lambda state: "nowhere").compile(checkpointer=saver)
        with pytest.raises(RoutingError) as exc_info:
            await graph.invoke({"route": None}, thread)
        assert exc_info.value.target == "nowhere"
        history = await saver.list(thread)
        assert [c.source for c in history] == [CheckpointSource.INPUT]

    async def test_path_map(self):
        builder = StateGraph({"flag": None, "visited": append})
        builder.add_node("check", lambda state: None)
        builder.add_node("yes", lambda state: {"visited": ["yes"]})
        builder.add_edge(START, "check")
        builder.add_conditional_edges("check", lambda state: state["flag"], {True: "yes", False: END})
        builder.add_edge("yes", END)
        graph = builder.compile()
        assert (await graph.invoke({"flag": True}))["visited"] == ["yes"]
        assert (await graph.invoke({"flag": False}))["visited"] is None

    async def test_path_map_router_can_end(self):
        builder = StateGraph({"visited": append})
        builder.add_node("check", lambda state: None)
        builder.add_node("yes", lambda state: {"visited": ["yes"]})
        builder.add_edge(START, "check")
        builder.add_conditional_edges("check", lambda state: END, {"go": "yes"})
        builder.add_edge("yes", END)
        assert (await builder.compile().invoke({"visited": []}))["visited"] == []

    async def test_loop_without_explicit_end(self):
        """A loop whose router only declares the loop target still finishes on END."""
        builder = StateGraph({"count": None})
        builder.add_node("agent", lambda state: {"count": state["count"] + 1})
        builder.add_node("action", lambda state: None)
        builder.add_edge(START, "agent")
        builder.add_conditional_edges("agent", lambda state: "action" if state["count"] < 3 else END, ["action"])
        builder.add_edge("action", "agent")
        assert await builder.compile().invoke({"count": 0}) == {"count": 3}

    async def test_router_failure(self):
        def broken(state):
            raise KeyError("boom")

        with pytest.raises(NodeExecutionError) as exc_info:
            await self.build(broken).compile().invoke({"route": None})
        assert exc_info.value.node_id == "start"


class TestFailures:
    """Test node failures and limits."""

    async def test_node_failure_not_committed(self, saver: MemorySaver, thread):
        """A failing step leaves the thread at the previous checkpoint."""
        builder = StateGraph({"value": None})
        builder.add_node("ok", lambda state: {"value": 1})
        builder.add_node("bad", lambda state: 1 / 0)
        builder.chain(["ok", "bad"])
        builder.add_edge("bad", END)
        graph = builder.compile(checkpointer=saver)

        with pytest.raises(NodeExecutionError) as exc_info:
            await graph.invoke({"value": 0}, thread)
        assert exc_info.value.node_id == "bad"
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

        snapshot = await graph.get_state(thread)
        assert snapshot.values == {"value": 1}
        assert snapshot.next == ["bad"]

    async def test_first_failure_in_frontier_order(self):
        builder = StateGraph({"value": None})

        async def fails_late(state):
            await asyncio.sleep(0.02)
            raise ValueError("late")

        def fails_early(state):
            raise ValueError("early")

        builder.add_node("first", fails_late)
        builder.add_node("second", fails_early)
        builder.add_edge(START, "first")
        builder.add_edge(START, "second")
        builder.add_edge("first", END)
        builder.add_edge("second", END)
        with pytest.raises(NodeExecutionError) as exc_info:
            await builder.compile().invoke({"value": 0})
        assert exc_info.value.node_id == "first"

    async def test_unknown_channel_is_node_failure(self):
        builder = StateGraph({"value": None})
        builder.add_node("typo", lambda state: {"valeu": 1})
        builder.add_edge(START, "typo")
        builder.add_edge("typo", END)
        with pytest.raises(NodeExecutionError) as exc_info:
            await builder.compile().invoke({"value": 0})
        assert isinstance(exc_info.value.error, InvalidUpdateError)

    async def test_bad_return_type(self):
        builder = StateGraph({"value": None})
        builder.add_node("wrong", lambda state: "not a dict")
        builder.add_edge(START, "wrong")
        builder.add_edge("wrong", END)
        with pytest.raises(NodeExecutionError):
            await builder.compile().invoke({"value": 0})

    async def test_recursion_limit(self):
        """A loop that never ends is stopped after the step budget."""
        builder = StateGraph({"count": None})
        builder.add_node("loop", lambda state: {"count": state["count"] + 1})
        builder.add_edge(START, "loop")
        builder.add_conditional_edges("loop", lambda state: "loop", ["loop", END])
        graph = builder.compile(config=GraphConfig(recursion_limit=5))
        with pytest.raises(GraphRecursionError):
            await graph.invoke({"count": 0})

    async def test_recursion_limit_per_call(self, saver: MemorySaver):
        builder = StateGraph({"count": None})
        builder.add_node("loop", lambda state: {"count": state["count"] + 1})
        builder.add_edge(START, "loop")
        builder.add_conditional_edges("loop", lambda state: "loop" if state["count"] < 10 else END, ["loop", END])
        graph = builder.compile(checkpointer=saver)
        with pytest.raises(GraphRecursionError):
            await graph.invoke({"count": 0}, {"thread_id": "r", "recursion_limit": 3})
        snapshot = await graph.get_state({"thread_id": "r"})
        assert snapshot.values["count"] == 3

    async def test_invalid_input_key(self):
        builder = StateGraph({"value": None}, input_schema={"question": None})
        builder.add_node("a", lambda state: None)
        builder.add_edge(START, "a")
        builder.add_edge("a", END)
        with pytest.raises(InvalidUpdateError):
            await builder.compile().invoke({"value": 1})

    async def test_thread_id_required_with_checkpointer(self, numbers_builder: StateGraph, saver: MemorySaver):
        graph = numbers_builder.compile(checkpointer=saver)
        with pytest.raises(ValueError):
            await graph.invoke({"numbers": [0]})


class TestResume:
    """Test resuming threads."""

    async def test_resume_with_nothing(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        graph = numbers_builder.compile(checkpointer=saver)
        with pytest.raises(EmptyInputError):
            await graph.invoke(None, thread)

    async def test_resume_after_failure(self, saver: MemorySaver, thread):
        """Fixing the cause and resuming finishes the run."""
        attempts = []
        builder = StateGraph({"value": None})

        def flaky(state):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("transient")
            return {"value": state["value"] + 10}

        builder.add_node("flaky", flaky)
        builder.add_edge(START, "flaky")
        builder.add_edge("flaky", END)
        graph = builder.compile(checkpointer=saver)
        with pytest.raises(NodeExecutionError):
            await graph.invoke({"value": 1}, thread)
        assert await graph.invoke(None, thread) == {"value": 11}

    async def test_completed_thread_resume_is_noop(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        graph = numbers_builder.compile(checkpointer=saver)
        await graph.invoke({"numbers": [0]}, thread)
        assert await graph.invoke(None, thread) == {"numbers": [0, 1, 3]}
        assert len(await saver.list(thread)) == 3

    async def test_new_input_continues_thread(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        """New input is merged into the thread's latest values."""
        graph = numbers_builder.compile(checkpointer=saver)
        await graph.invoke({"numbers": [0]}, thread)
        result = await graph.invoke({"numbers": [10]}, thread)
        assert result == {"numbers": [0, 1, 3, 10, 11, 13]}

    async def test_scheduler_status(self, numbers_builder: StateGraph, saver: MemorySaver, thread):
        graph = numbers_builder.compile(checkpointer=saver)
        scheduler = graph._scheduler(thread)
        assert scheduler.status == RunStatus.IDLE
        async for _ in scheduler.run({"numbers": [0]}):
            assert scheduler.status == RunStatus.RUNNING
        assert scheduler.status == RunStatus.COMPLETED


class TestConcurrency:
    """Test concurrent execution limits."""

    async def test_max_concurrency(self):
        running = []
        peak = []

        def make(node_id):
            async def body(state):
                running.append(node_id)
                peak.append(len(running))
                await asyncio.sleep(0.01)
                running.remove(node_id)
                return None
            return body

        builder = StateGraph({"value": None})
        for node_id in ("a", "b", "c", "d"):
            builder.add_node(node_id, make(node_id))
            builder.add_edge(START, node_id)
            builder.add_edge(node_id, END)
        await builder.compile(config=GraphConfig(max_concurrency=2)).invoke({"value": 0})
        assert max(peak) == 2

    async def test_independent_threads(self, numbers_builder: StateGraph, saver: MemorySaver):
        graph = numbers_builder.compile(checkpointer=saver)
        results = await asyncio.gather(
            graph.invoke({"numbers": [0]}, {"thread_id": "x"}),
            graph.invoke({"numbers": [100]}, {"thread_id": "y"}),
        )
        assert results == [{"numbers": [0, 1, 3]}, {"numbers": [100, 101, 103]}]
