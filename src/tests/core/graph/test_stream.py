"""Tests for streaming."""

import asyncio

import pytest

from stepgraph.core.checkpoint import MemorySaver
from stepgraph.core.errors import interrupt
from stepgraph.core.graph import END, START, StateGraph, append
from stepgraph.core.graph.channels import StateSchema
from stepgraph.core.graph.stream import (
    INTERRUPT_KEY,
    EventKind,
    StreamEmitter,
    StreamEvent,
    StreamMode,
    StreamWriter,
    normalize_modes,
)


class TestModes:
    """Test mode parsing and event mapping."""

    def test_single_mode(self):
        assert normalize_modes("values") == ([StreamMode.VALUES], False)

    def test_multiple_modes(self):
        modes, multiple = normalize_modes(["updates", "values", "updates"])
        assert modes == [StreamMode.UPDATES, StreamMode.VALUES]
        assert multiple

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            normalize_modes("debug")

    def test_emitter_projection(self):
        emitter = StreamEmitter("values", StateSchema.coerce({"a": None}))
        event = StreamEvent(event=EventKind.STEP_END, step=1, data={"a": 1, "hidden": 2})
        assert emitter.emit(event) == [{"a": 1}]

    def test_emitter_ignores_other_kinds(self):
        emitter = StreamEmitter("updates", StateSchema())
        assert emitter.emit(StreamEvent(event=EventKind.NODE_START, step=0, node="a")) == []

    def test_writer_without_sink(self):
        """A writer with nowhere to send is a no-op."""
        StreamWriter("a", 0)({"chunk": 1})


class TestStreaming:
    """Test streaming runs."""

    async def test_values(self, numbers_builder: StateGraph):
        graph = numbers_builder.compile()
        chunks = [chunk async for chunk in graph.stream({"numbers": [0]})]
        assert chunks == [{"numbers": [0]}, {"numbers": [0, 1]}, {"numbers": [0, 1, 3]}]

    async def test_updates(self, numbers_builder: StateGraph):
        graph = numbers_builder.compile()
        chunks = [chunk async for chunk in graph.stream({"numbers": [0]}, mode="updates")]
        assert chunks == [{"add_one": {"numbers": [1]}}, {"add_two": {"numbers": [3]}}]

    async def test_multiple_modes(self, numbers_builder: StateGraph):
        graph = numbers_builder.compile()
        chunks = [chunk async for chunk in graph.stream({"numbers": [0]}, mode=["updates", "values"])]
        assert chunks[0] == ("values", {"numbers": [0]})
        assert chunks[1] == ("updates", {"add_one": {"numbers": [1]}})
        assert chunks[2] == ("values", {"numbers": [0, 1]})

    async def test_events_with_custom_writer(self):
        builder = StateGraph({"text": None})

        async def generate(state, writer):
            for token in ["a", "b"]:
                writer({"token": token})
                await asyncio.sleep(0)
            return {"text": "ab"}

        builder.add_node("generate", generate)
        builder.add_edge(START, "generate")
        builder.add_edge("generate", END)
        events = [e async for e in builder.compile().stream({"text": ""}, mode="events")]

        kinds = [(e.event, e.node) for e in events]
        assert kinds == [
            (EventKind.STEP_END, None),
            (EventKind.NODE_START, "generate"),
            (EventKind.CUSTOM, "generate"),
            (EventKind.CUSTOM, "generate"),
            (EventKind.NODE_END, "generate"),
            (EventKind.STEP_END, None),
        ]
        assert [e.data for e in events if e.event == EventKind.CUSTOM] == [{"token": "a"}, {"token": "b"}]
        assert events[-1].data == {"text": "ab"}

    async def test_interrupt_in_updates(self, saver: MemorySaver, thread):
        builder = StateGraph({"value": None})
        builder.add_node("pause", lambda state: interrupt("need approval"))
        builder.add_edge(START, "pause")
        builder.add_edge("pause", END)
        graph = builder.compile(checkpointer=saver)
        chunks = [c async for c in graph.stream({"value": 1}, thread, mode="updates")]
        assert len(chunks) == 1
        markers = chunks[0][INTERRUPT_KEY]
        assert markers[0].node_id == "pause"
        assert markers[0].reason == "need approval"

    async def test_output_schema_projection(self):
        builder = StateGraph({"scratch": None}, input_schema={"question": None}, output_schema={"answer": None})
        builder.add_node("solve", lambda state: {"scratch": "work", "answer": state["question"].upper()})
        builder.add_edge(START, "solve")
        builder.add_edge("solve", END)
        graph = builder.compile()
        chunks = [c async for c in graph.stream({"question": "why"})]
        assert chunks[-1] == {"answer": "WHY"}
        assert await graph.invoke({"question": "how"}) == {"answer": "HOW"}

    async def test_early_termination(self, saver: MemorySaver, thread):
        """Breaking out keeps committed steps and cancels the one in flight."""
        cancelled = []
        builder = StateGraph({"log": append})

        def quick(state):
            return {"log": ["quick"]}

        async def slow(state):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return {"log": ["slow"]}

        builder.chain([quick, slow])
        builder.add_edge("slow", END)
        graph = builder.compile(checkpointer=saver)

        stream = graph.stream({"log": []}, thread, mode="events")
        async for event in stream:
            if event.event == EventKind.NODE_START and event.node == "slow":
                break
        await stream.aclose()

        assert cancelled == [True]
        snapshot = await graph.get_state(thread)
        assert snapshot.values == {"log": ["quick"]}
        assert snapshot.next == ["slow"]
