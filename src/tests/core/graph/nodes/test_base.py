"""Tests for the base Node wrapper."""

from typing import Any, Dict

import pytest
from pydantic import BaseModel, ValidationError

from stepgraph.core.config import RunConfig
from stepgraph.core.errors import InvalidUpdateError
from stepgraph.core.graph.nodes.base.node import Node, normalize_update
from stepgraph.core.graph.stream import StreamWriter


@pytest.fixture
def config() -> RunConfig:
    return RunConfig(thread_id="t")


@pytest.fixture
def writer() -> StreamWriter:
    return StreamWriter("node", 0)


class CounterNode(Node):
    """A node subclass implementing process directly."""
    increment: int = 1

    async def process(self, state: Dict[str, Any], config: RunConfig, writer: StreamWriter) -> Dict[str, Any]:
        return {"count": state["count"] + self.increment}


class TestNodeConfiguration:
    """Test node validation."""

    def test_node_requires_id(self):
        with pytest.raises(ValidationError):
            Node(id="", fn=lambda state: None)

    def test_reserved_id(self):
        with pytest.raises(ValidationError):
            Node(id="__end__", fn=lambda state: None)

    def test_metadata(self):
        node = Node(id="n", fn=lambda state: None, metadata={"owner": "ops"})
        assert node.get_metadata("owner") == "ops"
        assert node.get_metadata("missing", "default") == "default"


class TestNodeProcessing:
    """Test running node bodies."""

    async def test_sync_body(self, config, writer):
        node = Node(id="n", fn=lambda state: {"x": state["x"] * 2})
        assert await node.process({"x": 2}, config, writer) == {"x": 4}

    async def test_async_body(self, config, writer):
        async def body(state):
            return {"x": 1}

        assert await Node(id="n", fn=body).process({}, config, writer) == {"x": 1}

    async def test_injects_config_and_writer(self, config, writer):
        seen = {}

        def body(state, config, writer):
            seen["config"] = config
            seen["writer"] = writer
            return None

        await Node(id="n", fn=body).process({}, config, writer)
        assert seen == {"config": config, "writer": writer}

    async def test_injects_through_kwargs(self, config, writer):
        def body(state, **kwargs):
            return {"keys": sorted(kwargs)}

        result = await Node(id="n", fn=body).process({}, config, writer)
        assert result == {"keys": ["config", "writer"]}

    async def test_callable_object(self, config, writer):
        class Doubler:
            def __call__(self, state):
                return {"x": state["x"] * 2}

        assert await Node(id="n", fn=Doubler()).process({"x": 3}, config, writer) == {"x": 6}

    async def test_subclass(self, config, writer):
        node = CounterNode(id="counter", increment=5)
        assert await node.process({"count": 1}, config, writer) == {"count": 6}

    async def test_missing_body(self, config, writer):
        with pytest.raises(NotImplementedError):
            await Node(id="n").process({}, config, writer)


class TestNormalizeUpdate:
    """Test return value normalization."""

    def test_none(self):
        assert normalize_update("n", None) == {}

    def test_dict_copied(self):
        update = {"a": 1}
        normalized = normalize_update("n", update)
        assert normalized == update
        assert normalized is not update

    def test_model_fields_set(self):
        class Update(BaseModel):
            a: int = 0
            b: int = 0

        assert normalize_update("n", Update(a=3)) == {"a": 3}

    def test_invalid(self):
        with pytest.raises(InvalidUpdateError):
            normalize_update("n", ["not", "a", "dict"])
