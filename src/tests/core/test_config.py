"""Tests for engine configuration.

This module tests:
- Default values and validation
- Environment variable integration
- Run config coercion
"""

import pytest
from pydantic import ValidationError

from stepgraph.core.config import GraphConfig, RunConfig


@pytest.fixture
def basic_config() -> GraphConfig:
    """Fixture providing a basic graph configuration."""
    return GraphConfig()


class TestGraphConfig:
    """Test suite for GraphConfig."""

    def test_defaults(self, basic_config: GraphConfig):
        assert basic_config.recursion_limit == 25
        assert basic_config.max_concurrency is None
        assert basic_config.debug is False

    def test_custom_values(self):
        config = GraphConfig(recursion_limit=5, max_concurrency=2, debug=True)
        assert config.recursion_limit == 5
        assert config.max_concurrency == 2

    @pytest.mark.parametrize("field,value", [("recursion_limit", 0), ("max_concurrency", -1)])
    def test_invalid_values(self, field: str, value: int):
        with pytest.raises(ValidationError):
            GraphConfig(**{field: value})

    def test_validate_assignment(self, basic_config: GraphConfig):
        with pytest.raises(ValidationError):
            basic_config.recursion_limit = 0


class TestEnvironment:
    """Test reading settings from the environment."""

    def test_from_env(self):
        config = GraphConfig.from_env({
            "STEPGRAPH_RECURSION_LIMIT": "7",
            "STEPGRAPH_MAX_CONCURRENCY": "3",
            "STEPGRAPH_DEBUG": "true",
        })
        assert config.recursion_limit == 7
        assert config.max_concurrency == 3
        assert config.debug is True

    def test_invalid_env_falls_back(self, caplog):
        config = GraphConfig.from_env({"STEPGRAPH_RECURSION_LIMIT": "lots"})
        assert config.recursion_limit == 25
        assert "STEPGRAPH_RECURSION_LIMIT" in caplog.text

    def test_overrides_win(self):
        config = GraphConfig.from_env({"STEPGRAPH_RECURSION_LIMIT": "7"}, recursion_limit=9)
        assert config.recursion_limit == 9

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_RECURSION_LIMIT", "11")
        assert GraphConfig.from_env().recursion_limit == 11


class TestRunConfig:
    """Test run config coercion."""

    def test_coerce(self):
        assert RunConfig.coerce(None) == RunConfig()
        assert RunConfig.coerce({"thread_id": "a"}).thread_id == "a"
        config = RunConfig(thread_id="b")
        assert RunConfig.coerce(config) is config

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError):
            RunConfig.coerce("thread")

    def test_at(self):
        config = RunConfig(thread_id="a", recursion_limit=3).at("cp-1")
        assert config.checkpoint_id == "cp-1"
        assert config.recursion_limit == 3

    def test_frozen(self):
        with pytest.raises(ValidationError):
            RunConfig(thread_id="a").thread_id = "b"
