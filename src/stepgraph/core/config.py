"""Engine configuration.

``GraphConfig`` carries the knobs that shape a run: how many supersteps a
single invocation may take and how many nodes of one superstep may run at
once. Values can be supplied directly or read from ``STEPGRAPH_*`` environment
variables.
"""

import os
from typing import Any, Optional, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.CONFIG)

ENV_PREFIX = "STEPGRAPH_"


class GraphConfig(BaseModel):
    """Execution settings shared by every run of a compiled graph.

    Attributes:
        recursion_limit: Maximum supersteps per invocation before aborting
        max_concurrency: Upper bound on nodes running at once within a step
        debug: Log full state after every committed step
    """
    model_config = ConfigDict(validate_assignment=True)

    recursion_limit: int = Field(default=25, gt=0)
    max_concurrency: Optional[int] = Field(default=None, gt=0)
    debug: bool = Field(default=False)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "GraphConfig":
        """Build a config from ``STEPGRAPH_*`` variables.

        Invalid values are logged and the default is kept.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            try:
                cls.model_validate({name: raw})
            except ValidationError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}{name.upper()}={raw!r}")
                continue
            values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


class RunConfig(BaseModel):
    """Addresses the thread (and optionally the checkpoint) a call targets.

    Attributes:
        thread_id: Logical session owning a checkpoint history
        checkpoint_id: Specific checkpoint to read, resume or fork from
        recursion_limit: Per-call override of ``GraphConfig.recursion_limit``
    """
    model_config = ConfigDict(frozen=True)

    thread_id: Optional[str] = None
    checkpoint_id: Optional[str] = None
    recursion_limit: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def coerce(cls, config: Any) -> "RunConfig":
        """Accept a ``RunConfig``, a plain mapping, or ``None``."""
        if config is None:
            return cls()
        if isinstance(config, RunConfig):
            return config
        if isinstance(config, Mapping):
            return cls.model_validate(dict(config))
        raise TypeError(f"Expected RunConfig or mapping, got {type(config).__name__}")

    def at(self, checkpoint_id: Optional[str]) -> "RunConfig":
        """Same thread, pointing at ``checkpoint_id``."""
        return self.model_copy(update={"checkpoint_id": checkpoint_id})
