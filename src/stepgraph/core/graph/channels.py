"""Channels, reducers and state schemas.

A channel is a named slot of the shared state. Each channel owns a reducer,
``reducer(previous, update) -> merged``, and an optional default factory.
Reducers always accept ``None`` as the previous value so a channel without a
default behaves the same as one whose default was just applied.

A :class:`StateSchema` groups channels and is the only place where node
updates are folded into state.

Example:
    ```python
    from typing import Annotated, List, TypedDict

    class State(TypedDict):
        summary: str                       # overwrite
        log: Annotated[List[str], append]  # concatenation

    schema = StateSchema.from_typed_dict(State)
    values = schema.initial_values()
    values = schema.apply(values, [("node1", {"log": ["a"]})])
    ```
"""

import copy
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel, ConfigDict, Field

from stepgraph.core.errors import InvalidUpdateError, NodeExecutionError
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.CHANNELS)

Reducer = Callable[[Any, Any], Any]


def overwrite(previous: Any, update: Any) -> Any:
    """Last write wins."""
    return update


def append(previous: Any, update: Any) -> List[Any]:
    """Concatenate ``update`` onto ``previous``.

    Lists and tuples are spliced in; any other value is appended as a single
    item. Returns a new list, so ``append(append(s, a), b) == append(s, a + b)``.
    """
    merged = list(previous) if previous is not None else []
    if update is None:
        return merged
    if isinstance(update, (list, tuple)):
        merged.extend(update)
    else:
        merged.append(update)
    return merged


class Channel(BaseModel):
    """A named state slot with a merge policy.

    Attributes:
        reducer: Merge function applied to every update
        default: Zero-argument factory for the initial value
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    reducer: Callable[[Any, Any], Any] = Field(default=overwrite)
    default: Optional[Callable[[], Any]] = Field(default=None)

    def initial(self) -> Any:
        """Fresh initial value for this channel."""
        return self.default() if self.default is not None else None

    def merge(self, current: Any, update: Any) -> Any:
        """Fold a single update into ``current``."""
        return self.reducer(current, update)


ChannelSpec = Union[Channel, Callable[[Any, Any], Any], None]

_DEFAULT_FACTORIES = {list: list, dict: dict, set: set}


def _channel_from_annotation(annotation: Any) -> Channel:
    default = None
    reducer: Reducer = overwrite
    base = annotation
    if get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, Channel):
                return extra
            if callable(extra):
                reducer = extra
                break
    origin = get_origin(base) or base
    if origin in _DEFAULT_FACTORIES and reducer is not overwrite:
        default = _DEFAULT_FACTORIES[origin]
    return Channel(reducer=reducer, default=default)


class StateSchema(BaseModel):
    """An ordered set of channels.

    Attributes:
        channels: Channel definitions keyed by channel name
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    channels: Dict[str, Channel] = Field(default_factory=dict)

    @classmethod
    def coerce(cls, spec: Any) -> "StateSchema":
        """Build a schema from a schema, a mapping or a ``TypedDict`` class."""
        if spec is None:
            return cls()
        if isinstance(spec, StateSchema):
            return spec
        if isinstance(spec, Mapping):
            channels = {}
            for name, value in spec.items():
                if isinstance(value, Channel):
                    channels[name] = value
                elif value is None:
                    channels[name] = Channel()
                elif callable(value):
                    channels[name] = Channel(reducer=value)
                else:
                    raise TypeError(f"Channel '{name}' must be a Channel, reducer or None")
            return cls(channels=channels)
        if isinstance(spec, type):
            return cls.from_typed_dict(spec)
        raise TypeError(f"Cannot build a state schema from {spec!r}")

    @classmethod
    def from_typed_dict(cls, typed_dict: type) -> "StateSchema":
        """Read channels from class annotations; ``Annotated[T, reducer]`` sets the reducer."""
        hints = get_type_hints(typed_dict, include_extras=True)
        return cls(channels={name: _channel_from_annotation(hint) for name, hint in hints.items()})

    def merged_with(self, *others: "StateSchema") -> "StateSchema":
        """Union of schemas. Channels already defined here take precedence."""
        channels = dict(self.channels)
        for other in others:
            for name, channel in other.channels.items():
                channels.setdefault(name, channel)
        return StateSchema(channels=channels)

    @property
    def keys(self) -> List[str]:
        return list(self.channels)

    def initial_values(self) -> Dict[str, Any]:
        return {name: channel.initial() for name, channel in self.channels.items()}

    def project(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Restrict ``values`` to this schema's channels."""
        return {name: copy.deepcopy(values.get(name)) for name in self.channels}

    def check_update(self, update: Mapping[str, Any]) -> None:
        unknown = [key for key in update if key not in self.channels]
        if unknown:
            raise InvalidUpdateError(
                f"Update writes unknown channel(s) {unknown}; known channels are {self.keys}"
            )

    def apply(
        self,
        values: Mapping[str, Any],
        writes: Iterable[Tuple[str, Optional[Mapping[str, Any]]]],
    ) -> Dict[str, Any]:
        """Merge ``(writer, update)`` pairs into a copy of ``values``, in order.

        Raises:
            InvalidUpdateError: If an update names an unknown channel
            NodeExecutionError: If a reducer fails; names the writer
        """
        merged = copy.deepcopy(dict(values))
        for writer, update in writes:
            if not update:
                continue
            self.check_update(update)
            for name, value in update.items():
                channel = self.channels[name]
                try:
                    merged[name] = channel.merge(merged.get(name), copy.deepcopy(value))
                except Exception as e:
                    logger.error(f"Reducer for channel '{name}' failed on update from '{writer}': {e}")
                    raise NodeExecutionError(writer, e) from e
        return merged
