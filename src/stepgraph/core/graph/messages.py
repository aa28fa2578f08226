"""Chat messages and the message-history reducer.

Messages carry an ``id`` so a history channel can be edited in place:
``add_messages`` replaces an entry whose id already exists, drops the entry
named by a :class:`RemoveMessage` tombstone, and appends everything else.

Messages convert to and from Mirascope's ``BaseMessageParam`` so a node can
hand the history straight to a Mirascope call and store the reply.
"""

import uuid
from typing import Any, Dict, List, Literal, Optional, TypedDict, Annotated, Union

from mirascope.core import BaseMessageParam
from pydantic import BaseModel, Field

from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.CHANNELS)

REMOVE_ALL_MESSAGES = "__remove_all__"


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")


class Message(BaseModel):
    """Base chat message.

    Attributes:
        role: Mirascope/OpenAI style role name
        content: Message body
        id: Stable identity used by ``add_messages``
        name: Optional speaker name
    """
    role: str
    content: Any = ""
    id: Optional[str] = None
    name: Optional[str] = None

    def to_param(self) -> BaseMessageParam:
        """Convert to a Mirascope message parameter."""
        return BaseMessageParam(role=self.role, content=self.content)

    @classmethod
    def from_param(cls, param: BaseMessageParam, **fields) -> "Message":
        """Build the matching message subclass from a Mirascope message parameter."""
        message_cls = _ROLE_TYPES.get(param.role)
        if message_cls is None:
            return Message(role=param.role, content=param.content, **fields)
        return message_cls(content=param.content, **fields)


class HumanMessage(Message):
    role: Literal["user"] = "user"

    def __init__(self, content: Any = "", **data):
        super().__init__(content=content, **data)


class AIMessage(Message):
    role: Literal["assistant"] = "assistant"
    tool_calls: List[ToolCall] = Field(default_factory=list)

    def __init__(self, content: Any = "", **data):
        super().__init__(content=content, **data)


class SystemMessage(Message):
    role: Literal["system"] = "system"

    def __init__(self, content: Any = "", **data):
        super().__init__(content=content, **data)


class ToolMessage(Message):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    status: Literal["success", "error"] = "success"

    def __init__(self, content: Any = "", **data):
        super().__init__(content=content, **data)


class RemoveMessage(BaseModel):
    """Tombstone: removes the message with ``id`` from a history channel."""
    id: str


_ROLE_TYPES = {
    "user": HumanMessage,
    "assistant": AIMessage,
    "system": SystemMessage,
    "tool": ToolMessage,
}

MessageLike = Union[Message, RemoveMessage, BaseMessageParam, Dict[str, Any], str]


def coerce_message(value: MessageLike) -> Union[Message, RemoveMessage]:
    """Normalize supported message shapes to a ``Message`` or ``RemoveMessage``."""
    if isinstance(value, (Message, RemoveMessage)):
        return value
    if isinstance(value, str):
        return HumanMessage(value)
    if isinstance(value, BaseMessageParam):
        return Message.from_param(value)
    if isinstance(value, dict):
        role = value.get("role")
        if role == "remove":
            return RemoveMessage(id=value["id"])
        message_cls = _ROLE_TYPES.get(role, Message)
        return message_cls.model_validate(value)
    raise TypeError(f"Cannot interpret {type(value).__name__} as a message")


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _index_of(messages: List[Message], message_id: str) -> Optional[int]:
    for i, message in enumerate(messages):
        if message.id == message_id:
            return i
    return None


def add_messages(left: Any, right: Any) -> List[Message]:
    """Merge ``right`` into the history ``left`` by message id.

    - an update whose id already exists replaces that entry in place
    - a ``RemoveMessage`` drops the entry with its id
      (``REMOVE_ALL_MESSAGES`` clears the history)
    - anything else is appended; messages without an id receive one

    Updates are applied in order, so ``[RemoveMessage(id="1"), msg_1]``
    first drops and then re-adds id ``"1"`` at the end.
    """
    merged: List[Message] = [coerce_message(m) for m in _as_list(left)]
    for raw in _as_list(right):
        message = coerce_message(raw)
        if isinstance(message, RemoveMessage):
            if message.id == REMOVE_ALL_MESSAGES:
                merged = []
                continue
            index = _index_of(merged, message.id)
            if index is None:
                logger.debug(f"Ignoring tombstone for unknown message id '{message.id}'")
            else:
                del merged[index]
            continue
        if message.id is None:
            message = message.model_copy(update={"id": str(uuid.uuid4())})
        index = _index_of(merged, message.id)
        if index is None:
            merged.append(message)
        else:
            merged[index] = message
    return merged


def trim_messages(
    messages: List[Message],
    max_messages: int,
    strategy: Literal["last", "first"] = "last",
    include_system: bool = True,
    start_on: Optional[str] = None,
) -> List[Message]:
    """Keep at most ``max_messages`` entries of a history.

    Args:
        messages: History to trim
        max_messages: Size budget, including a kept system message
        strategy: Keep the most recent (``"last"``) or the oldest (``"first"``)
        include_system: Always keep a leading system message
        start_on: With ``"last"``, drop leading kept messages until this role
    """
    if max_messages <= 0:
        return []
    system: List[Message] = []
    rest = list(messages)
    if include_system and rest and rest[0].role == "system":
        system, rest = [rest[0]], rest[1:]
    budget = max_messages - len(system)
    if budget <= 0:
        return system[:max_messages]
    if strategy == "first":
        kept = rest[:budget]
    else:
        kept = rest[-budget:]
        if start_on is not None:
            while kept and kept[0].role != start_on:
                kept = kept[1:]
    return system + kept


def messages_to_params(messages: List[Message]) -> List[BaseMessageParam]:
    """Convert a history for a Mirascope call."""
    return [m.to_param() for m in messages]


class MessagesState(TypedDict):
    """State with a single id-keyed message history."""
    messages: Annotated[List[Message], add_messages]
