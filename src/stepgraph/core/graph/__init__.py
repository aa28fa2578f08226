"""Graph package initialization.

Exposes core graph components and helpers for building workflows.
"""

from stepgraph.core.graph.base import StateGraph
from stepgraph.core.graph.channels import Channel, StateSchema, append, overwrite
from stepgraph.core.graph.compiled import CompiledGraph
from stepgraph.core.graph.edges import END, START
from stepgraph.core.graph.func import Entrypoint, Final, entrypoint, get_previous_state, task
from stepgraph.core.graph.messages import (
    REMOVE_ALL_MESSAGES,
    AIMessage,
    HumanMessage,
    Message,
    MessagesState,
    RemoveMessage,
    SystemMessage,
    ToolCall,
    ToolMessage,
    add_messages,
    trim_messages,
)
from stepgraph.core.graph.nodes import Node, ToolNode, tools_condition
from stepgraph.core.graph.state import RunStatus, StateSnapshot, Task
from stepgraph.core.graph.stream import EventKind, StreamEvent, StreamMode, StreamWriter

__all__ = [
    # Core classes
    "StateGraph",
    "CompiledGraph",
    "Node",
    "ToolNode",
    "StateSnapshot",
    "Task",
    "RunStatus",

    # State
    "Channel",
    "StateSchema",
    "MessagesState",
    "append",
    "overwrite",
    "add_messages",
    "trim_messages",

    # Messages
    "Message",
    "HumanMessage",
    "AIMessage",
    "SystemMessage",
    "ToolMessage",
    "ToolCall",
    "RemoveMessage",
    "REMOVE_ALL_MESSAGES",

    # Streaming
    "StreamMode",
    "StreamEvent",
    "StreamWriter",
    "EventKind",

    # Functional API
    "entrypoint",
    "task",
    "get_previous_state",
    "Entrypoint",
    "Final",

    # Sentinels and helpers
    "START",
    "END",
    "tools_condition",
]
