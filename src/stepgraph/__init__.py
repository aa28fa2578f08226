"""Stepgraph - durable graph execution with checkpoints and interrupts."""

from stepgraph.core.checkpoint import MemorySaver, SqliteSaver
from stepgraph.core.config import GraphConfig, RunConfig
from stepgraph.core.errors import (
    CheckpointIOError,
    EmptyInputError,
    GraphDefinitionError,
    GraphRecursionError,
    InterruptSignal,
    InvalidUpdateError,
    NodeExecutionError,
    RoutingError,
    StepGraphError,
    interrupt,
)
from stepgraph.core.graph import (
    END,
    START,
    AIMessage,
    HumanMessage,
    MessagesState,
    RemoveMessage,
    StateGraph,
    ToolNode,
    add_messages,
    append,
    entrypoint,
    get_previous_state,
    task,
    tools_condition,
)
from stepgraph.core.logging import configure_logging, LogLevel, LogComponent

__all__ = [
    'StateGraph',
    'START',
    'END',
    'MessagesState',
    'HumanMessage',
    'AIMessage',
    'RemoveMessage',
    'ToolNode',
    'tools_condition',
    'add_messages',
    'append',
    'entrypoint',
    'task',
    'get_previous_state',
    'MemorySaver',
    'SqliteSaver',
    'GraphConfig',
    'RunConfig',
    'interrupt',
    'InterruptSignal',
    'StepGraphError',
    'GraphDefinitionError',
    'RoutingError',
    'NodeExecutionError',
    'CheckpointIOError',
    'InvalidUpdateError',
    'EmptyInputError',
    'GraphRecursionError',
    'configure_logging',
    'LogLevel',
    'LogComponent'
]
