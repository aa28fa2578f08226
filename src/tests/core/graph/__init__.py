"""Test suite for the stepgraph graph engine.

This package contains tests for the graph system, organized as:

1. Builder and compilation (test_base.py)
2. Channels and reducers (test_channels.py, test_messages.py)
3. Superstep execution (test_scheduler.py)
4. Breakpoints and dynamic interrupts (test_interrupts.py)
5. State inspection and time travel (test_state.py)
6. Streaming (test_stream.py)
7. Nodes (nodes/)
"""
