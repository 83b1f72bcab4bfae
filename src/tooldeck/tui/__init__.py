"""
TUI module for the process dashboard.

This module provides the building blocks of the dashboard:
- LogBuffer: Bounded ring buffer for captured output
- SharedStore, SlotState: Lock-guarded slot state and snapshots
- ProcessSupervisor: Spawn, fan-in, kill for slot processes
- Dispatcher: Menu command to supervisor/UI mapping
- KeyboardTask: Async keyboard reader
- ViewState, MenuEntry: Selection, focus and scroll state
- create_layout, render_dashboard: Rich layout rendering
- TUIController: Control loop with signal handling
"""

from tooldeck.tui.buffer import LogBuffer
from tooldeck.tui.controller import TUIController
from tooldeck.tui.dispatcher import Dispatcher
from tooldeck.tui.keyboard import KeyboardTask
from tooldeck.tui.layout import create_layout, make_panel, render_dashboard
from tooldeck.tui.state import SharedStore, SlotSnapshot, SlotState, StoreSnapshot
from tooldeck.tui.supervisor import ProcessSupervisor
from tooldeck.tui.view import ActivePanel, MenuEntry, ViewState

__all__ = [
    "ActivePanel",
    "Dispatcher",
    "KeyboardTask",
    "LogBuffer",
    "MenuEntry",
    "ProcessSupervisor",
    "SharedStore",
    "SlotSnapshot",
    "SlotState",
    "StoreSnapshot",
    "TUIController",
    "ViewState",
    "create_layout",
    "make_panel",
    "render_dashboard",
]
