"""
tooldeck

Terminal dashboard that launches, supervises and tears down local server
processes and streams their output into bounded log panels:

- Config: JSON menu definition plus environment-driven settings
- Types: Slot, ManagedCommand, Status
- TUI: supervisor, dispatcher and Rich-based control loop (tooldeck.tui)
- CLI infrastructure: Typer-based command structure
"""

__version__ = "0.1.0"

from tooldeck.config import (
    CommandInfo,
    DeckConfig,
    Settings,
    UtilityCommand,
    default_config,
    load_config,
)
from tooldeck.errors import ConfigError, NoSelectionError, SpawnError, TerminationError
from tooldeck.types import ManagedCommand, Slot, Status

__all__ = [
    "__version__",
    # Config
    "CommandInfo",
    "DeckConfig",
    "Settings",
    "UtilityCommand",
    "default_config",
    "load_config",
    # Errors
    "ConfigError",
    "NoSelectionError",
    "SpawnError",
    "TerminationError",
    # Types
    "ManagedCommand",
    "Slot",
    "Status",
]
