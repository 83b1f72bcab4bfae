"""
Core enums shared by the config layer and the dashboard.

- Slot: the fixed set of long-running process roles
- ManagedCommand: closed set of operations a menu entry can perform
- Status: menu-facing liveness of a slot

Per project patterns:
- Use str enum for JSON serialization compatibility
"""

from enum import Enum


class Slot(str, Enum):
    """Managed long-running process role."""

    PRIMARY = "primary"
    """Generative-media server (ComfyUI in the default config)."""

    SECONDARY = "secondary"
    """Scheduled-task server (cron-style service in the default config)."""


class ManagedCommand(str, Enum):
    """
    Operation performed by a menu entry.

    Values are the tags written in the config file, so existing
    config files keep loading.
    """

    START_PRIMARY = "ComfyRun"
    UPDATE_PRIMARY = "ComfyUpdate"
    STOP_PRIMARY = "ComfyKill"
    START_SECONDARY = "CronRun"
    STOP_SECONDARY = "CronKill"
    SHOW_CONFIG = "Config"
    SHOW_ABOUT = "About"
    QUIT = "Exit"

    @property
    def slot(self) -> Slot | None:
        """Slot this command targets, or None for UI-only commands."""
        return _COMMAND_SLOTS.get(self)


_COMMAND_SLOTS = {
    ManagedCommand.START_PRIMARY: Slot.PRIMARY,
    ManagedCommand.UPDATE_PRIMARY: Slot.PRIMARY,
    ManagedCommand.STOP_PRIMARY: Slot.PRIMARY,
    ManagedCommand.START_SECONDARY: Slot.SECONDARY,
    ManagedCommand.STOP_SECONDARY: Slot.SECONDARY,
}


class Status(str, Enum):
    """Liveness shown next to a menu entry."""

    IDLE = "idle"
    RUNNING = "running"
