"""
Exception classes for process supervision and configuration.

This module defines the failures the dashboard can hit:
- ConfigError: Config file missing, unreadable or invalid
- SpawnError: Child process could not be created
- TerminationError: Kill request rejected by the operating system
- NoSelectionError: Slot-targeted command dispatched with nothing selected

None of these end the application. Each is caught at the boundary that
owns the affected panel and reported there as a log line.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""

from pathlib import Path


class ConfigError(Exception):
    """
    Raised when the config file cannot be read or validated.

    Attributes:
        path: Config file that was attempted
        reason: Why loading failed
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load config {path}: {reason}")


class SpawnError(Exception):
    """
    Raised when a child process cannot be created.

    Usually a wrong executable path or working directory in the config.

    Attributes:
        name: Menu entry name of the command
        exe_path: Executable that was attempted
        reason: Error reported by the operating system
    """

    def __init__(self, name: str, exe_path: str, reason: str) -> None:
        self.name = name
        self.exe_path = exe_path
        self.reason = reason
        super().__init__(f"Failed to start {name} ({exe_path or '<no executable>'}): {reason}")


class TerminationError(Exception):
    """
    Raised when the kill request for a process is rejected.

    Attributes:
        pid: Process identifier that was targeted
        reason: Error reported by the operating system or kill tool
    """

    def __init__(self, pid: int, reason: str) -> None:
        self.pid = pid
        self.reason = reason
        super().__init__(f"Failed to terminate {pid}: {reason}")


class NoSelectionError(Exception):
    """Raised when a command is dispatched without a selected menu entry."""

    def __init__(self) -> None:
        super().__init__("No menu entry selected")
