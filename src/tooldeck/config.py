"""
Configuration for the dashboard.

Two layers:
- DeckConfig: the JSON config file (``tool.json``) listing menu entries,
  render rate and log capacity. Loaded once at startup and again after the
  operator edits it in an external editor.
- Settings: runtime settings from ``TOOLDECK_*`` environment variables
  (config path, editor, log file), overridable from the CLI.

Example:
    A minimal config file:

    ```json
    {
      "fps": 30.0,
      "limit": 20,
      "commands": [
        {
          "name": "run",
          "desc": "run the media server",
          "command": "ComfyRun",
          "exe_path": "python",
          "work_dir": "/srv/comfyui",
          "args": ["main.py", "--lowvram"]
        },
        {"name": "kill", "desc": "stop the media server", "command": "ComfyKill"},
        {"name": "quit", "desc": "quit the application", "command": "Exit"}
      ]
    }
    ```

A missing or invalid file is never an error for the operator:
load_config() regenerates the built-in defaults and writes them back.
"""

import json
import logging
import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

from tooldeck.errors import ConfigError
from tooldeck.types import ManagedCommand

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("tool.json")


class CommandInfo(BaseModel):
    """
    Launch description for one menu entry.

    Immutable after load. Entries that do not launch anything (stop,
    config, about, quit) leave exe_path, work_dir and args empty.

    Attributes:
        name: Title shown in the menu
        desc: Text shown in the info panel when selected
        command: Operation the entry performs
        exe_path: Executable to run
        work_dir: Working directory ("" means the current directory)
        args: Argument vector passed after the executable
    """

    model_config = ConfigDict(frozen=True)

    name: str
    desc: str = ""
    command: ManagedCommand
    exe_path: str = ""
    work_dir: str = ""
    args: tuple[str, ...] = ()


class UtilityCommand(BaseModel):
    """
    One-shot helper command bound to a key.

    Output goes to the diagnostic panel rather than a slot log.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1, max_length=1)
    name: str
    argv: tuple[str, ...] = Field(min_length=1)


def default_utilities() -> list[UtilityCommand]:
    """
    Process listing and kill-all helpers for the current platform.

    Kill all targets the deno server and the ``python main.py`` server.
    A bare python pattern would match the dashboard's own interpreter.
    """
    if sys.platform == "win32":
        list_argv: tuple[str, ...] = ("tasklist",)
        kill_argv: tuple[str, ...] = ("taskkill", "/F", "/T", "/IM", "deno.exe")
    else:
        list_argv = ("ps", "-eo", "pid,comm")
        kill_argv = ("sh", "-c", "pkill -9 -x deno; pkill -9 -f 'python[0-9.]* main[.]py'")
    return [
        UtilityCommand(key="t", name="list tasks", argv=list_argv),
        UtilityCommand(key="k", name="kill all", argv=kill_argv),
    ]


class DeckConfig(BaseModel):
    """
    Contents of the config file.

    Attributes:
        fps: Render ticks per second
        limit: Line capacity of every slot log
        commands: Menu entries in display order
        utilities: Key-bound helper commands for the diagnostic panel
    """

    fps: float = Field(default=30.0, gt=0)
    limit: int = Field(default=20, ge=1)
    commands: list[CommandInfo] = Field(default_factory=list)
    utilities: list[UtilityCommand] = Field(default_factory=default_utilities)

    def find(self, command: ManagedCommand) -> CommandInfo | None:
        """Return the first entry performing command, if any."""
        for info in self.commands:
            if info.command == command:
                return info
        return None


def default_config() -> DeckConfig:
    """Built-in config written when no usable file exists."""
    comfy_dir = str(Path.home() / "ComfyUI")
    cron_dir = str(Path.home() / "cron-service")
    return DeckConfig(
        fps=30.0,
        limit=20,
        commands=[
            CommandInfo(
                name="run",
                desc=f"run comfyui server within the comfyui folder\n{comfy_dir}\n",
                command=ManagedCommand.START_PRIMARY,
                exe_path="python",
                work_dir=comfy_dir,
                args=(
                    "main.py",
                    "--enable-cors-header",
                    "--lowvram",
                    "--preview-method",
                    "auto",
                ),
            ),
            CommandInfo(
                name="update",
                desc="update comfyui",
                command=ManagedCommand.UPDATE_PRIMARY,
                exe_path="git",
                work_dir=comfy_dir,
                args=("pull",),
            ),
            CommandInfo(
                name="kill",
                desc="kill process by saved PID",
                command=ManagedCommand.STOP_PRIMARY,
            ),
            CommandInfo(
                name="start",
                desc="start deno server for the scheduled database updates",
                command=ManagedCommand.START_SECONDARY,
                exe_path="deno",
                work_dir=cron_dir,
                args=("run", "dev"),
            ),
            CommandInfo(
                name="stop",
                desc="stop deno server",
                command=ManagedCommand.STOP_SECONDARY,
            ),
            CommandInfo(
                name="config",
                desc="edit the current config",
                command=ManagedCommand.SHOW_CONFIG,
            ),
            CommandInfo(
                name="about",
                desc="about this application",
                command=ManagedCommand.SHOW_ABOUT,
            ),
            CommandInfo(
                name="quit",
                desc="quit the application",
                command=ManagedCommand.QUIT,
            ),
        ],
    )


def read_config(path: Path) -> DeckConfig:
    """
    Read and validate the config file.

    Args:
        path: Config file location

    Returns:
        Parsed config

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(path, str(e)) from e
    try:
        return DeckConfig.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigError(path, f"{e.error_count()} validation error(s)") from e


def write_config(config: DeckConfig, path: Path) -> None:
    """Write config as pretty-printed JSON."""
    payload = config.model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> DeckConfig:
    """
    Load config, regenerating defaults if the file is missing or invalid.

    Args:
        path: Config file location

    Returns:
        The file's config, or the freshly written defaults
    """
    try:
        return read_config(path)
    except ConfigError as e:
        logger.warning(f"{e}; writing default config")
        config = default_config()
        write_config(config, path)
        return config


def _default_editor() -> str:
    if editor := os.environ.get("EDITOR"):
        return editor
    return "notepad" if sys.platform == "win32" else "vi"


class Settings(BaseSettings):
    """Runtime settings.

    All settings can be overridden via environment variables with
    TOOLDECK_ prefix. For example:
        TOOLDECK_CONFIG_PATH=/etc/tooldeck/tool.json
        TOOLDECK_EDITOR=hx
    """

    config_path: Path = DEFAULT_CONFIG_PATH
    editor: str = Field(default_factory=_default_editor)

    # Logging goes to a file; the dashboard owns the terminal
    log_file: Path = Path("tooldeck.log")
    log_level: str = "INFO"

    # Leave children running on quit unless asked otherwise
    stop_on_exit: bool = False

    model_config = {"env_prefix": "TOOLDECK_"}
