"""Config file CLI commands.

This module provides commands for inspecting the dashboard config:
- show: Print the effective config as JSON
- path: Print the resolved config file location
- reset: Overwrite the config file with the built-in defaults
"""

import json
from pathlib import Path

import typer

from tooldeck.config import Settings, default_config, load_config, write_config

config_app = typer.Typer(help="Inspect and reset the dashboard config")


def _resolve(config_path: Path | None) -> Path:
    return config_path if config_path is not None else Settings().config_path


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """
    Print the effective config.

    A missing or invalid file is replaced by the defaults first, exactly
    as the dashboard does at startup.
    """
    config = load_config(_resolve(config_path))
    print(json.dumps(config.model_dump(mode="json"), indent=2))


@config_app.command("path")
def config_path_cmd(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Print the resolved config file location."""
    print(_resolve(config_path).resolve())


@config_app.command("reset")
def reset_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Overwrite the config file with the built-in defaults."""
    path = _resolve(config_path)
    if path.exists() and not yes:
        typer.confirm(f"Overwrite {path} with defaults?", abort=True)
    write_config(default_config(), path)
    print(f"Wrote default config to {path}")
