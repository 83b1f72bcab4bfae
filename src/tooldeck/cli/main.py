"""tooldeck CLI - terminal dashboard for local server processes."""

import asyncio
import logging
from pathlib import Path

import typer

from tooldeck import __version__
from tooldeck.cli.config import config_app
from tooldeck.config import Settings

app = typer.Typer(
    name="tooldeck",
    help="Terminal dashboard that supervises local server processes",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


def configure_logging(log_file: Path, level: str) -> None:
    """Send log records to a file; the dashboard owns the terminal."""
    logging.basicConfig(
        filename=str(log_file),
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("run")
def run_dashboard(
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Config file (default: TOOLDECK_CONFIG_PATH or tool.json)"
    ),
    editor: str = typer.Option(
        None, "--editor", "-e", help="Editor command for the config entry"
    ),
    log_file: Path = typer.Option(None, "--log-file", help="Write logs to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
    stop_on_exit: bool = typer.Option(
        None, "--stop-on-exit/--leave-running", help="Kill running servers on quit"
    ),
) -> None:
    """
    Run the dashboard.

    Keys: Up/Down select or scroll, Enter activate, Tab switch panel,
    c clear logs, d debug console, q quit.

    Environment variables:
        TOOLDECK_CONFIG_PATH: Config file location
        TOOLDECK_EDITOR: Editor command (falls back to EDITOR)
        TOOLDECK_LOG_FILE: Log file location
        TOOLDECK_LOG_LEVEL: Log level name
        TOOLDECK_STOP_ON_EXIT: Kill running servers on quit
    """
    # Imported here so `tooldeck config ...` works without a terminal
    from tooldeck.tui.controller import TUIController

    overrides = {
        "config_path": config_path,
        "editor": editor,
        "log_file": log_file,
        "stop_on_exit": stop_on_exit,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    configure_logging(settings.log_file, "DEBUG" if verbose else settings.log_level)

    controller = TUIController(settings)
    asyncio.run(controller.run())


@app.command("version")
def version() -> None:
    """Print the tooldeck version."""
    print(__version__)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
