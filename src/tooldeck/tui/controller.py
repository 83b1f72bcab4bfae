"""
TUIController running the dashboard control loop.

This module provides the main controller that:
- Loads the config and builds the shared store, supervisor and dispatcher
- Multiplexes a fixed-rate render tick with keyboard input, servicing
  whichever is ready first on each iteration
- Renders from a store snapshot through Rich Live
- Hands the terminal to an external editor for the config entry
- Handles shutdown on q, the Exit entry, SIGINT and SIGTERM

Signal handlers are registered first thing in run() so Ctrl+C works even
during startup. The keyboard reader and the control loop run in one
TaskGroup; the control loop stops the keyboard when it exits so the
group finishes.
"""

import asyncio
import functools
import logging
import shlex
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.live import Live

from tooldeck.config import DeckConfig, Settings, load_config, read_config
from tooldeck.errors import ConfigError, SpawnError
from tooldeck.tui.dispatcher import Dispatcher
from tooldeck.tui.keyboard import KEY_DOWN, KEY_ENTER, KEY_TAB, KEY_UP, KeyboardTask
from tooldeck.tui.layout import render_dashboard
from tooldeck.tui.state import SharedStore
from tooldeck.tui.supervisor import ProcessSupervisor
from tooldeck.tui.view import ViewState

logger = logging.getLogger(__name__)


async def run_editor(editor: str, path: Path) -> None:
    """
    Run an interactive editor on path and wait for it to exit.

    The editor inherits the terminal. Its exit code is ignored.

    Raises:
        SpawnError: If the editor cannot be started
    """
    try:
        argv = [*shlex.split(editor, posix=sys.platform != "win32"), str(path)]
        proc = await asyncio.create_subprocess_exec(*argv)
    except (OSError, ValueError) as e:
        # ValueError: unbalanced quotes or a NUL byte in the editor command
        raise SpawnError("editor", editor, str(e)) from e
    await proc.wait()


class TUIController:
    """
    Owns the terminal, the view state and the control loop.

    Example:
        controller = TUIController(Settings())
        await controller.run()  # Runs until q or Ctrl+C
    """

    def __init__(
        self,
        settings: Settings,
        config: DeckConfig | None = None,
        console: Console | None = None,
    ) -> None:
        """
        Initialize TUI controller.

        Args:
            settings: Runtime settings (config path, editor, exit policy)
            config: Preloaded config (loads settings.config_path if None)
            console: Rich Console to use (creates default if None)
        """
        self.console = console if console is not None else Console()
        self._settings = settings
        self._config = config if config is not None else load_config(settings.config_path)
        self._shutdown = asyncio.Event()
        self._store = SharedStore(capacity=self._config.limit)
        self._supervisor = ProcessSupervisor(self._store)
        self._dispatcher = Dispatcher(self._supervisor, self._edit_config, self._shutdown)
        self._view = ViewState(item_count=len(self._config.commands))
        self._keyboard = KeyboardTask()
        self._live: Live | None = None

    @property
    def config(self) -> DeckConfig:
        return self._config

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def shutdown(self) -> asyncio.Event:
        return self._shutdown

    async def run(self) -> None:
        """
        Run the dashboard until quit.

        Children still running at quit are left alone unless
        settings.stop_on_exit is set.
        """
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(
                sig,
                functools.partial(self._handle_signal, sig),
            )

        logger.info(f"Dashboard starting with {len(self._config.commands)} menu entries")
        with Live(
            console=self.console,
            auto_refresh=False,
            screen=True,
        ) as live:
            self._live = live
            try:
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(self._keyboard.run())
                    tg.create_task(self._control_loop(live))
            except* Exception as eg:
                logger.error(f"Dashboard task failed: {eg.exceptions!r}")
            finally:
                self._live = None

        if self._settings.stop_on_exit:
            await self._supervisor.stop_all()
        self._supervisor.shutdown.set()
        logger.info("Dashboard stopped")
        self.console.print("[green]tooldeck shutdown complete[/green]")

    async def _control_loop(self, live: Live) -> None:
        """
        Service one render tick or one keypress per iteration.

        A pending key read is kept across iterations so no key is lost
        when a tick wins the race.
        """
        loop = asyncio.get_running_loop()
        quit_wait = asyncio.create_task(self._shutdown.wait())
        key_task: asyncio.Task[str] | None = None
        next_tick = loop.time()

        try:
            while not self._shutdown.is_set():
                if key_task is None:
                    key_task = asyncio.create_task(self._keyboard.next_key())
                tick = asyncio.create_task(asyncio.sleep(max(0.0, next_tick - loop.time())))
                done, _ = await asyncio.wait(
                    [key_task, tick, quit_wait],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if key_task in done:
                    tick.cancel()
                    key = key_task.result()
                    key_task = None
                    await self.handle_key(key)
                elif tick in done:
                    await self.render(live)
                    period = 1.0 / self._config.fps
                    next_tick = max(next_tick + period, loop.time())
                else:
                    tick.cancel()
        finally:
            quit_wait.cancel()
            if key_task is not None:
                key_task.cancel()
            self._keyboard.stop()

    async def render(self, live: Live) -> None:
        """Redraw the screen from a fresh store snapshot."""
        snapshot = await self._store.snapshot()
        live.update(render_dashboard(self._config, self._view, snapshot), refresh=True)

    async def handle_key(self, key: str) -> None:
        """
        Apply one keypress.

        - q: quit
        - d: toggle diagnostic panel
        - c: clear every log
        - Up/Down: move selection or scroll the focused log
        - Tab: cycle focus
        - Enter: dispatch the selected menu entry
        - configured utility keys: run the utility command
        """
        if key == "q":
            self._shutdown.set()
        elif key == "d":
            self._view.toggle_diagnostics()
        elif key == "c":
            await self._store.clear_logs()
            self._view.reset_scroll()
        elif key == KEY_UP:
            self._view.move(-1)
        elif key == KEY_DOWN:
            self._view.move(1)
        elif key == KEY_TAB:
            self._view.cycle_panel()
        elif key in KEY_ENTER:
            await self._dispatcher.dispatch(self._view.selection(self._config))
        else:
            for utility in self._config.utilities:
                if key == utility.key:
                    await self._supervisor.run_quick(utility.argv)
                    break

    async def _edit_config(self) -> None:
        """
        Hand the terminal to the editor, then reload the config.

        Live rendering stops and the keyboard reader releases cbreak
        mode until the editor exits.
        """
        logger.info(f"Opening {self._settings.config_path} in {self._settings.editor}")
        if self._live is not None:
            self._live.stop()
        try:
            async with self._keyboard.suspended():
                await run_editor(self._settings.editor, self._settings.config_path)
        except SpawnError as e:
            logger.warning(str(e))
            await self._store.diagnose(str(e))
            return
        finally:
            if self._live is not None:
                self._live.start(refresh=True)

        await self.reload_config()

    async def reload_config(self) -> bool:
        """
        Re-read the config file and rebuild the menu from it.

        A config that no longer parses is not applied; the previous one
        stays in effect and the error goes to the diagnostic log. Log
        capacity is fixed at startup, so a changed limit applies on the
        next launch.

        Returns:
            True if the new config was applied
        """
        try:
            config = read_config(self._settings.config_path)
        except ConfigError as e:
            logger.warning(f"{e}; keeping previous config")
            await self._store.diagnose(f"{e}; keeping previous config")
            return False
        self._config = config
        self._view.resize(len(config.commands))
        logger.info(f"Reloaded config with {len(config.commands)} menu entries")
        return True

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Set the shutdown event and stop the keyboard reader."""
        logger.info(f"Received {sig.name}, shutting down")
        self._shutdown.set()
        self._keyboard.stop()
