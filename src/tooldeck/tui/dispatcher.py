"""
Dispatcher mapping menu commands to supervisor operations.

Every ManagedCommand has exactly one branch in Dispatcher.dispatch();
the match ends in assert_never so adding an enum member without a
branch fails type checking.

UI-only commands are delegated back to the control loop:
- Config runs the editor callback supplied by the controller
- Exit sets the quit event the control loop waits on
"""

import asyncio
import logging
from typing import Awaitable, Callable, assert_never

from tooldeck.config import CommandInfo
from tooldeck.errors import NoSelectionError
from tooldeck.tui.supervisor import ProcessSupervisor
from tooldeck.types import ManagedCommand, Slot

logger = logging.getLogger(__name__)


def require_selection(entry: CommandInfo | None) -> CommandInfo:
    """
    Return entry, or fail if nothing is selected.

    Raises:
        NoSelectionError: If entry is None
    """
    if entry is None:
        raise NoSelectionError()
    return entry


class Dispatcher:
    """
    Routes a selected menu entry to the supervisor or the UI.

    Attributes:
        quit: Event set when the operator chooses Exit
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        edit_config: Callable[[], Awaitable[None]],
        quit_event: asyncio.Event | None = None,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            supervisor: Supervisor owning the slot processes
            edit_config: Coroutine function that hands the terminal to
                the external editor and returns when it exits
            quit_event: Event to set on Exit (created if None)
        """
        self._supervisor = supervisor
        self._edit_config = edit_config
        self.quit = quit_event if quit_event is not None else asyncio.Event()

    async def dispatch(self, entry: CommandInfo | None) -> None:
        """
        Perform the command of the selected menu entry.

        Dispatching with no selection is a no-op that leaves a line in
        the diagnostic log.
        """
        try:
            entry = require_selection(entry)
        except NoSelectionError as e:
            logger.warning(str(e))
            await self._supervisor.store.diagnose(str(e))
            return

        command = entry.command
        logger.debug(f"Dispatching {command.value} ({entry.name})")
        match command:
            case ManagedCommand.START_PRIMARY:
                await self._supervisor.start(Slot.PRIMARY, entry)
            case ManagedCommand.START_SECONDARY:
                await self._supervisor.start(Slot.SECONDARY, entry)
            case ManagedCommand.STOP_PRIMARY:
                await self._supervisor.stop(Slot.PRIMARY)
            case ManagedCommand.STOP_SECONDARY:
                await self._supervisor.stop(Slot.SECONDARY)
            case ManagedCommand.UPDATE_PRIMARY:
                await self._supervisor.run_once(Slot.PRIMARY, entry)
            case ManagedCommand.SHOW_CONFIG:
                await self._edit_config()
            case ManagedCommand.SHOW_ABOUT:
                pass  # Info panel shows the about text for this entry
            case ManagedCommand.QUIT:
                self.quit.set()
            case _:
                assert_never(command)
