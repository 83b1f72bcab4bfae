"""
KeyboardTask for async keyboard input in the dashboard.

Non-blocking keyboard reading for the control loop:
- Wraps a select()-based stdin read in loop.run_in_executor() so the
  event loop never blocks
- Sets cbreak mode once and restores it on exit
- Pushes keys onto a queue; the control loop awaits next_key() next to
  its render tick and services whichever is ready first
- suspended() hands the terminal back (cooked mode, no reads) while an
  external editor runs
"""

import asyncio
import select
import sys
import termios
import tty
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

KEY_UP = "\x1b[A"
KEY_DOWN = "\x1b[B"
KEY_TAB = "\t"
KEY_ENTER = ("\r", "\n")


def _readkey_with_timeout(timeout: float) -> str | None:
    """
    Read a keypress with timeout.

    Uses select() to check if input is available, then reads from stdin.
    Does NOT change terminal modes - caller must ensure cbreak mode is set.

    Args:
        timeout: Maximum seconds to wait for input

    Returns:
        Key pressed, or None if timeout
    """
    if select.select([sys.stdin], [], [], timeout)[0]:
        char = sys.stdin.read(1)
        # Arrow keys arrive as ESC [ <letter>
        if char == "\x1b":
            if select.select([sys.stdin], [], [], 0.05)[0]:
                char += sys.stdin.read(1)
                if char == "\x1b[" and select.select([sys.stdin], [], [], 0.05)[0]:
                    char += sys.stdin.read(1)
        return char
    return None


class KeyboardTask:
    """
    Async keyboard reader feeding a key queue.

    Example:
        keyboard = KeyboardTask()
        tg.create_task(keyboard.run())
        key = await keyboard.next_key()
        async with keyboard.suspended():
            await run_editor()
        keyboard.stop()
    """

    def __init__(self, poll_interval: float = 0.3) -> None:
        """
        Initialize keyboard task.

        Args:
            poll_interval: Seconds each blocking read waits before
                rechecking for shutdown or suspension
        """
        self._poll_interval = poll_interval
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._shutdown = asyncio.Event()
        self._active = asyncio.Event()
        self._active.set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._fd: int | None = None
        self._old_settings: list | None = None

    async def run(self) -> None:
        """
        Main task loop. Run inside TaskGroup.

        Sets cbreak mode once at startup, restores at shutdown.
        """
        loop = asyncio.get_running_loop()

        self._fd = sys.stdin.fileno()
        self._old_settings = termios.tcgetattr(self._fd)
        try:
            tty.setcbreak(self._fd)

            while not self._shutdown.is_set():
                try:
                    await self._active.wait()
                    self._idle.clear()
                    try:
                        key = await loop.run_in_executor(
                            None,
                            _readkey_with_timeout,
                            self._poll_interval,
                        )
                    finally:
                        self._idle.set()
                    if key is not None:
                        self._queue.put_nowait(key)
                except asyncio.CancelledError:
                    break  # TaskGroup cancelled us
        finally:
            self._restore_mode()

    async def next_key(self) -> str:
        """Wait for the next keypress."""
        return await self._queue.get()

    @asynccontextmanager
    async def suspended(self) -> AsyncIterator[None]:
        """
        Stop reading and restore the original terminal mode.

        Waits for the in-flight read to return so no keystroke meant
        for the editor is consumed here.
        """
        self._active.clear()
        await self._idle.wait()
        self._restore_mode()
        try:
            yield
        finally:
            if self._fd is not None and not self._shutdown.is_set():
                tty.setcbreak(self._fd)
            self._active.set()

    def stop(self) -> None:
        """Signal task to stop."""
        self._shutdown.set()
        self._active.set()

    def _restore_mode(self) -> None:
        if self._fd is not None and self._old_settings is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)
