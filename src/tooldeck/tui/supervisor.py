"""
ProcessSupervisor for spawning and tearing down slot processes.

This module runs the servers behind the Primary and Secondary slots as
real child processes and streams their output into the shared store:

- PYTHONUNBUFFERED=1 in the child environment for immediate output
- stdout and stderr read by two pump tasks feeding one queue; the drain
  loop appends lines in arrival order, with no ordering promise between
  the two pipes
- start_new_session=True so the child leads its own process group and a
  kill by PID takes its helpers down with it
- every slot run gets a cancellation event; stop() sets it so the drain
  ends at once instead of waiting for the pipes to close

Failures never escape to the control loop. A spawn or kill failure becomes
a line in the affected slot's log.
"""

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable, Sequence

from tooldeck.config import CommandInfo
from tooldeck.errors import SpawnError, TerminationError
from tooldeck.tui.buffer import LogBuffer
from tooldeck.tui.state import SharedStore, StoreContents
from tooldeck.types import Slot

logger = logging.getLogger(__name__)

# Stored in place of a line that could not be read
READ_ERROR_LINE = "---- unreadable output ----"

_EOF = object()

Sink = Callable[[StoreContents], LogBuffer]


async def spawn_process(
    name: str,
    argv: Sequence[str],
    work_dir: str = "",
) -> asyncio.subprocess.Process:
    """
    Spawn a child with both output pipes captured.

    Args:
        name: Label used in error messages
        argv: Executable followed by its arguments
        work_dir: Working directory, "" for the current one

    Returns:
        The asyncio process handle

    Raises:
        SpawnError: If argv has no executable or the OS refuses to start it
    """
    if not argv or not argv[0]:
        raise SpawnError(name, "", "no executable configured")

    env = os.environ.copy()
    env["PYTHONUNBUFFERED"] = "1"

    try:
        return await asyncio.create_subprocess_exec(
            *argv,
            cwd=work_dir or None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            start_new_session=True,
        )
    except (OSError, ValueError) as e:
        # ValueError: NUL byte in the executable or an argument
        raise SpawnError(name, argv[0], str(e)) from e


async def kill_pid(pid: int) -> None:
    """
    Forcefully terminate a process by identifier.

    POSIX sends SIGKILL to the process group the child leads. Windows
    runs ``taskkill /F /T``.

    Raises:
        TerminationError: If the kill request is rejected
    """
    if sys.platform == "win32":
        try:
            proc = await asyncio.create_subprocess_exec(
                "taskkill", "/F", "/T", "/PID", str(pid),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TerminationError(pid, str(e)) from e
        _, err = await proc.communicate()
        if proc.returncode != 0:
            reason = err.decode("utf-8", errors="replace").strip()
            raise TerminationError(pid, reason or f"taskkill exited with {proc.returncode}")
        return

    try:
        os.killpg(pid, signal.SIGKILL)
    except OSError as e:
        raise TerminationError(pid, e.strerror or str(e)) from e


async def _pump(stream: asyncio.StreamReader, queue: asyncio.Queue) -> None:
    """Forward decoded lines from one pipe until EOF."""
    try:
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line over the stream limit; the reader already skipped it
                await queue.put(READ_ERROR_LINE)
                continue
            except OSError:
                await queue.put(READ_ERROR_LINE)
                break
            if not raw:
                break
            await queue.put(raw.decode("utf-8", errors="replace").rstrip())
    finally:
        queue.put_nowait(_EOF)


class ProcessSupervisor:
    """
    Owns the slot processes and every write to the shared store.

    Example:
        store = SharedStore(capacity=20)
        supervisor = ProcessSupervisor(store)
        await supervisor.start(Slot.PRIMARY, config.commands[0])
        ...
        await supervisor.stop(Slot.PRIMARY)
    """

    def __init__(self, store: SharedStore) -> None:
        self._store = store
        self._tasks: set[asyncio.Task] = set()
        self._shutdown = asyncio.Event()

    @property
    def store(self) -> SharedStore:
        return self._store

    @property
    def shutdown(self) -> asyncio.Event:
        """Set to end every drain loop without killing children."""
        return self._shutdown

    async def start(self, slot: Slot, entry: CommandInfo) -> bool:
        """
        Start the slot's process unless it is already running.

        The store lock is held across the spawn so two quick starts
        cannot both pass the running check.

        Args:
            slot: Slot to start
            entry: Launch description from the selected menu entry

        Returns:
            True if a new process was spawned
        """
        async with self._store.locked() as contents:
            state = contents.slots[slot]
            if state.running:
                logger.debug(f"{slot.value} already running as {state.pid}, ignoring start")
                return False
            try:
                proc = await spawn_process(entry.name, (entry.exe_path, *entry.args), entry.work_dir)
            except SpawnError as e:
                logger.warning(str(e))
                state.log.append(str(e))
                return False

            cancel = asyncio.Event()
            state.generation += 1
            state.running = True
            state.pid = proc.pid
            state.cancel = cancel
            generation = state.generation

        logger.info(f"Started {entry.name} in {slot.value} slot as pid {proc.pid}")
        self._track(asyncio.create_task(self._run_slot(slot, proc, generation, cancel)))
        return True

    async def stop(self, slot: Slot) -> bool:
        """
        Kill the slot's process.

        The slot is marked idle whether or not the kill succeeded.
        A failed kill is reported in the slot log and the log file.

        Returns:
            True if a kill was attempted, False if the slot was idle
        """
        async with self._store.locked() as contents:
            state = contents.slots[slot]
            if not state.running or state.pid is None:
                return False

            pid = state.pid
            if state.cancel is not None:
                state.cancel.set()
            state.log.clear()
            state.log.append(f"Sending exit signal to {pid}")
            try:
                await kill_pid(pid)
            except TerminationError as e:
                logger.warning(f"{slot.value}: {e}")
                state.log.append(str(e))
            else:
                logger.info(f"Stopped {slot.value} process {pid}")
                state.log.append(f"Stopped {pid}")

            state.running = False
            state.pid = None
            state.cancel = None
        return True

    async def run_once(self, slot: Slot, entry: CommandInfo) -> asyncio.Task | None:
        """
        Run a short-lived command with output in the slot log.

        Does not touch the slot's liveness and is not deduplicated;
        concurrent invocations each get their own drain.

        Returns:
            The drain task, or None if the spawn failed
        """
        try:
            proc = await spawn_process(entry.name, (entry.exe_path, *entry.args), entry.work_dir)
        except SpawnError as e:
            logger.warning(str(e))
            async with self._store.locked() as contents:
                contents.slots[slot].log.append(str(e))
            return None

        logger.info(f"Running {entry.name} for {slot.value} slot as pid {proc.pid}")
        task = asyncio.create_task(
            self._run_oneshot(proc, lambda c: c.slots[slot].log, entry.name)
        )
        self._track(task)
        return task

    async def run_quick(self, argv: Sequence[str]) -> asyncio.Task | None:
        """
        Run a utility command with output in the diagnostic log.

        The command line is echoed first and a closing line is written
        when the command finishes.

        Returns:
            The drain task, or None if the spawn failed
        """
        await self._store.diagnose(" ".join(argv))
        name = argv[0] if argv else ""
        try:
            proc = await spawn_process(name, argv)
        except SpawnError as e:
            logger.warning(str(e))
            await self._store.diagnose(str(e))
            return None

        task = asyncio.create_task(self._run_oneshot(proc, lambda c: c.diagnostics, None))
        self._track(task)
        return task

    async def stop_all(self) -> None:
        """Stop every running slot."""
        for slot in Slot:
            await self.stop(slot)

    async def wait_idle(self) -> None:
        """Wait until every drain task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_slot(
        self,
        slot: Slot,
        proc: asyncio.subprocess.Process,
        generation: int,
        cancel: asyncio.Event,
    ) -> None:
        returncode = await self._drain(proc, lambda c: c.slots[slot].log, cancel)
        if returncode is None:
            return

        async with self._store.locked() as contents:
            state = contents.slots[slot]
            # A stop or a newer start owns the slot now
            if state.generation != generation or cancel.is_set():
                return
            state.log.append(f"Process {proc.pid} exited with code {returncode}")
            state.running = False
            state.pid = None
            state.cancel = None
        logger.info(f"{slot.value} process {proc.pid} exited with code {returncode}")

    async def _run_oneshot(
        self,
        proc: asyncio.subprocess.Process,
        sink: Sink,
        label: str | None,
    ) -> None:
        returncode = await self._drain(proc, sink, asyncio.Event())
        if returncode is None:
            return

        if label is None:
            closing = "Finished..."
        else:
            closing = f"Finished {label} (exit code {returncode})"
        async with self._store.locked() as contents:
            sink(contents).append(closing)
        logger.info(f"Process {proc.pid} finished with code {returncode}")

    async def _drain(
        self,
        proc: asyncio.subprocess.Process,
        sink: Sink,
        cancel: asyncio.Event,
    ) -> int | None:
        """
        Merge stdout and stderr into sink until both close.

        Returns:
            The child's exit code, or None if the drain was cancelled
        """
        queue: asyncio.Queue = asyncio.Queue()
        readers = [
            asyncio.create_task(_pump(stream, queue))
            for stream in (proc.stdout, proc.stderr)
            if stream is not None
        ]
        stop_waiters = [
            asyncio.create_task(cancel.wait()),
            asyncio.create_task(self._shutdown.wait()),
        ]
        open_streams = len(readers)

        try:
            while open_streams:
                get = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    [get, *stop_waiters],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if get not in done:
                    get.cancel()
                    return None

                item = get.result()
                if item is _EOF:
                    open_streams -= 1
                    continue
                async with self._store.locked() as contents:
                    if cancel.is_set():
                        return None
                    sink(contents).append(item)
        finally:
            for task in (*readers, *stop_waiters):
                task.cancel()

        return await proc.wait()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Drain task failed: {task.exception()!r}")
