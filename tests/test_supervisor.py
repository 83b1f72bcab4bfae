"""
Tests for ProcessSupervisor against real short-lived child processes.

Children are started with the running interpreter (sys.executable -c ...)
so the tests need no external tools. Interleaving between stdout and
stderr is never asserted, only that every line arrives.
"""

import asyncio
import os
import signal
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tooldeck.config import CommandInfo
from tooldeck.errors import TerminationError
from tooldeck.tui import supervisor as supervisor_mod
from tooldeck.tui.state import SharedStore
from tooldeck.tui.supervisor import READ_ERROR_LINE, ProcessSupervisor, kill_pid
from tooldeck.types import ManagedCommand, Slot

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX")

SLEEPER = "import time; print('ready', flush=True); time.sleep(30)"


def python_entry(code: str, name: str = "py", work_dir: str = "") -> CommandInfo:
    return CommandInfo(
        name=name,
        command=ManagedCommand.START_PRIMARY,
        exe_path=sys.executable,
        work_dir=work_dir,
        args=("-c", code),
    )


@pytest.fixture
def store():
    return SharedStore(capacity=20)


@pytest.fixture
def supervisor(store):
    return ProcessSupervisor(store)


async def wait_for_line(store: SharedStore, slot: Slot, text: str, timeout: float = 5.0) -> None:
    async def _poll() -> None:
        while text not in (await store.snapshot()).slots[slot].lines:
            await asyncio.sleep(0.02)

    await asyncio.wait_for(_poll(), timeout)


def force_kill(pid: int | None) -> None:
    if pid is None:
        return
    try:
        os.killpg(pid, signal.SIGKILL)
    except OSError:
        pass


@pytest.mark.asyncio
async def test_start_streams_both_pipes_then_goes_idle(supervisor, store):
    """A short-lived child's stdout and stderr both land, then the slot is idle."""
    code = "import sys; print('to stdout'); print('to stderr', file=sys.stderr)"

    assert await supervisor.start(Slot.PRIMARY, python_entry(code)) is True
    await asyncio.wait_for(supervisor.wait_idle(), 10)

    snap = (await store.snapshot()).slots[Slot.PRIMARY]
    assert {"to stdout", "to stderr"} <= set(snap.lines)
    assert snap.lines[-1].endswith("exited with code 0")
    assert snap.running is False
    assert snap.pid is None


@pytest.mark.asyncio
async def test_no_writes_after_child_exits(supervisor, store):
    await supervisor.start(Slot.PRIMARY, python_entry("print('once')"))
    await asyncio.wait_for(supervisor.wait_idle(), 10)
    before = (await store.snapshot()).slots[Slot.PRIMARY].lines

    await asyncio.sleep(0.2)

    assert (await store.snapshot()).slots[Slot.PRIMARY].lines == before


@pytest.mark.asyncio
async def test_lines_are_right_trimmed(supervisor, store):
    await supervisor.start(Slot.PRIMARY, python_entry("print('padded   \\t')"))
    await asyncio.wait_for(supervisor.wait_idle(), 10)

    assert "padded" in (await store.snapshot()).slots[Slot.PRIMARY].lines


@pytest.mark.asyncio
async def test_child_gets_unbuffered_hint(supervisor, store):
    code = "import os; print('hint=' + os.environ.get('PYTHONUNBUFFERED', ''))"

    await supervisor.start(Slot.PRIMARY, python_entry(code))
    await asyncio.wait_for(supervisor.wait_idle(), 10)

    assert "hint=1" in (await store.snapshot()).slots[Slot.PRIMARY].lines


@pytest.mark.asyncio
async def test_child_runs_in_work_dir(supervisor, store, tmp_path):
    code = "import os; print('cwd=' + os.getcwd())"

    await supervisor.start(Slot.PRIMARY, python_entry(code, work_dir=str(tmp_path)))
    await asyncio.wait_for(supervisor.wait_idle(), 10)

    lines = (await store.snapshot()).slots[Slot.PRIMARY].lines
    reported = [line[len("cwd="):] for line in lines if line.startswith("cwd=")]
    assert [os.path.realpath(p) for p in reported] == [os.path.realpath(tmp_path)]


@pytest.mark.asyncio
async def test_output_respects_capacity():
    store = SharedStore(capacity=3)
    supervisor = ProcessSupervisor(store)

    await supervisor.start(Slot.SECONDARY, python_entry("for i in range(10): print(i)"))
    await asyncio.wait_for(supervisor.wait_idle(), 10)

    lines = (await store.snapshot()).slots[Slot.SECONDARY].lines
    assert len(lines) == 3
    assert lines[-1].endswith("exited with code 0")


@posix_only
@pytest.mark.asyncio
async def test_double_start_spawns_one_child(supervisor, store):
    """Second start while running is a no-op."""
    entry = python_entry(SLEEPER)

    first, second = await asyncio.gather(
        supervisor.start(Slot.PRIMARY, entry),
        supervisor.start(Slot.PRIMARY, entry),
    )
    snap = (await store.snapshot()).slots[Slot.PRIMARY]
    try:
        assert sorted([first, second]) == [False, True]
        assert snap.running is True
        assert len(supervisor._tasks) == 1
    finally:
        await supervisor.stop(Slot.PRIMARY)
        force_kill(snap.pid)
        await asyncio.wait_for(supervisor.wait_idle(), 5)


@pytest.mark.asyncio
async def test_stop_on_idle_slot_does_nothing(supervisor, store):
    async with store.locked() as contents:
        contents.slots[Slot.PRIMARY].log.append("keep me")

    with patch.object(supervisor_mod, "kill_pid", AsyncMock()) as kill:
        assert await supervisor.stop(Slot.PRIMARY) is False

    kill.assert_not_called()
    assert (await store.snapshot()).slots[Slot.PRIMARY].lines == ("keep me",)


@posix_only
@pytest.mark.asyncio
async def test_stop_kills_child_and_ends_drain(supervisor, store):
    await supervisor.start(Slot.PRIMARY, python_entry(SLEEPER))
    await wait_for_line(store, Slot.PRIMARY, "ready")
    pid = (await store.snapshot()).slots[Slot.PRIMARY].pid

    assert await supervisor.stop(Slot.PRIMARY) is True
    await asyncio.wait_for(supervisor.wait_idle(), 5)

    snap = (await store.snapshot()).slots[Slot.PRIMARY]
    assert snap.running is False
    assert snap.pid is None
    assert snap.lines == (f"Sending exit signal to {pid}", f"Stopped {pid}")


@posix_only
@pytest.mark.asyncio
async def test_failed_kill_still_marks_idle(supervisor, store):
    await supervisor.start(Slot.SECONDARY, python_entry(SLEEPER))
    pid = (await store.snapshot()).slots[Slot.SECONDARY].pid

    failing = AsyncMock(side_effect=TerminationError(pid, "Operation not permitted"))
    try:
        with patch.object(supervisor_mod, "kill_pid", failing):
            assert await supervisor.stop(Slot.SECONDARY) is True

        snap = (await store.snapshot()).slots[Slot.SECONDARY]
        assert snap.running is False
        assert snap.lines[0] == f"Sending exit signal to {pid}"
        assert snap.lines[1] == f"Failed to terminate {pid}: Operation not permitted"
        failing.assert_awaited_once_with(pid)
    finally:
        force_kill(pid)
        await asyncio.wait_for(supervisor.wait_idle(), 5)


@posix_only
@pytest.mark.asyncio
async def test_start_stop_start_gives_new_process(supervisor, store):
    entry = python_entry(SLEEPER)

    await supervisor.start(Slot.PRIMARY, entry)
    first_pid = (await store.snapshot()).slots[Slot.PRIMARY].pid
    await supervisor.stop(Slot.PRIMARY)
    assert await supervisor.start(Slot.PRIMARY, entry) is True

    snap = (await store.snapshot()).slots[Slot.PRIMARY]
    try:
        assert snap.running is True
        assert snap.pid is not None
        assert snap.pid != first_pid
    finally:
        await supervisor.stop(Slot.PRIMARY)
        force_kill(snap.pid)
        await asyncio.wait_for(supervisor.wait_idle(), 5)


@pytest.mark.asyncio
async def test_spawn_failure_is_reported_in_slot_log(supervisor, store, tmp_path):
    entry = CommandInfo(
        name="broken",
        command=ManagedCommand.START_PRIMARY,
        exe_path=str(tmp_path / "no-such-binary"),
    )

    assert await supervisor.start(Slot.PRIMARY, entry) is False

    snap = (await store.snapshot()).slots[Slot.PRIMARY]
    assert snap.running is False
    assert len(snap.lines) == 1
    assert snap.lines[0].startswith("Failed to start broken")


@pytest.mark.asyncio
async def test_bad_work_dir_is_reported(supervisor, store, tmp_path):
    entry = python_entry("print('never')", name="nowhere", work_dir=str(tmp_path / "missing"))

    assert await supervisor.start(Slot.SECONDARY, entry) is False

    lines = (await store.snapshot()).slots[Slot.SECONDARY].lines
    assert lines[0].startswith("Failed to start nowhere")


@pytest.mark.asyncio
async def test_empty_exe_path_is_reported(supervisor, store):
    entry = CommandInfo(name="empty", command=ManagedCommand.START_PRIMARY)

    assert await supervisor.start(Slot.PRIMARY, entry) is False

    assert "no executable configured" in (await store.snapshot()).slots[Slot.PRIMARY].lines[0]


@pytest.mark.asyncio
async def test_nul_byte_in_args_is_reported(supervisor, store):
    entry = python_entry("print(1)\x00", name="nul")

    assert await supervisor.start(Slot.PRIMARY, entry) is False
    assert await supervisor.run_once(Slot.SECONDARY, entry) is None

    snap = await store.snapshot()
    assert snap.slots[Slot.PRIMARY].running is False
    assert snap.slots[Slot.PRIMARY].lines[0].startswith("Failed to start nul")
    assert snap.slots[Slot.SECONDARY].lines[0].startswith("Failed to start nul")


@pytest.mark.asyncio
async def test_run_once_does_not_mark_running(supervisor, store):
    entry = python_entry("print('pulled')", name="update")

    task = await supervisor.run_once(Slot.PRIMARY, entry)
    assert task is not None
    assert (await store.snapshot()).slots[Slot.PRIMARY].running is False
    await asyncio.wait_for(task, 10)

    lines = (await store.snapshot()).slots[Slot.PRIMARY].lines
    assert lines == ("pulled", "Finished update (exit code 0)")


@pytest.mark.asyncio
async def test_concurrent_run_once_share_buffer():
    """Both invocations land all their lines and the bound holds."""
    store = SharedStore(capacity=20)
    supervisor = ProcessSupervisor(store)
    entry_a = python_entry("for i in range(4): print(f'a{i}')", name="a")
    entry_b = python_entry("for i in range(4): print(f'b{i}')", name="b")

    tasks = await asyncio.gather(
        supervisor.run_once(Slot.PRIMARY, entry_a),
        supervisor.run_once(Slot.PRIMARY, entry_b),
    )
    await asyncio.wait_for(asyncio.gather(*tasks), 10)

    lines = (await store.snapshot()).slots[Slot.PRIMARY].lines
    assert len(lines) == 10
    assert {f"a{i}" for i in range(4)} | {f"b{i}" for i in range(4)} <= set(lines)
    # Per-stream order is preserved even though the two runs interleave
    a_lines = [line for line in lines if line.startswith("a")]
    assert a_lines == ["a0", "a1", "a2", "a3"]


@pytest.mark.asyncio
async def test_concurrent_run_once_with_small_capacity():
    store = SharedStore(capacity=3)
    supervisor = ProcessSupervisor(store)
    entry = python_entry("for i in range(6): print(i)")

    tasks = await asyncio.gather(
        supervisor.run_once(Slot.PRIMARY, entry),
        supervisor.run_once(Slot.PRIMARY, entry),
    )
    await asyncio.wait_for(asyncio.gather(*tasks), 10)

    assert len((await store.snapshot()).slots[Slot.PRIMARY].lines) == 3


@pytest.mark.asyncio
async def test_run_once_spawn_failure(supervisor, store, tmp_path):
    entry = CommandInfo(
        name="update",
        command=ManagedCommand.UPDATE_PRIMARY,
        exe_path=str(tmp_path / "no-git"),
    )

    assert await supervisor.run_once(Slot.PRIMARY, entry) is None
    assert (await store.snapshot()).slots[Slot.PRIMARY].lines[0].startswith("Failed to start update")


@pytest.mark.asyncio
async def test_run_quick_writes_diagnostics(supervisor, store):
    argv = (sys.executable, "-c", "print('listing')")

    task = await supervisor.run_quick(argv)
    assert task is not None
    await asyncio.wait_for(task, 10)

    diagnostics = (await store.snapshot()).diagnostics
    assert diagnostics[0] == " ".join(argv)
    assert "listing" in diagnostics
    assert diagnostics[-1] == "Finished..."


@posix_only
@pytest.mark.asyncio
async def test_stop_all_stops_every_slot(supervisor, store):
    await supervisor.start(Slot.PRIMARY, python_entry(SLEEPER))
    await supervisor.start(Slot.SECONDARY, python_entry(SLEEPER))

    await supervisor.stop_all()
    await asyncio.wait_for(supervisor.wait_idle(), 5)

    snap = await store.snapshot()
    assert not snap.slots[Slot.PRIMARY].running
    assert not snap.slots[Slot.SECONDARY].running


@posix_only
@pytest.mark.asyncio
async def test_kill_pid_of_reaped_process_fails():
    proc = await asyncio.create_subprocess_exec(sys.executable, "-c", "pass", start_new_session=True)
    await proc.wait()

    with pytest.raises(TerminationError) as exc_info:
        await kill_pid(proc.pid)

    assert exc_info.value.pid == proc.pid


def _fake_stream(*results):
    stream = MagicMock()
    stream.readline = AsyncMock(side_effect=list(results))
    return stream


@pytest.mark.asyncio
async def test_pump_replaces_overlong_line_and_continues():
    queue = asyncio.Queue()
    stream = _fake_stream(b"first\n", ValueError("Separator is not found"), b"second  \r\n", b"")

    await supervisor_mod._pump(stream, queue)

    items = [queue.get_nowait() for _ in range(queue.qsize())]
    assert items == ["first", READ_ERROR_LINE, "second", supervisor_mod._EOF]


@pytest.mark.asyncio
async def test_pump_ends_stream_on_os_error():
    queue = asyncio.Queue()
    stream = _fake_stream(b"only\n", OSError("broken pipe"))

    await supervisor_mod._pump(stream, queue)

    items = [queue.get_nowait() for _ in range(queue.qsize())]
    assert items == ["only", READ_ERROR_LINE, supervisor_mod._EOF]


@pytest.mark.asyncio
async def test_pump_decodes_invalid_utf8():
    queue = asyncio.Queue()
    stream = _fake_stream(b"bad \xff byte\n", b"")

    await supervisor_mod._pump(stream, queue)

    assert queue.get_nowait() == "bad � byte"


@posix_only
@pytest.mark.asyncio
async def test_shutdown_ends_drain_without_killing(supervisor, store):
    await supervisor.start(Slot.PRIMARY, python_entry(SLEEPER))
    await wait_for_line(store, Slot.PRIMARY, "ready")
    pid = (await store.snapshot()).slots[Slot.PRIMARY].pid

    try:
        supervisor.shutdown.set()
        await asyncio.wait_for(supervisor.wait_idle(), 2)

        snap = (await store.snapshot()).slots[Slot.PRIMARY]
        # Liveness is untouched; the child is left running
        assert snap.running is True
        assert snap.pid == pid
        os.killpg(pid, 0)
    finally:
        force_kill(pid)
