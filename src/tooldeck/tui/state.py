"""
Shared slot state for the dashboard.

This module provides:
- SlotState: mutable per-slot record (liveness, PID, log)
- StoreContents: everything guarded by the store lock
- SharedStore: the single lock-guarded container written by the
  supervisor and read by the renderer
- SlotSnapshot / StoreSnapshot: immutable copies taken under the lock

All access goes through SharedStore.locked() or SharedStore.snapshot(),
both of which hold the one coarse asyncio.Lock. A render therefore never
sees a half-updated slot.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from tooldeck.tui.buffer import LogBuffer
from tooldeck.types import Slot, Status

DIAGNOSTIC_CAPACITY = 1000


@dataclass
class SlotState:
    """
    Mutable record for one managed long-running process.

    Attributes:
        log: Bounded output buffer shown in the slot's panel
        running: True between a successful spawn and stop/exit
        pid: Process identifier of the current child, if any
        generation: Incremented on every start; drain tasks compare it to
            tell whether the slot has moved on to a newer run
        cancel: Cancellation event of the current run's drain task
    """

    log: LogBuffer
    running: bool = False
    pid: int | None = None
    generation: int = 0
    cancel: asyncio.Event | None = None

    def freeze(self) -> "SlotSnapshot":
        return SlotSnapshot(
            running=self.running,
            pid=self.pid,
            lines=tuple(self.log),
        )


@dataclass(frozen=True)
class SlotSnapshot:
    """Read-only view of a slot at render time."""

    running: bool
    pid: int | None
    lines: tuple[str, ...]

    @property
    def status(self) -> Status:
        return Status.RUNNING if self.running else Status.IDLE


@dataclass(frozen=True)
class StoreSnapshot:
    """Read-only view of the whole store at render time."""

    slots: dict[Slot, SlotSnapshot]
    diagnostics: tuple[str, ...]

    def status(self, slot: Slot | None) -> Status:
        """Liveness of slot, IDLE for UI-only entries."""
        if slot is None:
            return Status.IDLE
        return self.slots[slot].status


@dataclass
class StoreContents:
    """Everything the store lock protects."""

    slots: dict[Slot, SlotState]
    diagnostics: LogBuffer = field(default_factory=lambda: LogBuffer(DIAGNOSTIC_CAPACITY))


class SharedStore:
    """
    Single point of mutable shared state.

    Example:
        store = SharedStore(capacity=20)
        async with store.locked() as contents:
            contents.slots[Slot.PRIMARY].log.append("hello")
        snap = await store.snapshot()
    """

    def __init__(
        self,
        capacity: int = 20,
        diagnostic_capacity: int = DIAGNOSTIC_CAPACITY,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            capacity: Line capacity of every slot log
            diagnostic_capacity: Line capacity of the diagnostic log
        """
        self._lock = asyncio.Lock()
        self._contents = StoreContents(
            slots={slot: SlotState(log=LogBuffer(capacity)) for slot in Slot},
            diagnostics=LogBuffer(diagnostic_capacity),
        )

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[StoreContents]:
        """Hold the store lock and yield its contents."""
        async with self._lock:
            yield self._contents

    async def snapshot(self) -> StoreSnapshot:
        """Copy the store under the lock."""
        async with self._lock:
            return StoreSnapshot(
                slots={slot: state.freeze() for slot, state in self._contents.slots.items()},
                diagnostics=tuple(self._contents.diagnostics),
            )

    async def diagnose(self, line: str) -> None:
        """Append a line to the diagnostic log."""
        async with self._lock:
            self._contents.diagnostics.append(line)

    async def clear_logs(self) -> None:
        """Empty every slot log and the diagnostic log."""
        async with self._lock:
            for state in self._contents.slots.values():
                state.log.clear()
            self._contents.diagnostics.clear()
