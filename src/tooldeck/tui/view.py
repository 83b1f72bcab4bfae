"""
View state for the dashboard.

UI-only state owned by the control loop: menu selection, which panel has
focus, per-panel scroll offsets and the diagnostic panel toggle. None of
this lives in the shared store; rendering combines it with a store
snapshot.

MenuEntry is a display projection. Its status is computed from the
snapshot every time it is built, so it always matches slot liveness.
"""

from dataclasses import dataclass, field
from enum import Enum

from tooldeck.config import CommandInfo, DeckConfig
from tooldeck.tui.state import StoreSnapshot
from tooldeck.types import ManagedCommand, Slot, Status


class ActivePanel(Enum):
    """Panel receiving Up/Down keys."""

    MENU = "menu"
    PRIMARY_LOG = "primary_log"
    SECONDARY_LOG = "secondary_log"

    def next(self) -> "ActivePanel":
        """Tab order: menu, primary log, secondary log, back to menu."""
        order = list(ActivePanel)
        return order[(order.index(self) + 1) % len(order)]


@dataclass(frozen=True)
class MenuEntry:
    """One menu row as rendered."""

    title: str
    description: str
    command: ManagedCommand
    status: Status


def menu_entries(config: DeckConfig, snapshot: StoreSnapshot) -> list[MenuEntry]:
    """
    Build menu rows with status mirrored from slot liveness.

    Start entries show their slot's status; every other entry is idle.
    """
    entries = []
    for info in config.commands:
        if info.command in (ManagedCommand.START_PRIMARY, ManagedCommand.START_SECONDARY):
            status = snapshot.status(info.command.slot)
        else:
            status = Status.IDLE
        entries.append(MenuEntry(info.name, info.desc, info.command, status))
    return entries


def scroll_window(lines: tuple[str, ...] | list[str], offset: int) -> list[str]:
    """Lines visible from a scroll offset, clamped to the content."""
    if not lines:
        return []
    start = max(0, min(offset, len(lines) - 1))
    return list(lines[start:])


@dataclass
class ViewState:
    """
    Focus, selection and scroll state.

    Attributes:
        item_count: Number of menu entries
        selected: Index of the highlighted menu entry, None before the
            first Up/Down press
        active: Panel receiving Up/Down
        scroll: Scroll offset per slot log panel
        show_diagnostics: Diagnostic panel replaces the slot logs
    """

    item_count: int
    selected: int | None = None
    active: ActivePanel = ActivePanel.MENU
    scroll: dict[Slot, int] = field(default_factory=lambda: {slot: 0 for slot in Slot})
    show_diagnostics: bool = False

    def move(self, delta: int) -> None:
        """Apply an Up (-1) or Down (+1) press to the active panel."""
        if self.active is ActivePanel.MENU:
            self._select(delta)
        elif self.show_diagnostics:
            # Slot logs are hidden behind the diagnostic panel
            return
        elif self.active is ActivePanel.PRIMARY_LOG:
            self.scroll[Slot.PRIMARY] = max(0, self.scroll[Slot.PRIMARY] + delta)
        else:
            self.scroll[Slot.SECONDARY] = max(0, self.scroll[Slot.SECONDARY] + delta)

    def cycle_panel(self) -> None:
        self.active = self.active.next()

    def toggle_diagnostics(self) -> None:
        self.show_diagnostics = not self.show_diagnostics

    def reset_scroll(self) -> None:
        for slot in self.scroll:
            self.scroll[slot] = 0

    def selection(self, config: DeckConfig) -> CommandInfo | None:
        """Config entry under the cursor, if any."""
        if self.selected is None or self.selected >= len(config.commands):
            return None
        return config.commands[self.selected]

    def resize(self, item_count: int) -> None:
        """Adopt a new menu length after the config was reloaded."""
        self.item_count = item_count
        if self.selected is not None and self.selected >= item_count:
            self.selected = item_count - 1 if item_count else None

    def _select(self, delta: int) -> None:
        if self.item_count == 0:
            return
        if self.selected is None:
            self.selected = 0 if delta > 0 else self.item_count - 1
            return
        self.selected = max(0, min(self.item_count - 1, self.selected + delta))
