"""
Layout factory and panel rendering for the dashboard.

Layout structure:
+--------------+---------------------------------------------+
|  Menu        |  Primary log (ratio=1)                      |
|  (ratio=1)   |                                             |
+--------------+---------------------------------------------+
|  Info        |  Secondary log (ratio=1)                    |
|  (ratio=1)   |                                             |
+--------------+---------------------------------------------+
|  footer (1 row): key legend                                |
+------------------------------------------------------------+

With the diagnostic panel toggled on, it takes the whole right column.
render_dashboard() builds everything from a store snapshot and the view
state; it never touches the shared store.
"""

from rich.layout import Layout
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from tooldeck import __version__
from tooldeck.config import DeckConfig
from tooldeck.tui.state import StoreSnapshot
from tooldeck.tui.view import ActivePanel, ViewState, menu_entries, scroll_window
from tooldeck.types import ManagedCommand, Slot, Status

ACTIVE_BORDER = "bold red"
IDLE_BORDER = "white"

LEGEND = " c: clear | Tab: switch panel | ▲ ▼: scroll | Enter: activate | d: debug | q: quit "
DEBUG_LEGEND = " d: close debug | q: quit "

ABOUT_BANNER = """\
░░░░░░░░░░░░░░░░░
░███░███░███░█░░░
░░█░░█░█░█░█░█░░░
░░█░░███░███░███░
░░░░░░░░░░░░░░░░░"""


def about_text() -> str:
    return f"{ABOUT_BANNER}\nversion  :{__version__}"


def create_layout(show_diagnostics: bool = False) -> Layout:
    """
    Create the dashboard layout structure.

    Access regions via:
    - layout["menu"], layout["info"]
    - layout["primary"], layout["secondary"] (slot logs), or
      layout["diagnostics"] when show_diagnostics is True
    - layout["footer"]

    Args:
        show_diagnostics: Use the right column for the diagnostic panel

    Returns:
        Layout with named regions
    """
    layout = Layout(name="root")
    layout.split_column(
        Layout(name="body"),
        Layout(name="footer", size=1),
    )
    layout["body"].split_row(
        Layout(name="left", ratio=1),
        Layout(name="right", ratio=3),
    )
    layout["left"].split_column(
        Layout(name="menu", ratio=1),
        Layout(name="info", ratio=1),
    )
    if show_diagnostics:
        layout["right"].split_column(Layout(name="diagnostics"))
    else:
        layout["right"].split_column(
            Layout(name="primary", ratio=1),
            Layout(name="secondary", ratio=1),
        )
    return layout


def make_panel(
    content: str | Text,
    title: str,
    active: bool = False,
    subtitle: str | None = None,
) -> Panel:
    """
    Create a bordered panel, highlighted when it has focus.

    Args:
        content: Panel body
        title: Panel title (will be bolded)
        active: True if the panel receives Up/Down keys
        subtitle: Optional text on the bottom border

    Returns:
        Panel with formatted title and border style
    """
    return Panel(
        content,
        title=f"[bold]{title}[/bold]",
        subtitle=subtitle,
        border_style=ACTIVE_BORDER if active else IDLE_BORDER,
        padding=(0, 1),
    )


def make_menu(config: DeckConfig, view: ViewState, snapshot: StoreSnapshot) -> Panel:
    """Menu list with selection marker and running entries on red."""
    text = Text()
    for i, entry in enumerate(menu_entries(config, snapshot)):
        marker = "✓ " if i == view.selected else "  "
        style = "bold" if i == view.selected else ""
        if entry.status is Status.RUNNING:
            style = f"{style} on red".strip()
        if i:
            text.append("\n")
        text.append(f"{marker}{entry.title}", style=style)
    return make_panel(text, "Menu", active=view.active is ActivePanel.MENU)


def make_info(config: DeckConfig, view: ViewState) -> Panel:
    """Description of the selected entry, or the about text."""
    selected = view.selection(config)
    if selected is None or selected.command is ManagedCommand.SHOW_ABOUT:
        body = about_text()
    else:
        body = selected.desc
    return make_panel(Text(body, style="red"), "Info")


def make_log_panel(
    title: str,
    lines: tuple[str, ...],
    offset: int,
    active: bool,
    running: bool,
    pid: int | None,
) -> Panel:
    """Scrolled log panel with position and liveness on the border."""
    visible = scroll_window(lines, offset)
    first = len(lines) - len(visible) + 1 if lines else 0
    position = f"{first}/{len(lines)}"
    state = f"running pid {pid}" if running else "idle"
    return make_panel(
        escape("\n".join(visible)),
        title,
        active=active,
        subtitle=f"{state} | {position}",
    )


def render_dashboard(
    config: DeckConfig,
    view: ViewState,
    snapshot: StoreSnapshot,
) -> Layout:
    """
    Build the full screen for one render tick.

    Args:
        config: Current config (menu entries)
        view: Selection, focus and scroll state
        snapshot: Store contents copied under the lock

    Returns:
        Layout ready for Live.update()
    """
    layout = create_layout(view.show_diagnostics)
    layout["menu"].update(make_menu(config, view, snapshot))
    layout["info"].update(make_info(config, view))

    if view.show_diagnostics:
        layout["diagnostics"].update(
            make_panel(escape("\n".join(snapshot.diagnostics)), "Debug Console")
        )
        legend = DEBUG_LEGEND
    else:
        for slot, name, title, panel in (
            (Slot.PRIMARY, "primary", "ComfyUI Logs", ActivePanel.PRIMARY_LOG),
            (Slot.SECONDARY, "secondary", "Cron Logs", ActivePanel.SECONDARY_LOG),
        ):
            slot_snap = snapshot.slots[slot]
            layout[name].update(
                make_log_panel(
                    title,
                    slot_snap.lines,
                    view.scroll[slot],
                    active=view.active is panel,
                    running=slot_snap.running,
                    pid=slot_snap.pid,
                )
            )
        legend = LEGEND

    utility_keys = " | ".join(f"{u.key}: {u.name}" for u in config.utilities)
    if utility_keys:
        legend = f"{legend}| {utility_keys} "
    layout["footer"].update(Text(legend, style="bold", justify="center"))
    return layout
