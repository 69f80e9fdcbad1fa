"""Terminal rendering of notices and recording status."""

import logging
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.events import Notice, NoticeLevel, StateChange
from ..models.recording import RecordingState, SessionStatus
from ..recording.notices import NOTICE_TOPIC, STATE_TOPIC

logger = logging.getLogger(__name__)


_LEVEL_STYLES = {
    NoticeLevel.INFO: ("ℹ", "cyan"),
    NoticeLevel.SUCCESS: ("✔", "green"),
    NoticeLevel.WARNING: ("⚠", "yellow"),
    NoticeLevel.ERROR: ("✖", "bold red"),
}

_STATE_LABELS = {
    RecordingState.RECORDING: ("● Recording", "red"),
    RecordingState.PAUSED: ("Paused", "yellow"),
    RecordingState.PROCESSING: ("Processing", "cyan"),
    RecordingState.COMPLETED: ("Recording Complete", "green"),
}


class NoticeConsole:
    """Prints notices (the terminal version of toasts) and state changes as they are published."""

    def __init__(self, console: Optional[Console] = None, show_state_changes: bool = False):
        self.console = console or Console()
        self.show_state_changes = show_state_changes
        pub.subscribe(self.on_notice, NOTICE_TOPIC)
        pub.subscribe(self.on_state_change, STATE_TOPIC)

    def on_notice(self, notice: Notice) -> None:
        icon, style = _LEVEL_STYLES[notice.level]
        self.console.print(Text(f"{icon} {notice.message}", style=style))

    def on_state_change(self, change: StateChange) -> None:
        if self.show_state_changes:
            self.console.print(Text(f"  {change.previous.value} → {change.current.value}", style="dim"))

    def close(self) -> None:
        try:
            pub.unsubscribe(self.on_notice, NOTICE_TOPIC)
            pub.unsubscribe(self.on_state_change, STATE_TOPIC)
        except Exception as e:
            logger.warning(f"Error during unsubscribe: {e}")


def render_status(status: SessionStatus) -> Panel:
    """Timer bar and alerts for the current session."""
    table = Table.grid(expand=True)
    table.add_column(justify="left")
    table.add_column(justify="right")

    label, style = _STATE_LABELS.get(status.state, ("Ready", "dim"))
    limit = f" / {status.time_limit_seconds // 60} min" if status.time_limit_seconds else ""
    table.add_row(Text(label, style=style), Text(f"{status.formatted_time}{limit}", style="bold"))

    if status.is_full_capture and status.state is RecordingState.RECORDING:
        table.add_row(Text("Full screen detected. You may switch tabs while recording.", style="green"), "")
    if status.integrity_warning_issued and not status.is_full_capture:
        table.add_row(Text("Tab switching detected during recording. "
                           "This may invalidate your submission.", style="bold red"), "")
    if status.last_error:
        table.add_row(Text(status.last_error, style="red"), "")
    if status.preview_uri:
        table.add_row(Text(f"Preview: {status.preview_uri}", style="dim"), "")
    if status.public_reference:
        table.add_row(Text(f"Submitted: {status.public_reference}", style="dim"), "")

    return Panel(table, title="Task recording", border_style=style)
