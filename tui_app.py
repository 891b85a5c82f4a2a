from typing import List, Optional

from textual.app import App, ComposeResult
from textual.widgets import (
    Header,
    Footer,
    DataTable,
    Label,
    Button,
    Input,
)
from textual.containers import Container
from textual import work

from data_models import QueueItem
from network import LOOPBACK_ADDRESSES
from queue_controller import QueueController, QueueError
from utils import build_queue_item

HOST_CALLER = LOOPBACK_ADDRESSES[0]


def describe(item: Optional[QueueItem]) -> str:
    if item is None:
        return "Nothing playing"
    if item.artist:
        return f"{item.title} - {item.artist}"
    return item.title


# --- Textual TUI App ---
class JukeboxConsole(App):
    """Host console. Runs on the host machine, so it acts as a loopback caller."""

    CSS = """
    Screen {
        layout: vertical;
    }
    DataTable {
        height: 1fr;
        border: solid green;
    }
    #now-playing {
        padding: 1;
        color: $success;
    }
    #input-container {
        height: auto;
        dock: bottom;
        padding: 1;
        border-top: solid blue;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("n", "next_item", "Play Next"),
        ("d", "delete_item", "Remove Selected"),
    ]

    def __init__(self, controller: QueueController, enrichment_timeout: float = 5.0):
        super().__init__()
        self.controller = controller
        self.enrichment_timeout = enrichment_timeout

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Label("", id="now-playing")
        yield Label("Queue (N to play next, D to remove; the first row only leaves via N):")
        yield DataTable(id="queue-table")

        with Container(id="input-container"):
            yield Label("Add URL:")
            yield Input(placeholder="Paste YouTube URL here...", id="url-input")
            yield Button("Add", id="add-btn", variant="primary")

        yield Footer()

    def on_mount(self) -> None:
        self.title = "LAN Jukebox Host Console"

        q_table = self.query_one("#queue-table", DataTable)
        q_table.cursor_type = "row"
        q_table.add_columns("Idx", "Kind", "Title", "User", "IP", "Added At")

        self.set_interval(1.0, self.refresh_tables)
        self.refresh_tables()

    def refresh_tables(self) -> None:
        snapshot = self.controller.snapshot()
        self.query_one("#now-playing", Label).update(
            f"Now Playing: {describe(snapshot.currently_playing)}"
        )
        self._update_table(self.query_one("#queue-table", DataTable), snapshot.queue)

    def _update_table(self, table: DataTable, data: List[QueueItem]) -> None:
        cursor_coord = table.cursor_coordinate
        table.clear()

        for idx, item in enumerate(data):
            table.add_row(
                str(idx),
                item.kind.value,
                describe(item),
                item.username or "-",
                item.requested_by or "-",
                item.added_at or "-",
                key=str(idx),
            )

        if cursor_coord.row < len(data):
            table.move_cursor(row=cursor_coord.row, column=cursor_coord.column)

    def action_next_item(self) -> None:
        item = self.controller.advance(HOST_CALLER)
        if item:
            self.notify(f"Now Playing: {describe(item)}")
        else:
            self.notify("Queue is empty.", severity="warning")
        self.refresh_tables()

    def action_delete_item(self) -> None:
        table = self.query_one("#queue-table", DataTable)
        if table.row_count == 0:
            return
        index = table.cursor_coordinate.row
        try:
            removed = self.controller.delete(index, HOST_CALLER)
        except QueueError as e:
            self.notify(f"Cannot remove row {index}: {e}", severity="error")
            return
        self.notify(f"Removed: {removed.title}")
        self.refresh_tables()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "add-btn":
            self.add_local_url()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "url-input":
            self.add_local_url()

    def add_local_url(self) -> None:
        input_widget = self.query_one("#url-input", Input)
        url = input_widget.value.strip()
        if url:
            self.notify("Fetching title...", severity="information")
            input_widget.value = ""
            self.add_url_worker(url)

    @work(thread=True)
    def add_url_worker(self, url: str) -> None:
        try:
            item, _ = build_queue_item(
                {"videoUrl": url, "username": "Host (You)"},
                requested_by=HOST_CALLER,
                timeout=self.enrichment_timeout,
            )
            stored = self.controller.enqueue(item)
        except QueueError as e:
            self.call_from_thread(self.notify, str(e), severity="error")
            return
        self.call_from_thread(self._finish_add_url, stored)

    def _finish_add_url(self, item: QueueItem) -> None:
        self.notify(f"Added '{item.title}'!")
        self.refresh_tables()
