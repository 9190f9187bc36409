#!/usr/bin/env python3
"""DayVault TUI — record one memory a day from the terminal, powered by Textual."""

from __future__ import annotations

import logging
import mimetypes
import sys
from pathlib import Path

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Select,
    Static,
    TextArea,
)

from vault import (
    MOODS,
    CooldownActive,
    GateDenied,
    Journal,
    StorageFailure,
    ValidationError,
    build_timeline,
    format_countdown,
    pretty_date,
    status_hint,
    streak_line,
    workspace_root,
)


# ── Stylesheet ─────────────────────────────────────────────────

CSS = """
Screen {
    background: $surface;
}

#main-layout {
    height: 1fr;
}

#home-pane {
    width: 1fr;
    min-width: 30;
    border-right: tall $primary-background-darken-2;
    padding: 0 1;
}

#create-pane {
    width: 1fr;
    min-width: 30;
    padding: 0 1;
}

.section-title {
    text-style: bold;
    color: $text;
    margin: 1 0 0 0;
    padding: 0 1;
}

#streak-line {
    color: $warning;
    text-style: bold;
    padding: 0 1;
}

#streak-detail, #gate-hint {
    color: $text-muted;
    padding: 0 1;
}

#timeline-table {
    height: 1fr;
}

#reflection-area {
    height: 6;
    min-height: 4;
}

#create-error {
    color: $error;
    padding: 0 1;
}
"""


# ── Main app ───────────────────────────────────────────────────


class DayVaultApp(App):
    """DayVault — one memory a day."""

    TITLE = "DayVault"
    CSS = CSS
    AUTO_FOCUS = None

    BINDINGS = [
        Binding("n", "focus_create", "New memory"),
        Binding("r", "reload", "Refresh"),
        Binding("escape", "blur_focus", "Back"),
        Binding("ctrl+s", "save_memory", "Save"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, journal: Journal | None = None) -> None:
        super().__init__()
        self.journal = journal if journal is not None else Journal()

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            Vertical(
                Static(id="streak-line"),
                Static(id="streak-detail"),
                Static(id="gate-hint"),
                Label("Timeline", classes="section-title"),
                DataTable(id="timeline-table"),
                id="home-pane",
            ),
            VerticalScroll(
                Label("New memory", classes="section-title"),
                Input(placeholder="Path to photo", id="photo-input"),
                Input(placeholder="YYYY-MM-DD", id="date-input"),
                Select(
                    [(m.label, m.key) for m in MOODS],
                    value=MOODS[0].key,
                    allow_blank=False,
                    id="mood-select",
                ),
                TextArea(id="reflection-area"),
                Input(placeholder="Category (optional)", id="category-input"),
                Button("Save memory", id="save-button", variant="primary"),
                Static(id="create-error"),
                id="create-pane",
            ),
            id="main-layout",
        )
        yield Footer()

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#timeline-table", DataTable)
        table.add_columns("Date", "Mood", "Category", "Reflection")
        self._load_data()
        # pure projection, no storage I/O
        self.set_interval(1.0, self._tick)

    def _load_data(self) -> None:
        """Reload entries + counters and repaint everything."""
        self.journal.load()
        self.query_one("#date-input", Input).value = self.journal.now_key()

        table: DataTable = self.query_one("#timeline-table", DataTable)
        table.clear()
        for group in build_timeline(self.journal.all_entries()):
            for e in group["entries"]:
                reflection = e.reflection if len(e.reflection) <= 60 else e.reflection[:57] + "..."
                table.add_row(pretty_date(e.day_key), f"{e.mood_glyph} {e.mood}", e.category or "", reflection)

        streaks = self.journal.streaks()
        self.query_one("#streak-line", Static).update(streak_line(streaks.current))
        self.query_one("#streak-detail", Static).update(
            f"Best: {streaks.best}  ·  Last run: {streaks.last_run}"
        )
        self._tick()

    def _tick(self) -> None:
        gate = self.journal.status()
        self.query_one("#gate-hint", Static).update(status_hint(gate))
        self.query_one("#save-button", Button).disabled = gate.kind == "cooldown"
        self.sub_title = "open" if gate.kind == "open" else format_countdown(gate.remaining)

    # ── Actions ────────────────────────────────────────────────

    def action_focus_create(self) -> None:
        self.query_one("#photo-input", Input).focus()

    def action_reload(self) -> None:
        self._load_data()

    def action_blur_focus(self) -> None:
        self.set_focus(None)

    def action_save_memory(self) -> None:
        self._submit()

    @on(Button.Pressed, "#save-button")
    def _on_save_pressed(self, event: Button.Pressed) -> None:
        self._submit()

    def _submit(self) -> None:
        self.query_one("#create-error", Static).update("")
        photo_path = self.query_one("#photo-input", Input).value.strip()
        mood = str(self.query_one("#mood-select", Select).value)
        self._do_save(
            photo_path=photo_path,
            day_key=self.query_one("#date-input", Input).value.strip(),
            mood=mood,
            reflection=self.query_one("#reflection-area", TextArea).text,
            category=self.query_one("#category-input", Input).value,
        )

    @work(thread=True)
    def _do_save(self, photo_path: str, day_key: str, mood: str | None, reflection: str, category: str) -> None:
        """Run the save in a worker thread, report the outcome."""
        try:
            photo = Path(photo_path).expanduser().read_bytes() if photo_path else b""
        except OSError as e:
            self.call_from_thread(self._show_error, f"Cannot read photo: {e}")
            return
        photo_type = mimetypes.guess_type(photo_path)[0] or "application/octet-stream"

        try:
            result = self.journal.save(
                day_key=day_key,
                photo=photo,
                reflection=reflection,
                mood=mood,
                category=category,
                photo_type=photo_type,
            )
        except CooldownActive as e:
            self.call_from_thread(self._show_error, f"You can save again in {format_countdown(e.remaining)}.")
        except (ValidationError, GateDenied) as e:
            self.call_from_thread(self._show_error, str(e))
        except StorageFailure as e:
            self.call_from_thread(self.notify, f"Could not save: {e}", title="Storage", severity="error")
        else:
            note = f"Saved {pretty_date(result.entry.day_key)}. Streak: {result.streak.current}"
            if result.card_path:
                note += f"\nCard: {result.card_path}"
            self.call_from_thread(self.notify, note, title="Memory kept", severity="information")
            self.call_from_thread(self._clear_form)
            self.call_from_thread(self._load_data)

    def _show_error(self, message: str) -> None:
        self.query_one("#create-error", Static).update(message)

    def _clear_form(self) -> None:
        self.query_one("#photo-input", Input).value = ""
        self.query_one("#reflection-area", TextArea).load_text("")
        self.query_one("#category-input", Input).value = ""
        self.query_one("#mood-select", Select).value = MOODS[0].key


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    if not root.exists():
        print(f"Workspace not found: {root}")
        print("Set VAULT_ROOT or create the directory first.")
        sys.exit(1)

    logging.basicConfig(
        filename=str(root / "dayvault.log"),
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = DayVaultApp(Journal(root))
    app.run()


if __name__ == "__main__":
    main()
