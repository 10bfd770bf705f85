from __future__ import annotations

from datetime import datetime

from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import Key
from textual.screen import Screen
from textual.widgets import Button, DataTable, Footer, Input, Static

from proreceipts.models.receipt import ReceiptDocument, ReceiptType, TaxOptions
from proreceipts.utils.formatters import format_peso


def _format_created(value: str) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value).astimezone().strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError):
        return value[:16]


class ReceiptsScreen(Screen):
    """Receipts attached to one PRO number."""

    BINDINGS = [
        Binding("s", "new_receipt('statement_of_accounts')", "New SOA"),
        Binding("i", "new_receipt('service_invoice')", "New Invoice"),
        Binding("e", "edit", "Edit"),
        Binding("x", "export", "Export"),
        Binding("d", "delete", "Delete"),
        Binding("r", "reload", "Reload"),
        Binding("slash", "focus_pro", "PRO", show=False),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, pro_number: str = "") -> None:
        super().__init__()
        self._pro = pro_number.strip()
        self._documents: dict[str, ReceiptDocument] = {}

    def compose(self) -> ComposeResult:
        with Horizontal(id="top-bar"):
            yield Static("PRO Receipts", id="app-title")
            yield Input(
                value=self._pro,
                placeholder="PRO number",
                id="pro-input",
                tooltip="Shipment PRO number (press Enter to load)",
            )
            yield Button("▷ Load", id="btn-load", variant="primary")

        with Horizontal(id="action-bar"):
            yield Button(
                "+ Statement of Account",
                id="btn-new-soa",
                variant="primary",
                tooltip="New statement of account (s)",
            )
            yield Button(
                "+ Service Invoice",
                id="btn-new-si",
                variant="primary",
                tooltip="New service invoice (i)",
            )
            yield Button("✎ Edit", id="btn-edit", tooltip="Edit selected receipt (e)")
            yield Button("⇓ Export", id="btn-export", tooltip="Export selected receipt (x)")
            yield Button(
                "✕ Delete",
                id="btn-delete",
                variant="error",
                tooltip="Delete selected receipt (d)",
            )

        yield DataTable(id="receipts-table", cursor_type="row")
        yield Static("", id="empty-state")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#receipts-table", DataTable)
        table.add_columns("Type", "Created", "Grand Total", "Amount Due")
        self._populate_table([])
        if self._pro:
            self._load_receipts(self._pro)
            table.focus()
        else:
            self.query_one("#pro-input", Input).focus()

    def on_key(self, event: Key) -> None:
        table = self.query_one("#receipts-table", DataTable)
        if not table.has_focus:
            return
        match event.key:
            case "j":
                table.action_cursor_down()
            case "k":
                table.action_cursor_up()
            case "enter":
                self.action_edit()
            case _:
                return
        event.prevent_default()
        event.stop()

    # --- Data loading (threaded) ---

    @work(thread=True, exclusive=True, group="load")
    def _load_receipts(self, pro: str) -> None:
        try:
            documents = self.app.service.list_by_pro(pro)  # type: ignore[attr-defined]
        except Exception as e:
            self.app.call_from_thread(
                self.notify, f"Could not load receipts: {e}", severity="error", timeout=5
            )
            return
        self.app.call_from_thread(self._populate_table, documents)

    def _populate_table(self, documents: list[ReceiptDocument]) -> None:
        symbol = self.app.settings.currency_symbol  # type: ignore[attr-defined]
        table = self.query_one("#receipts-table", DataTable)
        table.clear()
        self._documents = {d.id: d for d in documents}
        for doc in documents:
            due = format_peso(doc.total_amount_due, symbol) if doc.receipt_type.has_taxes else ""
            table.add_row(
                doc.receipt_type.display,
                _format_created(doc.created_at),
                format_peso(doc.grand_total, symbol),
                due,
                key=doc.id,
            )

        has_rows = table.row_count > 0
        table.display = has_rows
        empty = self.query_one("#empty-state", Static)
        empty.display = not has_rows
        if self._pro:
            empty.update(
                f"No receipts for PRO [bold]{self._pro}[/bold].\n"
                "Press [bold]s[/bold] for a statement of account "
                "or [bold]i[/bold] for a service invoice."
            )
        else:
            empty.update("Enter a PRO number to list its receipts.")

    def _selected(self) -> ReceiptDocument | None:
        table = self.query_one("#receipts-table", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self._documents.get(str(row_key.value))

    # --- Event handlers ---

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "pro-input":
            self.action_reload()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        match event.button.id:
            case "btn-load":
                self.action_reload()
            case "btn-new-soa":
                self.action_new_receipt(ReceiptType.STATEMENT_OF_ACCOUNTS.value)
            case "btn-new-si":
                self.action_new_receipt(ReceiptType.SERVICE_INVOICE.value)
            case "btn-edit":
                self.action_edit()
            case "btn-export":
                self.action_export()
            case "btn-delete":
                self.action_delete()

    # --- Actions ---

    def action_reload(self) -> None:
        self._pro = self.query_one("#pro-input", Input).value.strip()
        if not self._pro:
            self._populate_table([])
            self.notify("Enter a PRO number", severity="warning", timeout=3)
            return
        self._load_receipts(self._pro)
        self.query_one("#receipts-table", DataTable).focus()

    def action_focus_pro(self) -> None:
        self.query_one("#pro-input", Input).focus()

    def action_new_receipt(self, receipt_type: str) -> None:
        if not self._pro:
            self.notify("Load a PRO number first", severity="warning", timeout=3)
            return
        from proreceipts.services.editor import ReceiptEditor
        from proreceipts.tui.screens.editor import ReceiptEditorScreen

        settings = self.app.settings  # type: ignore[attr-defined]
        editor = ReceiptEditor.new(
            ReceiptType(receipt_type),
            self.app.templates,  # type: ignore[attr-defined]
            TaxOptions(vat_percent=settings.vat_percent),
        )
        self.app.push_screen(
            ReceiptEditorScreen(editor, self._pro), callback=self._on_editor_closed
        )

    def action_edit(self) -> None:
        doc = self._selected()
        if doc is None:
            self.notify("No receipt selected", severity="warning", timeout=3)
            return
        from proreceipts.services.editor import ReceiptEditor
        from proreceipts.tui.screens.editor import ReceiptEditorScreen

        editor = ReceiptEditor.from_document(doc, self.app.templates)  # type: ignore[attr-defined]
        self.app.push_screen(
            ReceiptEditorScreen(editor, doc.pro_number, document=doc),
            callback=self._on_editor_closed,
        )

    def _on_editor_closed(self, saved: ReceiptDocument | None) -> None:
        if saved is not None and self._pro:
            self._load_receipts(self._pro)

    def action_export(self) -> None:
        doc = self._selected()
        if doc is None:
            self.notify("No receipt selected", severity="warning", timeout=3)
            return
        self._run_export(doc)

    @work(thread=True)
    def _run_export(self, doc: ReceiptDocument) -> None:
        try:
            from proreceipts.services.export import export_receipt

            symbol = self.app.settings.currency_symbol  # type: ignore[attr-defined]
            path = export_receipt(doc, symbol=symbol)
            self.app.call_from_thread(self.notify, f"Exported to {path}", timeout=5)
        except Exception as e:
            self.app.call_from_thread(
                self.notify, f"Export failed: {e}", severity="error", timeout=5
            )

    def action_delete(self) -> None:
        doc = self._selected()
        if doc is None:
            self.notify("No receipt selected", severity="warning", timeout=3)
            return
        from proreceipts.tui.screens.confirm import ConfirmScreen

        self.app.push_screen(
            ConfirmScreen(
                f"Delete this {doc.receipt_type.display} for PRO {doc.pro_number}?\n\n"
                "This cannot be undone.",
                confirm_label="Delete",
            ),
            callback=lambda confirmed: self._on_delete_confirmed(doc, confirmed),
        )

    def _on_delete_confirmed(self, doc: ReceiptDocument, confirmed: bool | None) -> None:
        if confirmed:
            self._run_delete(doc)

    @work(thread=True)
    def _run_delete(self, doc: ReceiptDocument) -> None:
        try:
            self.app.service.delete(doc.id)  # type: ignore[attr-defined]
        except Exception as e:
            self.app.call_from_thread(
                self.notify, f"Delete failed: {e}", severity="error", timeout=5
            )
            return
        self.app.call_from_thread(self._on_deleted, doc)

    def _on_deleted(self, doc: ReceiptDocument) -> None:
        remaining = [d for d in self._documents.values() if d.id != doc.id]
        self._populate_table(remaining)
        self.notify(f"{doc.receipt_type.display} deleted", timeout=3)

    def action_quit(self) -> None:
        self.app.exit()
