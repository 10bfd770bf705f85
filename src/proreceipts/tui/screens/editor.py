from __future__ import annotations

import re

from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import Screen
from textual.widget import Widget
from textual.widgets import Button, Checkbox, Footer, Input, Label, Static

from proreceipts.models.receipt import ChildRow, Group, ReceiptDocument, Row
from proreceipts.services.editor import ReceiptEditor
from proreceipts.utils.formatters import format_number, format_peso, normalize_title
from proreceipts.utils.validators import parse_money, parse_percent

_SAFE_KEY = re.compile(r"[A-Za-z0-9_-]+")


class ReceiptEditorScreen(Screen[ReceiptDocument | None]):
    """Edit one receipt; dismisses with the saved document, or None when abandoned."""

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("ctrl+s", "save", "Save"),
        Binding("ctrl+g", "add_group", "Add group"),
    ]

    def __init__(
        self,
        editor: ReceiptEditor,
        pro_number: str,
        document: ReceiptDocument | None = None,
    ) -> None:
        super().__init__()
        self.editor = editor
        self.pro_number = pro_number
        self.document = document
        self._saving = False
        self._dirty = False
        # widget ids are built from model ids, which may hold characters
        # Textual rejects in an id
        self._keys: dict[str, str] = {}
        self._models: dict[str, str] = {}

    # --- Widget ids ---

    def widget_key(self, model_id: str) -> str:
        key = self._keys.get(model_id)
        if key is None:
            key = model_id if _SAFE_KEY.fullmatch(model_id) else f"_k{len(self._keys)}"
            self._keys[model_id] = key
            self._models[key] = model_id
        return key

    def _model_id(self, widget_id: str | None) -> tuple[str, str]:
        prefix, _, key = (widget_id or "").partition("-")
        return prefix, self._models.get(key, key)

    @property
    def _symbol(self) -> str:
        return self.app.settings.currency_symbol  # type: ignore[attr-defined]

    # --- Layout ---

    def compose(self) -> ComposeResult:
        editor = self.editor
        title = editor.receipt_type.display
        with Horizontal(id="editor-title-bar"):
            yield Static(f"{title}  |  PRO {self.pro_number}", id="header-bar")
            yield Button("✕", id="btn-editor-close")

        yield VerticalScroll(*self._group_widgets(), id="groups-container")

        with Horizontal(id="template-bar"):
            yield Button("+ Group", id="btn-add-group", tooltip="Add an empty group (ctrl+g)")
            for i, tpl_title in enumerate(editor.template_titles()):
                yield Button(
                    f"+ {normalize_title(tpl_title)}", id=f"tpl-{i}", classes="template-button"
                )

        if editor.receipt_type.has_taxes:
            options = editor.options
            with Horizontal(id="tax-panel"):
                with Vertical(id="tax-options"):
                    yield Checkbox("VAT exempt", options.vat_exempt, id="vat-exempt")
                    with Horizontal(id="vat-percent-row"):
                        yield Label("VAT %", classes="form-label")
                        yield Input(format_number(options.vat_percent), id="vat-percent")
                    yield Checkbox(
                        "Withholding tax", options.withholding_enabled, id="withholding"
                    )
                yield Static("", id="tax-summary")

        with Horizontal(id="totals-bar"):
            yield Label("", id="grand-total")
            yield Label("", id="amount-due")
            yield Label("", id="total-warning")
            yield Button("✕ Cancel", id="btn-cancel")
            yield Button("✓ Save", id="btn-save", variant="primary")
        yield Footer()

    def _group_widgets(self) -> list[Widget]:
        return [self._group_widget(g) for g in self.editor.groups]

    def _group_widget(self, group: Group) -> Widget:
        gkey = self.widget_key(group.id)
        header = Horizontal(
            Input(group.title, id=f"title-{gkey}", classes="group-title"),
            Label("", id=f"gtotal-{gkey}", classes="group-total"),
            Button("✕ Group", id=f"delgroup-{gkey}", variant="error", classes="small"),
            classes="group-header",
        )
        lines: list[Widget] = [header]
        for row in group.rows:
            lines.append(self._row_widget(row))
            lines.extend(self._child_widget(child) for child in row.children)
        lines.append(Button("+ Row", id=f"addrow-{gkey}", classes="small add-row"))
        return Vertical(*lines, classes="group")

    def _row_widget(self, row: Row) -> Widget:
        rkey = self.widget_key(row.id)
        cells: list[Widget] = [
            Input(row.label, id=f"label-{rkey}", classes="row-label"),
            Input(
                _amount_text(row.value),
                placeholder="0.00",
                id=f"value-{rkey}",
                classes="row-value",
            ),
        ]
        if row.withholding_parent:
            override = row.withholding_percent
            pct = Input(
                "" if override is None else format_number(override),
                placeholder=format_number(row.default_percent),
                id=f"pct-{rkey}",
                classes="row-pct",
                tooltip="Withholding %",
            )
            pct.display = self._withholding_visible
            cells.append(pct)
            cells.append(Button("+ Sub", id=f"child-{rkey}", classes="small"))
        cells.append(Button("✕", id=f"del-{rkey}", classes="small"))
        return Horizontal(*cells, classes="row withholding" if row.withholding_parent else "row")

    def _child_widget(self, child: ChildRow) -> Widget:
        ckey = self.widget_key(child.id)
        return Horizontal(
            Input(child.label, id=f"label-{ckey}", classes="row-label"),
            Input(
                _amount_text(child.value),
                placeholder="0.00",
                id=f"value-{ckey}",
                classes="row-value",
            ),
            Button("✕", id=f"del-{ckey}", classes="small"),
            classes="row child",
        )

    @property
    def _withholding_visible(self) -> bool:
        return self.editor.receipt_type.has_taxes and self.editor.options.withholding_enabled

    def on_mount(self) -> None:
        self._refresh_totals()

    async def _rebuild(self) -> None:
        """Re-render the group tree after a structural change."""
        container = self.query_one("#groups-container", VerticalScroll)
        await container.remove_children()
        await container.mount_all(self._group_widgets())
        self._dirty = True
        self._refresh_totals()

    def _refresh_totals(self) -> None:
        editor = self.editor
        symbol = self._symbol
        for group in editor.groups:
            total = editor.totals.per_group.get(group.id, 0)
            labels = self.query(f"#gtotal-{self.widget_key(group.id)}").results(Label)
            heading = normalize_title(group.title)
            for label in labels:
                label.update(f"{heading} total: {format_peso(total, symbol)}")

        self.query_one("#grand-total", Label).update(
            f"Grand total: {format_peso(editor.grand_total, symbol)}"
        )
        if editor.receipt_type.has_taxes:
            self._refresh_tax_summary()

        warning = self.query_one("#total-warning", Label)
        warning.update("" if editor.can_save else "Grand total must be greater than zero to save")
        warning.display = not editor.can_save
        self.query_one("#btn-save", Button).disabled = self._saving or not editor.can_save

    def _refresh_tax_summary(self) -> None:
        tax = self.editor.tax
        symbol = self._symbol
        lines = [
            f"VATable sales:         {format_peso(tax.vatable_sales, symbol)}",
            f"VAT ({format_number(tax.vat_percent)}%):        {format_peso(tax.vat_value, symbol)}",
            f"VAT exempt sales:      {format_peso(tax.vat_exempt_sales, symbol)}",
            f"Total sales (VAT inc): {format_peso(tax.total_sales_vat_inclusive, symbol)}",
            f"Less: VAT              {format_peso(tax.less_vat, symbol)}",
            f"Amount net of VAT:     {format_peso(tax.amount_net_of_vat, symbol)}",
            f"Add: VAT               {format_peso(tax.add_vat, symbol)}",
        ]
        if tax.withholding_enabled:
            lines.append(f"Less: withholding tax {format_peso(tax.withholding_tax, symbol)}")
        self.query_one("#tax-summary", Static).update("\n".join(lines))
        self.query_one("#amount-due", Label).update(
            f"Amount due: {format_peso(tax.total_amount_due, symbol)}"
        )

    # --- Edits ---

    def on_input_changed(self, event: Input.Changed) -> None:
        if self._apply_input(event.input.id, event.value):
            self._dirty = True
            self._refresh_totals()

    def _apply_input(self, widget_id: str | None, value: str) -> bool:
        """Push one input's text into the editor; False when nothing changed."""
        editor = self.editor
        if widget_id == "vat-percent":
            if parse_percent(value) == editor.options.vat_percent:
                return False
            editor.set_vat_percent(value)
            return True

        prefix, model_id = self._model_id(widget_id)
        match prefix:
            case "title":
                if editor.group(model_id).title == value:
                    return False
                editor.rename_group(model_id, value)
            case "label" | "value":
                line = self._line(model_id)
                if prefix == "label" and line.label == value:
                    return False
                if prefix == "value" and parse_money(value) == line.value:
                    return False
                changes = {prefix: value}
                if isinstance(line, Row):
                    editor.update_row(model_id, **changes)
                else:
                    editor.update_child_row(model_id, **changes)
            case "pct":
                percent = parse_percent(value) if value.strip() else None
                if editor.row(model_id).withholding_percent == percent:
                    return False
                editor.update_row(model_id, percent=percent)
            case _:
                return False
        return True

    def _line(self, model_id: str) -> Row | ChildRow:
        try:
            return self.editor.row(model_id)
        except KeyError:
            for group in self.editor.groups:
                for row in group.rows:
                    for child in row.children:
                        if child.id == model_id:
                            return child
            raise

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        options = self.editor.options
        match event.checkbox.id:
            case "vat-exempt":
                if options.vat_exempt == event.value:
                    return
                self.editor.set_vat_exempt(event.value)
            case "withholding":
                if options.withholding_enabled == event.value:
                    return
                self.editor.set_withholding_enabled(event.value)
                for pct in self.query(".row-pct").results(Input):
                    pct.display = event.value
            case _:
                return
        self._dirty = True
        self._refresh_totals()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        match button_id:
            case "btn-save":
                self.action_save()
                return
            case "btn-cancel" | "btn-editor-close":
                self.action_close()
                return
            case "btn-add-group":
                await self.action_add_group()
                return

        prefix, model_id = self._model_id(button_id)
        match prefix:
            case "addrow":
                self.editor.add_row(model_id)
            case "delgroup":
                self.editor.delete_group(model_id)
            case "child":
                self.editor.add_child_row(model_id)
            case "del":
                try:
                    self.editor.row(model_id)
                except KeyError:
                    self.editor.remove_child_row(model_id)
                else:
                    self.editor.delete_row(model_id)
            case "tpl":
                titles = self.editor.template_titles()
                self.editor.add_group_from_template(titles[int(model_id)])
            case _:
                return
        await self._rebuild()

    async def action_add_group(self) -> None:
        self.editor.add_group()
        await self._rebuild()

    # --- Save ---

    def action_save(self) -> None:
        if self._saving or not self.editor.can_save:
            return
        self._saving = True
        self.query_one("#btn-save", Button).disabled = True
        self.notify("Saving…", severity="information", timeout=2)
        document = self.document
        self._run_save(
            self.editor.groups,
            self.editor.snapshot(),
            document.id if document else None,
            document.updated_at if document else None,
        )

    @work(thread=True, exclusive=True, group="save")
    def _run_save(
        self,
        groups: tuple[Group, ...],
        computed: dict,
        receipt_id: str | None,
        expected_updated_at: str | None,
    ) -> None:
        try:
            saved = self.app.service.save(  # type: ignore[attr-defined]
                self.pro_number,
                self.editor.receipt_type,
                groups,
                computed,
                receipt_id=receipt_id,
                expected_updated_at=expected_updated_at,
            )
        except Exception as e:
            self.app.call_from_thread(self._on_save_error, str(e))
            return
        self.app.call_from_thread(self._on_saved, saved)

    def _on_saved(self, saved: ReceiptDocument) -> None:
        self._saving = False
        self.document = saved
        self._dirty = False
        self.notify(f"{saved.receipt_type.display} saved", timeout=3)
        self.dismiss(saved)

    def _on_save_error(self, msg: str) -> None:
        self._saving = False
        self._refresh_totals()
        self.notify(f"Save failed: {msg}", severity="error", timeout=5)

    # --- Close ---

    def action_close(self) -> None:
        if not self._dirty:
            self.dismiss(None)
            return
        from proreceipts.tui.screens.confirm import ConfirmScreen

        self.app.push_screen(
            ConfirmScreen("Discard unsaved changes?", confirm_label="Discard"),
            callback=self._on_discard_confirmed,
        )

    def _on_discard_confirmed(self, confirmed: bool | None) -> None:
        if confirmed:
            self.dismiss(None)


def _amount_text(value: object) -> str:
    text = format_number(value)
    return "" if text in ("0.00", "-0.00") else text
