from __future__ import annotations

from unittest.mock import patch

import pytest
from textual.widgets import Button, Checkbox, Input, Label

from proreceipts.models.receipt import ReceiptType
from proreceipts.services.exceptions import ConflictError
from proreceipts.tui.screens.confirm import ConfirmScreen
from proreceipts.tui.screens.editor import ReceiptEditorScreen
from proreceipts.tui.screens.receipts import ReceiptsScreen
from tests.test_tui.conftest import settle


async def _open_new(app, pilot, receipt_type: ReceiptType) -> ReceiptEditorScreen:
    await settle(app, pilot)
    app.screen.action_new_receipt(receipt_type.value)
    await pilot.pause()
    screen = app.screen
    assert isinstance(screen, ReceiptEditorScreen)
    return screen


def _first_row_id(screen: ReceiptEditorScreen) -> str:
    return screen.widget_key(screen.editor.groups[0].rows[0].id)


@pytest.mark.asyncio
async def test_zero_total_disables_save(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        assert screen.query_one("#btn-save", Button).disabled is True
        assert screen.query_one("#total-warning", Label).display is True


@pytest.mark.asyncio
async def test_typing_amount_enables_save(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        screen.query_one(f"#value-{_first_row_id(screen)}", Input).value = "1,250.50"
        await pilot.pause()
        assert screen.editor.grand_total == 1250.50
        assert screen.query_one("#btn-save", Button).disabled is False
        assert screen.query_one("#total-warning", Label).display is False


@pytest.mark.asyncio
async def test_group_total_label_uses_readable_title(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.SERVICE_INVOICE)
        gkey = screen.widget_key(screen.editor.groups[0].id)
        total_label = screen.query_one(f"#gtotal-{gkey}", Label)
        assert str(total_label.render()).startswith("Service Charges total:")

        screen.query_one(f"#title-{gkey}", Input).value = "TRUCKING_FEES"
        await pilot.pause()
        assert screen.editor.groups[0].title == "TRUCKING_FEES"
        assert str(total_label.render()).startswith("Trucking Fees total:")


@pytest.mark.asyncio
async def test_save_persists_and_returns(make_app, service):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.SERVICE_INVOICE)
        screen.query_one(f"#value-{_first_row_id(screen)}", Input).value = "500"
        await pilot.pause()
        screen.action_save()
        await settle(app, pilot)
        await settle(app, pilot)
        assert isinstance(app.screen, ReceiptsScreen)
        [doc] = service.list_by_pro("PRO-1")
        assert doc.receipt_type is ReceiptType.SERVICE_INVOICE
        assert doc.computed["grandTotal"] == 500
        assert doc.computed["withholdingTax"] == 100


@pytest.mark.asyncio
async def test_save_error_keeps_editor_open(make_app, service):
    app = make_app("PRO-1")
    with patch.object(service, "save", side_effect=ConflictError("rec-1", "T1", "T2")):
        async with app.run_test() as pilot:
            screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
            screen.query_one(f"#value-{_first_row_id(screen)}", Input).value = "10"
            await pilot.pause()
            screen.action_save()
            await settle(app, pilot)
            assert app.screen is screen
            assert screen.query_one("#btn-save", Button).disabled is False


@pytest.mark.asyncio
async def test_withholding_toggle_hides_percent_inputs(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.SERVICE_INVOICE)
        pct_inputs = list(screen.query(".row-pct").results(Input))
        assert pct_inputs
        assert all(p.display for p in pct_inputs)
        screen.query_one("#withholding", Checkbox).value = False
        await pilot.pause()
        assert screen.editor.options.withholding_enabled is False
        assert not any(p.display for p in screen.query(".row-pct").results(Input))


@pytest.mark.asyncio
async def test_statement_has_no_tax_panel(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        assert not screen.query("#tax-panel")
        assert not screen.query(".row-pct")


@pytest.mark.asyncio
async def test_add_and_delete_group(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        before = len(screen.editor.groups)
        screen.query_one("#btn-add-group", Button).press()
        await pilot.pause()
        assert len(screen.editor.groups) == before + 1
        new_key = screen.widget_key(screen.editor.groups[-1].id)
        assert screen.query_one(f"#title-{new_key}", Input)
        screen.query_one(f"#delgroup-{new_key}", Button).press()
        await pilot.pause()
        assert len(screen.editor.groups) == before


@pytest.mark.asyncio
async def test_clean_editor_closes_without_prompt(make_app):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        screen.action_close()
        await pilot.pause()
        assert isinstance(app.screen, ReceiptsScreen)


@pytest.mark.asyncio
async def test_dirty_editor_asks_before_discarding(make_app, service):
    app = make_app("PRO-1")
    async with app.run_test() as pilot:
        screen = await _open_new(app, pilot, ReceiptType.STATEMENT_OF_ACCOUNTS)
        screen.query_one(f"#value-{_first_row_id(screen)}", Input).value = "10"
        await pilot.pause()
        screen.action_close()
        await pilot.pause()
        assert isinstance(app.screen, ConfirmScreen)
        await pilot.press("y")
        await pilot.pause()
        assert isinstance(app.screen, ReceiptsScreen)
    assert service.list_by_pro("PRO-1") == []
