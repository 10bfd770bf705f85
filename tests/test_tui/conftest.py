from __future__ import annotations

import pytest

from proreceipts.config import Settings
from proreceipts.models.receipt import Group, ReceiptType
from proreceipts.services.tax_engine import compute_snapshot
from proreceipts.tui.app import ReceiptsApp
from tests.conftest import make_row


@pytest.fixture
def settings() -> Settings:
    return Settings(actor="Maria Santos", actor_id="user-1")


@pytest.fixture
def make_app(service, settings, templates):
    """Build a ReceiptsApp wired to the tmp-dir service instead of real config."""

    def factory(pro_number: str = "") -> ReceiptsApp:
        return ReceiptsApp(
            service=service, pro_number=pro_number, settings=settings, templates=templates
        )

    return factory


@pytest.fixture
def saved_statement(service):
    """One stored statement of account for PRO-1 with a 300 total."""
    groups = (Group(id="g1", title="CHARGES", rows=(make_row("Wharfage", 300),)),)
    return service.create(
        "PRO-1",
        ReceiptType.STATEMENT_OF_ACCOUNTS,
        groups,
        compute_snapshot(ReceiptType.STATEMENT_OF_ACCOUNTS, groups),
    )


async def settle(app, pilot) -> None:
    """Wait for background workers and the messages they post back."""
    await app.workers.wait_for_complete()
    await pilot.pause()
