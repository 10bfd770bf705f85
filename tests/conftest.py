from __future__ import annotations

from decimal import Decimal

import pytest
import yaml

from proreceipts.models.receipt import ChildRow, Group, Row, WithholdingClass
from proreceipts.services.audit import LocalAuditLog
from proreceipts.services.receipts import Actor, ReceiptService
from proreceipts.services.store import LocalDocumentStore
from proreceipts.services.templates import Templates, _bundled_text, parse_templates


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Point config/data resolution at tmp dirs so tests never touch real files."""
    config_dir = tmp_path / "config"
    data_dir = tmp_path / "data"
    monkeypatch.setenv("PRO_RECEIPTS_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("PRO_RECEIPTS_DATA_DIR", str(data_dir))
    monkeypatch.delenv("PRO_RECEIPTS_API_KEY", raising=False)
    monkeypatch.delenv("PRO_RECEIPTS_ACTOR", raising=False)
    return config_dir, data_dir


# --- Model helpers ---


def make_row(
    label: str = "Item",
    value: object = 0,
    *,
    row_id: str | None = None,
    withholding: WithholdingClass = WithholdingClass.NONE,
    percent: Decimal | None = None,
    children: tuple[ChildRow, ...] = (),
) -> Row:
    return Row(
        id=row_id or f"row_{label.lower().replace(' ', '_')}",
        label=label,
        value=Decimal(str(value)),
        withholding_parent=withholding is not WithholdingClass.NONE,
        withholding_class=withholding,
        withholding_percent=percent,
        children=children,
    )


def make_child(label: str, value: object, child_id: str | None = None) -> ChildRow:
    return ChildRow(
        id=child_id or f"child_{label.lower().replace(' ', '_')}",
        label=label,
        value=Decimal(str(value)),
    )


@pytest.fixture
def scenario_a_groups() -> tuple[Group, ...]:
    """SERVICE CHARGES: a plain 1000 row plus a 500 brokerage row (20%)."""
    return (
        Group(
            id="group_service",
            title="SERVICE CHARGES",
            rows=(
                make_row("Handling", 1000),
                make_row("Brokerage Fee", 500, withholding=WithholdingClass.BROKERAGE),
            ),
        ),
    )


@pytest.fixture
def templates() -> Templates:
    return parse_templates(yaml.safe_load(_bundled_text()))


# --- Service fixtures ---


@pytest.fixture
def actor() -> Actor:
    return Actor(id="user-1", name="Maria Santos")


@pytest.fixture
def store(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(tmp_path / "data" / "receipts.json")


@pytest.fixture
def audit_log(tmp_path) -> LocalAuditLog:
    return LocalAuditLog(tmp_path / "data" / "audit_log.jsonl")


@pytest.fixture
def service(store, audit_log, actor) -> ReceiptService:
    return ReceiptService(store, audit_log, actor)
