from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from proreceipts.utils.validators import parse_money, parse_percent

logger = logging.getLogger(__name__)


class ReceiptType(str, Enum):
    STATEMENT_OF_ACCOUNTS = "statement_of_accounts"
    SERVICE_INVOICE = "service_invoice"

    @property
    def display(self) -> str:
        if self is ReceiptType.STATEMENT_OF_ACCOUNTS:
            return "Statement of Account"
        return "Service Invoice"

    @property
    def has_taxes(self) -> bool:
        return self is ReceiptType.SERVICE_INVOICE


class WithholdingClass(str, Enum):
    """Withholding category of a row, fixed when the row is created."""

    BROKERAGE = "brokerage"
    HAULING = "hauling"
    DOCUMENTATION = "documentation"
    NONE = "none"

    @property
    def default_percent(self) -> Decimal:
        return _DEFAULT_PERCENT[self]


_DEFAULT_PERCENT = {
    WithholdingClass.BROKERAGE: Decimal("20"),
    WithholdingClass.HAULING: Decimal("2"),
    WithholdingClass.DOCUMENTATION: Decimal("2"),
    WithholdingClass.NONE: Decimal("0"),
}


def json_amount(value: Decimal) -> int | str:
    """Lossless JSON form of an amount.

    Integral amounts stay JSON numbers; anything else is written as its exact
    decimal string ("372.9936"), never a float.  Readers go through parse_money.
    """
    if value == value.to_integral_value():
        return int(value)
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class ChildRow:
    """A line item nested under a withholding row. Cannot have children of its own."""

    id: str
    label: str
    value: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, d: dict) -> ChildRow:
        return cls(
            id=str(d["id"]),
            label=d.get("label", ""),
            value=parse_money(d.get("value")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "value": json_amount(self.value),
            "withholdingChild": True,
        }


@dataclass(frozen=True)
class Row:
    id: str
    label: str
    value: Decimal = Decimal("0")
    is_child: bool = False  # display hint only
    withholding_parent: bool = False
    withholding_class: WithholdingClass = WithholdingClass.NONE
    withholding_percent: Decimal | None = None  # explicit user override
    children: tuple[ChildRow, ...] = ()

    @property
    def default_percent(self) -> Decimal:
        return self.withholding_class.default_percent

    @property
    def effective_percent(self) -> Decimal:
        if self.withholding_percent is not None:
            return self.withholding_percent
        return self.default_percent

    @property
    def total(self) -> Decimal:
        """Row value plus every child value."""
        return parse_money(self.value) + sum(
            (parse_money(c.value) for c in self.children), Decimal("0")
        )

    @classmethod
    def from_dict(cls, d: dict) -> Row:
        """Create a Row from a stored dict.

        Receipts saved before rows carried ``withholdingClass`` only have
        ``defaultPct``; the class is inferred from it once, here.
        """
        withholding_parent = bool(d.get("withholdingParent", False))
        children = tuple(ChildRow.from_dict(c) for c in d.get("children") or ())

        raw_class = d.get("withholdingClass")
        wh_class = None
        if raw_class:
            try:
                wh_class = WithholdingClass(raw_class)
            except ValueError:
                logger.warning("Row %s has unknown withholding class %r", d.get("id"), raw_class)
        if wh_class is None:
            if withholding_parent:
                wh_class = _legacy_class(d.get("defaultPct"), bool(children))
            else:
                wh_class = WithholdingClass.NONE

        raw_pct = d.get("withholdingPercent")
        percent = None if raw_pct is None or raw_pct == "" else parse_percent(raw_pct)

        return cls(
            id=str(d["id"]),
            label=d.get("label", ""),
            value=parse_money(d.get("value")),
            is_child=bool(d.get("isChild", False)),
            withholding_parent=withholding_parent,
            withholding_class=wh_class,
            withholding_percent=percent,
            children=children,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "value": json_amount(self.value),
            "isChild": self.is_child,
        }
        if self.withholding_parent:
            out["withholdingParent"] = True
            out["withholdingClass"] = self.withholding_class.value
            out["defaultPct"] = json_amount(self.default_percent)
            if self.withholding_percent is not None:
                out["withholdingPercent"] = json_amount(self.withholding_percent)
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def _legacy_class(default_pct: object, has_children: bool) -> WithholdingClass:
    pct = parse_percent(default_pct)
    if pct == WithholdingClass.BROKERAGE.default_percent:
        return WithholdingClass.BROKERAGE
    if has_children:
        return WithholdingClass.DOCUMENTATION
    return WithholdingClass.HAULING


@dataclass(frozen=True)
class Group:
    id: str
    title: str
    rows: tuple[Row, ...] = ()

    @classmethod
    def from_dict(cls, d: dict) -> Group:
        return cls(
            id=str(d["id"]),
            title=d.get("title", ""),
            rows=tuple(Row.from_dict(r) for r in d.get("rows") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "rows": [r.to_dict() for r in self.rows],
        }


@dataclass(frozen=True)
class TaxOptions:
    vat_exempt: bool = False
    vat_percent: Decimal = Decimal("12")
    withholding_enabled: bool = True


@dataclass(frozen=True)
class ReceiptDocument:
    """A persisted receipt: the group tree plus the totals snapshot taken at save."""

    id: str
    pro_number: str
    receipt_type: ReceiptType
    groups: tuple[Group, ...]
    computed: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    @property
    def grand_total(self) -> Decimal:
        return parse_money(self.computed.get("grandTotal"))

    @property
    def total_amount_due(self) -> Decimal:
        """Amount due for service invoices; the grand total for statements."""
        if self.receipt_type.has_taxes and "totalAmountDue" in self.computed:
            return parse_money(self.computed.get("totalAmountDue"))
        return self.grand_total

    @property
    def tax_options(self) -> TaxOptions:
        c = self.computed
        return TaxOptions(
            vat_exempt=bool(c.get("vatExemptChecked", False)),
            vat_percent=parse_percent(c.get("vatPercent", 12)),
            withholding_enabled=c.get("withholdingTaxChecked") is not False,
        )

    @classmethod
    def from_dict(cls, d: dict) -> ReceiptDocument:
        return cls(
            id=str(d["id"]),
            pro_number=str(d["proNumber"]),
            receipt_type=ReceiptType(d["receiptType"]),
            groups=tuple(Group.from_dict(g) for g in d.get("groups") or ()),
            computed=dict(d.get("computed") or {}),
            created_at=d.get("createdAt", ""),
            updated_at=d.get("updatedAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "proNumber": self.pro_number,
            "receiptType": self.receipt_type.value,
            "groups": [g.to_dict() for g in self.groups],
            "computed": dict(self.computed),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
