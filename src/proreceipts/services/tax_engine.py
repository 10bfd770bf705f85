"""VAT and withholding-tax computation for service invoices.

All arithmetic is Decimal and nothing is rounded here; amounts are only
rounded to 2 places when displayed or exported.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from proreceipts.models.receipt import Group, ReceiptType, TaxOptions, json_amount
from proreceipts.services.totals import Totals, compute_totals
from proreceipts.utils.validators import parse_money, parse_percent

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxComputation:
    grand_total: Decimal
    vat_exempt: bool
    vat_percent: Decimal
    withholding_enabled: bool
    vatable_sales: Decimal
    vat_value: Decimal
    vat_exempt_sales: Decimal
    total_sales_vat_inclusive: Decimal
    less_vat: Decimal
    amount_net_of_vat: Decimal
    add_vat: Decimal
    withholding_tax: Decimal
    total_amount_due: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "grandTotal": json_amount(self.grand_total),
            "vatExemptChecked": self.vat_exempt,
            "vatPercent": json_amount(self.vat_percent),
            "withholdingTaxChecked": self.withholding_enabled,
            "vatableSales": json_amount(self.vatable_sales),
            "vatValue": json_amount(self.vat_value),
            "vatExemptSales": json_amount(self.vat_exempt_sales),
            "totalSalesVatInc": json_amount(self.total_sales_vat_inclusive),
            "lessVat": json_amount(self.less_vat),
            "amountNetOfVat": json_amount(self.amount_net_of_vat),
            "addVat": json_amount(self.add_vat),
            "withholdingTax": json_amount(self.withholding_tax),
            "totalAmountDue": json_amount(self.total_amount_due),
        }


def compute_withholding(groups: Iterable[Group]) -> Decimal:
    """Withholding across every withholding row: (value + children) x percent."""
    total = _ZERO
    for group in groups:
        for row in group.rows:
            if row.withholding_parent:
                total += row.total * parse_percent(row.effective_percent) / _HUNDRED
    return total


def compute_tax(
    grand_total: Decimal, groups: Iterable[Group], options: TaxOptions
) -> TaxComputation:
    """Derive VAT split, withholding and amount due from a fresh grand total."""
    grand = parse_money(grand_total)

    if options.vat_exempt:
        vat = _ZERO
        vatable = _ZERO
        exempt = grand
    else:
        vat = grand * parse_percent(options.vat_percent) / _HUNDRED
        vatable = grand
        exempt = _ZERO
    total_vat_inc = grand + vat

    withholding = compute_withholding(groups) if options.withholding_enabled else _ZERO

    return TaxComputation(
        grand_total=grand,
        vat_exempt=options.vat_exempt,
        vat_percent=parse_percent(options.vat_percent),
        withholding_enabled=options.withholding_enabled,
        vatable_sales=vatable,
        vat_value=vat,
        vat_exempt_sales=exempt,
        total_sales_vat_inclusive=total_vat_inc,
        less_vat=vat,
        amount_net_of_vat=grand,
        add_vat=vat,
        withholding_tax=withholding,
        total_amount_due=total_vat_inc - withholding,
    )


def compute_snapshot(
    receipt_type: ReceiptType,
    groups: Iterable[Group],
    options: TaxOptions | None = None,
    totals: Totals | None = None,
) -> dict[str, Any]:
    """Build the ``computed`` dict persisted with a receipt.

    Statements of account only carry the grand total and per-group totals;
    service invoices add the full tax breakdown.
    """
    groups = tuple(groups)
    if totals is None:
        totals = compute_totals(groups)
    snapshot: dict[str, Any] = {
        "grandTotal": json_amount(totals.grand_total),
        "totals": {gid: json_amount(t) for gid, t in totals.per_group.items()},
    }
    if receipt_type.has_taxes:
        tax = compute_tax(totals.grand_total, groups, options or TaxOptions())
        snapshot.update(tax.to_dict())
    return snapshot
