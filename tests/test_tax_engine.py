from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from proreceipts.models.receipt import Group, ReceiptType, TaxOptions, WithholdingClass
from proreceipts.services.tax_engine import compute_snapshot, compute_tax, compute_withholding
from proreceipts.services.totals import compute_totals
from tests.conftest import make_child, make_row


def _tax(groups, options=None):
    return compute_tax(compute_totals(groups).grand_total, groups, options or TaxOptions())


class TestScenarios:
    def test_a_vat_and_brokerage_withholding(self, scenario_a_groups):
        tax = _tax(scenario_a_groups)
        assert tax.grand_total == 1500
        assert tax.vat_value == 180
        assert tax.vatable_sales == 1500
        assert tax.total_sales_vat_inclusive == 1680
        assert tax.withholding_tax == 100
        assert tax.total_amount_due == 1580

    def test_b_vat_exempt(self, scenario_a_groups):
        tax = _tax(scenario_a_groups, TaxOptions(vat_exempt=True))
        assert tax.vat_value == 0
        assert tax.vatable_sales == 0
        assert tax.vat_exempt_sales == 1500
        assert tax.total_sales_vat_inclusive == 1500
        assert tax.withholding_tax == 100
        assert tax.total_amount_due == 1400

    def test_c_child_values_form_withholding_base(self):
        docs = make_row(
            "Documentation & Processing",
            0,
            withholding=WithholdingClass.DOCUMENTATION,
            children=(make_child("Processing Charges", 300),),
        )
        groups = (Group(id="g", title="SERVICE CHARGES", rows=(docs,)),)
        assert compute_withholding(groups) == Decimal("6")


class TestProperties:
    def test_vat_exemption_exclusivity(self, scenario_a_groups):
        for exempt in (True, False):
            tax = _tax(scenario_a_groups, TaxOptions(vat_exempt=exempt))
            if exempt:
                assert tax.vat_value == 0 and tax.vatable_sales == 0
                assert tax.vat_exempt_sales == tax.grand_total
            else:
                assert tax.vat_exempt_sales == 0
                assert tax.vatable_sales == tax.grand_total

    def test_withholding_disabled_is_zero(self, scenario_a_groups):
        tax = _tax(scenario_a_groups, TaxOptions(withholding_enabled=False))
        assert tax.withholding_tax == 0
        assert tax.total_amount_due == tax.total_sales_vat_inclusive

    def test_withholding_only_from_withholding_rows(self):
        groups = (
            Group(
                id="g",
                title="SERVICE CHARGES",
                rows=(
                    make_row("Plain", 10_000),
                    make_row("Hauling Charges", 1000, withholding=WithholdingClass.HAULING),
                ),
            ),
        )
        assert compute_withholding(groups) == Decimal("20")

    @pytest.mark.parametrize("exempt", [True, False])
    @pytest.mark.parametrize("withholding", [True, False])
    def test_total_identity(self, scenario_a_groups, exempt, withholding):
        options = TaxOptions(vat_exempt=exempt, withholding_enabled=withholding)
        tax = _tax(scenario_a_groups, options)
        assert tax.total_amount_due == tax.grand_total + tax.vat_value - tax.withholding_tax
        assert tax.less_vat == tax.add_vat == tax.vat_value
        assert tax.amount_net_of_vat == tax.grand_total

    def test_custom_vat_percent(self, scenario_a_groups):
        tax = _tax(scenario_a_groups, TaxOptions(vat_percent=Decimal("5")))
        assert tax.vat_value == 75

    def test_malformed_vat_percent_is_zero(self, scenario_a_groups):
        tax = _tax(scenario_a_groups, TaxOptions(vat_percent="twelve"))  # type: ignore[arg-type]
        assert tax.vat_value == 0
        assert tax.total_amount_due == 1400

    def test_percent_override_and_explicit_zero(self, scenario_a_groups):
        group = scenario_a_groups[0]
        brokerage = group.rows[1]
        for percent, expected in ((Decimal("10"), 50), (Decimal("0"), 0)):
            rows = (group.rows[0], replace(brokerage, withholding_percent=percent))
            groups = (replace(group, rows=rows),)
            assert compute_withholding(groups) == expected

    def test_no_rounding_inside_engine(self):
        groups = (
            Group(
                id="g",
                title="T",
                rows=(make_row("Hauling", "33.33", withholding=WithholdingClass.HAULING),),
            ),
        )
        tax = _tax(groups)
        assert tax.withholding_tax == Decimal("0.6666")
        assert tax.vat_value == Decimal("3.9996")


class TestSnapshot:
    def test_service_invoice_keys(self, scenario_a_groups):
        snap = compute_snapshot(ReceiptType.SERVICE_INVOICE, scenario_a_groups)
        assert snap["grandTotal"] == 1500
        assert snap["totals"] == {"group_service": 1500}
        assert snap["vatValue"] == 180
        assert snap["totalSalesVatInc"] == 1680
        assert snap["withholdingTax"] == 100
        assert snap["totalAmountDue"] == 1580
        assert snap["vatExemptChecked"] is False
        assert snap["withholdingTaxChecked"] is True
        assert snap["vatPercent"] == 12

    def test_statement_of_accounts_has_no_taxes(self, scenario_a_groups):
        snap = compute_snapshot(ReceiptType.STATEMENT_OF_ACCOUNTS, scenario_a_groups)
        assert snap == {"grandTotal": 1500, "totals": {"group_service": 1500}}

    def test_idempotent(self, scenario_a_groups):
        options = TaxOptions(vat_exempt=True)
        first = compute_snapshot(ReceiptType.SERVICE_INVOICE, scenario_a_groups, options)
        second = compute_snapshot(ReceiptType.SERVICE_INVOICE, scenario_a_groups, options)
        assert first == second

    def test_fractional_values_are_exact_strings(self):
        groups = (Group(id="g", title="T", rows=(make_row("a", "10.5"),)),)
        snap = compute_snapshot(ReceiptType.SERVICE_INVOICE, groups)
        assert snap["grandTotal"] == "10.5"
        assert snap["vatValue"] == "1.26"

    def test_total_identity_survives_snapshot(self):
        hauling = make_row(
            "Hauling Charges",
            "333.03",
            withholding=WithholdingClass.HAULING,
            percent=Decimal("2.5"),
        )
        snap = compute_snapshot(
            ReceiptType.SERVICE_INVOICE, (Group(id="g", title="T", rows=(hauling,)),)
        )
        assert snap["withholdingTax"] == "8.32575"
        assert snap["totalSalesVatInc"] == "372.9936"
        assert snap["totalAmountDue"] == "364.66785"
        assert Decimal(snap["totalSalesVatInc"]) - Decimal(snap["withholdingTax"]) == Decimal(
            snap["totalAmountDue"]
        )
