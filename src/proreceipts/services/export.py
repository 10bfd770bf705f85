"""Export a receipt to an HTML document with a .doc extension.

Word processors open these directly.  Figures come from the stored
``computed`` snapshot; nothing is recomputed here.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from lxml import etree

from proreceipts import config as _config
from proreceipts.models.receipt import ReceiptDocument
from proreceipts.utils.formatters import format_peso

_STYLE = """
body { font-family: Arial, sans-serif; color: #222; margin: 20px; line-height: 1.4; }
h1 { color: #005CAB; margin-bottom: 10px; font-size: 24px; }
h2 { margin-top: 20px; margin-bottom: 10px; color: #005CAB; font-size: 18px; }
table { width: 100%; border-collapse: collapse; margin-top: 12px; margin-bottom: 20px; }
td { border: 1px solid #ddd; padding: 8px; }
td.amount { text-align: right; }
tr.group-title td { background: #f0f0f0; font-weight: bold; }
tr.child td.label { padding-left: 24px; }
tr.group-total td, tr.total-row td { font-weight: bold; }
tr.total-row { background-color: #f8f9fa; }
tr.final-total { background-color: #e3f2fd; font-weight: bold; font-size: 16px; }
.header-info { margin-bottom: 20px; font-size: 14px; color: #666; }
.note { margin-top: 30px; font-size: 12px; color: #666; }
"""


def _sub(
    parent: etree._Element, tag: str, text: str | None = None, **attrib: str
) -> etree._Element:
    el = etree.SubElement(parent, tag, **attrib)
    if text is not None:
        el.text = text
    return el


def _amount_row(
    table: etree._Element, label: str, amount: object, symbol: str, css: str | None = None
) -> None:
    tr = _sub(table, "tr", **({"class": css} if css else {}))
    _sub(tr, "td", label, **{"class": "label"})
    _sub(tr, "td", format_peso(amount, symbol), **{"class": "amount"})


def _line_items(body: etree._Element, document: ReceiptDocument, symbol: str) -> etree._Element:
    table = _sub(body, "table")
    group_totals = document.computed.get("totals") or {}
    for group in document.groups:
        tr = _sub(table, "tr", **{"class": "group-title"})
        _sub(tr, "td", group.title, colspan="2")
        for row in group.rows:
            _amount_row(table, row.label.strip(), row.value, symbol)
            for child in row.children:
                _amount_row(table, child.label.strip(), child.value, symbol, "child")
        _amount_row(table, "Group Total", group_totals.get(group.id, 0), symbol, "group-total")
    return table


def _tax_table(body: etree._Element, computed: dict, symbol: str) -> None:
    table = _sub(body, "table", **{"class": "tax-table"})
    vat_percent = computed.get("vatPercent", 0)
    rows = [
        ("VATable Sales", "vatableSales"),
        (f"VAT ({vat_percent}%)", "vatValue"),
        ("VAT Exempt Sales", "vatExemptSales"),
        ("Total Sales (VAT Inc.)", "totalSalesVatInc"),
        ("Less: VAT", "lessVat"),
        ("Amount - Net of VAT", "amountNetOfVat"),
        ("Add: VAT", "addVat"),
    ]
    if computed.get("withholdingTaxChecked"):
        rows.append(("Less: Withholding Tax", "withholdingTax"))
    for label, key in rows:
        _amount_row(table, label, computed.get(key, 0), symbol)
    _amount_row(table, "TOTAL AMOUNT DUE", computed.get("totalAmountDue", 0), symbol, "final-total")


def render_receipt_html(
    document: ReceiptDocument, generated_at: datetime | None = None, symbol: str = "₱"
) -> str:
    """Render the receipt as a standalone HTML document."""
    generated_at = generated_at or datetime.now().astimezone()
    title = document.receipt_type.display
    computed = document.computed

    html = etree.Element("html")
    head = _sub(html, "head")
    _sub(head, "meta", charset="utf-8")
    _sub(head, "title", f"{title} {document.pro_number}")
    _sub(head, "style", _STYLE)

    body = _sub(html, "body")
    _sub(body, "h1", title)
    info = _sub(body, "div", **{"class": "header-info"})
    _sub(info, "strong", "PRO Number:").tail = f" {document.pro_number}"
    _sub(info, "br")
    _sub(info, "strong", "Generated:").tail = f" {generated_at.strftime('%Y-%m-%d %H:%M:%S')}"

    note = "This {kind} is generated automatically and includes all applicable {what}."
    if document.receipt_type.has_taxes:
        _sub(body, "h2", "Service Charges")
        table = _line_items(body, document, symbol)
        _amount_row(
            table, "Service Charges Total", computed.get("grandTotal", 0), symbol, "total-row"
        )
        _sub(body, "h2", "Taxes & Totals")
        _tax_table(body, computed, symbol)
        notes = _sub(body, "div", **{"class": "note"})
        _sub(notes, "p", note.format(kind="service invoice", what="taxes and fees"))
        if computed.get("vatExemptChecked"):
            _sub(notes, "p", "VAT Status: This invoice is VAT exempt.")
    else:
        table = _line_items(body, document, symbol)
        _amount_row(table, "TOTAL AMOUNT", computed.get("grandTotal", 0), symbol, "total-row")
        notes = _sub(body, "div", **{"class": "note"})
        _sub(notes, "p", note.format(kind="statement of accounts", what="charges and fees"))

    return etree.tostring(html, method="html", encoding="unicode", doctype="<!DOCTYPE html>")


def export_filename(document: ReceiptDocument, generated_at: datetime) -> str:
    safe_pro = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in document.pro_number)
    stamp = generated_at.strftime("%Y-%m-%dT%H-%M-%S")
    return f"{document.receipt_type.value}_{safe_pro}_{stamp}.doc"


def export_receipt(
    document: ReceiptDocument, out_dir: Path | None = None, symbol: str = "₱"
) -> Path:
    """Write the receipt document to *out_dir* (default: exports dir) and return its path."""
    generated_at = datetime.now().astimezone()
    out_dir = out_dir or _config.get_exports_dir()
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / export_filename(document, generated_at)
    path.write_text(render_receipt_html(document, generated_at, symbol), encoding="utf-8")
    return path
