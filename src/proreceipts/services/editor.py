"""In-memory receipt draft with synchronous, snapshot-producing edits.

Every mutation replaces ``groups``/``options`` with a new immutable tree and
then recomputes totals and taxes before returning, so readers never see
totals that lag behind an edit.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal
from typing import Any

from proreceipts.models.receipt import (
    ChildRow,
    Group,
    ReceiptDocument,
    ReceiptType,
    Row,
    TaxOptions,
    WithholdingClass,
)
from proreceipts.services.tax_engine import TaxComputation, compute_snapshot, compute_tax
from proreceipts.services.templates import (
    RowTemplate,
    Templates,
    build_group,
    build_row,
    find_group_template,
)
from proreceipts.services.totals import Totals, compute_totals
from proreceipts.utils.ids import new_id
from proreceipts.utils.validators import parse_money, parse_percent

_UNSET: Any = object()


class ReceiptEditor:
    def __init__(
        self,
        receipt_type: ReceiptType,
        groups: tuple[Group, ...] = (),
        options: TaxOptions | None = None,
        templates: Templates | None = None,
    ) -> None:
        self.receipt_type = receipt_type
        self.templates: Templates = templates or {}
        self._groups = tuple(groups)
        self._options = options or TaxOptions()
        self._recompute()

    @classmethod
    def new(
        cls,
        receipt_type: ReceiptType,
        templates: Templates,
        options: TaxOptions | None = None,
    ) -> ReceiptEditor:
        """Start a draft seeded with the receipt type's default groups."""
        groups = tuple(build_group(g) for g in templates.get(receipt_type, ()))
        return cls(receipt_type, groups, options, templates)

    @classmethod
    def from_document(
        cls, document: ReceiptDocument, templates: Templates | None = None
    ) -> ReceiptEditor:
        return cls(document.receipt_type, document.groups, document.tax_options, templates)

    # --- Derived state ---

    def _recompute(self) -> None:
        self._totals = compute_totals(self._groups)
        self._tax = compute_tax(self._totals.grand_total, self._groups, self._options)

    def _commit(
        self, groups: tuple[Group, ...] | None = None, options: TaxOptions | None = None
    ) -> None:
        if groups is not None:
            self._groups = groups
        if options is not None:
            self._options = options
        self._recompute()

    @property
    def groups(self) -> tuple[Group, ...]:
        return self._groups

    @property
    def options(self) -> TaxOptions:
        return self._options

    @property
    def totals(self) -> Totals:
        return self._totals

    @property
    def tax(self) -> TaxComputation:
        return self._tax

    @property
    def grand_total(self) -> Decimal:
        return self._totals.grand_total

    @property
    def can_save(self) -> bool:
        return self._totals.grand_total > 0

    def snapshot(self) -> dict[str, Any]:
        """The ``computed`` dict to persist alongside the groups."""
        return compute_snapshot(self.receipt_type, self._groups, self._options, self._totals)

    # --- Lookup ---

    def group(self, group_id: str) -> Group:
        for g in self._groups:
            if g.id == group_id:
                return g
        raise KeyError(group_id)

    def row(self, row_id: str) -> Row:
        for g in self._groups:
            for r in g.rows:
                if r.id == row_id:
                    return r
        raise KeyError(row_id)

    def _map_group(self, group_id: str, fn: Callable[[Group], Group]) -> tuple[Group, ...]:
        self.group(group_id)
        return tuple(fn(g) if g.id == group_id else g for g in self._groups)

    def _map_row(self, row_id: str, fn: Callable[[Row], Row | None]) -> tuple[Group, ...]:
        """Apply *fn* to the row with *row_id*; returning None deletes it."""
        self.row(row_id)
        out = []
        for g in self._groups:
            rows = []
            for r in g.rows:
                if r.id == row_id:
                    new = fn(r)
                    if new is not None:
                        rows.append(new)
                else:
                    rows.append(r)
            out.append(replace(g, rows=tuple(rows)))
        return tuple(out)

    def _parent_of(self, child_id: str) -> Row:
        for g in self._groups:
            for r in g.rows:
                if any(c.id == child_id for c in r.children):
                    return r
        raise KeyError(child_id)

    # --- Groups ---

    def add_group(self, title: str = "New Group") -> Group:
        group = Group(
            id=new_id("group"),
            title=title,
            rows=(build_row(RowTemplate(label="New Item")),),
        )
        self._commit(groups=(*self._groups, group))
        return group

    def add_group_from_template(self, title: str) -> Group:
        template = find_group_template(self.templates, self.receipt_type, title)
        group = build_group(template)
        self._commit(groups=(*self._groups, group))
        return group

    def template_titles(self) -> list[str]:
        return [g.title for g in self.templates.get(self.receipt_type, ())]

    def rename_group(self, group_id: str, title: str) -> None:
        self._commit(groups=self._map_group(group_id, lambda g: replace(g, title=title)))

    def delete_group(self, group_id: str) -> None:
        self.group(group_id)
        self._commit(groups=tuple(g for g in self._groups if g.id != group_id))

    # --- Rows ---

    def add_row(
        self,
        group_id: str,
        label: str = "New Item",
        value: object = 0,
        withholding_class: WithholdingClass = WithholdingClass.NONE,
    ) -> Row:
        row = replace(
            build_row(RowTemplate(label=label, withholding=withholding_class)),
            value=parse_money(value),
        )
        self._commit(
            groups=self._map_group(group_id, lambda g: replace(g, rows=(*g.rows, row)))
        )
        return row

    def update_row(
        self,
        row_id: str,
        *,
        label: str = _UNSET,
        value: object = _UNSET,
        percent: object = _UNSET,
    ) -> Row:
        """Edit a row's label, value and/or withholding percent.

        *value* and *percent* accept raw text; malformed input counts as 0.
        Passing ``percent=None`` clears the override back to the class default.
        """
        changes: dict[str, Any] = {}
        if label is not _UNSET:
            changes["label"] = label
        if value is not _UNSET:
            changes["value"] = parse_money(value)
        if percent is not _UNSET:
            changes["withholding_percent"] = None if percent is None else parse_percent(percent)
        self._commit(groups=self._map_row(row_id, lambda r: replace(r, **changes)))
        return self.row(row_id)

    def delete_row(self, row_id: str) -> None:
        self._commit(groups=self._map_row(row_id, lambda r: None))

    # --- Child rows ---

    def add_child_row(self, row_id: str, label: str = "New Item", value: object = 0) -> ChildRow:
        child = ChildRow(id=new_id("child"), label=label, value=parse_money(value))
        self._commit(
            groups=self._map_row(row_id, lambda r: replace(r, children=(*r.children, child)))
        )
        return child

    def update_child_row(
        self, child_id: str, *, label: str = _UNSET, value: object = _UNSET
    ) -> ChildRow:
        parent = self._parent_of(child_id)
        changes: dict[str, Any] = {}
        if label is not _UNSET:
            changes["label"] = label
        if value is not _UNSET:
            changes["value"] = parse_money(value)
        children = tuple(
            replace(c, **changes) if c.id == child_id else c for c in parent.children
        )
        self._commit(groups=self._map_row(parent.id, lambda r: replace(r, children=children)))
        return next(c for c in children if c.id == child_id)

    def remove_child_row(self, child_id: str) -> None:
        parent = self._parent_of(child_id)
        children = tuple(c for c in parent.children if c.id != child_id)
        self._commit(groups=self._map_row(parent.id, lambda r: replace(r, children=children)))

    # --- Tax options ---

    def set_vat_exempt(self, exempt: bool) -> None:
        self._commit(options=replace(self._options, vat_exempt=exempt))

    def set_vat_percent(self, percent: object) -> None:
        self._commit(options=replace(self._options, vat_percent=parse_percent(percent)))

    def set_withholding_enabled(self, enabled: bool) -> None:
        self._commit(options=replace(self._options, withholding_enabled=enabled))
