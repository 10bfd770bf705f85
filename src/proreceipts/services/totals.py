from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from proreceipts.models.receipt import Group


@dataclass(frozen=True)
class Totals:
    per_group: dict[str, Decimal] = field(default_factory=dict)
    grand_total: Decimal = Decimal("0")


def group_total(group: Group) -> Decimal:
    """Sum of every row value in the group, child rows included."""
    return sum((row.total for row in group.rows), Decimal("0"))


def compute_totals(groups: Iterable[Group]) -> Totals:
    """Per-group totals (in group order) and the grand total."""
    per_group: dict[str, Decimal] = {}
    grand = Decimal("0")
    for group in groups:
        total = group_total(group)
        per_group[group.id] = total
        grand += total
    return Totals(per_group=per_group, grand_total=grand)
