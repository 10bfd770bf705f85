"""Default receipt groups, loaded from receipt_templates.yaml.

A user copy in the config directory takes precedence over the bundled file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.resources import files

import yaml

from proreceipts import config as _config
from proreceipts.models.receipt import ChildRow, Group, ReceiptType, Row, WithholdingClass
from proreceipts.utils.ids import new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowTemplate:
    label: str
    withholding: WithholdingClass = WithholdingClass.NONE
    children: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict | str) -> RowTemplate:
        if isinstance(d, str):
            return cls(label=d)
        raw = d.get("withholding")
        return cls(
            label=d["label"],
            withholding=WithholdingClass(raw) if raw else WithholdingClass.NONE,
            children=tuple(str(c) for c in d.get("children") or ()),
        )


@dataclass(frozen=True)
class GroupTemplate:
    title: str
    rows: tuple[RowTemplate, ...]

    @classmethod
    def from_dict(cls, d: dict) -> GroupTemplate:
        return cls(
            title=d["title"],
            rows=tuple(RowTemplate.from_dict(r) for r in d.get("rows") or ()),
        )


Templates = dict[ReceiptType, tuple[GroupTemplate, ...]]


def parse_templates(data: dict) -> Templates:
    """Parse the YAML structure keyed by receipt type value."""
    out: Templates = {}
    for rtype in ReceiptType:
        out[rtype] = tuple(GroupTemplate.from_dict(g) for g in data.get(rtype.value) or ())
    return out


def _bundled_text() -> str:
    return (files("proreceipts") / "templates" / "receipt_templates.yaml").read_text(
        encoding="utf-8"
    )


def load_templates() -> Templates:
    """Load templates from the config dir, falling back to the bundled defaults."""
    user_path = _config.get_templates_path()
    if user_path.is_file():
        try:
            return parse_templates(_config.load_yaml(user_path))
        except (yaml.YAMLError, KeyError, ValueError, TypeError, AttributeError):
            logger.warning("Invalid %s, using bundled templates", user_path, exc_info=True)
    return parse_templates(yaml.safe_load(_bundled_text()) or {})


def build_row(template: RowTemplate) -> Row:
    """Create a fresh row; withholding classification is fixed here, once."""
    withholding = template.withholding is not WithholdingClass.NONE
    return Row(
        id=new_id("row"),
        label=template.label,
        withholding_parent=withholding,
        withholding_class=template.withholding,
        children=tuple(
            ChildRow(id=new_id("child"), label=label) for label in template.children
        ),
    )


def build_group(template: GroupTemplate) -> Group:
    return Group(
        id=new_id("group"),
        title=template.title,
        rows=tuple(build_row(r) for r in template.rows),
    )


def find_group_template(
    templates: Templates, receipt_type: ReceiptType, title: str
) -> GroupTemplate:
    for g in templates.get(receipt_type, ()):
        if g.title == title:
            return g
    raise KeyError(f"No {receipt_type.value} template group titled '{title}'")
