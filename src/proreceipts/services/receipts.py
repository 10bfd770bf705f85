"""Persistence contract between the receipt editor and the document store.

The computed snapshot is stored exactly as the editor produced it; nothing
is recomputed on save or on read.  Every write also appends an audit entry;
audit failures are logged and never reach the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from proreceipts.models.receipt import Group, ReceiptDocument, ReceiptType
from proreceipts.services.audit import AuditEntry, AuditLog
from proreceipts.services.exceptions import NotFoundError, ValidationError
from proreceipts.services.store import DocumentStore
from proreceipts.utils.validators import validate_positive_total, validate_pro_number

logger = logging.getLogger(__name__)

TARGET_TYPE = "finance_receipt"


@dataclass(frozen=True)
class Actor:
    """The currently signed-in user, as recorded in the audit log."""

    id: str
    name: str


def _validate_snapshot(computed: dict[str, Any]) -> None:
    if not isinstance(computed, dict):
        raise ValidationError("Computed totals are missing")
    validate_positive_total(computed.get("grandTotal"))


class ReceiptService:
    def __init__(self, store: DocumentStore, audit_log: AuditLog, actor: Actor) -> None:
        self.store = store
        self.audit_log = audit_log
        self.actor = actor

    # --- Audit ---

    def _audit(
        self,
        action: str,
        verb: str,
        receipt_id: str,
        pro_number: str,
        receipt_type: ReceiptType | None,
    ) -> None:
        type_display = receipt_type.display if receipt_type else "Receipt"
        payload = {
            "pro_number": pro_number,
            "receipt_type": receipt_type.value if receipt_type else None,
            "receipt_type_display": type_display,
            "user_name": self.actor.name,
            "notification_message": f"{type_display} {verb} for PRO {pro_number}",
        }
        entry = AuditEntry(
            user_id=self.actor.id,
            action=action,
            target_type=TARGET_TYPE,
            target_id=receipt_id,
            payload=payload,
        )
        try:
            self.audit_log.append(entry)
        except Exception:
            logger.warning("Failed to log %s for receipt %s", action, receipt_id, exc_info=True)

    # --- Contract ---

    def create(
        self,
        pro_number: str,
        receipt_type: ReceiptType,
        groups: Iterable[Group],
        computed: dict[str, Any],
    ) -> ReceiptDocument:
        """Persist a new receipt. Rejects non-positive totals before touching the store."""
        pro = validate_pro_number(pro_number)
        _validate_snapshot(computed)
        document = self.store.insert(pro, ReceiptType(receipt_type), tuple(groups), computed)
        self._audit("receipt_created", "created", document.id, pro, document.receipt_type)
        return document

    def update(
        self,
        receipt_id: str,
        groups: Iterable[Group],
        computed: dict[str, Any],
        *,
        expected_updated_at: str | None = None,
    ) -> ReceiptDocument:
        """Replace a receipt's groups and computed snapshot.

        With *expected_updated_at* the write only happens if nobody saved the
        receipt since it was read (ConflictError otherwise); without it the
        last write wins.
        """
        _validate_snapshot(computed)
        document = self.store.replace(
            receipt_id, tuple(groups), computed, expected_updated_at=expected_updated_at
        )
        self._audit(
            "receipt_updated", "updated", receipt_id, document.pro_number, document.receipt_type
        )
        return document

    def get(self, receipt_id: str) -> ReceiptDocument:
        return self.store.get(receipt_id)

    def list_by_pro(self, pro_number: str) -> list[ReceiptDocument]:
        return self.store.list_by_pro(pro_number.strip())

    def delete(self, receipt_id: str) -> None:
        """Delete a receipt. Deleting an unknown id is not an error."""
        try:
            existing: ReceiptDocument | None = self.store.get(receipt_id)
        except NotFoundError:
            existing = None

        removed = self.store.delete(receipt_id)
        if not removed and existing is None:
            logger.info("Delete of unknown receipt %s ignored", receipt_id)
            return

        self._audit(
            "receipt_deleted",
            "deleted",
            receipt_id,
            existing.pro_number if existing else "Unknown",
            existing.receipt_type if existing else None,
        )

    def save(
        self,
        pro_number: str,
        receipt_type: ReceiptType,
        groups: Iterable[Group],
        computed: dict[str, Any],
        *,
        receipt_id: str | None = None,
        expected_updated_at: str | None = None,
    ) -> ReceiptDocument:
        """Create when *receipt_id* is None, otherwise update."""
        if receipt_id is None:
            return self.create(pro_number, receipt_type, groups, computed)
        return self.update(
            receipt_id, groups, computed, expected_updated_at=expected_updated_at
        )
