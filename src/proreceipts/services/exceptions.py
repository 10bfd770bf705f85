from __future__ import annotations


class ReceiptError(Exception):
    """Base class for receipt persistence errors."""


class ValidationError(ReceiptError):
    """The receipt cannot be persisted as given (e.g. non-positive grand total)."""


class NotFoundError(ReceiptError):
    """No receipt exists with the requested id."""

    def __init__(self, receipt_id: str) -> None:
        super().__init__(f"Receipt not found: {receipt_id}")
        self.receipt_id = receipt_id


class ConflictError(ReceiptError):
    """The stored receipt changed since the caller last read it."""

    def __init__(self, receipt_id: str, expected: str, actual: str | None) -> None:
        super().__init__(
            f"Receipt {receipt_id} was modified elsewhere "
            f"(expected updated_at {expected}, found {actual})"
        )
        self.receipt_id = receipt_id
        self.expected = expected
        self.actual = actual


class StorageError(ReceiptError):
    """The document store failed (network, permission, corrupt response...)."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body or ""


class AuditLogError(ReceiptError):
    """Appending to the audit log failed. Never surfaced to callers."""
