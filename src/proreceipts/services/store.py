"""Receipt document stores.

``LocalDocumentStore`` keeps every receipt in one JSON file in the data
directory, guarded by a file lock so the TUI and CLI can share it.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from filelock import FileLock

from proreceipts.models.receipt import Group, ReceiptDocument, ReceiptType
from proreceipts.services.exceptions import ConflictError, NotFoundError, StorageError
from proreceipts.utils.ids import new_receipt_id

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def insert(
        self,
        pro_number: str,
        receipt_type: ReceiptType,
        groups: Iterable[Group],
        computed: dict[str, Any],
    ) -> ReceiptDocument: ...

    def get(self, receipt_id: str) -> ReceiptDocument: ...

    def replace(
        self,
        receipt_id: str,
        groups: Iterable[Group],
        computed: dict[str, Any],
        expected_updated_at: str | None = None,
    ) -> ReceiptDocument: ...

    def list_by_pro(self, pro_number: str) -> list[ReceiptDocument]: ...

    def delete(self, receipt_id: str) -> bool: ...


def now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def newest_first(documents: list[ReceiptDocument]) -> list[ReceiptDocument]:
    return sorted(documents, key=lambda d: d.created_at, reverse=True)


def _backup_corrupt(path: Path) -> Path:
    """Rename a corrupt file to a timestamped backup before it gets overwritten."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
    backup = path.with_name(f"{path.name}.corrupt.{ts}")
    path.rename(backup)
    logger.warning("Corrupt file backed up: %s → %s", path, backup)
    return backup


class LocalDocumentStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive file lock during read-modify-write."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock = FileLock(self.path.with_suffix(".lock"))
            lock.acquire()
        except OSError as e:
            raise StorageError(f"Cannot lock receipt store {self.path}: {e}") from e
        try:
            yield
        finally:
            lock.release()

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError):
            _backup_corrupt(self.path)
            return []
        except OSError as e:
            raise StorageError(f"Cannot read receipt store {self.path}: {e}") from e
        if not isinstance(data, list):
            _backup_corrupt(self.path)
            return []
        return data

    def _save(self, entries: list[dict[str, Any]]) -> None:
        tmp = self.path.with_suffix(".tmp")
        try:
            tmp.write_text(
                json.dumps(entries, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
            )
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write receipt store {self.path}: {e}") from e

    def insert(
        self,
        pro_number: str,
        receipt_type: ReceiptType,
        groups: Iterable[Group],
        computed: dict[str, Any],
    ) -> ReceiptDocument:
        ts = now_iso()
        document = ReceiptDocument(
            id=new_receipt_id(),
            pro_number=pro_number,
            receipt_type=receipt_type,
            groups=tuple(groups),
            computed=dict(computed),
            created_at=ts,
            updated_at=ts,
        )
        with self._locked():
            entries = self._load()
            entries.append(document.to_dict())
            self._save(entries)
        logger.info("Stored receipt %s for PRO %s", document.id, pro_number)
        return document

    def get(self, receipt_id: str) -> ReceiptDocument:
        with self._locked():
            entries = self._load()
        for e in entries:
            if e.get("id") == receipt_id:
                return ReceiptDocument.from_dict(e)
        raise NotFoundError(receipt_id)

    def replace(
        self,
        receipt_id: str,
        groups: Iterable[Group],
        computed: dict[str, Any],
        expected_updated_at: str | None = None,
    ) -> ReceiptDocument:
        with self._locked():
            entries = self._load()
            index = next(
                (i for i, e in enumerate(entries) if e.get("id") == receipt_id), None
            )
            if index is None:
                raise NotFoundError(receipt_id)
            current = ReceiptDocument.from_dict(entries[index])
            if expected_updated_at is not None and current.updated_at != expected_updated_at:
                raise ConflictError(receipt_id, expected_updated_at, current.updated_at)

            updated = ReceiptDocument(
                id=current.id,
                pro_number=current.pro_number,
                receipt_type=current.receipt_type,
                groups=tuple(groups),
                computed=dict(computed),
                created_at=current.created_at,
                updated_at=now_iso(),
            )
            entries[index] = updated.to_dict()
            self._save(entries)
        logger.info("Updated receipt %s", receipt_id)
        return updated

    def list_by_pro(self, pro_number: str) -> list[ReceiptDocument]:
        with self._locked():
            entries = self._load()
        docs = [ReceiptDocument.from_dict(e) for e in entries if e.get("proNumber") == pro_number]
        return newest_first(docs)

    def delete(self, receipt_id: str) -> bool:
        with self._locked():
            entries = self._load()
            filtered = [e for e in entries if e.get("id") != receipt_id]
            if len(filtered) == len(entries):
                return False
            self._save(filtered)
        logger.info("Deleted receipt %s", receipt_id)
        return True
