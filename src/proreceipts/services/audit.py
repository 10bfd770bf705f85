"""Append-only audit trail of receipt changes."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Protocol

import requests
from filelock import FileLock

from proreceipts.config import AUDIT_TABLE
from proreceipts.services.exceptions import AuditLogError, StorageError
from proreceipts.services.rest_store import call_rest
from proreceipts.services.store import now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    user_id: str
    action: str  # receipt_created | receipt_updated | receipt_deleted
    target_type: str
    target_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=now_iso)


class AuditLog(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


class LocalAuditLog:
    """JSON-lines file, one entry per line."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def append(self, entry: AuditEntry) -> None:
        line = json.dumps(asdict(entry), ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(self.path.with_suffix(".lock")):
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            raise AuditLogError(f"Cannot append to audit log {self.path}: {e}") from e

    def entries(self) -> list[dict[str, Any]]:
        """Read back all entries, skipping lines that do not parse."""
        if not self.path.exists():
            return []
        out = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable audit line in %s", self.path)
        return out


class RestAuditLog:
    """Inserts entries into the hosted ``actions_log`` table."""

    def __init__(self, base_url: str, api_key: str, table: str = AUDIT_TABLE) -> None:
        self.url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key

    def append(self, entry: AuditEntry) -> None:
        payload = asdict(entry)
        payload.pop("created_at")
        try:
            call_rest("POST", self.url, self.api_key, "append audit entry", payload=payload)
        except (StorageError, requests.exceptions.RequestException) as e:
            raise AuditLogError(str(e)) from e
