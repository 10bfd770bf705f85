"""Receipt store backed by a hosted Postgres REST API (PostgREST / Supabase).

Table ``finance_receipts``: id, pro_number, receipt_type, receipt_data (jsonb),
created_at, updated_at.  ``receipt_data`` holds the groups plus the flattened
computed snapshot, which is the layout the web client reads.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import requests

from proreceipts.config import RECEIPTS_TABLE, STORE_TIMEOUT
from proreceipts.models.receipt import Group, ReceiptDocument, ReceiptType
from proreceipts.services.exceptions import ConflictError, NotFoundError, StorageError
from proreceipts.services.http_retry import (
    RETRYABLE_STATUS_CODES,
    RetryableHTTPError,
    retry_read,
)
from proreceipts.services.store import now_iso

logger = logging.getLogger(__name__)

_COLUMNS = "id,pro_number,receipt_type,receipt_data,created_at,updated_at"


def rest_headers(api_key: str) -> dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Prefer": "return=representation",
    }


def check_response(resp: Any, action: str, retryable: bool = False) -> None:
    """Raise StorageError for non-2xx responses.

    With *retryable*, 429/502/503/504 raise RetryableHTTPError instead so
    the read can be re-issued.
    """
    if resp.ok:
        return
    body = resp.text[:500] if resp.text else ""
    message = f"{action} failed ({resp.status_code}): {body}"
    if retryable and resp.status_code in RETRYABLE_STATUS_CODES:
        raise RetryableHTTPError(message, resp.status_code, body)
    raise StorageError(message, resp.status_code, body)


def call_rest(
    method: str,
    url: str,
    api_key: str,
    action: str,
    *,
    params: dict[str, str] | None = None,
    payload: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Send one REST call and return the decoded row list.

    GETs are retried on transient failures; every other method is sent once.
    """
    is_read = method.upper() == "GET"

    def _do_request() -> list[dict[str, Any]]:
        resp = requests.request(
            method,
            url,
            headers=rest_headers(api_key),
            params=params,
            json=payload,
            timeout=STORE_TIMEOUT,
        )
        check_response(resp, action, retryable=is_read)
        if not resp.text:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    try:
        if is_read:
            return retry_read(_do_request, action=action)
        return _do_request()
    except RetryableHTTPError as e:
        raise StorageError(str(e), e.status_code, e.body) from e
    except requests.exceptions.RequestException as e:
        raise StorageError(f"{action} failed: {e}") from e
    except ValueError as e:
        raise StorageError(f"{action} returned invalid JSON: {e}") from e


def document_from_row(row: dict[str, Any]) -> ReceiptDocument:
    data = dict(row.get("receipt_data") or {})
    groups = data.pop("groups", None) or []
    data.pop("lastUpdated", None)
    return ReceiptDocument.from_dict(
        {
            "id": row["id"],
            "proNumber": row["pro_number"],
            "receiptType": row["receipt_type"],
            "groups": groups,
            "computed": data,
            "createdAt": row.get("created_at") or "",
            "updatedAt": row.get("updated_at") or "",
        }
    )


def receipt_data(groups: Iterable[Group], computed: dict[str, Any]) -> dict[str, Any]:
    return {"groups": [g.to_dict() for g in groups], **computed}


class RestDocumentStore:
    def __init__(self, base_url: str, api_key: str, table: str = RECEIPTS_TABLE) -> None:
        self.url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key

    def insert(
        self,
        pro_number: str,
        receipt_type: ReceiptType,
        groups: Iterable[Group],
        computed: dict[str, Any],
    ) -> ReceiptDocument:
        rows = call_rest(
            "POST",
            self.url,
            self.api_key,
            "create receipt",
            payload={
                "pro_number": pro_number,
                "receipt_type": receipt_type.value,
                "receipt_data": receipt_data(groups, computed),
            },
        )
        if not rows:
            raise StorageError("create receipt returned no row")
        document = document_from_row(rows[0])
        logger.info("Stored receipt %s for PRO %s", document.id, pro_number)
        return document

    def get(self, receipt_id: str) -> ReceiptDocument:
        rows = call_rest(
            "GET",
            self.url,
            self.api_key,
            "fetch receipt",
            params={"id": f"eq.{receipt_id}", "select": _COLUMNS},
        )
        if not rows:
            raise NotFoundError(receipt_id)
        return document_from_row(rows[0])

    def replace(
        self,
        receipt_id: str,
        groups: Iterable[Group],
        computed: dict[str, Any],
        expected_updated_at: str | None = None,
    ) -> ReceiptDocument:
        params = {"id": f"eq.{receipt_id}"}
        if expected_updated_at is not None:
            params["updated_at"] = f"eq.{expected_updated_at}"
        rows = call_rest(
            "PATCH",
            self.url,
            self.api_key,
            "update receipt",
            params=params,
            payload={"receipt_data": receipt_data(groups, computed), "updated_at": now_iso()},
        )
        if not rows:
            # Either the id is gone or the concurrency token did not match
            current = self.get(receipt_id)
            raise ConflictError(receipt_id, expected_updated_at or "", current.updated_at)
        logger.info("Updated receipt %s", receipt_id)
        return document_from_row(rows[0])

    def list_by_pro(self, pro_number: str) -> list[ReceiptDocument]:
        rows = call_rest(
            "GET",
            self.url,
            self.api_key,
            "list receipts",
            params={
                "pro_number": f"eq.{pro_number}",
                "select": _COLUMNS,
                "order": "created_at.desc",
            },
        )
        return [document_from_row(r) for r in rows]

    def delete(self, receipt_id: str) -> bool:
        rows = call_rest(
            "DELETE",
            self.url,
            self.api_key,
            "delete receipt",
            params={"id": f"eq.{receipt_id}"},
        )
        if rows:
            logger.info("Deleted receipt %s", receipt_id)
        return bool(rows)
