from __future__ import annotations

import uuid


def new_id(prefix: str) -> str:
    """Generate an id for a group, row or child row, e.g. ``row_3f2a9c1d0b7e``.

    Ids only need to be unique within one receipt, but they double as widget
    ids in the editor, so they stay short and identifier-safe.
    """
    if not prefix.isidentifier():
        raise ValueError(f"Id prefix must be identifier-safe, got {prefix!r}")
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def new_receipt_id() -> str:
    """Generate a receipt document id (full UUID4 string)."""
    return str(uuid.uuid4())
