from __future__ import annotations

from datetime import timedelta
from typing import Any

from scratchspace.models import HistoryEntry, new_id, utcnow


def make_entry(
    document_id: str,
    content: str,
    *,
    days_ago: float = 0,
    change_type: str = "update",
) -> dict[str, Any]:
    """Serialised history entry with a backdated timestamp."""
    return HistoryEntry(
        id=new_id(),
        document_id=document_id,
        content=content,
        timestamp=utcnow() - timedelta(days=days_ago),
        change_type=change_type,
    ).to_dict()
