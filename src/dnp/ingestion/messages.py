"""Message persistence helpers for the ingestion stage."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from dnp.db.store import DocumentStore
from dnp.models import Address, FeatureCollection
from dnp.utils.logging import get_logger
from dnp.utils.text import normalize_categories_input
from dnp.utils.time import now_utc


logger = get_logger(__name__)

MESSAGES_COLLECTION = "messages"
AGGREGATIONS_COLLECTION = "aggregations"
CATEGORY_STATS_ID = "categoryStats"
UNCATEGORIZED = "uncategorized"


def store_incoming_message(
    store: DocumentStore,
    text: str,
    source: str = "web-interface",
    source_url: Optional[str] = None,
    crawled_at: Optional[datetime] = None,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
) -> str:
    """Insert a new, not yet finalized message and return its id."""
    created_at = now_utc().isoformat()
    doc: dict[str, Any] = {
        "text": text,
        "source": source,
        "userId": user_id,
        "userEmail": user_email,
        "createdAt": created_at,
        "crawledAt": crawled_at.isoformat() if crawled_at else created_at,
        "finalizedAt": None,
        "notificationsSent": False,
    }
    if source_url:
        doc["sourceUrl"] = source_url

    return store.put(MESSAGES_COLLECTION, doc)


def update_message(store: DocumentStore, message_id: str, fields: dict[str, Any]) -> None:
    """Update message fields in one atomic write.

    A write that sets ``finalizedAt`` also folds the message's categories into the
    shared category list.
    """
    store.update_atomic(MESSAGES_COLLECTION, message_id, fields)

    if fields.get("finalizedAt"):
        update_category_aggregation(store, message_id)


def _categories_for_aggregation(value: Any) -> list[str]:
    if not isinstance(value, list):
        return [UNCATEGORIZED]
    categories = [item for item in value if isinstance(item, str) and item]
    return categories or [UNCATEGORIZED]


def update_category_aggregation(store: DocumentStore, message_id: str) -> None:
    """Merge a finalized message's categories into ``aggregations/categoryStats``.

    Re-running for the same message leaves the document unchanged apart from
    ``lastUpdated``.
    """
    message = store.get(MESSAGES_COLLECTION, message_id)
    if message is None:
        return

    categories = _categories_for_aggregation(message.get("categories"))
    store.array_union(
        AGGREGATIONS_COLLECTION,
        CATEGORY_STATS_ID,
        "categories",
        categories,
        extra={"lastUpdated": now_utc().isoformat()},
    )


def aggregated_categories(store: DocumentStore) -> list[str]:
    doc = store.get(AGGREGATIONS_COLLECTION, CATEGORY_STATS_ID)
    if not doc:
        return []
    return list(doc.get("categories") or [])


def finalize_message(
    store: DocumentStore,
    message_id: str,
    addresses: Sequence[Address],
    geo_json: Optional[FeatureCollection],
    categories: Iterable[str] | str | None = None,
) -> dict[str, Any]:
    """Freeze the accepted location set and mark the message ready for matching."""
    normalized = normalize_categories_input(categories)
    fields: dict[str, Any] = {
        "addresses": [address.model_dump(by_alias=True, mode="json") for address in addresses],
        "geoJson": geo_json,
        "categories": normalized if isinstance(normalized, list) else [],
        "finalizedAt": now_utc().isoformat(),
        "notificationsSent": False,
    }
    update_message(store, message_id, fields)
    logger.info(
        "messages.finalized id=%s addresses=%s features=%s",
        message_id,
        len(addresses),
        len((geo_json or {}).get("features") or []),
    )
    return fields
