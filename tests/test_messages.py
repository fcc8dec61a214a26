from datetime import datetime, timezone

from dnp.db.store import InMemoryDocumentStore
from dnp.ingestion.messages import (
    MESSAGES_COLLECTION,
    aggregated_categories,
    finalize_message,
    store_incoming_message,
    update_category_aggregation,
    update_message,
)
from dnp.models import Address, GeoPoint


def _store_message(store, text: str = "Ремонт на ул. Шипка") -> str:
    return store_incoming_message(
        store,
        text=text,
        source="sofiyskavoda",
        source_url="https://example.test/notice/1",
        crawled_at=datetime(2026, 3, 17, 6, 0, tzinfo=timezone.utc),
    )


def test_store_incoming_message_is_not_finalized():
    store = InMemoryDocumentStore()
    message_id = _store_message(store)

    doc = store.get(MESSAGES_COLLECTION, message_id)
    assert doc["finalizedAt"] is None
    assert doc["notificationsSent"] is False
    assert doc["sourceUrl"] == "https://example.test/notice/1"
    assert doc["crawledAt"] == "2026-03-17T06:00:00+00:00"


def test_finalize_message_stores_addresses_and_categories():
    store = InMemoryDocumentStore()
    message_id = _store_message(store)
    address = Address(original_text="ул. Шипка 6", coordinates=GeoPoint(lat=42.6936, lng=23.3258))

    finalize_message(store, message_id, [address], None, categories="вода, ремонт")

    doc = store.get(MESSAGES_COLLECTION, message_id)
    assert doc["finalizedAt"]
    assert doc["addresses"][0]["originalText"] == "ул. Шипка 6"
    assert doc["addresses"][0]["coordinates"] == {"lat": 42.6936, "lng": 23.3258}
    assert doc["categories"] == ["вода", "ремонт"]
    assert aggregated_categories(store) == ["вода", "ремонт"]


def test_category_aggregation_is_a_union():
    store = InMemoryDocumentStore()
    finalize_message(store, _store_message(store), [], None, categories=["вода", "ремонт"])
    finalize_message(store, _store_message(store), [], None, categories=["ремонт", "ток"])
    assert aggregated_categories(store) == ["вода", "ремонт", "ток"]


def test_uncategorized_message_contributes_placeholder():
    store = InMemoryDocumentStore()
    finalize_message(store, _store_message(store), [], None, categories=None)
    assert aggregated_categories(store) == ["uncategorized"]


def test_category_aggregation_rerun_is_stable():
    store = InMemoryDocumentStore()
    message_id = _store_message(store)
    finalize_message(store, message_id, [], None, categories=["вода"])

    update_category_aggregation(store, message_id)
    update_category_aggregation(store, message_id)
    assert aggregated_categories(store) == ["вода"]


def test_update_without_finalizing_skips_aggregation():
    store = InMemoryDocumentStore()
    message_id = _store_message(store)

    update_message(store, message_id, {"categories": ["вода"]})

    assert aggregated_categories(store) == []
    assert store.get(MESSAGES_COLLECTION, message_id)["categories"] == ["вода"]
