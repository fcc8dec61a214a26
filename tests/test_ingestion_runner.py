from datetime import date

import orjson

from dnp.config import Settings
from dnp.db.run_log import RUNS_COLLECTION
from dnp.db.store import InMemoryDocumentStore, Predicate
from dnp.ingestion.messages import MESSAGES_COLLECTION
from dnp.ingestion.runner import load_notices, run_ingestion


REFERENCE = date(2026, 3, 17)


def _payload() -> list[dict]:
    return [
        {
            "source": "sofiyskavoda",
            "url": "https://example.test/notice/1",
            "dateText": "15-19.03.2026",
            "text": "Спиране на водата на ул. Шипка 6",
            "categories": "вода",
            "addresses": [
                {"originalText": "ул. Шипка 6", "coordinates": {"lat": 42.6936, "lng": 23.3258}}
            ],
        },
        {
            "source": "sofiyskavoda",
            "url": "https://example.test/notice/2",
            "dateText": "01-02.03.2026",
            "text": "Стар ремонт",
        },
        {"source": "sofiyskavoda", "url": "https://example.test/notice/3", "text": ""},
    ]


def test_load_notices_reads_json_array(tmp_path):
    path = tmp_path / "notices.json"
    path.write_bytes(orjson.dumps(_payload()))

    notices = load_notices(path)
    assert len(notices) == 3
    assert notices[0].date_text == "15-19.03.2026"
    assert notices[0].addresses[0].coordinates.lat == 42.6936


def test_run_ingestion_stores_accepted_notices(tmp_path):
    path = tmp_path / "notices.json"
    path.write_bytes(orjson.dumps(_payload()))
    store = InMemoryDocumentStore()

    summary = run_ingestion(
        load_notices(path), store, settings=Settings(_env_file=None), reference=REFERENCE
    )

    assert summary.fetched == 3
    assert summary.accepted == 1
    assert summary.rejected == 2
    assert summary.reject_reasons == {"outdated": 1, "missing_text": 1}

    pending = store.query(MESSAGES_COLLECTION, [Predicate("notificationsSent", "!=", True)])
    assert [doc["id"] for doc in pending] == summary.stored_ids
    assert pending[0]["finalizedAt"]
    assert pending[0]["categories"] == ["вода"]

    runs = store.query(RUNS_COLLECTION)
    assert runs[0]["kind"] == "ingestion"
    assert runs[0]["status"] == "success"
    assert runs[0]["storedCount"] == 1


def test_run_ingestion_dry_run_writes_nothing(tmp_path):
    path = tmp_path / "notices.json"
    path.write_bytes(orjson.dumps(_payload()))
    store = InMemoryDocumentStore()

    summary = run_ingestion(
        load_notices(path),
        store,
        settings=Settings(_env_file=None),
        dry_run=True,
        reference=REFERENCE,
    )

    assert summary.accepted == 1
    assert summary.stored_ids == []
    assert store.query(MESSAGES_COLLECTION) == []
    assert store.query(RUNS_COLLECTION) == []
