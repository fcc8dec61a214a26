"""Pipeline run logging helpers."""

from __future__ import annotations

from typing import Any, Optional

from dnp.db.store import DocumentStore
from dnp.utils.time import now_utc


RUNS_COLLECTION = "pipelineRuns"


def create_run(store: DocumentStore, kind: str, **details: Any) -> str:
    return store.put(
        RUNS_COLLECTION,
        {
            "kind": kind,
            "status": "running",
            "startedAt": now_utc().isoformat(),
            **details,
        },
    )


def complete_run_success(store: DocumentStore, run_id: str, **counts: int) -> None:
    store.update_atomic(
        RUNS_COLLECTION,
        run_id,
        {"status": "success", "finishedAt": now_utc().isoformat(), **counts},
    )


def complete_run_failed(
    store: DocumentStore,
    run_id: str,
    error: BaseException,
    processed_count: Optional[int] = None,
) -> None:
    store.update_atomic(
        RUNS_COLLECTION,
        run_id,
        {
            "status": "failed",
            "finishedAt": now_utc().isoformat(),
            "processedCount": processed_count,
            "error": {"type": type(error).__name__, "message": str(error)},
        },
    )
