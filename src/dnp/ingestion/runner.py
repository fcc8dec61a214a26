"""Ingestion runner."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Union

import orjson

from dnp.config import Settings
from dnp.db.run_log import complete_run_failed, complete_run_success, create_run
from dnp.db.store import DocumentStore
from dnp.ingestion.gate import NoticeGate
from dnp.ingestion.messages import finalize_message, store_incoming_message
from dnp.models import AcceptDecision, FeatureCollection, RawNotice, RejectDecision
from dnp.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class IngestionSummary:
    fetched: int
    accepted: int
    rejected: int
    stored_ids: list[str]
    reject_reasons: dict[str, int]


def load_notices(path: Union[str, Path]) -> List[RawNotice]:
    """Read scraped notices from a JSON array file."""
    payload = orjson.loads(Path(path).read_bytes())
    if not isinstance(payload, list):
        raise ValueError(f"Notice file must contain a JSON array: {path}")
    return [RawNotice.model_validate(item) for item in payload]


def run_ingestion(
    notices: Iterable[RawNotice],
    store: DocumentStore,
    settings: Optional[Settings] = None,
    boundary: Optional[FeatureCollection] = None,
    dry_run: bool = False,
    reference: Optional[date] = None,
) -> IngestionSummary:
    """Gate scraped notices and store the accepted ones as finalized messages."""
    settings = settings or Settings()
    raw_notices = list(notices)
    run_id: str | None = None

    logger.info("ingestion.start count=%s dry_run=%s", len(raw_notices), dry_run)

    if not dry_run:
        run_id = create_run(store, "ingestion", fetchedCount=len(raw_notices))

    try:
        gate = NoticeGate(settings=settings, boundary=boundary, reference=reference)
        decisions = [gate.evaluate(notice) for notice in raw_notices]

        accepts: List[AcceptDecision] = [d for d in decisions if isinstance(d, AcceptDecision)]
        rejects: List[RejectDecision] = [d for d in decisions if isinstance(d, RejectDecision)]
        reasons = Counter(reject.reason for reject in rejects)

        if dry_run:
            _log_dry_run_summary(raw_notices, accepts, rejects)
            return IngestionSummary(
                fetched=len(raw_notices),
                accepted=len(accepts),
                rejected=len(rejects),
                stored_ids=[],
                reject_reasons=dict(reasons),
            )

        stored_ids: list[str] = []
        for accept in accepts:
            notice = accept.raw_notice
            message_id = store_incoming_message(
                store,
                text=notice.text or "",
                source=notice.source,
                source_url=notice.url,
                crawled_at=notice.crawled_at,
            )
            finalize_message(
                store,
                message_id,
                addresses=accept.addresses,
                geo_json=accept.geo_json,
                categories=accept.categories,
            )
            stored_ids.append(message_id)

        if run_id is not None:
            complete_run_success(
                store,
                run_id,
                acceptedCount=len(accepts),
                rejectedCount=len(rejects),
                storedCount=len(stored_ids),
            )

        logger.info(
            "ingestion.complete run_id=%s fetched=%s accepted=%s rejected=%s",
            run_id,
            len(raw_notices),
            len(accepts),
            len(rejects),
        )
        return IngestionSummary(
            fetched=len(raw_notices),
            accepted=len(accepts),
            rejected=len(rejects),
            stored_ids=stored_ids,
            reject_reasons=dict(reasons),
        )

    except Exception as exc:
        if run_id is not None:
            complete_run_failed(store, run_id, exc)
        logger.exception("ingestion.failed run_id=%s", run_id)
        raise


def _log_dry_run_summary(
    raw_notices: List[RawNotice],
    accepts: List[AcceptDecision],
    rejects: List[RejectDecision],
) -> None:
    logger.info(
        "dry_run.summary fetched=%s accepted=%s rejected=%s",
        len(raw_notices),
        len(accepts),
        len(rejects),
    )

    for reason, count in Counter(reject.reason for reject in rejects).items():
        logger.info("dry_run.reject reason=%s count=%s", reason, count)

    warning_counts = Counter(warning for accept in accepts for warning in accept.warnings)
    for warning, count in warning_counts.items():
        logger.info("dry_run.warning kind=%s count=%s", warning, count)

    for reject in rejects[:3]:
        logger.info("dry_run.reject_example reason=%s details=%s", reject.reason, reject.details)
