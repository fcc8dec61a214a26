"""Notification matching runner.

Each run selects finalized messages whose ``notificationsSent`` flag is not set,
matches them against every interest zone, records one NotificationMatch per
(message, interest) pair, pushes once per (message, user) and then sets the flag.
The flag is set only after every match of the message has been handled, so a
message whose processing raised is picked up again by the next run.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Optional

from pydantic import ValidationError

from dnp.config import Settings
from dnp.db.run_log import complete_run_failed, complete_run_success, create_run
from dnp.db.store import DocumentStore, Predicate
from dnp.geo.distance import haversine_distance
from dnp.ingestion.messages import MESSAGES_COLLECTION
from dnp.models import GeoPoint, Interest, Message, NotificationMatch
from dnp.notifications.matcher import (
    InterestMatch,
    match_interests,
    parse_interests,
    representative_point,
)
from dnp.notifications.push import PushSender
from dnp.utils.logging import get_logger
from dnp.utils.text import truncate
from dnp.utils.time import now_utc


logger = get_logger(__name__)

INTERESTS_COLLECTION = "interests"
MATCHES_COLLECTION = "notificationMatches"

Outcome = Literal["notified", "skipped", "failed", "cancelled", "dry_run"]


@dataclass
class MessageResult:
    message_id: str
    outcome: Outcome
    matched: int = 0
    matches_recorded: int = 0
    pushes_sent: int = 0
    pushes_failed: int = 0
    already_notified: int = 0


@dataclass
class MatchRunSummary:
    selected: int = 0
    interests: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    matches_recorded: int = 0
    pushes_sent: int = 0
    pushes_failed: int = 0
    already_notified: int = 0

    def add(self, result: MessageResult) -> None:
        self.outcomes[result.outcome] = self.outcomes.get(result.outcome, 0) + 1
        self.matches_recorded += result.matches_recorded
        self.pushes_sent += result.pushes_sent
        self.pushes_failed += result.pushes_failed
        self.already_notified += result.already_notified

    def count(self, outcome: Outcome) -> int:
        return self.outcomes.get(outcome, 0)


def build_push_content(message: Message, match: InterestMatch) -> tuple[str, str, dict[str, str]]:
    """Title, body and data payload for one user's notification."""
    label = match.interest.label
    title = f"Ново съобщение в зона „{label}“" if label else "Ново съобщение във вашата зона"
    body = truncate(message.text, 160)
    data = {
        "messageId": message.id or "",
        "interestId": match.interest.id,
    }
    if message.source_url:
        data["sourceUrl"] = message.source_url
    return title, body, data


def notified_count(store: DocumentStore, user_id: str) -> int:
    """Number of delivered notifications recorded for a user."""
    return len(
        store.query(
            MATCHES_COLLECTION,
            [Predicate("userId", "==", user_id), Predicate("notified", "==", True)],
        )
    )


class MatchingPipeline:
    """Match pending messages against interest zones and dispatch pushes."""

    def __init__(
        self,
        store: DocumentStore,
        push: PushSender,
        settings: Optional[Settings] = None,
        distance_fn: Callable[[GeoPoint, GeoPoint], float] = haversine_distance,
    ) -> None:
        self.store = store
        self.push = push
        self.settings = settings or Settings()
        self.distance_fn = distance_fn

    def pending_messages(self, limit: Optional[int] = None) -> list[Message]:
        """Finalized messages whose notifications have not been processed."""
        docs = self.store.query(
            MESSAGES_COLLECTION, [Predicate("notificationsSent", "!=", True)]
        )
        messages: list[Message] = []
        for doc in docs:
            try:
                message = Message.model_validate(doc)
            except ValidationError as exc:
                logger.warning(
                    "notify.message.malformed id=%s errors=%s", doc.get("id"), exc.error_count()
                )
                continue
            if message.finalized_at is None:
                continue
            messages.append(message)

        messages.sort(key=lambda m: (m.finalized_at.timestamp(), m.id or ""))
        if limit is not None:
            messages = messages[:limit]
        return messages

    def load_interests(self) -> list[Interest]:
        return parse_interests(
            self.store.query(INTERESTS_COLLECTION),
            min_radius=self.settings.interest_min_radius_meters,
            max_radius=self.settings.interest_max_radius_meters,
        )

    def process_message(
        self,
        message: Message,
        interests: list[Interest],
        dry_run: bool = False,
    ) -> MessageResult:
        """Match one message, record matches, push, then flip its flag.

        Persistence errors propagate and leave the flag unset. Push failures are
        logged and counted; they do not stop the message from being marked.
        """
        message_id = message.id or ""
        point = representative_point(message)
        if point is None:
            logger.info("notify.message.no_location id=%s", message_id)
            if not dry_run:
                self._mark_processed(message_id)
            return MessageResult(message_id=message_id, outcome="skipped")

        matches = match_interests(point, interests, self.distance_fn)
        result = MessageResult(message_id=message_id, outcome="notified", matched=len(matches))

        if dry_run:
            logger.info("notify.dry_run id=%s matches=%s", message_id, len(matches))
            result.outcome = "dry_run"
            return result

        for user_id, user_matches in _group_by_user(matches).items():
            self._handle_user(message, user_id, user_matches, result)

        self._mark_processed(message_id)
        logger.info(
            "notify.message.done id=%s matched=%s sent=%s failed=%s",
            message_id,
            result.matched,
            result.pushes_sent,
            result.pushes_failed,
        )
        return result

    def run(
        self,
        dry_run: bool = False,
        max_workers: Optional[int] = None,
        limit: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MatchRunSummary:
        """Process every pending message once."""
        max_workers = max_workers or self.settings.notify_max_workers
        limit = limit if limit is not None else self.settings.notify_message_limit
        run_id: str | None = None

        if not dry_run:
            run_id = create_run(self.store, "notify")

        summary = MatchRunSummary()
        try:
            messages = self.pending_messages(limit)
            interests = self.load_interests()
            summary.selected = len(messages)
            summary.interests = len(interests)
            logger.info(
                "notify.run.start run_id=%s messages=%s interests=%s dry_run=%s",
                run_id,
                len(messages),
                len(interests),
                dry_run,
            )

            if max_workers > 1 and len(messages) > 1:
                with ThreadPoolExecutor(max_workers=max_workers) as executor:
                    futures = [
                        executor.submit(self._process_guarded, m, interests, dry_run, cancel_event)
                        for m in messages
                    ]
                    for future in as_completed(futures):
                        summary.add(future.result())
            else:
                for message in messages:
                    summary.add(self._process_guarded(message, interests, dry_run, cancel_event))

            if run_id is not None:
                complete_run_success(
                    self.store,
                    run_id,
                    selectedCount=summary.selected,
                    notifiedCount=summary.count("notified"),
                    skippedCount=summary.count("skipped"),
                    failedCount=summary.count("failed"),
                    cancelledCount=summary.count("cancelled"),
                    pushesSent=summary.pushes_sent,
                    pushesFailed=summary.pushes_failed,
                )
        except Exception as exc:
            if run_id is not None:
                complete_run_failed(self.store, run_id, exc, processed_count=sum(summary.outcomes.values()))
            logger.exception("notify.run.failed run_id=%s", run_id)
            raise

        logger.info(
            "notify.run.complete run_id=%s outcomes=%s sent=%s failed=%s",
            run_id,
            summary.outcomes,
            summary.pushes_sent,
            summary.pushes_failed,
        )
        return summary

    def _process_guarded(
        self,
        message: Message,
        interests: list[Interest],
        dry_run: bool,
        cancel_event: Optional[threading.Event],
    ) -> MessageResult:
        message_id = message.id or ""
        if cancel_event is not None and cancel_event.is_set():
            return MessageResult(message_id=message_id, outcome="cancelled")
        try:
            return self.process_message(message, interests, dry_run=dry_run)
        except Exception:
            logger.exception("notify.message.failed id=%s", message_id)
            return MessageResult(message_id=message_id, outcome="failed")

    def _handle_user(
        self,
        message: Message,
        user_id: str,
        user_matches: list[InterestMatch],
        result: MessageResult,
    ) -> None:
        message_id = message.id or ""
        keys: list[str] = []
        already_notified = False
        for match in user_matches:
            key = NotificationMatch.key(message_id, match.interest.id)
            keys.append(key)
            existing = self.store.get(MATCHES_COLLECTION, key)
            if existing is None:
                record = NotificationMatch(
                    message_id=message_id,
                    user_id=user_id,
                    interest_id=match.interest.id,
                    distance_meters=round(match.distance_meters, 2),
                    created_at=now_utc(),
                )
                self.store.put(
                    MATCHES_COLLECTION, record.model_dump(by_alias=True, mode="json"), doc_id=key
                )
                result.matches_recorded += 1
            elif existing.get("notified"):
                already_notified = True

        if already_notified:
            logger.info("notify.user.already_notified id=%s user_id=%s", message_id, user_id)
            result.already_notified += 1
            return

        if not self._dispatch(message, user_id, user_matches[0]):
            result.pushes_failed += 1
            return

        result.pushes_sent += 1
        notified_at = now_utc().isoformat()
        for key in keys:
            self.store.update_atomic(
                MATCHES_COLLECTION, key, {"notified": True, "notifiedAt": notified_at}
            )

    def _dispatch(self, message: Message, user_id: str, match: InterestMatch) -> bool:
        title, body, data = build_push_content(message, match)
        try:
            delivered = self.push.send(user_id, title, body, data)
        except Exception:
            logger.exception("notify.push.error id=%s user_id=%s", message.id, user_id)
            return False
        if not delivered:
            logger.warning("notify.push.failed id=%s user_id=%s", message.id, user_id)
        return bool(delivered)

    def _mark_processed(self, message_id: str) -> None:
        self.store.update_atomic(
            MESSAGES_COLLECTION,
            message_id,
            {"notificationsSent": True, "notificationsProcessedAt": now_utc().isoformat()},
        )


def _group_by_user(matches: Iterable[InterestMatch]) -> "OrderedDict[str, list[InterestMatch]]":
    """Group matches per user, closest interest first."""
    grouped: OrderedDict[str, list[InterestMatch]] = OrderedDict()
    for match in sorted(matches, key=lambda m: m.distance_meters):
        grouped.setdefault(match.interest.user_id, []).append(match)
    return grouped


def run_matching(
    store: DocumentStore,
    push: PushSender,
    settings: Optional[Settings] = None,
    dry_run: bool = False,
    max_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MatchRunSummary:
    """Convenience wrapper building a pipeline for one run."""
    pipeline = MatchingPipeline(store, push, settings)
    return pipeline.run(dry_run=dry_run, max_workers=max_workers, cancel_event=cancel_event)
