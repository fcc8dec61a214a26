"""Acceptance gate for scraped notices."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence, Union
from zoneinfo import ZoneInfo

from dnp.config import Settings
from dnp.geo.boundaries import check_within_boundaries, filter_features
from dnp.geo.outliers import filter_outlier_addresses
from dnp.ingestion.dates import check_relevance
from dnp.models import (
    AcceptDecision,
    Address,
    FeatureCollection,
    RawNotice,
    RejectDecision,
)
from dnp.utils.text import normalize_categories_input, normalize_whitespace


def addresses_to_features(addresses: Sequence[Address]) -> Optional[FeatureCollection]:
    """Build a Point FeatureCollection from geocoded addresses."""
    if not addresses:
        return None
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [address.coordinates.lng, address.coordinates.lat],
                },
                "properties": {
                    "originalText": address.original_text,
                    "formattedAddress": address.formatted_address,
                },
            }
            for address in addresses
        ],
    }


class NoticeGate:
    """Evaluate scraped notices and decide which become messages."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        boundary: Optional[FeatureCollection] = None,
        reference: Optional[Union[date, datetime]] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.boundary = boundary
        self.reference = reference
        self.tz = ZoneInfo(self.settings.timezone)
        self._seen: dict[tuple[str, str], str] = {}

    def evaluate(self, raw_notice: RawNotice) -> AcceptDecision | RejectDecision:
        """Evaluate a notice and return an accept/reject decision."""
        text = normalize_whitespace(raw_notice.text or "")
        if not text:
            return RejectDecision(raw_notice=raw_notice, reason="missing_text")

        duplicate_of = self._check_duplicate(raw_notice, text)
        if duplicate_of:
            return RejectDecision(
                raw_notice=raw_notice,
                reason="duplicate",
                details={"duplicate_of": duplicate_of},
            )

        warnings: list[str] = []
        date_source = " ".join(
            part for part in (raw_notice.date_text, raw_notice.title) if part
        ) or text
        relevance = check_relevance(date_source, self.reference, self.tz)
        if relevance.failed_open:
            warnings.append("date_unchecked")
        elif not relevance.relevant:
            return RejectDecision(
                raw_notice=raw_notice,
                reason="outdated",
                details={
                    "candidate": relevance.candidate,
                    "start": relevance.date_range.start.isoformat(),
                    "end": relevance.date_range.end.isoformat(),
                },
            )

        addresses = filter_outlier_addresses(
            raw_notice.addresses, self.settings.outlier_max_distance_meters
        )
        if len(addresses) < len(raw_notice.addresses):
            warnings.append("outliers_dropped")

        geo_json = raw_notice.geo_json
        if not (geo_json and geo_json.get("features")):
            geo_json = addresses_to_features(addresses)
        if self.boundary is not None and geo_json:
            check = check_within_boundaries(geo_json, self.boundary)
            if check.failed_open:
                warnings.append("boundary_unchecked")
            elif not check.within:
                return RejectDecision(raw_notice=raw_notice, reason="outside_boundary")
            else:
                geo_json = filter_features(geo_json, self.boundary)

        categories = normalize_categories_input(raw_notice.categories)
        return AcceptDecision(
            raw_notice=raw_notice,
            addresses=addresses,
            geo_json=geo_json,
            categories=[c for c in categories if isinstance(c, str) and c]
            if isinstance(categories, list)
            else [],
            warnings=warnings,
        )

    def _check_duplicate(self, raw_notice: RawNotice, text: str) -> Optional[str]:
        key = (raw_notice.source, (raw_notice.url or text).lower())
        previous = self._seen.get(key)
        if previous is not None:
            return previous
        self._seen[key] = raw_notice.url or text[:80]
        return None
