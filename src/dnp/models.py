"""Core data models for ingestion and notification matching."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dnp.utils.text import sanitize_zone_label


# GeoJSON values stay as plain dicts; shapes are checked where they are used.
Feature = dict[str, Any]
FeatureCollection = dict[str, Any]


class GeoPoint(BaseModel):
    """WGS84 point in degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be a finite number")
        return value


class Address(BaseModel):
    """Geocoded candidate location for a message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    original_text: str = Field(alias="originalText")
    coordinates: GeoPoint
    formatted_address: str = Field(default="", alias="formattedAddress")


class DateRange(BaseModel):
    """Inclusive calendar-day interval."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"range start {self.start} is after end {self.end}")
        return self


class Message(BaseModel):
    """Disruption notice as stored in the ``messages`` collection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    text: str = ""
    source: Optional[str] = None
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    categories: list[str] = Field(default_factory=list)
    addresses: list[Address] = Field(default_factory=list)
    geo_json: Optional[FeatureCollection] = Field(default=None, alias="geoJson")
    finalized_at: Optional[datetime] = Field(default=None, alias="finalizedAt")
    notifications_sent: bool = Field(default=False, alias="notificationsSent")
    crawled_at: Optional[datetime] = Field(default=None, alias="crawledAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator("notifications_sent", mode="before")
    @classmethod
    def _none_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("categories", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Interest(BaseModel):
    """User-owned circular zone of interest."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    user_id: str = Field(alias="userId")
    coordinates: GeoPoint
    radius: float
    label: Optional[str] = None
    color: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("radius")
    @classmethod
    def _positive_radius(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("radius must be a positive finite number of meters")
        return value

    @field_validator("label", mode="before")
    @classmethod
    def _clean_label(cls, value: Any) -> Optional[str]:
        return sanitize_zone_label(value)


class NotificationMatch(BaseModel):
    """Link between a message and an interest that matched it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: str = Field(alias="messageId")
    user_id: str = Field(alias="userId")
    interest_id: str = Field(alias="interestId")
    distance_meters: Optional[float] = Field(default=None, alias="distanceMeters")
    notified: bool = False
    notified_at: Optional[datetime] = Field(default=None, alias="notifiedAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @staticmethod
    def key(message_id: str, interest_id: str) -> str:
        """Idempotency key for one (message, interest) pair."""
        return f"{message_id}_{interest_id}"


class RawNotice(BaseModel):
    """Scraped notice before the ingestion gate."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: str
    url: Optional[str] = None
    title: Optional[str] = None
    date_text: Optional[str] = Field(default=None, alias="dateText")
    text: Optional[str] = None
    categories: Any = None
    addresses: list[Address] = Field(default_factory=list)
    geo_json: Optional[FeatureCollection] = Field(default=None, alias="geoJson")
    crawled_at: Optional[datetime] = Field(default=None, alias="crawledAt")


class AcceptDecision(BaseModel):
    """Notice gate acceptance."""

    raw_notice: RawNotice
    addresses: list[Address] = Field(default_factory=list)
    geo_json: Optional[FeatureCollection] = None
    categories: list[str] = Field(default_factory=list)
    reason: str = "accepted"
    warnings: list[str] = Field(default_factory=list)


class RejectDecision(BaseModel):
    """Notice gate rejection."""

    raw_notice: RawNotice
    reason: str
    details: dict[str, Any] = Field(default_factory=dict)
