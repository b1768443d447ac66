# civic_dispatch/core/domain.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from civic_dispatch.core.errors import InvalidGeoPoint, UnknownCategoryError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# GEO POINT
# ============================================================================

@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate in degrees."""
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise InvalidGeoPoint(f"Coordinates must be finite: ({self.lat}, {self.lng})")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidGeoPoint(f"Latitude out of range [-90, 90]: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise InvalidGeoPoint(f"Longitude out of range [-180, 180]: {self.lng}")

    def format(self) -> str:
        """``"lat, lng"`` with six decimals, as used in messages and addresses."""
        return f"{self.lat:.6f}, {self.lng:.6f}"


# ============================================================================
# ISSUE CATEGORY
# ============================================================================

class IssueCategory(str, Enum):
    """Closed set of issue categories a report can be filed under."""
    ROADS = "roads"
    LIGHTING = "lighting"
    WATER_SUPPLY = "water-supply"
    CLEANLINESS = "cleanliness"
    PUBLIC_SAFETY = "public-safety"
    OBSTRUCTIONS = "obstructions"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]

    @property
    def description(self) -> str:
        return CATEGORY_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, raw: "str | IssueCategory") -> "IssueCategory":
        """Map a raw category string to the enum, rejecting unknown values."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise UnknownCategoryError(f"Unknown issue category: {raw!r}") from None


CATEGORY_LABELS: dict[IssueCategory, str] = {
    IssueCategory.ROADS: "Roads",
    IssueCategory.LIGHTING: "Lighting",
    IssueCategory.WATER_SUPPLY: "Water Supply",
    IssueCategory.CLEANLINESS: "Cleanliness",
    IssueCategory.PUBLIC_SAFETY: "Public Safety",
    IssueCategory.OBSTRUCTIONS: "Obstructions",
}

CATEGORY_DESCRIPTIONS: dict[IssueCategory, str] = {
    IssueCategory.ROADS: "Potholes, obstructions, road damage",
    IssueCategory.LIGHTING: "Broken or flickering street lights",
    IssueCategory.WATER_SUPPLY: "Leaks, low pressure, water issues",
    IssueCategory.CLEANLINESS: "Overflowing bins, garbage, litter",
    IssueCategory.PUBLIC_SAFETY: "Open manholes, exposed wiring, hazards",
    IssueCategory.OBSTRUCTIONS: "Fallen trees, debris, blockages",
}


# ============================================================================
# DISPATCH TARGET
# ============================================================================

@dataclass(frozen=True)
class DispatchTarget:
    """A fixed-location authority that can receive issue reports."""
    id: str
    display_name: str
    location: GeoPoint
    contact_email: str
    contact_phone: str
    website_url: str
    jurisdiction_label: str
    covered_categories: frozenset[IssueCategory]
    message_template: str

    def covers(self, category: IssueCategory) -> bool:
        return category in self.covered_categories


# ============================================================================
# DISPATCH REQUEST
# ============================================================================

ANONYMOUS_REPORTER = "Anonymous Citizen"


@dataclass(frozen=True)
class DispatchRequest:
    """
    Everything the subsystem needs to know about one reported issue.
    Built by the caller from its issue record; never modified here.
    """
    issue_id: str
    title: str
    description: str
    category: IssueCategory
    location: GeoPoint
    reporter_display_name: str = ""
    is_anonymous: bool = False
    photos: tuple[str | bytes, ...] = ()  # Opaque blobs (data URLs, raw bytes)
    reported_at: Optional[datetime] = None

    @property
    def reporter_label(self) -> str:
        if self.is_anonymous:
            return ANONYMOUS_REPORTER
        return self.reporter_display_name


# ============================================================================
# OUTCOMES & ROUND RESULT
# ============================================================================

@dataclass(frozen=True)
class DispatchOutcome:
    """
    Result of one delivery attempt within a round.
    ``reference_id`` is set if and only if ``success`` is True.
    """
    target_id: str
    target_display_name: str
    success: bool
    message: str
    reference_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.success and self.reference_id is not None:
            raise ValueError("Failed outcomes cannot carry a reference_id")

    @classmethod
    def succeeded(
        cls,
        target: DispatchTarget,
        message: str | None = None,
        reference_id: str | None = None,
    ) -> "DispatchOutcome":
        return cls(
            target_id=target.id,
            target_display_name=target.display_name,
            success=True,
            message=message or f"Successfully submitted to {target.display_name}",
            reference_id=reference_id,
        )

    @classmethod
    def failed(cls, target: DispatchTarget, message: str) -> "DispatchOutcome":
        return cls(
            target_id=target.id,
            target_display_name=target.display_name,
            success=False,
            message=message,
        )


class RoundStatus(str, Enum):
    """How a round ended, from the reporter's point of view."""
    NO_TARGETS = "no_targets"  # Nothing within the radius, nothing was sent
    DISPATCHED = "dispatched"  # At least one target accepted the report
    ALL_FAILED = "all_failed"  # Targets were found but every attempt failed


@dataclass(frozen=True)
class DispatchResult:
    """Fan-in of a round: outcomes in the same order as the targets."""
    round_id: str
    outcomes: tuple[DispatchOutcome, ...]
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime = field(default_factory=utcnow)

    @property
    def aggregate_success(self) -> bool:
        return any(o.success for o in self.outcomes)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def status(self) -> RoundStatus:
        if not self.outcomes:
            return RoundStatus.NO_TARGETS
        if self.aggregate_success:
            return RoundStatus.DISPATCHED
        return RoundStatus.ALL_FAILED


# ============================================================================
# SUBMISSION RECORD
# ============================================================================

@dataclass(frozen=True)
class SubmissionRecord:
    """Outcomes of the most recent recorded round for one issue."""
    issue_id: str
    outcomes: tuple[DispatchOutcome, ...] = ()
    round_id: Optional[str] = None
    recorded_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.outcomes
