# civic_dispatch/transport/schemas.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from civic_dispatch.core.composer import ComposedMessage
from civic_dispatch.core.domain import (
    DispatchOutcome,
    DispatchRequest,
    DispatchTarget,
    GeoPoint,
    IssueCategory,
    SubmissionRecord,
    utcnow,
)
from civic_dispatch.core.geo import NearbyTarget


# ============================================================================
# INPUT
# ============================================================================

class LocationIn(BaseModel):
    lat: float
    lng: float

    def to_point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class IssueIn(BaseModel):
    """Issue report as submitted by the reporting app."""
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    category: str = Field(min_length=1, max_length=64)
    location: LocationIn
    reporter_location: LocationIn | None = None  # Defaults to the issue location
    reporter_name: str = Field(default="", max_length=120)
    is_anonymous: bool = False
    photos: list[str] = Field(default_factory=list, max_length=10)
    reported_at: datetime | None = None
    radius_km: float | None = Field(default=None, ge=0)
    only_covering_category: bool = False

    def to_request(self, issue_id: str) -> DispatchRequest:
        """Raises UnknownCategoryError / InvalidGeoPoint on bad input."""
        return DispatchRequest(
            issue_id=issue_id,
            title=self.title,
            description=self.description,
            category=IssueCategory.parse(self.category),
            location=self.location.to_point(),
            reporter_display_name=self.reporter_name,
            is_anonymous=self.is_anonymous,
            photos=tuple(self.photos),
            reported_at=self.reported_at or utcnow(),
        )

    def resolution_point(self) -> GeoPoint:
        return (self.reporter_location or self.location).to_point()

    def category_filter(self) -> IssueCategory | None:
        return IssueCategory.parse(self.category) if self.only_covering_category else None


# ============================================================================
# OUTPUT
# ============================================================================

class TargetOut(BaseModel):
    id: str
    name: str
    lat: float
    lng: float
    email: str
    phone: str
    website: str
    jurisdiction: str
    categories: list[str]

    @classmethod
    def from_target(cls, target: DispatchTarget) -> "TargetOut":
        return cls(
            id=target.id,
            name=target.display_name,
            lat=target.location.lat,
            lng=target.location.lng,
            email=target.contact_email,
            phone=target.contact_phone,
            website=target.website_url,
            jurisdiction=target.jurisdiction_label,
            categories=sorted(c.value for c in target.covered_categories),
        )


class NearbyTargetOut(TargetOut):
    distance_km: float

    @classmethod
    def from_nearby(cls, nearby: NearbyTarget) -> "NearbyTargetOut":
        base = TargetOut.from_target(nearby.target).model_dump()
        return cls(**base, distance_km=round(nearby.distance_km, 3))


class OutcomeOut(BaseModel):
    target_id: str
    target_name: str
    success: bool
    message: str
    reference_id: str | None = None
    timestamp: datetime

    @classmethod
    def from_outcome(cls, outcome: DispatchOutcome) -> "OutcomeOut":
        return cls(
            target_id=outcome.target_id,
            target_name=outcome.target_display_name,
            success=outcome.success,
            message=outcome.message,
            reference_id=outcome.reference_id,
            timestamp=outcome.timestamp,
        )


class DispatchOut(BaseModel):
    issue_id: str
    round_id: str
    status: str
    aggregate_success: bool
    succeeded: int
    total: int
    summary: str
    outcomes: list[OutcomeOut]
    targets: list[NearbyTargetOut]


class SubmissionRecordOut(BaseModel):
    round_id: str | None = None
    recorded_at: datetime | None = None
    outcomes: list[OutcomeOut]

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> "SubmissionRecordOut":
        return cls(
            round_id=record.round_id,
            recorded_at=record.recorded_at,
            outcomes=[OutcomeOut.from_outcome(o) for o in record.outcomes],
        )


class SubmissionsOut(BaseModel):
    issue_id: str
    current: SubmissionRecordOut
    history: list[SubmissionRecordOut]


class DraftOut(BaseModel):
    target_id: str
    target_name: str
    recipient: str
    subject: str
    body: str
    mailto_url: str

    @classmethod
    def from_composed(cls, target: DispatchTarget, message: ComposedMessage) -> "DraftOut":
        return cls(
            target_id=target.id,
            target_name=target.display_name,
            recipient=message.recipient,
            subject=message.subject,
            body=message.body,
            mailto_url=message.mailto_url,
        )


class DraftsOut(BaseModel):
    issue_id: str
    drafts: list[DraftOut]
    text: str  # All drafts as one clipboard block
