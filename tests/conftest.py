# tests/conftest.py
"""Pytest configuration and fixtures"""
import math

import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from civic_dispatch.core.composer import DEFAULT_TEMPLATE  # noqa: E402
from civic_dispatch.core.domain import (  # noqa: E402
    DispatchRequest,
    DispatchTarget,
    GeoPoint,
    IssueCategory,
)
from civic_dispatch.core.geo import EARTH_RADIUS_KM  # noqa: E402
from civic_dispatch.core.registry import EntityRegistry  # noqa: E402
from civic_dispatch.infra.metrics import get_metrics_collector  # noqa: E402

# Kilometres per degree of latitude on the haversine sphere
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180


def make_target(
    target_id: str,
    lat: float = 0.0,
    lng: float = 0.0,
    *,
    name: str | None = None,
    categories: frozenset[IssueCategory] | None = None,
    template: str = DEFAULT_TEMPLATE,
) -> DispatchTarget:
    return DispatchTarget(
        id=target_id,
        display_name=name or f"{target_id.title()} Municipal Corporation",
        location=GeoPoint(lat, lng),
        contact_email=f"{target_id}@example.gov",
        contact_phone="1800-000-000",
        website_url=f"https://{target_id}.example.gov",
        jurisdiction_label=f"{target_id.title()} Metropolitan Region",
        covered_categories=categories if categories is not None else frozenset(IssueCategory),
        message_template=template,
    )


def target_north_of_origin(target_id: str, km: float, **kwargs) -> DispatchTarget:
    """Target due north of (0, 0) at exactly ``km`` kilometres."""
    return make_target(target_id, km / KM_PER_DEGREE, 0.0, **kwargs)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics collector is process-global"""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def origin():
    return GeoPoint(0.0, 0.0)


@pytest.fixture
def three_targets():
    """T1 at 10 km, T2 at 60 km, T3 at 120 km north of the origin"""
    return [
        target_north_of_origin("t1", 10),
        target_north_of_origin("t2", 60),
        target_north_of_origin("t3", 120),
    ]


@pytest.fixture
def registry(three_targets):
    return EntityRegistry(three_targets)


@pytest.fixture
def sample_request():
    return DispatchRequest(
        issue_id="issue-42",
        title="Pothole near bus stop",
        description="Deep pothole in the left lane, two scooters already fell.",
        category=IssueCategory.ROADS,
        location=GeoPoint(19.076, 72.8777),
        reporter_display_name="Asha Rao",
    )


@pytest.fixture
def mumbai():
    return GeoPoint(19.0760, 72.8777)
