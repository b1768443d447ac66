# civic_dispatch/core/geo.py
"""
Distance math and neighborhood resolution.

``distance_km`` is the haversine great-circle distance.  ``resolve``
filters the (small, fixed) target registry down to the targets within a
radius of a point, nearest first.  No spatial index: the registry holds a
handful of municipal corporations, a linear scan is all it needs.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from civic_dispatch.core.domain import DispatchTarget, GeoPoint, IssueCategory

__all__ = [
    "EARTH_RADIUS_KM",
    "distance_km",
    "NearbyTarget",
    "resolve",
    "NeighborhoodResolver",
]


EARTH_RADIUS_KM = 6371.0  # Earth mean radius


# ---------------------------------------------------------------------------
# Haversine distance
# ---------------------------------------------------------------------------

def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres.

    The longitude difference is not normalized across the antimeridian;
    ``sin²(Δλ/2)`` is periodic in 360° so the result is still the short
    arc.  The haversine term is clamped to [0, 1] because rounding can push
    it just outside that range for antipodal and polar points.
    """
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lng - a.lng)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(dlon / 2) ** 2
    )
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


# ---------------------------------------------------------------------------
# Neighborhood resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NearbyTarget:
    """A target together with its distance from the query point."""

    target: DispatchTarget
    distance_km: float


def resolve(
    point: GeoPoint,
    radius_km: float,
    registry: Iterable[DispatchTarget],
    *,
    category: IssueCategory | None = None,
) -> list[NearbyTarget]:
    """Targets within ``radius_km`` of ``point``, nearest first.

    The boundary is inclusive.  Equal distances keep the registry's
    enumeration order (``sorted`` is stable).  When ``category`` is given,
    targets that do not cover it are skipped.
    """
    if math.isnan(radius_km) or radius_km < 0:
        raise ValueError(f"radius_km must be a non-negative number, got {radius_km}")

    nearby: list[NearbyTarget] = []
    for target in registry:
        if category is not None and not target.covers(category):
            continue
        dist = distance_km(point, target.location)
        if dist <= radius_km:
            nearby.append(NearbyTarget(target=target, distance_km=dist))

    return sorted(nearby, key=lambda n: n.distance_km)


class NeighborhoodResolver:
    """``resolve`` bound to one registry snapshot and the configured radius."""

    def __init__(self, registry: Iterable[DispatchTarget], radius_km: float):
        if math.isnan(radius_km) or radius_km < 0:
            raise ValueError(f"radius_km must be a non-negative number, got {radius_km}")
        self._registry = registry
        self._radius_km = radius_km

    @property
    def radius_km(self) -> float:
        return self._radius_km

    def resolve(
        self,
        point: GeoPoint,
        *,
        radius_km: float | None = None,
        category: IssueCategory | None = None,
    ) -> list[NearbyTarget]:
        radius = self._radius_km if radius_km is None else radius_km
        return resolve(point, radius, self._registry, category=category)

    def targets_near(self, point: GeoPoint, **kwargs) -> list[DispatchTarget]:
        """Same as ``resolve`` but without distances (orchestrator input)."""
        return [n.target for n in self.resolve(point, **kwargs)]
