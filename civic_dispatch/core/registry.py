# civic_dispatch/core/registry.py
"""
Dispatch target table: static JSON loader + immutable lookup.

Loads ``data/targets.json`` (or the file named by ``TARGETS_PATH``) once
and exposes it as an ``EntityRegistry``: an ordered, read-only table of
``DispatchTarget`` records.  There is no mutation API; the registry is
safe to share between concurrent dispatch rounds without locking.

Components receive the registry explicitly; the HTTP app loads it once
in its lifespan and passes it down.
"""
from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from civic_dispatch.core.composer import DEFAULT_TEMPLATE
from civic_dispatch.core.domain import DispatchTarget, GeoPoint, IssueCategory
from civic_dispatch.core.errors import (
    InvalidGeoPoint,
    RegistryLoadError,
    UnknownCategoryError,
)
from civic_dispatch.infra.logging_config import get_logger

logger = get_logger(__name__)

__all__ = [
    "EntityRegistry",
    "DEFAULT_TARGETS_PATH",
    "load_registry",
    # Private but used by tests:
    "_target_from_entry",
]


DEFAULT_TARGETS_PATH = Path(__file__).parent / "data" / "targets.json"


class EntityRegistry:
    """Ordered, immutable table of dispatch targets keyed by id."""

    __slots__ = ("_targets", "_by_id")

    def __init__(self, targets: Iterable[DispatchTarget]):
        ordered = tuple(targets)
        by_id: dict[str, DispatchTarget] = {}
        for target in ordered:
            if target.id in by_id:
                raise RegistryLoadError(f"Duplicate dispatch target id: {target.id!r}")
            by_id[target.id] = target
        self._targets: tuple[DispatchTarget, ...] = ordered
        self._by_id: Mapping[str, DispatchTarget] = MappingProxyType(by_id)

    def get(self, target_id: str) -> DispatchTarget | None:
        return self._by_id.get(target_id)

    def all(self) -> tuple[DispatchTarget, ...]:
        return self._targets

    def __iter__(self) -> Iterator[DispatchTarget]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._by_id

    def __repr__(self) -> str:
        return f"EntityRegistry({len(self._targets)} targets)"


# ---------------------------------------------------------------------------
# JSON loading
# ---------------------------------------------------------------------------

def _target_from_entry(entry: dict[str, Any]) -> DispatchTarget:
    """Build a ``DispatchTarget`` from one JSON entry."""
    try:
        location = entry["location"]
        return DispatchTarget(
            id=entry["id"],
            display_name=entry["name"],
            location=GeoPoint(lat=float(location["lat"]), lng=float(location["lng"])),
            contact_email=entry["email"],
            contact_phone=entry.get("phone", ""),
            website_url=entry.get("website", ""),
            jurisdiction_label=entry.get("jurisdiction", ""),
            covered_categories=frozenset(
                IssueCategory.parse(c) for c in entry.get("categories", [])
            ),
            message_template=entry.get("template") or DEFAULT_TEMPLATE,
        )
    except KeyError as exc:
        raise RegistryLoadError(
            f"Target entry {entry.get('id', '?')!r} is missing field {exc.args[0]!r}"
        ) from exc
    except (UnknownCategoryError, InvalidGeoPoint, TypeError, ValueError) as exc:
        raise RegistryLoadError(f"Invalid target entry {entry.get('id', '?')!r}: {exc}") from exc


def load_registry(path: str | Path | None = None) -> EntityRegistry:
    """Load the target table from JSON (bundled dataset by default)."""
    source = Path(path) if path else DEFAULT_TARGETS_PATH
    try:
        with open(source, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise RegistryLoadError(f"Cannot read target table {source}: {exc}") from exc

    entries = data.get("targets") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise RegistryLoadError(f"Target table {source} has no 'targets' list")

    registry = EntityRegistry(_target_from_entry(e) for e in entries)
    logger.info(f"Dispatch registry loaded: {len(registry)} target(s) from {source.name}")
    return registry
