# civic_dispatch/core/errors.py
"""
Typed errors for the dispatch subsystem.

Each error maps to an HTTP status code.  The transport layer catches
``DispatchError`` subtypes and converts them to JSON responses without
embedding business logic in the route handlers.

Per-target delivery problems (``TransportFailure``) never reach the
caller: the orchestrator turns them into failed outcomes.  Only
``OrchestratorFault`` is allowed to surface from a dispatch round.
"""
from __future__ import annotations


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class TransportFailure(DispatchError):
    """A single target's delivery attempt did not succeed."""

    status_code = 502


class OrchestratorFault(DispatchError):
    """The dispatch round itself failed (not an individual target)."""

    status_code = 502


class UnknownCategoryError(DispatchError, ValueError):
    """Issue category outside the closed category set (400)."""

    status_code = 400


class InvalidGeoPoint(DispatchError, ValueError):
    """Latitude/longitude out of range or not finite (400)."""

    status_code = 400


class TargetNotFoundError(DispatchError):
    """Dispatch target id not present in the registry (404)."""

    status_code = 404


class RegistryLoadError(DispatchError):
    """Target table could not be loaded at startup."""

    status_code = 500


class LedgerLoadError(DispatchError):
    """Persisted submission ledger could not be read at startup."""

    status_code = 500
