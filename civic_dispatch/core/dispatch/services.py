# civic_dispatch/core/dispatch/services.py
"""
Dispatch service: the full resolve → submit → record sequence for one issue.

The HTTP layer (and any other caller) goes through ``DispatchService``
rather than wiring resolver, orchestrator and ledger itself.

This module must NOT import transport modules.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from civic_dispatch.core.composer import ComposedMessage, compose_all
from civic_dispatch.core.dispatch.orchestrator import DispatchOrchestrator
from civic_dispatch.core.domain import (
    DispatchRequest,
    DispatchResult,
    DispatchTarget,
    GeoPoint,
    IssueCategory,
    RoundStatus,
)
from civic_dispatch.core.geo import NearbyTarget, NeighborhoodResolver
from civic_dispatch.core.ports import SubmissionLedger
from civic_dispatch.infra.logging_config import LogContext, get_logger, mask_coordinates
from civic_dispatch.infra.metrics import inc_counter

logger = get_logger(__name__)


def summarize(result: DispatchResult, radius_km: float | None = None) -> str:
    """
    One-line reporter-facing summary of a round.

    The three states stay distinguishable: nothing in range, some
    deliveries succeeded, and every delivery failed.
    """
    status = result.status

    if status is RoundStatus.NO_TARGETS:
        where = f"within {radius_km:g} km of" if radius_km is not None else "near"
        return f"No municipal authorities found {where} this location. Nothing was submitted."

    if status is RoundStatus.DISPATCHED:
        return (
            f"Submitted to {result.succeeded_count} of {result.total} "
            f"municipal authorit{'y' if result.total == 1 else 'ies'}."
        )

    return (
        f"Submission failed for all {result.total} nearby "
        f"municipal authorit{'y' if result.total == 1 else 'ies'}. Please try again later."
    )


@dataclass(frozen=True)
class DispatchReport:
    """What a caller gets back from ``dispatch_issue``."""
    result: DispatchResult
    targets: tuple[NearbyTarget, ...]
    summary: str

    @property
    def recorded(self) -> bool:
        return self.result.status is not RoundStatus.NO_TARGETS


class DispatchService:
    """
    Usage:
        service = DispatchService(resolver, orchestrator, ledger)
        report = await service.dispatch_issue(request, reporter_location)
    """

    def __init__(
        self,
        resolver: NeighborhoodResolver,
        orchestrator: DispatchOrchestrator,
        ledger: SubmissionLedger,
    ):
        self._resolver = resolver
        self._orchestrator = orchestrator
        self._ledger = ledger
        self._issue_locks: dict[str, asyncio.Lock] = {}

    @property
    def resolver(self) -> NeighborhoodResolver:
        return self._resolver

    @property
    def ledger(self) -> SubmissionLedger:
        return self._ledger

    def nearby(
        self,
        point: GeoPoint,
        *,
        radius_km: float | None = None,
        category: IssueCategory | None = None,
    ) -> list[NearbyTarget]:
        return self._resolver.resolve(point, radius_km=radius_km, category=category)

    async def dispatch_issue(
        self,
        request: DispatchRequest,
        reporter_location: GeoPoint,
        *,
        radius_km: float | None = None,
        category: IssueCategory | None = None,
    ) -> DispatchReport:
        """
        Resolve targets around the reporter, run one round, record it.

        Rounds for the same issue run one at a time: a second call waits
        for the first to be recorded.  Ledger writes run in the default
        executor.

        The round is recorded whenever targets were found, including a
        round where every delivery failed.  An empty round leaves the
        issue's existing record untouched.

        Raises:
            OrchestratorFault: propagated from the orchestrator; nothing
                is recorded in that case.
        """
        radius = self._resolver.radius_km if radius_km is None else radius_km
        log_ctx = LogContext(logger, issue_id=request.issue_id)
        loop = asyncio.get_running_loop()
        lock = self._issue_locks.setdefault(request.issue_id, asyncio.Lock())

        if lock.locked():
            log_ctx.info("Dispatch round waiting for the previous round on this issue")
            inc_counter("dispatch_issue_round_waits")

        async with lock:
            await loop.run_in_executor(None, self._ledger.open_issue, request.issue_id)
            nearby = self._resolver.resolve(reporter_location, radius_km=radius, category=category)
            log_ctx.info(
                f"Resolved {len(nearby)} target(s) within {radius:g} km of "
                f"({mask_coordinates(reporter_location.lat, reporter_location.lng)})"
            )

            result = await self._orchestrator.submit_round(request, [n.target for n in nearby])

            if result.status is RoundStatus.NO_TARGETS:
                inc_counter("dispatch_issue_unrouted")
            else:
                await loop.run_in_executor(
                    None, self._ledger.record_round, request.issue_id, result,
                )

        return DispatchReport(
            result=result,
            targets=tuple(nearby),
            summary=summarize(result, radius),
        )

    def compose_drafts(
        self,
        request: DispatchRequest,
        reporter_location: GeoPoint,
        *,
        radius_km: float | None = None,
        category: IssueCategory | None = None,
    ) -> list[tuple[DispatchTarget, ComposedMessage]]:
        """Email drafts for every target the issue would be dispatched to, nearest first."""
        nearby = self._resolver.resolve(reporter_location, radius_km=radius_km, category=category)
        return compose_all(request, [n.target for n in nearby])


def drafts_as_text(drafts: Sequence[tuple[DispatchTarget, ComposedMessage]]) -> str:
    """All drafts as one clipboard-ready block."""
    separator = "\n\n" + "-" * 40 + "\n\n"
    return separator.join(message.as_plain_text() for _, message in drafts)
