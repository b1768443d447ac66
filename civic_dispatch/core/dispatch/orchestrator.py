# civic_dispatch/core/dispatch/orchestrator.py
"""
Dispatch rounds: concurrent fan-out to every resolved target, one barrier.

A round launches one ``attempt_delivery`` coroutine per target with
``asyncio.gather(..., return_exceptions=True)`` and returns only after
all of them settle.  A unit that escapes its own error handling (a
cancelled delivery, say) fails the whole round with
``OrchestratorFault``, but only after the other units have finished.  Each unit
catches its own failure and turns it into a failed ``DispatchOutcome``,
so a slow or broken target never cancels or corrupts another target's
attempt.  Outcomes come back in target order, not completion order.

There is no retry and no per-target timeout here: a failed target is
retried only by running the whole round again, and a stalled transport
stalls the round.  Callers must not run two rounds for the same issue
at once.
"""
from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from dataclasses import replace
from typing import Sequence

from civic_dispatch.core.domain import (
    DispatchOutcome,
    DispatchRequest,
    DispatchResult,
    DispatchTarget,
    utcnow,
)
from civic_dispatch.core.errors import OrchestratorFault, TransportFailure
from civic_dispatch.core.ports import DeliveryTransport
from civic_dispatch.core.registry import EntityRegistry
from civic_dispatch.infra.logging_config import LogContext, get_logger
from civic_dispatch.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

_reference_seq = itertools.count()


def make_reference_id(issuing_system: str, target_id: str, *, now_ms: int | None = None) -> str:
    """``<SYSTEM>-<TARGETID>-<token>``; token is the ms timestamp plus a 3-digit sequence."""
    millis = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    token = f"{millis}{next(_reference_seq) % 1000:03d}"
    return f"{issuing_system}-{target_id.upper()}-{token}"


class DispatchOrchestrator:
    """
    Fans one dispatch request out to an ordered list of targets.

    Usage:
        orchestrator = DispatchOrchestrator(transport, registry=registry)
        result = await orchestrator.submit_round(request, targets)
    """

    def __init__(
        self,
        transport: DeliveryTransport,
        *,
        registry: EntityRegistry | None = None,
        issuing_system: str = "MC",
    ):
        self._transport = transport
        self._registry = registry
        self._issuing_system = issuing_system

    @property
    def transport_name(self) -> str:
        return getattr(self._transport, "name", type(self._transport).__name__)

    async def submit_round(
        self,
        request: DispatchRequest,
        targets: Sequence[DispatchTarget],
    ) -> DispatchResult:
        """
        Deliver ``request`` to every target concurrently.

        Returns:
            DispatchResult with one outcome per target, in target order.
            An empty ``targets`` list yields an empty result whose status
            is ``no_targets``.

        Raises:
            OrchestratorFault: the round itself could not run (bad target
                list, or the fan-out machinery failed).  Per-target
                failures never raise.
        """
        targets = list(targets)
        round_id = uuid.uuid4().hex
        log_ctx = LogContext(logger, issue_id=request.issue_id, round_id=round_id)

        self._check_targets(targets)
        DispatchMetrics.round_started(len(targets))
        started_at = utcnow()

        if not targets:
            log_ctx.info("Dispatch round skipped: no targets in range")
            result = DispatchResult(
                round_id=round_id, outcomes=(), started_at=started_at, completed_at=utcnow(),
            )
            DispatchMetrics.round_completed(result.status.value)
            return result

        log_ctx.info(
            f"Dispatch round started: targets={len(targets)}, transport={self.transport_name}"
        )

        try:
            settled = await asyncio.gather(
                *(self._attempt(request, target, log_ctx) for target in targets),
                return_exceptions=True,
            )
        except Exception as exc:
            self._fault(log_ctx, exc)
            raise OrchestratorFault(f"Dispatch round failed: {exc.__class__.__name__}") from exc

        # Every unit has settled; anything that escaped its own isolation fails the round.
        escaped = next((s for s in settled if isinstance(s, BaseException)), None)
        if escaped is not None:
            self._fault(log_ctx, escaped)
            raise OrchestratorFault(
                f"Dispatch round failed: {escaped.__class__.__name__}"
            ) from escaped
        outcomes = settled

        result = DispatchResult(
            round_id=round_id,
            outcomes=tuple(outcomes),
            started_at=started_at,
            completed_at=utcnow(),
        )
        DispatchMetrics.round_completed(result.status.value)
        log_ctx.info(
            f"Dispatch round completed: status={result.status.value}, "
            f"succeeded={result.succeeded_count}/{result.total}"
        )
        return result

    @staticmethod
    def _fault(log_ctx: LogContext, exc: BaseException) -> None:
        DispatchMetrics.orchestrator_fault()
        log_ctx.error(
            f"Dispatch round failed: {exc.__class__.__name__}: {exc}",
            exc_info=exc,
        )

    def _check_targets(self, targets: list[DispatchTarget]) -> None:
        seen: set[str] = set()
        for target in targets:
            if target.id in seen:
                DispatchMetrics.orchestrator_fault()
                raise OrchestratorFault(f"Target {target.id!r} appears twice in one round")
            seen.add(target.id)
            if self._registry is not None and target.id not in self._registry:
                DispatchMetrics.orchestrator_fault()
                raise OrchestratorFault(f"Target {target.id!r} is not a registered dispatch target")

    async def _attempt(
        self,
        request: DispatchRequest,
        target: DispatchTarget,
        log_ctx: LogContext,
    ) -> DispatchOutcome:
        """One isolated unit of work: never raises for delivery problems."""
        target_log = log_ctx.bind(target_id=target.id)
        transport = self.transport_name

        try:
            with DispatchMetrics.track_delivery_time(transport):
                outcome = await self._transport.attempt_delivery(request, target)
        except TransportFailure as exc:
            target_log.warning(f"Delivery failed: {exc.detail}")
            DispatchMetrics.delivery_failed(target.id, transport)
            return DispatchOutcome.failed(
                target, f"Failed to submit to {target.display_name}: {exc.detail}",
            )
        except Exception as exc:
            target_log.error(
                f"Delivery raised unexpectedly: {exc.__class__.__name__}: {exc}",
                exc_info=True,
            )
            DispatchMetrics.delivery_failed(target.id, transport)
            reason = str(exc) or "Unknown error"
            return DispatchOutcome.failed(
                target, f"Failed to submit to {target.display_name}: {reason}",
            )

        return self._normalize(outcome, target, target_log)

    def _normalize(
        self,
        outcome: DispatchOutcome,
        target: DispatchTarget,
        target_log: LogContext,
    ) -> DispatchOutcome:
        transport = self.transport_name

        if not isinstance(outcome, DispatchOutcome) or outcome.target_id != target.id:
            target_log.error(f"Transport returned an outcome for the wrong target: {outcome!r}")
            DispatchMetrics.delivery_failed(target.id, transport)
            return DispatchOutcome.failed(
                target,
                f"Failed to submit to {target.display_name}: transport returned an invalid outcome",
            )

        if not outcome.success:
            target_log.warning(f"Delivery rejected: {outcome.message}")
            DispatchMetrics.delivery_failed(target.id, transport)
            return outcome

        if outcome.reference_id is None:
            outcome = replace(
                outcome, reference_id=make_reference_id(self._issuing_system, target.id),
            )
        target_log.info(f"Delivered: reference={outcome.reference_id}")
        DispatchMetrics.delivery_succeeded(target.id, transport)
        return outcome
