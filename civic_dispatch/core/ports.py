# civic_dispatch/core/ports.py
from __future__ import annotations
from typing import Protocol
from civic_dispatch.core.domain import (
    DispatchOutcome,
    DispatchRequest,
    DispatchResult,
    DispatchTarget,
    SubmissionRecord,
)


class DeliveryTransport(Protocol):
    name: str

    async def attempt_delivery(self, request: DispatchRequest, target: DispatchTarget) -> DispatchOutcome:
        """
        Deliver one report to one target.

        Return a successful outcome, or raise ``TransportFailure`` (or any
        other exception) when delivery did not happen.  The orchestrator
        converts every exception into a failed outcome.
        """
        ...


class SubmissionLedger(Protocol):
    def open_issue(self, issue_id: str) -> SubmissionRecord: ...

    def record_round(self, issue_id: str, result: DispatchResult) -> SubmissionRecord:
        """Replace the issue's current record with this round's outcomes."""
        ...

    def current_record(self, issue_id: str) -> SubmissionRecord: ...

    def history(self, issue_id: str) -> list[SubmissionRecord]: ...
