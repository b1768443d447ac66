# civic_dispatch/infra/audit_log.py
"""
Audit logging for submission record changes.

Every replacement of an issue's submission record is written to a
dedicated audit logger (separate from the application log) with
structured context, so the overwritten round can still be traced.

Events are logged at INFO level to a logger named "audit" so they
can be routed to a separate file / sink via logging configuration.
"""
from __future__ import annotations

import logging
from typing import Any

_audit_logger = logging.getLogger("audit")


def audit_event(
    action: str,
    *,
    issue_id: str | None = None,
    round_id: str | None = None,
    detail: str = "",
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Record an audit event.

    Args:
        action: Action name (e.g., "ledger.replace", "ledger.open")
        issue_id: Issue affected (if applicable)
        round_id: Dispatch round affected (if applicable)
        detail: Human-readable detail
        extra: Additional structured context
    """
    record = {
        "audit_action": action,
        "issue_id": issue_id or "",
        "round_id": round_id or "",
        "detail": detail,
    }
    if extra:
        record.update(extra)

    _audit_logger.info(
        f"AUDIT: {action} issue={issue_id or '-'} round={round_id or '-'} {detail}",
        extra=record,
    )
