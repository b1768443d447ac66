# civic_dispatch/infra/ledger.py
"""
Submission ledger: per-issue record of the latest dispatch round.

``record_round`` replaces the issue's current record wholesale with the
new round's outcomes (last writer wins).  The replaced record is not
discarded: every recorded round is also appended to the issue's history,
and each replacement is written to the audit log.

Two implementations:
- ``InMemorySubmissionLedger`` - process-local, for tests and demos
- ``JsonFileSubmissionLedger`` - same behaviour, rewritten atomically to
  a JSON file after each change and reloaded on startup

Every change is persisted before it becomes visible: if the write
fails, both memory and file keep the previous state.  Methods are
blocking; async callers run them in an executor.

Rounds for one issue must be serialized by the caller; the lock here
only protects the ledger's own dictionaries.
"""
from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any

from civic_dispatch.core.domain import (
    DispatchOutcome,
    DispatchResult,
    SubmissionRecord,
    utcnow,
)
from civic_dispatch.core.errors import LedgerLoadError
from civic_dispatch.infra.audit_log import audit_event
from civic_dispatch.infra.logging_config import get_logger

logger = get_logger(__name__)

_LEDGER_FORMAT_VERSION = 1


class InMemorySubmissionLedger:
    """Thread-safe in-process ledger."""

    def __init__(self) -> None:
        self._current: dict[str, SubmissionRecord] = {}
        self._history: dict[str, list[SubmissionRecord]] = {}
        self._lock = Lock()

    def open_issue(self, issue_id: str) -> SubmissionRecord:
        """Create the empty record a new issue starts with (no-op if it exists)."""
        with self._lock:
            existing = self._current.get(issue_id)
            if existing is not None:
                return existing
            record = SubmissionRecord(issue_id=issue_id)
            current = {**self._current, issue_id: record}
            history = {**self._history, issue_id: list(self._history.get(issue_id, []))}
            self._commit(current, history)

        audit_event("ledger.open", issue_id=issue_id)
        return record

    def record_round(self, issue_id: str, result: DispatchResult) -> SubmissionRecord:
        record = SubmissionRecord(
            issue_id=issue_id,
            outcomes=tuple(result.outcomes),
            round_id=result.round_id,
            recorded_at=utcnow(),
        )
        with self._lock:
            previous = self._current.get(issue_id)
            current = {**self._current, issue_id: record}
            history = {**self._history, issue_id: [*self._history.get(issue_id, []), record]}
            self._commit(current, history)

        replaced = previous.round_id if previous is not None and previous.round_id else "-"
        audit_event(
            "ledger.replace",
            issue_id=issue_id,
            round_id=result.round_id,
            detail=f"outcomes={len(record.outcomes)} replaced_round={replaced}",
            extra={"succeeded": result.succeeded_count},
        )
        return record

    def current_record(self, issue_id: str) -> SubmissionRecord:
        with self._lock:
            record = self._current.get(issue_id)
        return record if record is not None else SubmissionRecord(issue_id=issue_id)

    def history(self, issue_id: str) -> list[SubmissionRecord]:
        """All recorded rounds for the issue, oldest first."""
        with self._lock:
            return list(self._history.get(issue_id, []))

    def _commit(
        self,
        current: dict[str, SubmissionRecord],
        history: dict[str, list[SubmissionRecord]],
    ) -> None:
        """Persist the new state, then make it visible. A failed write changes nothing."""
        self._persist(current, history)
        self._current = current
        self._history = history

    def _persist(
        self,
        current: dict[str, SubmissionRecord],
        history: dict[str, list[SubmissionRecord]],
    ) -> None:
        """Called with the lock held, before the new state is swapped in."""


# ---------------------------------------------------------------------------
# JSON serialization
# ---------------------------------------------------------------------------

def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _outcome_to_dict(outcome: DispatchOutcome) -> dict[str, Any]:
    return {
        "target_id": outcome.target_id,
        "target_display_name": outcome.target_display_name,
        "success": outcome.success,
        "message": outcome.message,
        "reference_id": outcome.reference_id,
        "timestamp": _dt_to_str(outcome.timestamp),
    }


def _outcome_from_dict(data: dict[str, Any]) -> DispatchOutcome:
    return DispatchOutcome(
        target_id=data["target_id"],
        target_display_name=data["target_display_name"],
        success=bool(data["success"]),
        message=data.get("message", ""),
        reference_id=data.get("reference_id"),
        timestamp=_dt_from_str(data.get("timestamp")) or utcnow(),
    )


def _record_to_dict(record: SubmissionRecord) -> dict[str, Any]:
    return {
        "issue_id": record.issue_id,
        "round_id": record.round_id,
        "recorded_at": _dt_to_str(record.recorded_at),
        "outcomes": [_outcome_to_dict(o) for o in record.outcomes],
    }


def _record_from_dict(data: dict[str, Any]) -> SubmissionRecord:
    return SubmissionRecord(
        issue_id=data["issue_id"],
        outcomes=tuple(_outcome_from_dict(o) for o in data.get("outcomes", [])),
        round_id=data.get("round_id"),
        recorded_at=_dt_from_str(data.get("recorded_at")),
    )


class JsonFileSubmissionLedger(InMemorySubmissionLedger):
    """Ledger persisted as one JSON document, rewritten atomically."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            logger.info(f"Submission ledger starts empty: {self._path}")
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise LedgerLoadError(f"Cannot read submission ledger {self._path}: {exc}") from exc

        try:
            for issue_id, entry in data.get("issues", {}).items():
                self._history[issue_id] = [
                    _record_from_dict(r) for r in entry.get("history", [])
                ]
                current = entry.get("current")
                self._current[issue_id] = (
                    _record_from_dict(current) if current else SubmissionRecord(issue_id=issue_id)
                )
        except (KeyError, AttributeError, TypeError, ValueError) as exc:
            raise LedgerLoadError(
                f"Submission ledger {self._path} is corrupted: {exc.__class__.__name__}: {exc}"
            ) from exc

        logger.info(f"Submission ledger loaded: {len(self._current)} issue(s) from {self._path}")

    def _persist(
        self,
        current: dict[str, SubmissionRecord],
        history: dict[str, list[SubmissionRecord]],
    ) -> None:
        document = {
            "version": _LEDGER_FORMAT_VERSION,
            "issues": {
                issue_id: {
                    "current": _record_to_dict(record),
                    "history": [_record_to_dict(r) for r in history.get(issue_id, [])],
                }
                for issue_id, record in current.items()
            },
        }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def get_submission_ledger(path: str | Path | None = None) -> InMemorySubmissionLedger:
    """JSON-backed ledger when a path is given, in-memory otherwise."""
    if path:
        return JsonFileSubmissionLedger(path)
    logger.warning("No ledger path configured, submission records are kept in memory only")
    return InMemorySubmissionLedger()
