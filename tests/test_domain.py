# tests/test_domain.py
"""Tests for domain types: categories, requests, outcomes, round results."""
from __future__ import annotations

from dataclasses import replace

import pytest

from civic_dispatch.core.domain import (
    ANONYMOUS_REPORTER,
    DispatchOutcome,
    DispatchResult,
    IssueCategory,
    RoundStatus,
    SubmissionRecord,
)
from civic_dispatch.core.errors import UnknownCategoryError

from conftest import make_target


class TestIssueCategory:

    @pytest.mark.parametrize("raw,expected", [
        ("roads", IssueCategory.ROADS),
        ("  Lighting ", IssueCategory.LIGHTING),
        ("WATER-SUPPLY", IssueCategory.WATER_SUPPLY),
        ("public-safety", IssueCategory.PUBLIC_SAFETY),
        (IssueCategory.OBSTRUCTIONS, IssueCategory.OBSTRUCTIONS),
    ])
    def test_parse(self, raw, expected):
        assert IssueCategory.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["parking", "", "water supply", "road"])
    def test_parse_rejects_unknown(self, raw):
        with pytest.raises(UnknownCategoryError):
            IssueCategory.parse(raw)

    def test_every_category_has_label_and_description(self):
        for category in IssueCategory:
            assert category.label
            assert category.description

    def test_labels(self):
        assert IssueCategory.WATER_SUPPLY.label == "Water Supply"
        assert IssueCategory.PUBLIC_SAFETY.label == "Public Safety"


class TestDispatchRequest:

    def test_reporter_label(self, sample_request):
        assert sample_request.reporter_label == "Asha Rao"

    def test_anonymous_reporter_label(self, sample_request):
        assert replace(sample_request, is_anonymous=True).reporter_label == ANONYMOUS_REPORTER


class TestDispatchOutcome:

    def test_succeeded_defaults(self):
        outcome = DispatchOutcome.succeeded(make_target("t1"), reference_id="MC-T1-1")
        assert outcome.success is True
        assert outcome.target_display_name == "T1 Municipal Corporation"
        assert outcome.message == "Successfully submitted to T1 Municipal Corporation"
        assert outcome.timestamp.tzinfo is not None

    def test_failed_has_no_reference(self):
        outcome = DispatchOutcome.failed(make_target("t1"), "Failed to submit")
        assert outcome.success is False
        assert outcome.reference_id is None

    def test_failed_with_reference_rejected(self):
        with pytest.raises(ValueError):
            DispatchOutcome(
                target_id="t1", target_display_name="T1", success=False,
                message="x", reference_id="MC-T1-1",
            )


class TestDispatchResult:

    def _outcomes(self, *flags):
        return tuple(
            DispatchOutcome.succeeded(make_target(f"t{i}"), reference_id=f"r{i}") if ok
            else DispatchOutcome.failed(make_target(f"t{i}"), "x")
            for i, ok in enumerate(flags)
        )

    def test_empty(self):
        result = DispatchResult(round_id="r", outcomes=())
        assert result.status is RoundStatus.NO_TARGETS
        assert result.aggregate_success is False
        assert result.total == 0

    def test_any_success_is_aggregate_success(self):
        result = DispatchResult(round_id="r", outcomes=self._outcomes(False, True, False))
        assert result.aggregate_success is True
        assert result.status is RoundStatus.DISPATCHED
        assert result.succeeded_count == 1

    def test_all_failed(self):
        result = DispatchResult(round_id="r", outcomes=self._outcomes(False, False))
        assert result.status is RoundStatus.ALL_FAILED
        assert result.aggregate_success is False


class TestSubmissionRecord:

    def test_empty_by_default(self):
        assert SubmissionRecord(issue_id="i").is_empty
