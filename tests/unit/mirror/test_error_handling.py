"""
Unit tests for failure isolation.
"""

from unittest.mock import Mock

import pytest

from src.apimirror.mirror.error_handling import FailureIsolationPolicy
from src.apimirror.mirror.exceptions import (
    DecodeError,
    ErrorCategory,
    ResourceNotFoundError,
    StructuralError,
    TransportError,
    categorize,
)
from src.apimirror.mirror.models import OperationOutcome, OutcomeStatus, ResourceKind, RunSummary


class TestFailureIsolationPolicy:
    """Test cases for FailureIsolationPolicy."""

    @pytest.fixture
    def summary(self):
        return RunSummary("export")

    @pytest.fixture
    def policy(self, summary):
        return FailureIsolationPolicy(summary, log=Mock())

    def test_none_result_counts_as_applied(self, policy, summary):
        outcome = policy.run(ResourceKind.APIS, "orders-api", "export", lambda: None)

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.kind == "apis"
        assert summary.outcomes == [outcome]

    def test_returned_outcome_is_recorded(self, policy, summary):
        skipped = OperationOutcome.skipped("apis", "orders-api", "import", "dry run")

        assert policy.run(ResourceKind.APIS, "orders-api", "import", lambda: skipped) is skipped
        assert summary.counts()["apis"].skipped == 1

    def test_exception_becomes_failed_outcome(self, policy, summary):
        def work():
            raise TransportError("timed out", status_code=None)

        outcome = policy.run(ResourceKind.BACKENDS, "payments", "export-entity", work)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.category == ErrorCategory.TRANSPORT
        assert outcome.reason == "timed out"
        assert summary.failures() == [outcome]
        policy.logger.warning.assert_called_once()

    def test_unexpected_exception_is_internal(self, policy):
        def work():
            raise RuntimeError("bug")

        outcome = policy.run("links", "a -> b", "link", work)

        assert outcome.category == ErrorCategory.INTERNAL
        assert outcome.kind == "links"

    def test_structural_error_propagates(self, policy, summary):
        def work():
            raise StructuralError("snapshot missing")

        with pytest.raises(StructuralError):
            policy.run(ResourceKind.APIS, "orders-api", "import", work)
        assert summary.outcomes == []

    def test_attempt_does_not_record(self, policy, summary):
        def work():
            raise DecodeError("bad")

        outcome = policy.attempt(ResourceKind.APIS, "orders-api", "export-definition", work)

        assert outcome.status == OutcomeStatus.FAILED
        assert summary.outcomes == []


class TestCategorize:
    """Test cases for categorize."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (TransportError("x"), ErrorCategory.TRANSPORT),
            (DecodeError("x"), ErrorCategory.DECODE),
            (ResourceNotFoundError("x"), ErrorCategory.NOT_FOUND),
            (ValueError("x"), ErrorCategory.DECODE),
            (KeyError("x"), ErrorCategory.DECODE),
            (PermissionError("x"), ErrorCategory.VALIDATION),
            (RuntimeError("x"), ErrorCategory.INTERNAL),
        ],
    )
    def test_categories(self, error, expected):
        assert categorize(error) == expected


class TestRunSummary:
    """Test cases for RunSummary aggregation."""

    def test_counts_and_warnings(self):
        summary = RunSummary("import")
        summary.record(OperationOutcome.applied("apis", "a", "import", ["policy not applied: x"]))
        summary.record(OperationOutcome.skipped("apis", "b", "import", "dry run"))
        summary.record(OperationOutcome.failed("products", "p", "import", "boom"))
        summary.warn("product-apis.csv: line 3 rejected")

        counts = summary.counts()
        assert (counts["apis"].attempted, counts["apis"].applied, counts["apis"].skipped) == (2, 1, 1)
        assert counts["products"].failed == 1
        assert summary.has_failures
        assert summary.outcome_warnings() == [
            "product-apis.csv: line 3 rejected",
            "apis/a: policy not applied: x",
        ]
        assert summary.applied_ids("apis") == ["a"]

        data = summary.finish().to_dict()
        assert data["operation"] == "import"
        assert data["counts"]["products"] == {"attempted": 1, "applied": 0, "skipped": 0, "failed": 1}
        assert data["failures"][0]["resource_id"] == "p"
