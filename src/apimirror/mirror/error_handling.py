"""
Failure isolation for per-resource operations.

Every export, import and link step runs through ``FailureIsolationPolicy.run``:
a failure is logged with its kind, id and phase, recorded in the run summary and
returned as an outcome so the surrounding loop moves on to the next resource.
Nothing already written is rolled back.
"""

import logging
import traceback
from typing import Callable, Optional, Union

from .exceptions import ErrorCategory, StructuralError, categorize
from .models import OperationOutcome, ResourceKind, RunSummary

logger = logging.getLogger(__name__)

Work = Callable[[], Optional[OperationOutcome]]


class FailureIsolationPolicy:
    """Wraps units of work so one failure never aborts the batch."""

    def __init__(self, summary: RunSummary, log: Optional[logging.Logger] = None):
        self.summary = summary
        self.logger = log or logger

    def run(
        self,
        kind: Union[ResourceKind, str],
        resource_id: str,
        phase: str,
        work: Work,
        record: bool = True,
    ) -> OperationOutcome:
        """
        Execute one unit of work.

        Args:
            kind: Resource kind (or another label such as "links")
            resource_id: Id of the resource the work is about
            phase: Step name, e.g. "export-definition" or "import-entity"
            work: Callable returning an outcome; returning None means applied
            record: Whether to add the outcome to the run summary

        Returns:
            The outcome of the work, or a failed outcome if it raised
        """
        kind_label = kind.value if isinstance(kind, ResourceKind) else kind
        try:
            outcome = work()
            if outcome is None:
                outcome = OperationOutcome.applied(kind_label, resource_id, phase)
        except StructuralError:
            raise
        except Exception as e:
            category = categorize(e)
            self.logger.warning(
                f"{phase} failed for {kind_label}/{resource_id} ({category.value}): {e}"
            )
            if category == ErrorCategory.INTERNAL:
                self.logger.debug(traceback.format_exc())
            outcome = OperationOutcome.failed(kind_label, resource_id, phase, str(e), category)

        if record:
            self.summary.record(outcome)
        return outcome

    def attempt(
        self, kind: Union[ResourceKind, str], resource_id: str, phase: str, work: Work
    ) -> OperationOutcome:
        """Run a sub-step whose outcome the caller folds into a larger one."""
        return self.run(kind, resource_id, phase, work, record=False)
