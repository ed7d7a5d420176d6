"""
Apply Executor

Applies an ordered operation list sequentially. A failed operation is
recorded and the run continues with the operations that do not depend on
it; nothing is rolled back.
"""

import logging
from typing import Optional

from .errors import DependencyOrderError, RemoteOperationError
from .operations import Operation, OperationStatus, RunContext
from .remote_store import RemoteStore

logger = logging.getLogger(__name__)


class OperationOutcome:
    def __init__(self, operation: Operation, status: OperationStatus, error: Optional[str] = None):
        self.operation = operation
        self.status = status
        self.error = error

    def to_dict(self) -> dict:
        result = self.operation.to_dict()
        result["status"] = self.status.value
        if self.error:
            result["error"] = self.error
        return result

    def __repr__(self):
        return f"OperationOutcome({self.operation!r}, {self.status.value})"


class ApplyReport:
    """Per-operation outcomes of one apply."""

    def __init__(self, outcomes: list[OperationOutcome]):
        self.outcomes = outcomes

    @property
    def failed(self) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.status is OperationStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def count(self, status: OperationStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "applied": self.count(OperationStatus.APPLIED),
            "skipped": self.count(OperationStatus.SKIPPED),
            "failed": self.count(OperationStatus.FAILED),
            "operations": [o.to_dict() for o in self.outcomes],
        }


class ApplyExecutor:
    def __init__(self, store: RemoteStore, context: Optional[RunContext] = None):
        self.store = store
        self.context = context or RunContext()

    def _blocking_failure(self, operation: Operation, outcomes: dict[str, OperationOutcome]) -> Optional[str]:
        for key in operation.depends_on:
            outcome = outcomes.get(key)
            if outcome is None:
                raise DependencyOrderError(f"{operation.describe()} was attempted before its prerequisite {key}")
            if outcome.status is OperationStatus.FAILED:
                return key
        return None

    def apply(self, operations: list[Operation]) -> ApplyReport:
        logger.info(f"Applying {len(operations)} operation(s)...")
        outcomes: dict[str, OperationOutcome] = {}
        ordered = []
        for operation in operations:
            blocked_by = self._blocking_failure(operation, outcomes)
            if blocked_by:
                logger.error(f"{operation.describe()} not attempted: prerequisite {blocked_by} failed")
                outcome = OperationOutcome(operation, OperationStatus.FAILED,
                                           f"blocked by failed prerequisite {blocked_by}")
            else:
                try:
                    changed = operation.apply(self.store, self.context)
                    status = OperationStatus.APPLIED if changed else OperationStatus.SKIPPED
                    outcome = OperationOutcome(operation, status)
                except RemoteOperationError as e:
                    logger.error(f"{operation.describe()} failed: {e}")
                    outcome = OperationOutcome(operation, OperationStatus.FAILED, str(e))
            outcomes[operation.key] = outcome
            ordered.append(outcome)

        report = ApplyReport(ordered)
        logger.info(f"Apply finished: {report.count(OperationStatus.APPLIED)} applied, "
                    f"{report.count(OperationStatus.SKIPPED)} skipped, "
                    f"{report.count(OperationStatus.FAILED)} failed")
        return report
