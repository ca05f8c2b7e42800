"""
Result Aggregator for turning per-challenge outcomes into a session verdict
"""
import logging
import time
from typing import Any, Dict, Optional, Sequence

from ..models.data_models import ChallengeResult, FailureReason, VerificationReport

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Folds per-challenge results into one read-only VerificationReport"""

    def finalize(
        self,
        results: Sequence[ChallengeResult],
        expected_count: int,
        failure_reason: Optional[FailureReason] = None,
        completed_at: Optional[float] = None
    ) -> VerificationReport:
        """
        Compute the session verdict.

        The session passes only if every recorded result passed and there is
        one result per challenge in the sequence.

        Args:
            results: Per-challenge results in completion order
            expected_count: Length of the session's challenge list
            failure_reason: Why the session ended early, if it did
            completed_at: Completion timestamp (defaults to now)

        Returns:
            VerificationReport: Frozen verdict
        """
        failed = next((r for r in results if not r.passed), None)
        overall_passed = (
            failed is None
            and failure_reason is None
            and len(results) == expected_count
        )

        report = VerificationReport(
            overall_passed=overall_passed,
            failed_challenge=failed.challenge if failed else None,
            completed_at=completed_at if completed_at is not None else time.time(),
            results=list(results),
            failure_reason=failure_reason
        )
        logger.info(
            f"Session finalized: passed={overall_passed}, "
            f"results={len(results)}/{expected_count}, "
            f"reason={failure_reason.value if failure_reason else None}"
        )
        return report

    def summarize(self, report: VerificationReport) -> Dict[str, Any]:
        """
        Build a diagnostic summary of a report.

        Includes everything from VerificationReport.to_dict() plus
        pass counts and total time spent on challenges.
        """
        summary = report.to_dict()
        passed = sum(1 for r in report.results if r.passed)
        summary["passed_count"] = passed
        summary["failed_count"] = len(report.results) - passed
        summary["total_elapsed_seconds"] = round(
            sum(r.elapsed_seconds for r in report.results), 3
        )
        return summary
