"""Error types and issue tracking for AdaRank training."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class IssueSeverity(Enum):
    """Issue severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueKind(Enum):
    """Recoverable conditions reported through a fit result."""
    DEGENERATE_QUERY = "degenerate_query"
    CONVERGENCE_FAILURE = "convergence_failure"
    NUMERIC_INSTABILITY = "numeric_instability"
    FEATURE_SATURATED = "feature_saturated"


class AdaRankError(Exception):
    """Base exception for AdaRank errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmptyDataSetError(AdaRankError):
    """Raised when a dataset holds no queries."""
    pass


class NoFeaturesError(AdaRankError):
    """Raised when no feature index is available for weak rankers."""
    pass


class FormatError(AdaRankError):
    """Raised by the loader on a malformed input line."""

    def __init__(self, message: str, line_number: Optional[int] = None, line: Optional[str] = None):
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message, {"line_number": line_number, "line": line})
        self.line_number = line_number
        self.line = line


class ConvergenceFailure(AdaRankError):
    """The aggregate metric never improved after the first round."""
    pass


class NumericInstabilityError(AdaRankError):
    """The confidence computation hit the clamp boundary repeatedly."""
    pass


class ModelNotTrainedError(AdaRankError):
    """Raised when a prediction is requested from an untrained model."""
    pass


class DegenerateQueryWarning(UserWarning):
    """A query has no relevant document and contributes 0 to the metric."""
    pass


@dataclass
class TrainingIssue:
    """Record of a recoverable condition observed during training."""
    kind: IssueKind
    message: str
    severity: IssueSeverity
    round: Optional[int] = None
    query_id: Optional[Any] = None
    error: Optional[AdaRankError] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the issue to a dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "round": self.round,
            "query_id": self.query_id,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }


class IssueTracker:
    """Collects, counts and logs recoverable training issues."""

    def __init__(self):
        self.issues: List[TrainingIssue] = []
        self.issue_counts: Dict[str, int] = {}

    def record(self, kind: IssueKind, message: str,
               severity: IssueSeverity = IssueSeverity.MEDIUM,
               round: Optional[int] = None,
               query_id: Optional[Any] = None,
               error: Optional[AdaRankError] = None) -> TrainingIssue:
        """Record an issue.

        Args:
            kind: Issue kind
            message: Human readable description
            severity: Severity used to pick the log level
            round: Boosting round the issue belongs to, if any
            query_id: Query the issue belongs to, if any
            error: Exception instance describing the condition, if any

        Returns:
            The recorded issue
        """
        issue = TrainingIssue(
            kind=kind,
            message=message,
            severity=severity,
            round=round,
            query_id=query_id,
            error=error,
        )
        self.issues.append(issue)
        self.issue_counts[kind.value] = self.issue_counts.get(kind.value, 0) + 1
        self._log_issue(issue)
        return issue

    def _log_issue(self, issue: TrainingIssue) -> None:
        log_message = f"[{issue.kind.value}] {issue.message}"

        if issue.severity == IssueSeverity.CRITICAL:
            logger.critical(log_message)
        elif issue.severity == IssueSeverity.HIGH:
            logger.error(log_message)
        elif issue.severity == IssueSeverity.MEDIUM:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def count(self, kind: IssueKind) -> int:
        return self.issue_counts.get(kind.value, 0)

    def errors(self) -> List[AdaRankError]:
        """Exceptions attached to the recorded issues."""
        return [issue.error for issue in self.issues if issue.error is not None]

    def get_statistics(self) -> Dict[str, Any]:
        """Get issue statistics.

        Returns:
            Dictionary containing issue statistics
        """
        return {
            "total_issues": len(self.issues),
            "issue_counts_by_kind": dict(self.issue_counts),
        }

    def reset(self) -> None:
        self.issues.clear()
        self.issue_counts.clear()
