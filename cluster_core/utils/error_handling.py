"""
Error Handling Module

Provides the error handling infrastructure of the clustering engine:
- Custom exception hierarchy
- Validation reports separating fatal problems from advisory ones
"""

import time
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger(__name__)


# =============================================================================
# Custom Exception Hierarchy
# =============================================================================


class ClusteringEngineError(Exception):
    """Base exception for all clustering engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/CLI output."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(ClusteringEngineError):
    """Error in engine or algorithm configuration."""
    pass


# Clustering Errors
class ClusteringError(ClusteringEngineError):
    """Base class for clustering algorithm errors."""
    pass


class InvalidAlgorithmError(ClusteringError):
    """Unknown or unsupported clustering algorithm."""
    pass


class InsufficientDataError(ClusteringError):
    """Not enough data points (or attributes) for clustering."""
    pass


class InvalidDataError(ClusteringError):
    """Data contains values the algorithm cannot handle."""
    pass


class ClusteringCancelledError(ClusteringError):
    """Run was cancelled by the host."""
    pass


# =============================================================================
# Validation Reports
# =============================================================================


class Severity(str, Enum):
    """How a validation problem affects the run."""

    FATAL = "fatal"  # Rejected before any computation
    ADVISORY = "advisory"  # Run proceeds with degraded guarantees


class ValidationIssue(BaseModel):
    """A single problem found while checking the input of a run."""

    code: str = Field(..., description="Stable issue identifier")
    message: str = Field(..., description="Human readable description")
    severity: Severity = Field(default=Severity.FATAL)
    error_type: str = Field(default="ClusteringError", description="Exception raised for fatal issues")


_ERROR_TYPES = {
    "ClusteringError": ClusteringError,
    "InsufficientDataError": InsufficientDataError,
    "InvalidDataError": InvalidDataError,
    "ConfigurationError": ConfigurationError,
}


class ValidationReport(BaseModel):
    """Collected validation issues for one clustering run."""

    algorithm: str = ""
    issues: list[ValidationIssue] = Field(default_factory=list)

    def fatal(self, code: str, message: str, error_type: str = "ClusteringError") -> None:
        self.issues.append(
            ValidationIssue(code=code, message=message, severity=Severity.FATAL, error_type=error_type)
        )

    def advisory(self, code: str, message: str) -> None:
        self.issues.append(ValidationIssue(code=code, message=message, severity=Severity.ADVISORY))

    @property
    def fatal_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.FATAL]

    @property
    def advisory_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.ADVISORY]

    @property
    def is_valid(self) -> bool:
        """True if no fatal issue was recorded."""
        return not self.fatal_issues

    def raise_for_fatal(self) -> None:
        """
        Log advisory issues and raise the first fatal one.

        Raises:
            ClusteringError: Subclass matching the first fatal issue
        """
        for issue in self.advisory_issues:
            logger.warning(
                "validation_advisory",
                algorithm=self.algorithm,
                code=issue.code,
                message=issue.message,
            )

        fatal = self.fatal_issues
        if not fatal:
            return

        first = fatal[0]
        logger.error(
            "validation_failed",
            algorithm=self.algorithm,
            code=first.code,
            fatal_count=len(fatal),
        )
        error_class = _ERROR_TYPES.get(first.error_type, ClusteringError)
        raise error_class(
            first.message,
            error_code=first.code,
            details={"algorithm": self.algorithm, "issues": [i.code for i in fatal]},
        )
