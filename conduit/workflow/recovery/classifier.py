"""
Conduit Error Classifier

Maps raised errors to an error type and a severity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

from conduit.workflow.types import ErrorSeverity, ErrorType


@dataclass(frozen=True)
class Classification:
    """Result of classifying an error."""
    type: ErrorType
    severity: ErrorSeverity


class ErrorClassifier(Protocol):
    """Anything that can classify an exception."""

    def classify(self, error: BaseException) -> Classification:
        ...


class KeywordErrorClassifier:
    """
    Heuristic classifier based on case-insensitive keyword matches in the
    error message. The first matching rule wins.
    """

    TYPE_RULES: Sequence[Tuple[ErrorType, Tuple[str, ...]]] = (
        (ErrorType.NETWORK, ("network", "fetch", "connection")),
        (ErrorType.TIMEOUT, ("timeout", "deadline")),
        (ErrorType.VALIDATION, ("validation", "invalid", "required")),
        (ErrorType.SYSTEM, ("system", "internal", "server")),
    )

    SEVERITY_RULES: Sequence[Tuple[ErrorSeverity, Tuple[str, ...]]] = (
        (ErrorSeverity.CRITICAL, ("critical", "fatal", "crash")),
        (ErrorSeverity.HIGH, ("error", "failed", "exception")),
        (ErrorSeverity.MEDIUM, ("warning", "deprecated")),
    )

    def classify(self, error: BaseException) -> Classification:
        message = str(error).lower()
        return Classification(
            type=self.classify_type(message),
            severity=self.classify_severity(message),
        )

    def classify_type(self, message: str) -> ErrorType:
        for error_type, keywords in self.TYPE_RULES:
            if any(k in message for k in keywords):
                return error_type
        return ErrorType.EXECUTION

    def classify_severity(self, message: str) -> ErrorSeverity:
        for severity, keywords in self.SEVERITY_RULES:
            if any(k in message for k in keywords):
                return severity
        return ErrorSeverity.LOW
