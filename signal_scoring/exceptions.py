"""
Signal Scoring - Exceptions.

============================================================
CUSTOM EXCEPTIONS
============================================================

All exceptions for the signal scoring core:
- SignalScoringError: Base exception
- MalformedObservationError: Caller contract violation
- MissingDependencyError: Derived indicator lacks upstream data
- ScorerNotFoundError: No scorer registered for an indicator
- ConfigurationError: Invalid configuration
- PersistenceError: Snapshot store read or write failed

============================================================
FAILURE POLICY
============================================================

- Missing history is NEVER an exception
- Malformed observations fail loudly (a silently wrong
  traffic light is worse than a raised error)
- Failures are local to one indicator for one pass; the
  engine converts them to ERROR signals and keeps going

============================================================
"""

from typing import Any, Dict, Optional


class SignalScoringError(Exception):
    """
    Base exception for signal scoring errors.

    All signal scoring exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        indicator_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            indicator_id: Indicator the error relates to
            details: Additional error details
        """
        self.message = message
        self.indicator_id = indicator_id
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message."""
        if self.indicator_id is not None:
            return f"[indicator {int(self.indicator_id)}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "indicator_id": int(self.indicator_id) if self.indicator_id is not None else None,
            "details": self.details,
        }


class MalformedObservationError(SignalScoringError):
    """
    Raised when an observation violates the caller contract.

    Examples: NaN computed value on a successful fetch, a
    failed fetch carrying a non-error signal, or a raw
    payload missing a field the scorer requires.
    """

    def __init__(
        self,
        reason: str,
        indicator_id: Optional[int] = None,
        field_name: Optional[str] = None,
        value: Any = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if field_name:
            details["field"] = field_name
        if value is not None:
            details["value"] = repr(value)

        super().__init__(
            message=f"Malformed observation: {reason}",
            indicator_id=indicator_id,
            details=details,
        )


class MissingDependencyError(SignalScoringError):
    """
    Raised when a derived indicator's upstream observation
    is missing, failed, or fallback-tagged.

    Derived scorers catch this and emit an ERROR signal.
    """

    def __init__(
        self,
        indicator_id: int,
        dependency_id: int,
        reason: str,
    ) -> None:
        self.dependency_id = dependency_id
        super().__init__(
            message=f"Upstream indicator {int(dependency_id)} unusable: {reason}",
            indicator_id=indicator_id,
            details={"dependency_id": int(dependency_id), "reason": reason},
        )


class ScorerNotFoundError(SignalScoringError):
    """Raised when no scorer is registered for an indicator."""

    def __init__(self, indicator_id: int) -> None:
        super().__init__(
            message="No scorer registered",
            indicator_id=indicator_id,
        )


class ConfigurationError(SignalScoringError):
    """
    Raised when configuration is invalid.

    Configuration errors should be caught at startup.
    """

    def __init__(
        self,
        parameter: str,
        reason: str,
        value: Any = None,
    ) -> None:
        self.parameter = parameter
        super().__init__(
            message=f"Invalid configuration for {parameter}: {reason}",
            details={"parameter": parameter, "value": repr(value)},
        )


class PersistenceError(SignalScoringError):
    """
    Raised when the snapshot store fails.

    Persistence failures are never swallowed; the caller's
    transaction is rolled back and the error re-raised.
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        super().__init__(
            message=f"{operation} failed: {reason}",
            details={"operation": operation},
        )
