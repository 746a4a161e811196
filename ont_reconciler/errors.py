"""Error taxonomy and reporting for the ONT intent reconciler.

This module provides the exception classes raised and recorded while a device
run is detected, validated, resolved and diffed, together with a central
reporter that keeps an error history and logs each error by severity.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime, timedelta


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors, one per failure class of a run."""
    DETECTION = "detection"
    POLICY = "policy"
    RESOLUTION = "resolution"
    DATA_FORMAT = "data_format"
    WRITE = "write"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Context information for error reporting."""
    operation: str
    component: str
    timestamp: datetime = field(default_factory=datetime.now)
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging."""
        return {
            'operation': self.operation,
            'component': self.component,
            'timestamp': self.timestamp.isoformat(),
            'correlation_id': self.correlation_id,
            'metadata': self.metadata
        }


@dataclass
class RecoveryAction:
    """Describes an operator action that can address an error."""
    action_type: str
    description: str
    automatic: bool = False
    parameters: Dict[str, Any] = field(default_factory=dict)


class ReconcilerError(Exception):
    """Base exception class for all reconciler errors.

    Carries category, severity, context and suggested recovery actions so
    errors can be recorded on a run result and reported uniformly.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        error_code: Optional[str] = None
    ):
        """Initialize ReconcilerError.

        Args:
            message: Human-readable error message
            category: Error category for classification
            severity: Error severity level
            context: Context information about the error
            cause: Original exception that caused this error
            recovery_actions: List of suggested recovery actions
            error_code: Unique error code for programmatic handling
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext(operation="unknown", component="unknown")
        self.cause = cause
        self.recovery_actions = recovery_actions or []
        self.timestamp = datetime.now()
        self.error_code = error_code or self._generate_error_code()

    def _generate_error_code(self) -> str:
        """Generate an error code based on category and timestamp."""
        timestamp_str = self.timestamp.strftime("%Y%m%d%H%M%S")
        return f"ONT_{self.category.value.upper()}_{timestamp_str}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and serialization."""
        return {
            'error_code': self.error_code,
            'error_type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'timestamp': self.timestamp.isoformat(),
            'context': self.context.to_dict() if self.context else None,
            'cause': str(self.cause) if self.cause else None,
            'recovery_actions': [
                {
                    'action_type': action.action_type,
                    'description': action.description,
                    'automatic': action.automatic,
                    'parameters': action.parameters
                }
                for action in self.recovery_actions
            ]
        }

    def get_user_message(self) -> str:
        """Get a user-friendly error message with recovery suggestions."""
        msg = f"Error: {self.message}"

        if self.recovery_actions:
            msg += "\n\nSuggested actions:"
            for i, action in enumerate(self.recovery_actions, 1):
                msg += f"\n{i}. {action.description}"

        return msg

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class DetectionError(ReconcilerError):
    """Raised when the device identity cannot be read at all.

    Fatal for the run: no parameter reads or writes are attempted.
    """

    def __init__(
        self,
        message: str,
        attribute: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        recovery_actions = [
            RecoveryAction(
                action_type="check_inform",
                description="Verify the device completed an inform and reported its DeviceID"
            ),
            RecoveryAction(
                action_type="refresh_identity",
                description="Refresh the device identity attributes in the store"
            )
        ]

        super().__init__(
            message=message,
            category=ErrorCategory.DETECTION,
            severity=ErrorSeverity.CRITICAL,
            context=context,
            cause=cause,
            recovery_actions=recovery_actions
        )

        self.attribute = attribute


class PolicyError(ReconcilerError):
    """Raised when an intent document is malformed or misses a required field.

    Non-fatal: only the intent depending on the field is dropped.
    """

    def __init__(
        self,
        message: str,
        section: Optional[str] = None,
        field_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        recovery_actions = [
            RecoveryAction(
                action_type="fix_policy",
                description=f"Fix policy section '{section}'" + (f" field '{field_name}'" if field_name else ""),
                parameters={"section": section, "field": field_name}
            )
        ]

        super().__init__(
            message=message,
            category=ErrorCategory.POLICY,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            cause=cause,
            recovery_actions=recovery_actions
        )

        self.section = section
        self.field_name = field_name


class PathNotFoundError(ReconcilerError):
    """Raised when no candidate path exists for a capability on a device."""

    def __init__(
        self,
        message: str,
        capability: Optional[str] = None,
        candidates_tried: Optional[Sequence[str]] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        recovery_actions = [
            RecoveryAction(
                action_type="extend_registry",
                description=f"Add a path candidate for '{capability}' matching this vendor/schema",
                parameters={"capability": capability}
            )
        ]

        super().__init__(
            message=message,
            category=ErrorCategory.RESOLUTION,
            severity=ErrorSeverity.LOW,
            context=context,
            cause=cause,
            recovery_actions=recovery_actions
        )

        self.capability = capability
        self.candidates_tried = list(candidates_tried or [])


class NumericParseError(ReconcilerError):
    """Raised when a value expected to be numeric cannot be parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        raw_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DATA_FORMAT,
            severity=ErrorSeverity.LOW,
            context=context,
            cause=cause,
            recovery_actions=[
                RecoveryAction(
                    action_type="inspect_parameter",
                    description=f"Inspect the raw value reported at {path}",
                    parameters={"path": path, "raw_value": raw_value}
                )
            ]
        )

        self.path = path
        self.raw_value = raw_value


class WriteFailure(ReconcilerError):
    """Raised when the parameter store rejects a write."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        value: Optional[Any] = None,
        error_kind: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        recovery_actions = [
            RecoveryAction(
                action_type="check_writable",
                description=f"Check that {path} is writable on this firmware"
            ),
            RecoveryAction(
                action_type="rerun",
                description="Re-run reconciliation once the device accepts the value"
            )
        ]

        super().__init__(
            message=message,
            category=ErrorCategory.WRITE,
            severity=ErrorSeverity.HIGH,
            context=context,
            cause=cause,
            recovery_actions=recovery_actions
        )

        self.path = path
        self.value = value
        self.error_kind = error_kind


class ConfigurationError(ReconcilerError):
    """Raised when configuration or registry overrides are invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        recovery_actions = [
            RecoveryAction(
                action_type="check_config_file",
                description="Verify configuration file exists and is readable"
            )
        ]

        if config_key:
            recovery_actions.append(
                RecoveryAction(
                    action_type="fix_config_key",
                    description=f"Fix configuration key: {config_key}",
                    parameters={"config_key": config_key, "actual_value": actual_value}
                )
            )

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            context=context,
            cause=cause,
            recovery_actions=recovery_actions
        )

        self.config_key = config_key
        self.actual_value = actual_value


class ErrorReporter:
    """Centralized error reporting and logging system."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize ErrorReporter.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or logging.getLogger(__name__)
        self.error_history: List[ReconcilerError] = []

    def report_error(self, error: ReconcilerError) -> None:
        """Report an error with a logging level derived from its severity."""
        self.error_history.append(error)

        # 'message' would clash with the LogRecord attribute
        log_extra = {k: v for k, v in error.to_dict().items() if k != 'message'}

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(f"CRITICAL ERROR: {error}", extra=log_extra)
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error(f"ERROR: {error}", extra=log_extra)
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(f"WARNING: {error}", extra=log_extra)
        else:
            self.logger.info(f"INFO: {error}", extra=log_extra)

    def get_error_summary(self, time_window: Optional[timedelta] = None) -> Dict[str, Any]:
        """Get a summary of errors within a time window (default: last hour)."""
        if time_window is None:
            time_window = timedelta(hours=1)

        cutoff_time = datetime.now() - time_window
        recent_errors = [
            error for error in self.error_history
            if error.timestamp >= cutoff_time
        ]

        category_counts: Dict[str, int] = {}
        severity_counts: Dict[str, int] = {}

        for error in recent_errors:
            category_counts[error.category.value] = category_counts.get(error.category.value, 0) + 1
            severity_counts[error.severity.value] = severity_counts.get(error.severity.value, 0) + 1

        return {
            'total_errors': len(recent_errors),
            'time_window_hours': time_window.total_seconds() / 3600,
            'by_category': category_counts,
            'by_severity': severity_counts,
            'most_recent': recent_errors[-1].to_dict() if recent_errors else None
        }

    def clear_history(self) -> None:
        """Clear the error history."""
        self.error_history.clear()


# Global error reporter instance
_global_error_reporter = ErrorReporter()


def get_error_reporter() -> ErrorReporter:
    """Get the global error reporter instance."""
    return _global_error_reporter


def report_error(error: ReconcilerError) -> None:
    """Report an error using the global error reporter."""
    _global_error_reporter.report_error(error)
