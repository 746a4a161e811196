"""
Structured logging and performance monitoring for the ONT intent reconciler.

Every device run logs through component loggers that attach a category, the
component name and the run's correlation id, so the notices of one run can be
followed across detection, discovery, resolution and diffing.
"""

import logging
import logging.handlers
import json
import time
import functools
import inspect
import threading
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Callable, List
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
import sys


class LogLevel(Enum):
    """Log levels for the reconciler."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(Enum):
    """Categories for structured logging."""
    DETECTION = "detection"
    DISCOVERY = "discovery"
    RESOLUTION = "resolution"
    POLICY = "policy"
    RECONCILIATION = "reconciliation"
    STORE = "store"
    PERFORMANCE = "performance"
    CONFIGURATION = "configuration"
    ERROR = "error"
    AUDIT = "audit"


@dataclass
class LogEntry:
    """Structured log entry for consistent logging format."""
    timestamp: str
    level: str
    category: str
    component: str
    message: str
    context: Dict[str, Any]
    correlation_id: Optional[str] = None
    duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass
class PerformanceMetric:
    """Performance monitoring metric."""
    operation: str
    component: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = True
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}

    def finish(self, success: bool = True, error_message: Optional[str] = None):
        """Mark the metric as finished and calculate duration."""
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
        self.success = success
        self.error_message = error_message


class LoggingConfig:
    """Configuration for the logging system."""

    def __init__(
        self,
        log_level: LogLevel = LogLevel.INFO,
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        enable_console: bool = True,
        enable_structured: bool = True,
        enable_performance: bool = True,
        log_format: Optional[str] = None
    ):
        self.log_level = log_level
        self.log_file = log_file
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_structured = enable_structured
        self.enable_performance = enable_performance
        self.log_format = log_format or (
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=record.levelname,
            category=getattr(record, 'category', 'general'),
            component=getattr(record, 'component', record.name),
            message=record.getMessage(),
            context=getattr(record, 'context', {}),
            correlation_id=getattr(record, 'correlation_id', None),
            duration_ms=getattr(record, 'duration_ms', None)
        )

        return log_entry.to_json()


class PerformanceMonitor:
    """Performance monitoring and metrics collection."""

    def __init__(self):
        self._metrics: List[PerformanceMetric] = []
        self._active_metrics: Dict[str, PerformanceMetric] = {}
        self._lock = threading.Lock()
        self._counter = 0

    def start_operation(
        self,
        operation: str,
        component: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """Start tracking a performance metric and return its id."""
        with self._lock:
            self._counter += 1
            metric_id = f"{component}_{operation}_{self._counter}"
            self._active_metrics[metric_id] = PerformanceMetric(
                operation=operation,
                component=component,
                start_time=time.time(),
                metadata=metadata or {}
            )

        return metric_id

    def finish_operation(
        self,
        metric_id: str,
        success: bool = True,
        error_message: Optional[str] = None
    ):
        """Finish tracking a performance metric."""
        with self._lock:
            metric = self._active_metrics.pop(metric_id, None)
            if metric is None:
                return
            metric.finish(success, error_message)
            self._metrics.append(metric)

        logger = ReconcilerLogger.get_logger("performance")
        logger.log_performance(
            operation=metric.operation,
            component=metric.component,
            duration_ms=metric.duration_ms,
            success=metric.success,
            metadata=metric.metadata
        )

    def get_metrics(
        self,
        component: Optional[str] = None,
        operation: Optional[str] = None
    ) -> List[PerformanceMetric]:
        """Get collected metrics with optional filtering."""
        with self._lock:
            metrics = self._metrics.copy()

        if component:
            metrics = [m for m in metrics if m.component == component]

        if operation:
            metrics = [m for m in metrics if m.operation == operation]

        return metrics

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary statistics."""
        with self._lock:
            metrics = self._metrics.copy()

        if not metrics:
            return {"total_operations": 0}

        successful = [m for m in metrics if m.success]
        durations = [m.duration_ms for m in metrics if m.duration_ms is not None]

        summary = {
            "total_operations": len(metrics),
            "successful_operations": len(successful),
            "failed_operations": len(metrics) - len(successful),
            "success_rate": len(successful) / len(metrics),
        }

        if durations:
            summary.update({
                "avg_duration_ms": sum(durations) / len(durations),
                "min_duration_ms": min(durations),
                "max_duration_ms": max(durations),
            })

        by_operation: Dict[str, List[PerformanceMetric]] = {}
        for metric in metrics:
            by_operation.setdefault(metric.operation, []).append(metric)

        summary["by_operation"] = {}
        for operation, op_metrics in by_operation.items():
            op_durations = [m.duration_ms for m in op_metrics if m.duration_ms is not None]
            summary["by_operation"][operation] = {
                "total_operations": len(op_metrics),
                "successful_operations": len([m for m in op_metrics if m.success]),
                "avg_duration_ms": sum(op_durations) / len(op_durations) if op_durations else 0
            }

        return summary


class ReconcilerLogger:
    """Process-wide logging setup for the reconciler."""

    _instance: Optional['ReconcilerLogger'] = None
    _lock = threading.Lock()

    def __init__(self, config: LoggingConfig):
        self.config = config
        self.performance_monitor = PerformanceMonitor()
        self._loggers: Dict[str, logging.Logger] = {}
        self._setup_logging()

    @classmethod
    def initialize(cls, config: LoggingConfig) -> 'ReconcilerLogger':
        """Initialize the global logger instance (first call wins)."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls(config)
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the global instance so the next initialize() reconfigures logging."""
        with cls._lock:
            cls._instance = None

    @classmethod
    def get_instance(cls) -> Optional['ReconcilerLogger']:
        return cls._instance

    @classmethod
    def get_logger(cls, component: str) -> 'ComponentLogger':
        """Get a component-specific logger, initializing defaults on first use."""
        instance = cls.get_instance()
        if instance is None:
            instance = cls.initialize(LoggingConfig())

        return ComponentLogger(instance, component)

    def _setup_logging(self):
        """Attach console and rotating file handlers to the package logger."""
        package_logger = logging.getLogger("ont_reconciler")
        level = getattr(logging, self.config.log_level.value)
        package_logger.setLevel(level)
        package_logger.handlers.clear()

        if self.config.enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(self._make_formatter())
            package_logger.addHandler(console_handler)

        if self.config.log_file:
            log_path = Path(self.config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                self.config.log_file,
                maxBytes=self.config.max_file_size,
                backupCount=self.config.backup_count
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(self._make_formatter())
            package_logger.addHandler(file_handler)

    def _make_formatter(self) -> logging.Formatter:
        if self.config.enable_structured:
            return StructuredFormatter()
        return logging.Formatter(self.config.log_format)

    def get_component_logger(self, component: str) -> logging.Logger:
        """Get or create a logger for a specific component."""
        if component not in self._loggers:
            self._loggers[component] = logging.getLogger(f"ont_reconciler.{component}")

        return self._loggers[component]


class ComponentLogger:
    """Component-specific logger with structured logging helpers."""

    def __init__(self, reconciler_logger: ReconcilerLogger, component: str):
        self.reconciler_logger = reconciler_logger
        self.component = component
        self.logger = reconciler_logger.get_component_logger(component)

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: LogCategory,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        duration_ms: Optional[float] = None
    ):
        extra = {
            'category': category.value,
            'component': self.component,
            'context': context or {},
            'correlation_id': correlation_id,
            'duration_ms': duration_ms
        }

        self.logger.log(getattr(logging, level.value), message, extra=extra)

    def debug(self, message: str, category: LogCategory = LogCategory.AUDIT,
              context: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        self._log(LogLevel.DEBUG, message, category, context, correlation_id)

    def info(self, message: str, category: LogCategory = LogCategory.AUDIT,
             context: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        self._log(LogLevel.INFO, message, category, context, correlation_id)

    def warning(self, message: str, category: LogCategory = LogCategory.ERROR,
                context: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        self._log(LogLevel.WARNING, message, category, context, correlation_id)

    def error(self, message: str, category: LogCategory = LogCategory.ERROR,
              context: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        self._log(LogLevel.ERROR, message, category, context, correlation_id)

    def critical(self, message: str, category: LogCategory = LogCategory.ERROR,
                 context: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        self._log(LogLevel.CRITICAL, message, category, context, correlation_id)

    def log_detection(
        self,
        message: str,
        vendor_tag: Optional[str],
        schema: Optional[str],
        success: bool = True,
        correlation_id: Optional[str] = None
    ):
        """Log the outcome of vendor/schema detection."""
        context = {'vendor_tag': vendor_tag, 'schema': schema, 'success': success}
        level = LogLevel.INFO if success else LogLevel.CRITICAL
        self._log(level, message, LogCategory.DETECTION, context, correlation_id)

    def log_discovery(
        self,
        message: str,
        collection: str,
        instance_count: int,
        bands: Optional[Dict[str, str]] = None,
        correlation_id: Optional[str] = None
    ):
        """Log an instance discovery pass."""
        context = {'collection': collection, 'instance_count': instance_count}
        if bands is not None:
            context['bands'] = bands
        self._log(LogLevel.DEBUG, message, LogCategory.DISCOVERY, context, correlation_id)

    def log_resolution(
        self,
        message: str,
        capability: str,
        path: Optional[str],
        candidates_tried: int,
        correlation_id: Optional[str] = None
    ):
        """Log a capability resolution; unresolved capabilities log at INFO."""
        context = {
            'capability': capability,
            'path': path,
            'candidates_tried': candidates_tried,
            'resolved': path is not None
        }
        level = LogLevel.DEBUG if path is not None else LogLevel.INFO
        self._log(level, message, LogCategory.RESOLUTION, context, correlation_id)

    def log_policy(
        self,
        message: str,
        section: str,
        errors_count: int,
        success: bool = True,
        correlation_id: Optional[str] = None
    ):
        """Log policy validation of one intent section."""
        context = {'section': section, 'errors_count': errors_count, 'success': success}
        level = LogLevel.INFO if success else LogLevel.WARNING
        self._log(level, message, LogCategory.POLICY, context, correlation_id)

    def log_directive(
        self,
        message: str,
        path: str,
        observed: Any,
        desired: Any,
        correlation_id: Optional[str] = None
    ):
        """Log a computed write directive."""
        context = {'path': path, 'observed': observed, 'desired': desired}
        self._log(LogLevel.DEBUG, message, LogCategory.RECONCILIATION, context, correlation_id)

    def log_write(
        self,
        message: str,
        path: str,
        success: bool = True,
        error_kind: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        """Log a write issued to the parameter store."""
        context = {'path': path, 'success': success}
        if error_kind:
            context['error_kind'] = error_kind
        level = LogLevel.INFO if success else LogLevel.ERROR
        self._log(level, message, LogCategory.STORE, context, correlation_id)

    def log_performance(
        self,
        operation: str,
        component: str,
        duration_ms: float,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ):
        """Log performance metric."""
        context = {
            'operation': operation,
            'component': component,
            'success': success,
            'metadata': metadata or {}
        }

        message = f"Operation {operation} completed in {duration_ms:.2f}ms"
        self._log(LogLevel.DEBUG, message, LogCategory.PERFORMANCE, context, correlation_id, duration_ms)

    def log_configuration(
        self,
        message: str,
        config_type: str,
        success: bool = True,
        validation_errors: Optional[List[str]] = None,
        correlation_id: Optional[str] = None
    ):
        """Log configuration operation."""
        context = {'config_type': config_type, 'success': success}
        if validation_errors:
            context['validation_errors'] = validation_errors

        level = LogLevel.INFO if success else LogLevel.ERROR
        self._log(level, message, LogCategory.CONFIGURATION, context, correlation_id)


def performance_monitor(
    operation: str,
    component: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
):
    """Decorator for automatic performance monitoring of sync and async callables."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            comp_name = component or func.__module__.split('.')[-1]

            logger_instance = ReconcilerLogger.get_instance()
            if logger_instance is None or not logger_instance.config.enable_performance:
                return func(*args, **kwargs)

            metric_id = logger_instance.performance_monitor.start_operation(
                operation, comp_name, metadata
            )

            try:
                result = func(*args, **kwargs)
                logger_instance.performance_monitor.finish_operation(metric_id, True)
                return result
            except Exception as e:
                logger_instance.performance_monitor.finish_operation(metric_id, False, str(e))
                raise

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            comp_name = component or func.__module__.split('.')[-1]

            logger_instance = ReconcilerLogger.get_instance()
            if logger_instance is None or not logger_instance.config.enable_performance:
                return await func(*args, **kwargs)

            metric_id = logger_instance.performance_monitor.start_operation(
                operation, comp_name, metadata
            )

            try:
                result = await func(*args, **kwargs)
                logger_instance.performance_monitor.finish_operation(metric_id, True)
                return result
            except Exception as e:
                logger_instance.performance_monitor.finish_operation(metric_id, False, str(e))
                raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return wrapper

    return decorator


def get_logger(component: str) -> ComponentLogger:
    """Get a component logger."""
    return ReconcilerLogger.get_logger(component)


def initialize_logging(
    log_level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    enable_performance: bool = True,
    enable_structured: bool = True
) -> ReconcilerLogger:
    """Initialize the logging system with common defaults."""
    config = LoggingConfig(
        log_level=log_level,
        log_file=log_file,
        enable_performance=enable_performance,
        enable_structured=enable_structured
    )
    return ReconcilerLogger.initialize(config)


def get_performance_summary() -> Dict[str, Any]:
    """Get performance monitoring summary."""
    instance = ReconcilerLogger.get_instance()
    if instance:
        return instance.performance_monitor.get_summary()
    return {"error": "Logger not initialized"}
