"""ONT Intent Reconciler - vendor-agnostic configuration intent for TR-098/TR-181 devices."""

__version__ = "0.1.0"

from .models import (
    SchemaGeneration, Band, AttributeStatus, DeviceIdentity, DeviceContext,
    PathCandidate, WlanInstance, ObservedParameter, WriteDirective, Tag,
    DesiredAttribute, AttributeResult, ReconciliationResult
)
from .errors import (
    ReconcilerError, DetectionError, PolicyError, PathNotFoundError,
    NumericParseError, WriteFailure, ConfigurationError, ErrorContext,
    ErrorCategory, ErrorSeverity, ErrorReporter, get_error_reporter, report_error
)
from .logging import (
    LogLevel, LogCategory, LogEntry, PerformanceMetric, LoggingConfig,
    ReconcilerLogger, ComponentLogger, performance_monitor, get_logger,
    initialize_logging, get_performance_summary
)
from .registry import CapabilityRegistry, VendorAlias, VENDOR_ALIASES, band_key, default_registry
from .bands import classify_band, classify_frequency_band
from .store import (
    ParameterStore, InMemoryParameterStore, ParameterStoreFactory, StoreType,
    ProbeResult, ReadResult, WriteResult
)
from .detector import VendorSchemaDetector, match_vendor
from .resolver import PathResolver
from .discovery import InstanceDiscoverer
from .config import (
    ReconcilerConfig, LoggingSettings, ReconciliationDefaults,
    ConfigurationManager, build_registry
)
from .policy import (
    PolicyValidator, ReconciliationIntent, WifiIntent, BandIntent, WanIntent,
    VoipIntent, PortForwardIntent, PortForwardRule, OpticalIntent, TaggingIntent,
    ValidationResult
)
from .engine import ReconciliationEngine, RunState
from .main import ReconcilerApp, ReportGenerator
from .cli import ReconcilerCLI, CLIProgressReporter

__all__ = [
    # Models
    'SchemaGeneration', 'Band', 'AttributeStatus', 'DeviceIdentity', 'DeviceContext',
    'PathCandidate', 'WlanInstance', 'ObservedParameter', 'WriteDirective', 'Tag',
    'DesiredAttribute', 'AttributeResult', 'ReconciliationResult',
    # Error Handling
    'ReconcilerError', 'DetectionError', 'PolicyError', 'PathNotFoundError',
    'NumericParseError', 'WriteFailure', 'ConfigurationError', 'ErrorContext',
    'ErrorCategory', 'ErrorSeverity', 'ErrorReporter', 'get_error_reporter', 'report_error',
    # Logging and Monitoring
    'LogLevel', 'LogCategory', 'LogEntry', 'PerformanceMetric', 'LoggingConfig',
    'ReconcilerLogger', 'ComponentLogger', 'performance_monitor', 'get_logger',
    'initialize_logging', 'get_performance_summary',
    # Registry and classification
    'CapabilityRegistry', 'VendorAlias', 'VENDOR_ALIASES', 'band_key', 'default_registry',
    'classify_band', 'classify_frequency_band',
    # Parameter store
    'ParameterStore', 'InMemoryParameterStore', 'ParameterStoreFactory', 'StoreType',
    'ProbeResult', 'ReadResult', 'WriteResult',
    # Detection, resolution, discovery
    'VendorSchemaDetector', 'match_vendor', 'PathResolver', 'InstanceDiscoverer',
    # Configuration
    'ReconcilerConfig', 'LoggingSettings', 'ReconciliationDefaults',
    'ConfigurationManager', 'build_registry',
    # Policy
    'PolicyValidator', 'ReconciliationIntent', 'WifiIntent', 'BandIntent', 'WanIntent',
    'VoipIntent', 'PortForwardIntent', 'PortForwardRule', 'OpticalIntent', 'TaggingIntent',
    'ValidationResult',
    # Engine and application
    'ReconciliationEngine', 'RunState', 'ReconcilerApp', 'ReportGenerator',
    # CLI
    'ReconcilerCLI', 'CLIProgressReporter'
]
