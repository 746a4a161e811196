"""Application class that wires configuration, stores and the reconciliation engine."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from . import __version__
from .config import ReconcilerConfig, build_registry
from .engine import ReconciliationEngine
from .errors import (
    ErrorCategory, ErrorContext, PathNotFoundError, PolicyError, ReconcilerError, get_error_reporter
)
from .logging import LogCategory, get_logger, performance_monitor
from .models import AttributeStatus, DeviceContext, ObservedParameter, ReconciliationResult
from .policy import PolicyValidator, ReconciliationIntent, ValidationResult
from .store import InMemoryParameterStore


class ReportGenerator:
    """Generates reports in various formats from reconciliation results."""

    def __init__(self, include_metadata: bool = True):
        self.include_metadata = include_metadata

    async def export_as_json(self, result: ReconciliationResult, output_path: Path,
                             metadata: Optional[Dict[str, Any]] = None) -> None:
        """Export a reconciliation result as JSON."""
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(self.to_json(result, metadata))
        except OSError as e:
            raise ReconcilerError(f"Failed to export JSON report: {e}", ErrorCategory.DATA_FORMAT, cause=e)

    async def export_as_text(self, result: ReconciliationResult, output_path: Path,
                             metadata: Optional[Dict[str, Any]] = None) -> None:
        """Export a reconciliation result as human-readable text."""
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(self.to_text(result, metadata))
        except OSError as e:
            raise ReconcilerError(f"Failed to export text report: {e}", ErrorCategory.DATA_FORMAT, cause=e)

    def to_json(self, result: ReconciliationResult, metadata: Optional[Dict[str, Any]] = None) -> str:
        data = self.result_to_dict(result)
        if self.include_metadata and metadata:
            data['metadata'] = metadata
        return json.dumps(data, indent=2, default=str)

    def result_to_dict(self, result: ReconciliationResult) -> Dict[str, Any]:
        """Convert a reconciliation result to a dictionary."""
        context = result.context
        return {
            'correlation_id': result.correlation_id,
            'context': {
                'vendor': context.vendor_tag,
                'schema': context.schema_generation.value,
                'manufacturer': context.identity.manufacturer if context.identity else None,
                'product_class': context.identity.product_class if context.identity else None,
                'serial': context.identity.serial if context.identity else None,
            } if context else None,
            'summary': result.get_summary(),
            'directives': [
                {
                    'path': d.path,
                    'value': d.value,
                    'existed_before': d.existed_before,
                    'capability': d.capability,
                    'attribute': d.attribute,
                }
                for d in result.directives
            ],
            'tags': result.tag_map(),
            'attributes': [
                {
                    'attribute': r.attribute,
                    'status': r.status.value,
                    'path': r.path,
                    'desired': r.desired,
                    'observed': r.observed,
                    'message': r.message,
                }
                for r in result.attribute_results
            ],
            'errors': [
                e.to_dict() if isinstance(e, ReconcilerError) else {'message': str(e)}
                for e in result.errors
            ],
        }

    def to_text(self, result: ReconciliationResult, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Convert a reconciliation result to human-readable text format."""
        lines = []
        lines.append("ONT Reconciliation Report")
        lines.append("=" * 50)
        lines.append("")

        if self.include_metadata and metadata:
            lines.append("Metadata:")
            for key, value in metadata.items():
                lines.append(f"  {key}: {value}")
            lines.append("")

        summary = result.get_summary()
        if result.aborted:
            lines.append("Run aborted: device identity could not be read")
        else:
            lines.append(f"Vendor: {summary['vendor'] or 'none'}")
            lines.append(f"Schema: {summary['schema']}")
        lines.append(f"Correlation id: {result.correlation_id}")
        lines.append("")

        lines.append("Summary:")
        lines.append(f"  Write directives: {summary['directives']}")
        lines.append(f"  Tags: {summary['tags']}")
        for status, count in summary['attributes'].items():
            if count:
                lines.append(f"  Attributes {status}: {count}")
        lines.append(f"  Errors: {summary['errors']}")
        lines.append("")

        if result.directives:
            lines.append("Writes:")
            for directive in result.directives:
                marker = "" if directive.existed_before else " (new instance)"
                lines.append(f"  {directive.path} = {directive.value!r}{marker}")
            lines.append("")

        if result.tags:
            lines.append("Tags:")
            for name, value in result.tag_map().items():
                lines.append(f"  {name}: {str(value).lower()}")
            lines.append("")

        problems = [r for r in result.attribute_results
                    if r.status in (AttributeStatus.FAILED, AttributeStatus.SKIPPED, AttributeStatus.UNALIGNED)]
        if problems:
            lines.append("Attention:")
            for outcome in problems:
                lines.append(f"  [{outcome.status.value}] {outcome.attribute}: {outcome.message or ''}")
            lines.append("")

        return '\n'.join(lines)


class ReconcilerApp:
    """Orchestrates policy loading, device snapshots and reconciliation runs."""

    def __init__(self, config: ReconcilerConfig, progress_reporter=None):
        self.config = config
        self.progress_reporter = progress_reporter
        self.logger = get_logger("main")

        # built once, shared read-only by every device run
        self.registry = build_registry(config)
        self.validator = PolicyValidator(config.defaults)
        self.report_generator = ReportGenerator()
        self.error_reporter = get_error_reporter()

        self.logger.info(
            "ONT reconciler initialized",
            LogCategory.AUDIT,
            context={
                'capabilities': len(self.registry),
                'vendor_aliases': [alias.tag for alias in self.registry.aliases],
                'has_progress_reporter': progress_reporter is not None
            }
        )

    def _report_progress(self, step_name: str, step_number: Optional[int] = None):
        if self.progress_reporter:
            self.progress_reporter.update_progress(step_name, step_number)

    def _report_info(self, message: str):
        if self.progress_reporter:
            self.progress_reporter.show_info(message)
        self.logger.info(message)

    def _report_warning(self, message: str):
        if self.progress_reporter:
            self.progress_reporter.show_warning(message)
        self.logger.warning(message)

    def create_engine(self, store: InMemoryParameterStore) -> ReconciliationEngine:
        return ReconciliationEngine(store, self.registry, self.config.defaults)

    def load_store(self, snapshot_path: Union[str, Path]) -> InMemoryParameterStore:
        """Load a device snapshot into an in-memory parameter store."""
        return InMemoryParameterStore.from_snapshot_file(snapshot_path)

    def load_policy(self, policy_path: Union[str, Path]) -> Any:
        """Read a JSON or YAML policy document.

        Raises:
            PolicyError: If the file is missing or cannot be parsed
        """
        path = Path(policy_path)
        context = ErrorContext(operation="load_policy", component="main", metadata={'path': str(path)})
        if not path.exists():
            raise PolicyError(f"Policy file not found: {path}", section="document", context=context)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in ('.yaml', '.yml'):
                    return yaml.safe_load(f)
                return json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise PolicyError(f"Invalid policy file format: {e}", section="document", context=context, cause=e)

    @performance_monitor("reconcile_device", "main")
    async def reconcile_device(
        self,
        snapshot_path: Union[str, Path],
        policy_path: Union[str, Path],
        apply: bool = False
    ) -> Tuple[ReconciliationResult, InMemoryParameterStore]:
        """Plan (and optionally apply) a policy against a device snapshot."""
        if self.progress_reporter:
            self.progress_reporter.start_operation("Reconciliation", 3)

        self._report_progress("Loading device snapshot", 1)
        store = self.load_store(snapshot_path)

        self._report_progress("Loading policy", 2)
        document = self.load_policy(policy_path)

        self._report_progress("Reconciling" + (" and applying" if apply else ""), 3)
        result = await self.create_engine(store).run(store.identity, document, apply=apply)

        if result.aborted:
            self._report_warning("Reconciliation aborted: device identity unreadable")
        else:
            self._report_info(
                f"{len(result.directives)} writes, {len(result.tags)} tags, "
                f"{len(result.errors)} errors for {result.context.vendor_tag or 'unknown vendor'}"
            )

        if self.progress_reporter:
            self.progress_reporter.complete_operation("Reconciliation", not result.aborted)
        return result, store

    async def detect_device(self, snapshot_path: Union[str, Path]) -> DeviceContext:
        """Detect vendor and schema of a device snapshot.

        Raises:
            DetectionError: If the snapshot has no readable manufacturer
        """
        store = self.load_store(snapshot_path)
        return await self.create_engine(store).detector.detect(store.identity, store)

    def _require_capability(self, key: str, operation: str) -> None:
        if key not in self.registry:
            raise PathNotFoundError(
                f"Unknown capability: {key}",
                capability=key,
                context=ErrorContext(operation=operation, component="main")
            )

    async def resolve_capability(self, snapshot_path: Union[str, Path], key: str,
                                 bindings: Optional[Dict[str, Any]] = None) -> Optional[str]:
        self._require_capability(key, "resolve_capability")
        store = self.load_store(snapshot_path)
        engine = self.create_engine(store)
        context = await engine.detector.detect(store.identity, store)
        return await engine.resolver.resolve(key, context, bindings)

    async def query_capability(self, snapshot_path: Union[str, Path], key: str,
                               bindings: Optional[Dict[str, Any]] = None) -> Optional[ObservedParameter]:
        """Read a capability's current value from a device snapshot."""
        self._require_capability(key, "query_capability")
        store = self.load_store(snapshot_path)
        engine = self.create_engine(store)
        context = await engine.detector.detect(store.identity, store)
        return await engine.read_capability(key, context, bindings)

    def validate_policy_file(self, policy_path: Union[str, Path]) -> Tuple[ReconciliationIntent, ValidationResult]:
        return self.validator.validate_document(self.load_policy(policy_path))

    def list_capabilities(self) -> Dict[str, List[Dict[str, Optional[str]]]]:
        return self.registry.to_dict()

    async def export_result(self, result: ReconciliationResult, output_path: Union[str, Path],
                            output_format: str = "json") -> None:
        """Write a report for a result in ``json`` or ``text`` format."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        metadata = self._create_metadata()
        if output_format == "text":
            await self.report_generator.export_as_text(result, output_path, metadata)
        else:
            await self.report_generator.export_as_json(result, output_path, metadata)

    def _create_metadata(self) -> Dict[str, Any]:
        return {
            'timestamp': datetime.now().isoformat(),
            'generator': 'ONT Intent Reconciler',
            'version': __version__,
        }
