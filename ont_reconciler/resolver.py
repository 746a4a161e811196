"""Resolution of abstract capabilities to existence-confirmed concrete paths."""

from typing import Any, Dict, List, Optional

from .errors import ErrorContext, PathNotFoundError
from .logging import get_logger
from .models import DeviceContext
from .registry import CapabilityRegistry, default_registry
from .store import ParameterStore


class PathResolver:
    """Resolves capability keys against one device's parameter store.

    Candidates are filtered by vendor and schema, then probed strictly in
    priority order; the first existing path wins.
    """

    def __init__(self, store: ParameterStore, registry: Optional[CapabilityRegistry] = None):
        self.store = store
        self.registry = registry or default_registry()
        self.logger = get_logger("resolver")

    def render_candidates(
        self,
        key: str,
        context: DeviceContext,
        bindings: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        """Render every eligible candidate of a capability, without probing."""
        paths = []
        for candidate in self.registry.candidates_for(key, context):
            try:
                paths.append(candidate.render(bindings))
            except KeyError as e:
                self.logger.debug(
                    f"Candidate {candidate.template} of {key} needs binding {e}",
                    context={'capability': key, 'template': candidate.template}
                )
        return paths

    def first_candidate(
        self,
        key: str,
        context: DeviceContext,
        bindings: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Highest-priority eligible path of a capability, or None."""
        paths = self.render_candidates(key, context, bindings)
        return paths[0] if paths else None

    async def resolve(
        self,
        key: str,
        context: DeviceContext,
        bindings: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> Optional[str]:
        """Return the first candidate path that exists on the device, or None."""
        tried = 0
        for path in self.render_candidates(key, context, bindings):
            tried += 1
            probe = await self.store.probe(path)
            if probe.exists:
                self.logger.log_resolution(
                    f"Resolved {key} -> {path}", key, path, tried,
                    correlation_id=correlation_id
                )
                return path

        self.logger.log_resolution(
            f"No existing path for {key} on vendor={context.vendor_tag or 'none'} "
            f"schema={context.schema_generation.value}",
            key, None, tried, correlation_id=correlation_id
        )
        return None

    async def require(
        self,
        key: str,
        context: DeviceContext,
        bindings: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> str:
        """Like resolve() but raise when nothing exists.

        Raises:
            PathNotFoundError: If no eligible candidate exists on the device
        """
        path = await self.resolve(key, context, bindings, correlation_id)
        if path is None:
            raise PathNotFoundError(
                f"No path for capability '{key}' on this device",
                capability=key,
                candidates_tried=self.render_candidates(key, context, bindings),
                context=ErrorContext(
                    operation="resolve",
                    component="resolver",
                    correlation_id=correlation_id,
                    metadata={'bindings': dict(bindings or {})}
                )
            )
        return path
