"""Vendor and schema-generation detection."""

from typing import Optional, Sequence

from .errors import DetectionError, ErrorContext
from .logging import get_logger, performance_monitor
from .models import DeviceContext, DeviceIdentity, SchemaGeneration
from .registry import CapabilityRegistry, VendorAlias, default_registry
from .store import ParameterStore


def match_vendor(manufacturer: str, aliases: Sequence[VendorAlias]) -> Optional[str]:
    """Return the tag of the first alias whose substring occurs in the manufacturer.

    Matching is case-insensitive; None when nothing matches.
    """
    name = manufacturer.lower()
    for alias in aliases:
        if any(substring in name for substring in alias.match):
            return alias.tag
    return None


class VendorSchemaDetector:
    """Derives a DeviceContext from identity plus a single unified-model probe."""

    def __init__(self, registry: Optional[CapabilityRegistry] = None):
        self.registry = registry or default_registry()
        self.logger = get_logger("detector")

    @property
    def unified_probe_path(self) -> str:
        return self.registry.candidates("device.identity.unified")[0].render()

    @performance_monitor("detect", "detector")
    async def detect(
        self,
        identity: Optional[DeviceIdentity],
        store: ParameterStore,
        correlation_id: Optional[str] = None
    ) -> DeviceContext:
        """Detect vendor tag and schema generation.

        Raises:
            DetectionError: If the manufacturer attribute cannot be read
        """
        if identity is None or identity.manufacturer is None:
            self.logger.log_detection(
                "Manufacturer attribute unreadable, aborting run",
                vendor_tag=None, schema=None, success=False,
                correlation_id=correlation_id
            )
            raise DetectionError(
                "Device manufacturer could not be read",
                attribute="manufacturer",
                context=ErrorContext(
                    operation="detect",
                    component="detector",
                    correlation_id=correlation_id,
                    metadata={"serial": identity.serial if identity else None}
                )
            )

        probe = await store.probe(self.unified_probe_path)
        schema = SchemaGeneration.UNIFIED if probe.exists else SchemaGeneration.LEGACY
        vendor_tag = match_vendor(identity.manufacturer, self.registry.aliases)

        self.logger.log_detection(
            f"Detected vendor={vendor_tag or 'none'} schema={schema.value} "
            f"for manufacturer '{identity.manufacturer}'",
            vendor_tag=vendor_tag, schema=schema.value,
            correlation_id=correlation_id
        )

        return DeviceContext(vendor_tag=vendor_tag, schema_generation=schema, identity=identity)
