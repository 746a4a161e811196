"""Core data models for vendor-agnostic ONT parameter reconciliation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any


class SchemaGeneration(Enum):
    """Device-management data model generation exposed by a device."""
    LEGACY = "legacy"    # InternetGatewayDevice. root (TR-098)
    UNIFIED = "unified"  # Device. root (TR-181)

    @property
    def root(self) -> str:
        """Root object name of the data model."""
        return "Device" if self is SchemaGeneration.UNIFIED else "InternetGatewayDevice"

    @property
    def tag(self) -> str:
        """Tag name used to mark devices of this generation."""
        return "tr181" if self is SchemaGeneration.UNIFIED else "tr098"


class Band(Enum):
    """Logical WiFi frequency class."""
    BAND_2_4 = "2.4"
    BAND_5 = "5"
    BAND_6 = "6"
    UNKNOWN = "unknown"

    @property
    def tag(self) -> str:
        """Tag name announcing that the device carries this band."""
        return "wifi_" + self.value.replace(".", "_")

    @classmethod
    def from_label(cls, label: str) -> "Band":
        """Map a policy band label ("2.4", "5", "6") to a Band."""
        for band in cls:
            if band.value == label and band is not cls.UNKNOWN:
                return band
        raise ValueError(f"Unknown band label: {label!r}")


class AttributeStatus(Enum):
    """Outcome of reconciling a single desired attribute."""
    UNCHANGED = "unchanged"  # observed value already matches
    PENDING = "pending"      # directive emitted, not yet applied
    APPLIED = "applied"      # directive written successfully
    FAILED = "failed"        # store rejected the write
    SKIPPED = "skipped"      # no candidate path exists on this device
    UNALIGNED = "unaligned"  # unified instance indices do not line up


@dataclass(frozen=True)
class DeviceIdentity:
    """Identity attributes reported by the device once per session."""
    manufacturer: Optional[str]
    product_class: str = ""
    serial: str = ""


@dataclass(frozen=True)
class DeviceContext:
    """Vendor and schema generation derived once per reconciliation run."""
    vendor_tag: Optional[str]              # None when no alias matched
    schema_generation: SchemaGeneration
    identity: Optional[DeviceIdentity] = None

    @property
    def is_unified(self) -> bool:
        return self.schema_generation is SchemaGeneration.UNIFIED


@dataclass(frozen=True)
class PathCandidate:
    """One concrete path template for a capability and the conditions it applies under."""
    template: str                                  # may contain {i} and other placeholders
    vendor_filter: Optional[str] = None            # None matches every vendor
    schema_filter: Optional[SchemaGeneration] = None  # None matches both schemas

    def applies_to(self, context: DeviceContext) -> bool:
        """Check whether this candidate is eligible for the given device context."""
        if self.vendor_filter is not None and self.vendor_filter != context.vendor_tag:
            return False
        if self.schema_filter is not None and self.schema_filter is not context.schema_generation:
            return False
        return True

    def render(self, bindings: Optional[Dict[str, Any]] = None) -> str:
        """Substitute placeholder bindings into the template.

        Raises:
            KeyError: If the template needs a binding that was not supplied
        """
        return self.template.format(**(bindings or {}))


@dataclass
class WlanInstance:
    """A discovered WLAN/radio instance and the band it was classified into."""
    path: str                      # e.g. "InternetGatewayDevice.LANDevice.1.WLANConfiguration.5"
    index: str                     # last path segment, bound to {i} in templates
    band: Band
    channel: Optional[str] = None
    possible_channels: str = ""
    frequency_band: Optional[str] = None  # unified OperatingFrequencyBand
    aligned: bool = True
    alignment_note: Optional[str] = None


@dataclass
class ObservedParameter:
    """A value read from the parameter store, with the marker it was observed at."""
    path: str
    value: Optional[Any]
    as_of: int = 0
    exists: bool = True

    def is_stale(self, required_as_of: int) -> bool:
        """True when this observation predates the required freshness marker."""
        return self.as_of < required_as_of


@dataclass
class WriteDirective:
    """A single write needed to converge the device to its desired state."""
    path: str
    value: Any
    existed_before: bool = True
    capability: Optional[str] = None
    collection: Optional[str] = None  # base path of a created instance
    index: Optional[int] = None       # planned index of a created instance
    attribute: Optional[str] = None   # id of the AttributeResult this write serves


@dataclass(frozen=True)
class Tag:
    """Boolean device tag. Output only."""
    name: str
    value: bool = True


@dataclass
class DesiredAttribute:
    """One capability the intent wants set to a value on this device."""
    capability: str
    value: Any
    bindings: Dict[str, Any] = field(default_factory=dict)
    section: str = ""
    label: Optional[str] = None  # human-readable attribute id for reports

    @property
    def attribute_id(self) -> str:
        if self.label:
            return self.label
        if self.bindings:
            suffix = ",".join(f"{k}={v}" for k, v in sorted(self.bindings.items()))
            return f"{self.capability}[{suffix}]"
        return self.capability


@dataclass
class AttributeResult:
    """Per-attribute outcome surfaced to the caller."""
    attribute: str
    status: AttributeStatus
    path: Optional[str] = None
    desired: Optional[Any] = None
    observed: Optional[Any] = None
    message: Optional[str] = None


@dataclass
class ReconciliationResult:
    """Everything a single device run produced."""
    context: Optional[DeviceContext] = None
    directives: List[WriteDirective] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    attribute_results: List[AttributeResult] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)
    aborted: bool = False
    correlation_id: Optional[str] = None

    def results_with_status(self, status: AttributeStatus) -> List[AttributeResult]:
        """Return attribute results having the given status."""
        return [r for r in self.attribute_results if r.status is status]

    def tag_map(self) -> Dict[str, bool]:
        """Tags as a name -> value mapping (last emission wins)."""
        return {tag.name: tag.value for tag in self.tags}

    def get_summary(self) -> Dict[str, Any]:
        """Generate summary statistics of the run."""
        counts = {status.value: 0 for status in AttributeStatus}
        for result in self.attribute_results:
            counts[result.status.value] += 1

        return {
            'vendor': self.context.vendor_tag if self.context else None,
            'schema': self.context.schema_generation.value if self.context else None,
            'aborted': self.aborted,
            'directives': len(self.directives),
            'tags': len(self.tags),
            'attributes': counts,
            'errors': len(self.errors),
        }
