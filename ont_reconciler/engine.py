"""Reconciliation engine: desired intent vs. observed device state.

One engine instance serves one device's parameter store. A run walks
Detect -> ValidatePolicy -> Discover/Resolve -> Diff -> Emit strictly in order;
only a detection failure aborts it.
"""

import math
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .detector import VendorSchemaDetector
from .discovery import InstanceDiscoverer
from .errors import (
    DetectionError, ErrorContext, NumericParseError, PathNotFoundError,
    ReconcilerError, WriteFailure, report_error
)
from .config import ReconciliationDefaults
from .logging import get_logger, performance_monitor
from .models import (
    AttributeResult, AttributeStatus, Band, DesiredAttribute, DeviceContext,
    DeviceIdentity, ObservedParameter, ReconciliationResult, SchemaGeneration,
    Tag, WlanInstance, WriteDirective
)
from .policy import (
    MigrationIntent, OpticalIntent, PolicyValidator, PortForwardIntent, ReconciliationIntent,
    VoipIntent, WanIntent, WifiIntent, effective_security, parse_flag
)
from .registry import CapabilityRegistry, band_key, default_registry
from .resolver import PathResolver
from .store import ParameterStore


_LEADING_FLOAT = re.compile(r"\s*([+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?)")

UNIFIED_SECURITY = {
    "wpa3": ("WPA3-SAE", "Required"),
    "wpa2-wpa3": ("WPA2-PSK-WPA3-SAE", "Optional"),
    "wpa2": ("WPA2-Personal", None),
}


class RunState(Enum):
    """States of a single device reconciliation run."""
    IDLE = "idle"
    DETECT = "detect"
    VALIDATE_POLICY = "validate_policy"
    DISCOVER = "discover"
    RESOLVE = "resolve"
    DIFF = "diff"
    EMIT = "emit"
    APPLY = "apply"
    DONE = "done"
    FAILED = "failed"


def normalize_value(value: Any) -> str:
    """Store representation used for comparisons."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def values_equal(observed: Any, desired: Any) -> bool:
    """Compare an observed store value with a desired one after normalisation."""
    if isinstance(desired, bool):
        return parse_flag(observed) is desired
    return normalize_value(observed) == normalize_value(desired)


def parse_power(raw: Any) -> float:
    """Parse an optical power reading such as ``"-27.5"`` or ``"-27.5 dBm"``.

    Raises:
        ValueError: If no number can be read or it is NaN
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
    else:
        match = _LEADING_FLOAT.match(str(raw)) if raw is not None else None
        if not match:
            raise ValueError(f"not a number: {raw!r}")
        value = float(match.group(1))
    if math.isnan(value):
        raise ValueError("reading is NaN")
    return value


def model_tag(product_class: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", product_class)


def make_correlation_id(identity: Optional[DeviceIdentity]) -> str:
    serial = identity.serial if identity and identity.serial else "unknown"
    return f"{serial}_{int(time.time())}"


class ReconciliationEngine:
    """Drives detection, resolution, discovery and diffing for one device."""

    def __init__(
        self,
        store: ParameterStore,
        registry: Optional[CapabilityRegistry] = None,
        defaults: Optional[ReconciliationDefaults] = None
    ):
        self.store = store
        self.registry = registry or default_registry()
        self.defaults = defaults or ReconciliationDefaults()
        self.resolver = PathResolver(store, self.registry)
        self.discoverer = InstanceDiscoverer(store, self.resolver)
        self.detector = VendorSchemaDetector(self.registry)
        self.validator = PolicyValidator(self.defaults)
        self.state = RunState.IDLE
        self.logger = get_logger("engine")

    def _transition(self, state: RunState, correlation_id: Optional[str]) -> None:
        self.logger.debug(f"Run state {self.state.value} -> {state.value}", correlation_id=correlation_id)
        self.state = state

    async def _notice(self, message: str, correlation_id: Optional[str] = None) -> None:
        self.logger.info(message, correlation_id=correlation_id)
        await self.store.log(message)

    async def _record_error(self, result: ReconciliationResult, error: ReconcilerError) -> None:
        result.errors.append(error)
        report_error(error)
        await self.store.log(error.message)

    def _error_context(self, operation: str, correlation_id: Optional[str], **metadata) -> ErrorContext:
        return ErrorContext(operation=operation, component="engine",
                            correlation_id=correlation_id, metadata=metadata)

    # ------------------------------------------------------------------
    # run entry points
    # ------------------------------------------------------------------

    @performance_monitor("run", "engine")
    async def run(
        self,
        identity: Optional[DeviceIdentity],
        policy_document: Any,
        apply: bool = False,
        correlation_id: Optional[str] = None
    ) -> ReconciliationResult:
        """Reconcile one device against a policy document.

        Detection failure aborts the run before any read or write; every
        other failure is recorded on the result and the run continues.
        """
        correlation_id = correlation_id or make_correlation_id(identity)
        result = ReconciliationResult(correlation_id=correlation_id)

        self._transition(RunState.DETECT, correlation_id)
        try:
            context = await self.detector.detect(identity, self.store, correlation_id)
        except DetectionError as e:
            result.aborted = True
            await self._record_error(result, e)
            self._transition(RunState.FAILED, correlation_id)
            return result
        result.context = context

        self._transition(RunState.VALIDATE_POLICY, correlation_id)
        intent, policy_errors = self.validator.validate(policy_document, correlation_id)
        for error in policy_errors:
            await self._record_error(result, error)

        await self.reconcile(context, intent, result)

        if apply:
            await self.apply(result)

        self._transition(RunState.DONE, correlation_id)
        return result

    async def reconcile(
        self,
        context: DeviceContext,
        intent: ReconciliationIntent,
        result: Optional[ReconciliationResult] = None
    ) -> ReconciliationResult:
        """Diff a validated intent against the device and emit directives and tags."""
        if result is None:
            result = ReconciliationResult(context=context, correlation_id=make_correlation_id(context.identity))
        result.context = context
        cid = result.correlation_id

        software_version = await self._log_inventory(context, cid)

        wlans: List[WlanInstance] = []
        if intent.wifi is not None or intent.tagging.enabled:
            self._transition(RunState.DISCOVER, cid)
            wlans = await self.discoverer.discover_wlans(context, cid)

        self._transition(RunState.RESOLVE, cid)
        if intent.wifi is not None:
            await self._reconcile_wifi(context, intent.wifi, wlans, intent.as_of, result)
        if intent.wan is not None:
            await self._reconcile_wan(context, intent.wan, intent.as_of, result)
        if intent.voip is not None:
            await self._reconcile_voip(context, intent.voip, intent.as_of, result)
        if intent.port_forward is not None:
            await self._plan_port_forward(context, intent.port_forward, result)
        if intent.migration is not None:
            await self._reconcile_migration(context, intent.migration, intent.as_of, result)

        self._transition(RunState.EMIT, cid)
        if intent.optical is not None:
            await self._tag_optical(context, intent.optical, intent.as_of, result)
        if intent.tagging.enabled:
            self._tag_device(context, wlans, software_version, result)

        self.logger.info(
            f"Planned {len(result.directives)} writes and {len(result.tags)} tags",
            context=result.get_summary(), correlation_id=cid
        )
        return result

    # ------------------------------------------------------------------
    # diffing
    # ------------------------------------------------------------------

    async def observe(self, path: str, as_of: int = 0) -> ObservedParameter:
        """Read a path, re-reading when the cached observation predates ``as_of``."""
        read = await self.store.read(path)
        observed = ObservedParameter(path=path, value=read.value, as_of=read.as_of, exists=read.exists)
        if as_of and observed.is_stale(as_of):
            await self.store.log(f"Observation of {path} at {read.as_of} is older than {as_of}, re-reading")
            read = await self.store.read(path, refresh=True)
            observed = ObservedParameter(path=path, value=read.value, as_of=read.as_of, exists=read.exists)
        return observed

    async def _diff(
        self,
        context: DeviceContext,
        attribute: DesiredAttribute,
        as_of: int,
        result: ReconciliationResult
    ) -> AttributeResult:
        cid = result.correlation_id
        attribute_id = attribute.attribute_id

        self._transition(RunState.RESOLVE, cid)
        path = await self.resolver.resolve(attribute.capability, context, attribute.bindings, cid)
        if path is None:
            error = PathNotFoundError(
                f"Skipping {attribute_id}: no path exists on this device",
                capability=attribute.capability,
                candidates_tried=self.resolver.render_candidates(attribute.capability, context, attribute.bindings),
                context=self._error_context("diff", cid, section=attribute.section)
            )
            await self._record_error(result, error)
            outcome = AttributeResult(attribute_id, AttributeStatus.SKIPPED,
                                      desired=attribute.value, message=error.message)
            result.attribute_results.append(outcome)
            return outcome

        self._transition(RunState.DIFF, cid)
        observed = await self.observe(path, as_of)
        if observed.exists and values_equal(observed.value, attribute.value):
            outcome = AttributeResult(attribute_id, AttributeStatus.UNCHANGED, path=path,
                                      desired=attribute.value, observed=observed.value)
        else:
            result.directives.append(WriteDirective(
                path=path,
                value=attribute.value,
                existed_before=True,
                capability=attribute.capability,
                attribute=attribute_id
            ))
            self.logger.log_directive(f"Write needed for {attribute_id}", path,
                                      observed.value, attribute.value, correlation_id=cid)
            outcome = AttributeResult(attribute_id, AttributeStatus.PENDING, path=path,
                                      desired=attribute.value, observed=observed.value)
        result.attribute_results.append(outcome)
        return outcome

    def _applicable(self, key: str, context: DeviceContext) -> bool:
        return bool(self.registry.candidates_for(key, context))

    async def _diff_all(
        self,
        context: DeviceContext,
        attributes: List[DesiredAttribute],
        as_of: int,
        result: ReconciliationResult
    ) -> None:
        for attribute in attributes:
            if not self._applicable(attribute.capability, context):
                self.logger.debug(f"{attribute.capability} not applicable to this schema/vendor",
                                  correlation_id=result.correlation_id)
                continue
            await self._diff(context, attribute, as_of, result)

    # ------------------------------------------------------------------
    # sections
    # ------------------------------------------------------------------

    def _wifi_attributes(self, context: DeviceContext, band: Band, ssid: str, password: str,
                         security: str, enabled: bool, index: str) -> List[DesiredAttribute]:
        bindings = {"i": index}
        values: List[Tuple[str, Any]] = [
            ("ssid", ssid),
            ("enabled", enabled),
        ]
        if context.is_unified:
            mode, mfp = UNIFIED_SECURITY.get(security, UNIFIED_SECURITY["wpa2"])
            values.append(("security_mode", mode))
            if mfp is not None:
                values.append(("mfp", mfp))
        else:
            # mixed mode is not expressible on the legacy model and degrades to PSK
            values.extend([
                ("beacon_type", "11i"),
                ("encryption", "AESEncryption"),
                ("auth_mode", "SAEAuthentication" if security == "wpa3" else "PSKAuthentication"),
            ])
        values.append(("password", password))

        return [
            DesiredAttribute(capability=band_key(band, name), value=value, bindings=dict(bindings), section="wifi")
            for name, value in values
        ]

    async def _reconcile_wifi(self, context: DeviceContext, intent: WifiIntent,
                              wlans: List[WlanInstance], as_of: int, result: ReconciliationResult) -> None:
        cid = result.correlation_id
        for band, band_intent in intent.bands.items():
            instances = self.discoverer.instances_for_band(wlans, band)
            if not instances:
                message = f"No WLAN instance classified as {band.value} GHz, band skipped"
                await self._notice(message, cid)
                result.attribute_results.append(
                    AttributeResult(f"wifi.band.{band.value}", AttributeStatus.SKIPPED, message=message)
                )
                continue

            security = effective_security(band, band_intent.security)
            for wlan in instances:
                if not wlan.aligned:
                    message = f"Skipping {wlan.path}: instance indices not aligned ({wlan.alignment_note})"
                    await self._notice(message, cid)
                    result.attribute_results.append(AttributeResult(
                        f"wifi.band.{band.value}[i={wlan.index}]", AttributeStatus.UNALIGNED,
                        path=wlan.path, message=message
                    ))
                    continue

                attributes = self._wifi_attributes(context, band, band_intent.ssid, band_intent.password,
                                                   security, band_intent.enabled, wlan.index)
                await self._diff_all(context, attributes, as_of, result)

    async def _reconcile_wan(self, context: DeviceContext, intent: WanIntent,
                             as_of: int, result: ReconciliationResult) -> None:
        if intent.type == "pppoe":
            attributes = [
                DesiredAttribute("wan.pppoe.enable", True, section="wan"),
                DesiredAttribute("wan.pppoe.username", intent.username, section="wan"),
                DesiredAttribute("wan.pppoe.password", intent.password, section="wan"),
                DesiredAttribute("wan.pppoe.connection_type", "IP_Routed", section="wan"),
            ]
        else:
            attributes = [
                DesiredAttribute("wan.dhcp.enable", True, section="wan"),
                DesiredAttribute("wan.dhcp.connection_type", "IP_Routed", section="wan"),
                DesiredAttribute("wan.dhcp.addressing_type", "DHCP", section="wan"),
            ]
        await self._diff_all(context, attributes, as_of, result)

        if intent.vlan is None:
            return
        if not self._applicable("wan.vlan.id", context):
            message = (f"VLAN tagging not available for vendor={context.vendor_tag or 'none'} "
                       f"schema={context.schema_generation.value}, skipped")
            await self._notice(message, result.correlation_id)
            result.attribute_results.append(
                AttributeResult("wan.vlan.id", AttributeStatus.SKIPPED, desired=intent.vlan, message=message)
            )
            return
        await self._diff_all(context, [
            DesiredAttribute("wan.vlan.id", intent.vlan, section="wan"),
            DesiredAttribute("wan.vlan.cos", intent.cos, section="wan"),
        ], as_of, result)

    async def _reconcile_voip(self, context: DeviceContext, intent: VoipIntent,
                              as_of: int, result: ReconciliationResult) -> None:
        await self._diff_all(context, [
            DesiredAttribute("voip.proxy_server", intent.server, section="voip"),
            DesiredAttribute("voip.proxy_port", intent.port, section="voip"),
            DesiredAttribute("voip.registrar_server", intent.server, section="voip"),
            DesiredAttribute("voip.registrar_port", intent.registrar_port, section="voip"),
            DesiredAttribute("voip.line_enable", "Enabled", section="voip"),
            DesiredAttribute("voip.auth_username", intent.username, section="voip"),
            DesiredAttribute("voip.auth_password", intent.password, section="voip"),
            DesiredAttribute("voip.uri", intent.username, section="voip"),
        ], as_of, result)

    async def _plan_port_forward(self, context: DeviceContext, intent: PortForwardIntent,
                                 result: ReconciliationResult) -> None:
        cid = result.correlation_id
        wan_connection = "WANPPPConnection" if intent.wan_type == "ppp" else "WANIPConnection"
        base = await self.resolver.resolve("nat.port_mapping", context, {"wan_connection": wan_connection}, cid)
        if base is None:
            error = PathNotFoundError(
                "Skipping port forwarding: no port mapping collection on this device",
                capability="nat.port_mapping",
                candidates_tried=self.resolver.render_candidates(
                    "nat.port_mapping", context, {"wan_connection": wan_connection}),
                context=self._error_context("plan_port_forward", cid)
            )
            await self._record_error(result, error)
            for position, _ in enumerate(intent.rules):
                result.attribute_results.append(AttributeResult(
                    f"port_forward[{position}]", AttributeStatus.SKIPPED, message=error.message
                ))
            return

        next_index = await self.discoverer.next_free_index(base, cid)
        for position, rule in enumerate(intent.rules):
            attribute_id = f"port_forward[{position}]"
            instance = f"{base}.{next_index}"
            fields = (
                ("PortMappingEnabled", True),
                ("ExternalPort", rule.external_port),
                ("InternalPort", rule.internal_port),
                ("InternalClient", rule.internal_client),
                ("PortMappingProtocol", rule.protocol),
                ("PortMappingDescription", rule.description),
            )
            for name, value in fields:
                result.directives.append(WriteDirective(
                    path=f"{instance}.{name}",
                    value=value,
                    existed_before=False,
                    capability="nat.port_mapping",
                    collection=base,
                    index=next_index,
                    attribute=attribute_id
                ))
            result.attribute_results.append(AttributeResult(
                attribute_id, AttributeStatus.PENDING, path=instance,
                desired=f"{rule.protocol} {rule.external_port} -> {rule.internal_client}:{rule.internal_port}"
            ))
            next_index += 1

    async def _reconcile_migration(self, context: DeviceContext, intent: MigrationIntent,
                                   as_of: int, result: ReconciliationResult) -> None:
        """Mark a device taken over from another ACS and shorten its inform cycle."""
        identity = context.identity or DeviceIdentity(manufacturer=None)
        await self._notice(
            f"Migration: {identity.manufacturer} {identity.product_class} SN:{identity.serial}",
            result.correlation_id
        )
        await self._diff_all(context, [
            DesiredAttribute("management.periodic_inform_enable", True, section="migration"),
            DesiredAttribute("management.periodic_inform_interval", intent.periodic_inform_interval,
                             section="migration"),
        ], as_of, result)
        result.tags.append(Tag("migrated"))
        result.tags.append(Tag("needs_config"))

    async def _tag_optical(self, context: DeviceContext, intent: OpticalIntent,
                           as_of: int, result: ReconciliationResult) -> None:
        cid = result.correlation_id
        if not self._applicable("optical.rx_power", context):
            message = f"Optical monitoring not available for vendor={context.vendor_tag or 'none'}, skipped"
            await self._notice(message, cid)
            result.attribute_results.append(AttributeResult("optical.rx_power", AttributeStatus.SKIPPED,
                                                            message=message))
            return

        path = await self.resolver.resolve("optical.rx_power", context, correlation_id=cid)
        if path is None:
            error = PathNotFoundError(
                "Skipping optical tagging: no RX power parameter on this device",
                capability="optical.rx_power",
                candidates_tried=self.resolver.render_candidates("optical.rx_power", context),
                context=self._error_context("tag_optical", cid)
            )
            await self._record_error(result, error)
            result.attribute_results.append(AttributeResult("optical.rx_power", AttributeStatus.SKIPPED,
                                                            message=error.message))
            return

        observed = await self.observe(path, as_of)
        try:
            rx_power = parse_power(observed.value)
        except ValueError as e:
            error = NumericParseError(
                f"Optical RX power at {path} is not numeric: {observed.value!r}",
                path=path, raw_value=observed.value,
                context=self._error_context("tag_optical", cid), cause=e
            )
            await self._record_error(result, error)
            result.attribute_results.append(AttributeResult("optical.rx_power", AttributeStatus.SKIPPED,
                                                            path=path, observed=observed.value,
                                                            message=error.message))
            return

        manufacturer = context.identity.manufacturer if context.identity else None
        await self._notice(f"Optical RX Power: {rx_power} dBm ({manufacturer})", cid)

        critical = rx_power < intent.critical
        warning = critical or rx_power < intent.warning
        result.tags.append(Tag("optical_critical", critical))
        result.tags.append(Tag("optical_warning", warning))
        result.attribute_results.append(AttributeResult("optical.rx_power", AttributeStatus.UNCHANGED,
                                                        path=path, observed=rx_power))

    def _tag_device(self, context: DeviceContext, wlans: List[WlanInstance],
                    software_version: Optional[str], result: ReconciliationResult) -> None:
        tags = result.tags
        if context.vendor_tag:
            tags.append(Tag(context.vendor_tag))
            tags.append(Tag(f"vendor_{context.vendor_tag}"))

        product_class = context.identity.product_class if context.identity else ""
        if product_class:
            tags.append(Tag(model_tag(product_class)))

        for schema in (SchemaGeneration.UNIFIED, SchemaGeneration.LEGACY):
            tags.append(Tag(schema.tag, schema is context.schema_generation))

        seen = []
        for wlan in wlans:
            if wlan.band is not Band.UNKNOWN and wlan.band not in seen:
                seen.append(wlan.band)
                tags.append(Tag(wlan.band.tag))

        if context.vendor_tag == "nokia" and software_version and software_version.startswith("3FE"):
            tags.append(Tag(f"nokia_firmware_{software_version[:10]}"))

    async def _log_inventory(self, context: DeviceContext, correlation_id: Optional[str]) -> Optional[str]:
        observed = await self.read_capability("device.software_version", context)
        software_version = str(observed.value) if observed and observed.value else None
        identity = context.identity or DeviceIdentity(manufacturer=None)
        await self._notice(
            f"Inventory: {identity.manufacturer} {identity.product_class} "
            f"SN:{identity.serial} FW:{software_version or ''}",
            correlation_id
        )
        hardware = await self.read_capability("device.hardware_version", context)
        if hardware is not None and hardware.exists and hardware.value:
            await self._notice(f"Hardware version: {hardware.value}", correlation_id)
        return software_version

    # ------------------------------------------------------------------
    # queries and writes
    # ------------------------------------------------------------------

    async def read_capability(
        self,
        key: str,
        context: DeviceContext,
        bindings: Optional[Dict[str, Any]] = None
    ) -> Optional[ObservedParameter]:
        """Resolve a capability and read its value; None when no candidate exists.

        Unregistered keys also read as None. Band-scoped WiFi keys without an
        ``i`` binding use the first aligned instance discovered in that band.
        """
        if key not in self.registry:
            self.logger.warning(f"Unknown capability: {key}")
            return None
        bindings = dict(bindings or {})
        if key.startswith("wifi.band.") and "i" not in bindings:
            label = key[len("wifi.band."):].rsplit(".", 1)[0]
            try:
                band = Band.from_label(label)
            except ValueError:
                self.logger.warning(f"Unknown WiFi band '{label}' in {key}")
                return None
            wlans = await self.discoverer.discover_wlans(context)
            instances = [w for w in self.discoverer.instances_for_band(wlans, band) if w.aligned]
            if not instances:
                return None
            bindings["i"] = instances[0].index

        path = await self.resolver.resolve(key, context, bindings)
        if path is None:
            return None
        return await self.observe(path)

    @performance_monitor("apply", "engine")
    async def apply(self, result: ReconciliationResult) -> ReconciliationResult:
        """Issue the planned writes and tags, isolating failures per attribute."""
        cid = result.correlation_id
        self._transition(RunState.APPLY, cid)

        by_attribute = {r.attribute: r for r in result.attribute_results}
        failed = set()
        created: Dict[Tuple[str, int], int] = {}

        for directive in result.directives:
            if not directive.existed_before and directive.collection is not None:
                key = (directive.collection, directive.index)
                if key not in created:
                    created[key] = await self.store.create_instance(directive.collection)
                    if created[key] != directive.index:
                        await self._notice(
                            f"{directive.collection} allocated index {created[key]} "
                            f"instead of planned {directive.index}", cid
                        )
                actual = created[key]
                if actual != directive.index:
                    planned_prefix = f"{directive.collection}.{directive.index}"
                    directive.path = f"{directive.collection}.{actual}" + directive.path[len(planned_prefix):]
                    directive.index = actual
                    outcome = by_attribute.get(directive.attribute)
                    if outcome is not None:
                        outcome.path = f"{directive.collection}.{actual}"

            write = await self.store.write(directive.path, directive.value)
            if write.ok:
                continue

            error = WriteFailure(
                f"Write to {directive.path} rejected ({write.error_kind or 'unknown'})",
                path=directive.path, value=directive.value, error_kind=write.error_kind,
                context=self._error_context("apply", cid, attribute=directive.attribute)
            )
            await self._record_error(result, error)
            failed.add(directive.attribute)
            outcome = by_attribute.get(directive.attribute)
            if outcome is not None:
                outcome.status = AttributeStatus.FAILED
                outcome.message = error.message

        for outcome in result.attribute_results:
            if outcome.status is AttributeStatus.PENDING and outcome.attribute not in failed:
                outcome.status = AttributeStatus.APPLIED

        for tag in result.tags:
            await self.store.set_tag(tag.name, tag.value)

        self.logger.info(
            f"Applied {len(result.directives)} writes, {len(failed)} attributes failed",
            context=result.get_summary(), correlation_id=cid
        )
        return result
