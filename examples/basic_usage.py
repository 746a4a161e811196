#!/usr/bin/env python3
"""
Basic Usage Examples for the ONT Intent Reconciler

Runs a policy against the bundled device snapshot, first as a dry run and
then applying the writes, and shows capability lookups on the same device.
"""

import asyncio
from pathlib import Path

from ont_reconciler import (
    AttributeStatus, InMemoryParameterStore, LogLevel, ReconcilerApp,
    ReconcilerConfig, ReconciliationEngine, ReportGenerator, initialize_logging
)

HERE = Path(__file__).parent
SNAPSHOT = HERE / "sample_device.yaml"
POLICY = HERE / "sample_policy.yaml"


async def example_1_dry_run():
    """Example 1: Plan the writes a policy needs without touching the device."""
    print("Example 1: Dry run")
    print("-" * 40)

    app = ReconcilerApp(ReconcilerConfig())
    result, _ = await app.reconcile_device(SNAPSHOT, POLICY)

    print(f"Detected {result.context.vendor_tag} on the {result.context.schema_generation.value} schema")
    for directive in result.directives:
        print(f"  would write {directive.path} = {directive.value!r}")
    print(f"Tags: {result.tag_map()}")


async def example_2_apply_and_rerun():
    """Example 2: Apply writes, then show that a second run is a no-op."""
    print("\nExample 2: Apply and re-run")
    print("-" * 40)

    store = InMemoryParameterStore.from_snapshot_file(SNAPSHOT)
    engine = ReconciliationEngine(store)
    document = ReconcilerApp(ReconcilerConfig()).load_policy(POLICY)

    first = await engine.run(store.identity, document, apply=True)
    print(f"Applied: {len(first.results_with_status(AttributeStatus.APPLIED))} attributes")
    for outcome in first.results_with_status(AttributeStatus.FAILED):
        print(f"  failed {outcome.attribute}: {outcome.message}")

    second = await engine.run(store.identity, document)
    print(f"Second run directives: {len(second.directives)}")
    print(ReportGenerator(include_metadata=False).to_text(second))


async def example_3_capability_lookup():
    """Example 3: Resolve and read vendor-specific capabilities."""
    print("\nExample 3: Capability lookup")
    print("-" * 40)

    app = ReconcilerApp(ReconcilerConfig())
    for key in ("optical.rx_power", "wifi.band.5.ssid", "wan.vlan.id"):
        observed = await app.query_capability(SNAPSHOT, key)
        if observed is None:
            print(f"  {key}: not available on this device")
        else:
            print(f"  {key}: {observed.path} = {observed.value!r}")


async def main():
    initialize_logging(log_level=LogLevel.WARNING, enable_structured=False)

    await example_1_dry_run()
    await example_2_apply_and_rerun()
    await example_3_capability_lookup()


if __name__ == "__main__":
    asyncio.run(main())
