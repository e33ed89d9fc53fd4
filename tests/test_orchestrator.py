"""Tests for orchestration/engine.py.

Tests for wave execution, export visibility, failure propagation, the
failure policies, cancellation, timeouts and idempotent re-runs.
"""

import asyncio
import json

import pytest
from stacklayer.core.errors import (
    ConfigurationError,
    CyclicDependencyError,
    DuplicateUnitError,
    ProviderError,
)
from stacklayer.orchestration import (
    FailurePolicy,
    Orchestrator,
    RunState,
    UnitStatus,
    deploy,
)
from stacklayer.providers import InMemoryProvider, ProviderHealth, ProviderRegistry
from stacklayer.references import ReferenceResolver
from stacklayer.units import IntentRef, ResourceIntent, declare, physical_name


def make_unit(name, locality, imports=(), depends_on=(), kind="bucket", count=1):
    """A unit of ``count`` intents exporting ``out``; imported values land in the first intent."""
    intents = [ResourceIntent(kind, "R0", {"inputs": list(imports)})]
    intents += [ResourceIntent(kind, f"R{i}") for i in range(1, count)]
    return declare(name, locality, intents, exports={"out": IntentRef("R0", "arn")}, depends_on=depends_on)


class TrackingProvider(InMemoryProvider):
    """Records the peak number of concurrent applies."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.active = 0
        self.peak = 0

    async def apply(self, intent, *, idempotency_key):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            return await super().apply(intent, idempotency_key=idempotency_key)
        finally:
            self.active -= 1


class BrokenProvider(InMemoryProvider):
    async def apply(self, intent, *, idempotency_key):
        raise RuntimeError("connection reset")


class UnreachableProvider(InMemoryProvider):
    """Passes its health check, then loses the endpoint mid-apply."""

    async def apply(self, intent, *, idempotency_key):
        raise ProviderError("endpoint unreachable", {"endpoint": "vpc.internal"})


@pytest.fixture
def two_region_units(primary, edge):
    """Governance -> Network -> Database -> Compute -> Edge (edge region)."""
    governance = make_unit("Governance", primary)
    network = make_unit("Network", primary, depends_on=["Governance"])
    database = make_unit("Database", primary, imports=[network.export("out")])
    compute = declare(
        "Compute",
        primary,
        [
            ResourceIntent("load_balancer", "Alb", {"db": database.export("out"), "vpc": network.export("out")}),
        ],
        exports={"hostname": IntentRef("Alb", "dns_name")},
    )
    edge_unit = declare(
        "Edge",
        edge,
        [ResourceIntent("cdn_distribution", "Cdn", {"origin": compute.export("hostname")})],
        exports={"domain": IntentRef("Cdn", "domain_name")},
        depends_on=["Compute"],
    )
    return [governance, network, database, compute, edge_unit]


class TestWaveExecution:
    """Tests for successful runs."""

    @pytest.mark.asyncio
    async def test_wave_order_across_regions(self, registry, context, two_region_units):
        result = await Orchestrator(registry, context).run(two_region_units)

        assert result.state == RunState.COMPLETED
        assert result.success
        assert result.waves == [["Governance"], ["Network"], ["Database"], ["Compute"], ["Edge"]]
        assert result.completed == ["Governance", "Network", "Database", "Compute", "Edge"]

    @pytest.mark.asyncio
    async def test_edge_reads_compute_hostname(self, registry, provider, context, primary, edge, two_region_units):
        orchestrator = Orchestrator(registry, context, resolver=ReferenceResolver(namespace="cms"))
        result = await orchestrator.run(two_region_units)

        hostname = result.exports["Compute"]["hostname"]
        cdn = provider.state.get(physical_name("cms", edge, "Edge", "Cdn"))
        assert cdn.attributes["origin"] == hostname
        assert orchestrator.resolver.store.snapshot() == {
            str(edge): {"/cms/exports/Compute/hostname": hostname}
        }
        assert result.references[0]["consumer"] == "Edge"

        alb_key = physical_name("cms", primary, "Compute", "Alb")
        cdn_key = physical_name("cms", edge, "Edge", "Cdn")
        assert provider.apply_calls.index(alb_key) < provider.apply_calls.index(cdn_key)

    @pytest.mark.asyncio
    async def test_unit_attributes_populated(self, registry, context, two_region_units):
        await Orchestrator(registry, context).run(two_region_units)

        compute = two_region_units[3]
        assert compute.attributes["hostname"].endswith(".elb.amazonaws.com")

    @pytest.mark.asyncio
    async def test_independent_units_run_concurrently(self, context, primary):
        provider = TrackingProvider(delay=0.02)
        units = [make_unit(name, primary) for name in ("A", "B", "C")]

        await Orchestrator(ProviderRegistry(default=provider), context, max_parallel_units=3).run(units)

        assert provider.peak == 3

    @pytest.mark.asyncio
    async def test_parallelism_bounded(self, context, primary):
        provider = TrackingProvider(delay=0.01)
        units = [make_unit(name, primary) for name in ("A", "B", "C")]

        result = await Orchestrator(ProviderRegistry(default=provider), context, max_parallel_units=1).run(units)

        assert provider.peak == 1
        assert result.success

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, registry, provider, context, two_region_units):
        orchestrator = Orchestrator(registry, context)
        first = await orchestrator.run(two_region_units)
        mutations = list(provider.mutations)

        second = await orchestrator.run(two_region_units)

        assert second.success
        assert provider.mutations == mutations
        assert second.exports == first.exports
        assert all(h.action == "noop" for o in second.units.values() for h in o.resources)

    @pytest.mark.asyncio
    async def test_result_serializes(self, registry, context, two_region_units):
        result = await Orchestrator(registry, context).run(two_region_units)

        data = json.loads(json.dumps(result.to_dict()))

        assert data["state"] == "completed"
        assert data["units"]["Edge"]["status"] == "completed"
        assert len(data["run_id"]) == 12

    def test_sync_deploy(self, registry, context, primary):
        result = deploy(Orchestrator(registry, context), [make_unit("Only", primary)])

        assert result.success

    @pytest.mark.asyncio
    async def test_empty_run(self, registry, context):
        result = await Orchestrator(registry, context).run([])

        assert result.success
        assert result.waves == []


class TestPlanningFailures:
    """Tests for errors raised before any unit starts."""

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected(self, registry, provider, context, primary):
        orchestrator = Orchestrator(registry, context)
        units = [make_unit("Network", primary), make_unit("Network", primary)]

        with pytest.raises(DuplicateUnitError):
            await orchestrator.run(units)

        assert orchestrator.state == RunState.FAILED
        assert provider.apply_calls == []

    @pytest.mark.asyncio
    async def test_cycle_reports_path(self, registry, provider, context, primary):
        x = make_unit("X", primary)
        y = make_unit("Y", primary, imports=[x.export("out")])

        with pytest.raises(CyclicDependencyError) as exc_info:
            await Orchestrator(registry, context).run([x, y], edges=[("Y", "X")])

        assert exc_info.value.path == ["Y", "X", "Y"]
        assert provider.apply_calls == []

    @pytest.mark.asyncio
    async def test_missing_provider(self, context, primary):
        with pytest.raises(ConfigurationError):
            await Orchestrator(ProviderRegistry(), context).run([make_unit("A", primary)])

    @pytest.mark.asyncio
    async def test_unreachable_provider(self, context, primary):
        provider = InMemoryProvider(health=ProviderHealth(status="unreachable", details="no route"))
        orchestrator = Orchestrator(ProviderRegistry(default=provider), context)

        with pytest.raises(ProviderError, match="unreachable"):
            await orchestrator.run([make_unit("A", primary)])

        assert orchestrator.state == RunState.FAILED
        assert provider.apply_calls == []


class TestFailurePropagation:
    """Tests for failed units and their dependents."""

    @pytest.mark.asyncio
    async def test_consumer_skipped_after_producer_failure(self, context, primary, two_region_units):
        provider = InMemoryProvider(fail_on={"Alb"})
        result = await Orchestrator(ProviderRegistry(default=provider), context).run(two_region_units)

        assert result.state == RunState.FAILED
        assert result.completed == ["Governance", "Network", "Database"]
        assert result.failed == ["Compute"]
        assert result.skipped == ["Edge"]
        edge_outcome = result.units["Edge"]
        assert edge_outcome.cause == "Compute"
        assert result.root_cause_unit == "Compute"
        assert "Alb" in result.root_cause

    @pytest.mark.asyncio
    async def test_failed_unit_exports_never_visible(self, context, primary, two_region_units):
        provider = InMemoryProvider(fail_on={"Alb"})
        result = await Orchestrator(ProviderRegistry(default=provider), context).run(two_region_units)

        assert "Compute" not in result.exports

    @pytest.mark.asyncio
    async def test_transitive_skip_cause(self, context, primary):
        a = make_unit("A", primary)
        b = make_unit("B", primary, imports=[a.export("out")])
        c = make_unit("C", primary, imports=[b.export("out")])
        provider = InMemoryProvider(fail_on={physical_name("cms", primary, "A", "R0")})

        result = await Orchestrator(ProviderRegistry(default=provider), context).run([a, b, c])

        assert result.units["B"].cause == "A"
        assert result.units["C"].cause == "A"

    @pytest.mark.asyncio
    async def test_halts_later_waves_by_default(self, context, primary):
        """Test an unrelated unit in a later wave is skipped once a unit fails."""
        bad = make_unit("Bad", primary, kind="vpc")
        good = make_unit("Good", primary)
        after = make_unit("After", primary, depends_on=["Good"])
        registry = ProviderRegistry(default=InMemoryProvider())
        registry.register("vpc", InMemoryProvider(fail_on={"vpc"}))

        result = await Orchestrator(registry, context).run([bad, good, after])

        assert result.units["Good"].status == UnitStatus.COMPLETED
        assert result.units["After"].status == UnitStatus.SKIPPED
        assert result.units["After"].cause == "Bad"

    @pytest.mark.asyncio
    async def test_continue_independent_branches(self, context, primary):
        bad = make_unit("Bad", primary, kind="vpc")
        dependent = make_unit("Dependent", primary, imports=[bad.export("out")])
        good = make_unit("Good", primary)
        after = make_unit("After", primary, depends_on=["Good"])
        registry = ProviderRegistry(default=InMemoryProvider())
        registry.register("vpc", InMemoryProvider(fail_on={"vpc"}))

        result = await Orchestrator(registry, context, continue_independent_branches=True).run(
            [bad, dependent, good, after]
        )

        assert result.units["After"].status == UnitStatus.COMPLETED
        assert result.units["Dependent"].status == UnitStatus.SKIPPED
        assert result.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception(self, context, primary):
        result = await Orchestrator(ProviderRegistry(default=BrokenProvider()), context).run(
            [make_unit("A", primary)]
        )

        outcome = result.units["A"]
        assert outcome.status == UnitStatus.FAILED
        assert "connection reset" in outcome.reason

    @pytest.mark.asyncio
    async def test_provider_error_during_apply_fails_only_its_unit(self, context, primary):
        registry = ProviderRegistry(default=InMemoryProvider())
        registry.register("vpc", UnreachableProvider())
        orchestrator = Orchestrator(registry, context, continue_independent_branches=True)
        units = [
            make_unit("A", primary),
            make_unit("B", primary, kind="vpc"),
            make_unit("C", primary, depends_on=["A"]),
        ]

        result = await orchestrator.run(units)

        assert result.units["A"].status == UnitStatus.COMPLETED
        assert result.units["C"].status == UnitStatus.COMPLETED
        outcome = result.units["B"]
        assert outcome.status == UnitStatus.FAILED
        assert outcome.reason == "endpoint unreachable"
        assert result.root_cause_unit == "B"
        assert result.state == RunState.FAILED
        assert orchestrator.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_missing_export_attribute_fails_unit(self, registry, context, primary):
        unit = declare(
            "A", primary, [ResourceIntent("bucket", "B")], exports={"host": IntentRef("B", "dns_name")}
        )

        result = await Orchestrator(registry, context).run([unit])

        assert result.units["A"].status == UnitStatus.FAILED
        assert "dns_name" in result.units["A"].reason


class TestFailurePolicy:
    """Tests for what in-flight siblings do when a unit fails."""

    def _registry(self):
        slow = InMemoryProvider(delay=0.05)
        failing = InMemoryProvider(fail_on={"vpc"})
        registry = ProviderRegistry(default=slow)
        registry.register("vpc", failing)
        return registry, slow

    @pytest.mark.asyncio
    async def test_finish_lets_siblings_complete(self, context, primary):
        registry, slow = self._registry()
        units = [make_unit("Slow", primary, count=3), make_unit("Bad", primary, kind="vpc")]

        result = await Orchestrator(registry, context, failure_policy=FailurePolicy.FINISH).run(units)

        assert result.units["Slow"].status == UnitStatus.COMPLETED
        assert result.units["Bad"].status == UnitStatus.FAILED
        assert len(slow.state.resources) == 3

    @pytest.mark.asyncio
    async def test_rollback_cancels_and_rolls_back_siblings(self, context, primary):
        registry, slow = self._registry()
        units = [make_unit("Slow", primary, count=3), make_unit("Bad", primary, kind="vpc")]

        result = await Orchestrator(registry, context, failure_policy=FailurePolicy.ROLLBACK).run(units)

        slow_outcome = result.units["Slow"]
        assert slow_outcome.status == UnitStatus.FAILED
        assert slow_outcome.cancelled
        assert slow_outcome.rolled_back == [physical_name("cms", primary, "Slow", "R0")]
        assert slow.state.resources == {}
        assert result.root_cause_unit == "Bad"

    @pytest.mark.asyncio
    async def test_rollback_keeps_preexisting_resources(self, context, primary):
        registry, slow = self._registry()
        slow_unit = make_unit("Slow", primary, count=3)
        await Orchestrator(registry, context).run([slow_unit])

        units = [slow_unit, make_unit("Bad", primary, kind="vpc")]
        result = await Orchestrator(registry, context, failure_policy=FailurePolicy.ROLLBACK).run(units)

        assert result.units["Slow"].rolled_back == []
        assert len(slow.state.resources) == 3


class TestCancellationAndTimeouts:
    """Tests for cancellation and per-unit timeouts."""

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, context, primary):
        provider = InMemoryProvider(delay=0.05)
        first = make_unit("First", primary, count=2)
        second = make_unit("Second", primary, depends_on=["First"])
        orchestrator = Orchestrator(ProviderRegistry(default=provider), context)

        asyncio.get_running_loop().call_later(0.01, orchestrator.cancel, "operator")
        result = await orchestrator.run([first, second])

        assert result.state == RunState.FAILED
        assert result.units["First"].status == UnitStatus.FAILED
        assert result.units["First"].reason == "cancelled: operator"
        assert result.units["First"].rolled_back == [physical_name("cms", primary, "First", "R0")]
        assert result.units["Second"].status == UnitStatus.SKIPPED
        assert result.root_cause == "cancelled: operator"
        assert result.root_cause_unit is None
        assert provider.state.resources == {}

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, registry, provider, context, primary):
        orchestrator = Orchestrator(registry, context)
        orchestrator.cancel("not today")

        result = await orchestrator.run([make_unit("A", primary)])

        assert result.skipped == ["A"]
        assert provider.apply_calls == []

    @pytest.mark.asyncio
    async def test_cancel_applies_to_one_run_only(self, registry, provider, context, primary):
        orchestrator = Orchestrator(registry, context)
        unit = make_unit("A", primary)
        orchestrator.cancel("first")

        cancelled = await orchestrator.run([unit])
        second = await orchestrator.run([unit])

        assert cancelled.state == RunState.FAILED
        assert second.state == RunState.COMPLETED
        assert second.root_cause is None
        assert len(provider.apply_calls) == 1

    @pytest.mark.asyncio
    async def test_unit_timeout(self, context, primary):
        provider = InMemoryProvider(delay=0.5)
        orchestrator = Orchestrator(ProviderRegistry(default=provider), context, unit_timeout_seconds=0.05)

        result = await orchestrator.run([make_unit("Slow", primary)])

        assert result.units["Slow"].status == UnitStatus.FAILED
        assert "did not finish within 0.05s" in result.units["Slow"].reason

    def test_invalid_parallelism(self, registry, context):
        with pytest.raises(ValueError):
            Orchestrator(registry, context, max_parallel_units=0)


class TestPreview:
    """Tests for dry-run planning."""

    @pytest.mark.asyncio
    async def test_preview_before_apply(self, registry, provider, context, two_region_units):
        plan = await Orchestrator(registry, context).preview(two_region_units)

        assert plan.success
        assert plan.waves == [["Governance"], ["Network"], ["Database"], ["Compute"], ["Edge"]]
        assert all(c.action == "create" for changes in plan.changes.values() for c in changes)
        assert plan.total_changes == 5
        assert plan.changes["Edge"][0].details["unresolved"] is True
        assert plan.references[0]["consumer"] == "Edge"
        assert provider.apply_calls == []

    @pytest.mark.asyncio
    async def test_preview_after_apply(self, registry, context, two_region_units):
        """Test consumers of unchanged producers see concrete values and plan no changes."""
        orchestrator = Orchestrator(registry, context)
        await orchestrator.run(two_region_units)

        plan = await orchestrator.preview(two_region_units)

        assert plan.total_changes == 0
        assert not any(c.details.get("unresolved") for changes in plan.changes.values() for c in changes)

    @pytest.mark.asyncio
    async def test_preview_provider_error(self, context, primary):
        class FailingPlanProvider(InMemoryProvider):
            async def plan(self, intent, *, idempotency_key):
                raise ProviderError("throttled")

        plan = await Orchestrator(ProviderRegistry(default=FailingPlanProvider()), context).preview(
            [make_unit("A", primary)]
        )

        assert not plan.success
        assert plan.errors == ["A/R0: throttled"]

    @pytest.mark.asyncio
    async def test_preview_missing_existing_attribute(self, registry, context, primary):
        """Test an unchanged resource lacking a referenced attribute is reported, not raised."""
        unit = declare(
            "A",
            primary,
            [ResourceIntent("bucket", "R0"), ResourceIntent("bucket", "R1", {"peer": IntentRef("R0", "dns_name")})],
        )
        orchestrator = Orchestrator(registry, context)
        await orchestrator.run([unit])

        plan = await orchestrator.preview([unit])

        assert not plan.success
        assert len(plan.errors) == 1
        assert plan.errors[0].startswith("A/R1: bucket 'R0' has no attribute 'dns_name'")
        assert plan.changes["A"][0].action == "noop"
