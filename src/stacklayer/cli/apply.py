"""
CLI command for applying a deployment.
"""

import asyncio
import contextlib
import json
import signal

from stacklayer.cli.runtime import Runtime
from stacklayer.cli.ux import STATUS_STYLES, console, print_key_value, print_table, spinner, success, warning
from stacklayer.core.errors import ExitCode
from stacklayer.orchestration import DeploymentResult, Orchestrator
from stacklayer.orchestration.blueprint import Blueprint


def print_apply_summary(result: DeploymentResult, verbose: bool = False) -> None:
    """Print the per-unit outcome of a run."""
    console.print()
    rows = []
    for name, outcome in result.units.items():
        style = STATUS_STYLES.get(outcome.status.value, "info")
        changed = sum(1 for h in outcome.resources if h.action != "noop")
        reason = outcome.reason or ""
        if not verbose and len(reason) > 60:
            reason = reason[:57] + "..."
        rows.append(
            [
                str(outcome.wave),
                name,
                f"[{style}]{outcome.status.value}[/{style}]",
                f"{changed}/{len(outcome.resources)}",
                reason,
            ]
        )
    print_table(f"Run {result.run_id}", ["Wave", "Unit", "Status", "Changed", "Reason"], rows)

    console.print()
    duration = f" in {result.duration_seconds:.1f}s"
    if result.success:
        success(f"Deployed {len(result.completed)} units{duration}")
    else:
        warning(
            f"{len(result.completed)} completed, {len(result.failed)} failed, "
            f"{len(result.skipped)} skipped{duration}"
        )
        if result.root_cause:
            culprit = f"{result.root_cause_unit}: " if result.root_cause_unit else ""
            console.print(f"[error]Root cause:[/error] {culprit}{result.root_cause}")

    if verbose:
        for producer, values in result.exports.items():
            print_key_value({k: str(v) for k, v in values.items()}, title=f"{producer} exports")
        rolled_back = {n: o.rolled_back for n, o in result.units.items() if o.rolled_back}
        if rolled_back:
            print_key_value({n: ", ".join(ids) for n, ids in rolled_back.items()}, title="Rolled back")
    console.print()


def print_apply_json(result: DeploymentResult) -> None:
    print(json.dumps(result.to_dict(), indent=2, default=str))


async def run_with_interrupts(orchestrator: Orchestrator, blueprint: Blueprint) -> DeploymentResult:
    """Run the deployment; Ctrl-C requests cancellation instead of killing the run."""
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel, "interrupted")
        installed = True
    try:
        return await orchestrator.run(blueprint.units, blueprint.edges)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def apply_command(runtime: Runtime, output_format: str = "text", verbose: bool = False) -> int:
    """
    Deploy every unit.

    Returns:
        0 when every unit completed, 1 when some failed or were skipped,
        130 when the run was cancelled before anything failed
    """
    if output_format == "json":
        result = asyncio.run(run_with_interrupts(runtime.orchestrator(), runtime.blueprint))
    else:
        with spinner("Deploying units..."):
            result = asyncio.run(run_with_interrupts(runtime.orchestrator(), runtime.blueprint))

    if output_format == "json":
        print_apply_json(result)
    else:
        print_apply_summary(result, verbose=verbose)

    if result.success:
        return ExitCode.SUCCESS
    if result.root_cause_unit is None and result.root_cause:
        return ExitCode.CANCELLED
    return ExitCode.WARNING
