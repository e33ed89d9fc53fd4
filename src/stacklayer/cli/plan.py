"""
CLI command for planning (dry-run) a deployment.
"""

import asyncio
import json

from stacklayer.cli.runtime import Runtime
from stacklayer.cli.ux import ACTION_STYLES, console, error, header, info, spinner
from stacklayer.orchestration import PlanResult


def print_plan_summary(plan: PlanResult, verbose: bool = False) -> None:
    """Print waves and the changes each unit would make."""
    console.print()
    header(f"Plan: {plan.app_name}")
    console.print()

    if plan.errors:
        error("Errors:")
        for err in plan.errors:
            console.print(f"   [error]•[/error] {err}")
        console.print()

    for index, wave in enumerate(plan.waves):
        console.print(f"[bold]Wave {index}[/bold]")
        for unit in wave:
            changes = plan.changes.get(unit, [])
            pending = sum(1 for c in changes if c.action != "noop")
            console.print(f"  [highlight]{unit}[/highlight] [muted]({pending} to change)[/muted]")
            for change in changes:
                if change.action == "noop" and not verbose:
                    continue
                style = ACTION_STYLES.get(change.action, "info")
                suffix = " [muted](known after apply)[/muted]" if change.details.get("unresolved") else ""
                console.print(
                    f"     [muted]└[/muted] [{style}]{change.action:<6}[/{style}] "
                    f"{change.kind} {change.logical_id}{suffix}"
                )
        console.print()

    if plan.references:
        console.print("[bold]Cross-region references:[/bold]")
        for ref in plan.references:
            console.print(
                f"  [muted]•[/muted] {ref['consumer']} reads {ref['ref']} "
                f"via [info]{ref['parameter']}[/info] in {ref['consumer_locality']}"
            )
        console.print()

    if plan.success and plan.total_changes == 0:
        info("No changes. Deployed resources match the blueprint.")
        console.print()
        return

    console.print(f"[bold]Total:[/bold] {plan.total_changes} changes")
    console.print()
    console.print("[muted]To apply these changes, run:[/muted]")
    console.print("  [info]stacklayer apply[/info]")
    console.print()


def print_plan_json(plan: PlanResult) -> None:
    """Print plan in JSON format."""
    print(json.dumps(plan.to_dict(), indent=2, default=str))


def plan_command(runtime: Runtime, output_format: str = "text", verbose: bool = False) -> int:
    """
    Preview what a deployment would change.

    Returns:
        Exit code (0 for success, 1 if any provider could not plan)
    """
    blueprint = runtime.blueprint
    orchestrator = runtime.orchestrator()
    if output_format == "json":
        result = asyncio.run(orchestrator.preview(blueprint.units, blueprint.edges))
        print_plan_json(result)
    else:
        with spinner("Planning changes..."):
            result = asyncio.run(orchestrator.preview(blueprint.units, blueprint.edges))
        print_plan_summary(result, verbose=verbose)

    return 0 if result.success else 1
