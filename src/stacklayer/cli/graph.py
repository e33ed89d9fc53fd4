"""
CLI command for showing the unit dependency graph.
"""

import json

from stacklayer.cli.runtime import Runtime
from stacklayer.cli.ux import console, header, print_table
from stacklayer.orchestration import DeploymentPlan


def graph_to_dict(plan: DeploymentPlan) -> dict:
    return {
        "units": [
            {"name": u.name, "locality": str(u.locality), "exports": sorted(u.exports)}
            for u in plan.graph.units
        ],
        "edges": [e.to_dict() for e in plan.graph.edges],
        "waves": plan.wave_names,
    }


def print_graph(plan: DeploymentPlan) -> None:
    header("Dependency graph")
    rows = [
        [e.producer, e.consumer, e.reason.value, e.detail]
        for e in plan.graph.edges
    ]
    print_table("Edges", ["Producer", "Consumer", "Reason", "Detail"], rows)
    console.print()
    for index, wave in enumerate(plan.waves):
        names = ", ".join(f"{u.name} [muted]({u.locality.region})[/muted]" for u in wave)
        console.print(f"[bold]Wave {index}:[/bold] {names}")
    console.print()


def graph_command(runtime: Runtime, output_format: str = "text") -> int:
    blueprint = runtime.blueprint
    plan = runtime.orchestrator().plan(blueprint.units, blueprint.edges)
    if output_format == "json":
        print(json.dumps(graph_to_dict(plan), indent=2))
    else:
        print_graph(plan)
    return 0
