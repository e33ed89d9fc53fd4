"""StackLayer command-line entry point."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from stacklayer.config import get_settings
from stacklayer.core.errors import main_with_error_handling
from stacklayer.logging import configure_logging


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Deployment file (default: .stacklayer/config.yaml)")
    parser.add_argument("--state-file", help="Provider state file (default: .stacklayer/state.json)")
    parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed information")
    parser.add_argument(
        "--fail-fast-references",
        action="store_true",
        help="Fail a unit immediately when a cross-region export is not yet replicated",
    )
    parser.add_argument(
        "--failure-policy",
        choices=["finish", "rollback"],
        help="What in-flight units do when a unit in their wave fails",
    )
    parser.add_argument(
        "--continue-independent",
        action="store_true",
        help="Keep deploying units that do not depend on a failed unit",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stacklayer", description="StackLayer deployment orchestrator")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Preview what a deployment would change (dry-run)")
    _add_common_arguments(plan_parser)

    apply_parser = subparsers.add_parser("apply", help="Deploy all units wave by wave")
    _add_common_arguments(apply_parser)

    graph_parser = subparsers.add_parser("graph", help="Show unit dependencies and deployment waves")
    _add_common_arguments(graph_parser)

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "resolve_mode": "fail_fast" if args.fail_fast_references else None,
        "failure_policy": args.failure_policy,
        "continue_independent_branches": True if args.continue_independent else None,
    }


@main_with_error_handling()
def run(args: argparse.Namespace) -> int:
    from stacklayer.cli.runtime import load_runtime

    runtime = load_runtime(args.config, args.state_file, _overrides(args))

    if args.command == "plan":
        from stacklayer.cli.plan import plan_command

        return plan_command(runtime, output_format=args.output, verbose=args.verbose)

    if args.command == "apply":
        from stacklayer.cli.apply import apply_command

        return apply_command(runtime, output_format=args.output, verbose=args.verbose)

    from stacklayer.cli.graph import graph_command

    return graph_command(runtime, output_format=args.output)


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(2)

    settings = get_settings()
    configure_logging(
        "DEBUG" if args.verbose else settings.log_level,
        json_output=settings.log_json,
    )
    sys.exit(int(run(args)))


if __name__ == "__main__":
    main()
