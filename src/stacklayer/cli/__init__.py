"""StackLayer CLI commands."""
