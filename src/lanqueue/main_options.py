"""Click option helpers for the lanqueue CLI."""
from __future__ import annotations

import click


def _check_mutual_exclusion(name: str, exclusive_with: list[str], opts: dict) -> None:
    """Raise UsageError if mutually exclusive options are both present.

    Args:
        name: Name of the current option.
        exclusive_with: Names of options that cannot be combined with it.
        opts: Dictionary of parsed options.

    Raises:
        click.UsageError: If both options are present.
    """
    for other in exclusive_with:
        if other in opts:
            msg = f"Options --{name} and --{other} are mutually exclusive"
            raise click.UsageError(msg)


class MutuallyExclusiveOption(click.Option):
    """Click option that refuses to be combined with the options it names."""

    def __init__(self, *args, **kwargs):
        """Initialize with exclusive_with listing the conflicting options."""
        self.exclusive_with = kwargs.pop("exclusive_with", [])
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        """Check mutual exclusion before the value is processed."""
        if self.name in opts:
            _check_mutual_exclusion(self.name, self.exclusive_with, opts)
        return super().handle_parse_result(ctx, opts, args)


def parse_port(value: int | None) -> int:
    """Validate the --port value after settings have been merged.

    Raises:
        click.UsageError: If no port was given.
    """
    if value is None:
        raise click.UsageError("--port is required (or set port in --config)")
    return value
