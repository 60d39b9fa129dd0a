"""CLI Error Handler.

Provides unified error handling for the CLI with support for:
- Human-readable output (default)
- JSON output for scripts wrapping the collector

Every error leaves through ``handle_error`` so exit codes and stderr output
stay consistent across commands.
"""

import json
import os
import shutil
import sys
from typing import NoReturn

from rich.console import Console
from rich.text import Text

from targetgc.foundation.errors import ErrorCode, TargetGcError


def _detect_environment() -> dict[str, bool]:
    """Detect toolchain facts that sharpen recovery hints."""
    return {
        "has_cargo": shutil.which("cargo") is not None,
        "has_rustup": shutil.which("rustup") is not None,
        "rustc_bootstrap": os.environ.get("RUSTC_BOOTSTRAP") == "1",
    }


def _get_context_aware_hints(error: TargetGcError, env: dict[str, bool]) -> list[str]:
    """Hints that depend on the environment rather than on the error alone."""
    hints: list[str] = []

    if error.code == ErrorCode.PLANNING_FAILED:
        stderr = str(error.context.get("stderr", ""))
        if "unstable" in stderr and not env.get("rustc_bootstrap"):
            hints.append("Detected: cargo rejected -Z flags. Set RUSTC_BOOTSTRAP=1 or use nightly")

    elif error.code == ErrorCode.TOOLCHAIN_QUERY_FAILED:
        if not env.get("has_cargo"):
            hints.append("Detected: no cargo on PATH")
            if env.get("has_rustup"):
                hints.append("Detected: rustup is installed. Try: rustup default stable")

    return hints


def to_error(error: TargetGcError | Exception) -> TargetGcError:
    """Wrap anything that is not already a TargetGcError."""
    if isinstance(error, TargetGcError):
        return error
    return TargetGcError(
        code=ErrorCode.RUNTIME_STATE_INVALID,
        context={"detail": str(error)},
        cause=error,
    )


def handle_error(
    error: TargetGcError | Exception,
    json_output: bool = False,
) -> NoReturn:
    """Report an error and exit.

    Args:
        error: The error to handle (TargetGcError or generic Exception)
        json_output: If True, output JSON to stderr

    Raises:
        SystemExit: Always exits with code 1
    """
    error = to_error(error)

    if json_output:
        print(format_error_for_json(error), file=sys.stderr)
        sys.exit(1)

    print_human_error(error)
    sys.exit(1)


def print_human_error(error: TargetGcError, console: Console | None = None) -> None:
    """Print an error with its recovery hints."""
    console = console or Console(stderr=True)

    header = Text()
    header.append("error", style="bold red")
    header.append(f" {error.error_id}", style="bold")
    header.append(f" {error.message}")
    console.print(header)

    all_hints = _get_context_aware_hints(error, _detect_environment()) + list(error.recovery_hints)
    if all_hints:
        console.print("\n[bold]What you can do:[/]")
        for i, hint in enumerate(all_hints, 1):
            if hint.startswith("Detected:"):
                console.print(f"  [dim]{hint}[/]")
            else:
                console.print(f"  {i}. {hint}")


def format_error_for_json(error: TargetGcError | Exception) -> str:
    """Format an error as a JSON string."""
    error = to_error(error)
    error_dict = error.to_dict()
    if error.cause:
        error_dict["cause"] = str(error.cause)
    return json.dumps(error_dict)
