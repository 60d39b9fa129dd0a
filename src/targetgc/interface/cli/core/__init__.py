"""Core CLI infrastructure: the command group and error handling."""

from targetgc.interface.cli.core.error_handler import format_error_for_json, handle_error
from targetgc.interface.cli.core.main import cli_entrypoint, format_size, main

__all__ = [
    "cli_entrypoint",
    "format_error_for_json",
    "format_size",
    "handle_error",
    "main",
]
