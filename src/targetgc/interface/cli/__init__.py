"""targetgc CLI.

- core/ - entry point, command group and error rendering
"""

# Only export the main entry points - everything else should be imported directly
from targetgc.interface.cli.core.main import cli_entrypoint, main

__all__ = ["cli_entrypoint", "main"]
