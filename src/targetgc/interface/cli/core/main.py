"""Main CLI entry point.

Installed as ``cargo-gc-target``, so cargo runs it as a subcommand:

    cargo gc-target
    cargo gc-target --dry-run -v
    cargo gc-target --target-dir /tmp/shared-target --json

Status lines go to stderr in cargo's style; ``--json`` prints the report
to stdout and nothing else.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.filesize import pick_unit_and_suffix
from rich.text import Text

from targetgc import __version__
from targetgc.foundation.config import TargetGcConfig, load_config
from targetgc.foundation.errors import TargetGcError
from targetgc.foundation.logging import configure_logging
from targetgc.gc.sweeper import GcReport, gc_workspace
from targetgc.incremental.hasher import FingerprintContext
from targetgc.interface.cli.core.error_handler import handle_error, print_human_error
from targetgc.units.planner import BuildPlanner, CargoUnitGraphPlanner, ModeRequest, StaticPlanner
from targetgc.units.toolchain import query_rustc, query_workspace

logger = logging.getLogger(__name__)

_BINARY_SUFFIXES = ["bytes", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB"]


def format_size(size: int) -> str:
    """Human-readable size in binary units (``1.5 MiB``)."""
    if size == 1:
        return "1 byte"
    unit, suffix = pick_unit_and_suffix(size, _BINARY_SUFFIXES, 1024)
    if unit == 1:
        return f"{size} {suffix}"
    return f"{size / unit:.1f} {suffix}"


def _make_console(color: str) -> Console:
    return Console(
        stderr=True,
        force_terminal=True if color == "always" else None,
        no_color=color == "never",
        soft_wrap=True,
        highlight=False,
    )


def _status(console: Console, verb: str, detail: str, style: str = "bold green") -> None:
    line = Text(f"{verb:>12}", style=style)
    line.append(f" {detail}")
    console.print(line)


def _cargo_flags(config: TargetGcConfig) -> tuple[str, ...]:
    flags = []
    if config.planner.frozen:
        flags.append("--frozen")
    if config.planner.locked:
        flags.append("--locked")
    if config.planner.offline:
        flags.append("--offline")
    return tuple(flags)


def prepare(
    config: TargetGcConfig,
    manifest_path: Path | None,
    target_dir: Path | None,
    unit_graphs: Path | None,
) -> tuple[Path, BuildPlanner, FingerprintContext]:
    """Query the toolchain and workspace and pick a planner.

    ``cargo metadata`` is skipped when both the target directory and the
    unit graphs are given, since nothing else needs the workspace.

    The wrapper and lib metadata settings fall back to the variables cargo
    itself reads, RUSTC_WORKSPACE_WRAPPER and __CARGO_DEFAULT_LIB_METADATA.

    Returns:
        (output root, planner, fingerprint context)
    """
    rustc = query_rustc(config.planner.rustc)
    logger.debug("rustc %s on %s", rustc.release, rustc.host)

    workspace = None
    if target_dir is None or unit_graphs is None:
        workspace = query_workspace(config.planner.cargo, manifest_path, _cargo_flags(config))
        logger.debug("Workspace %s, %d members", workspace.workspace_root, len(workspace.members))

    output_root = target_dir if target_dir is not None else workspace.target_directory

    planner: BuildPlanner
    if unit_graphs is not None:
        planner = StaticPlanner.from_directory(unit_graphs)
    else:
        planner = CargoUnitGraphPlanner(
            config.planner.cargo,
            frozen=config.planner.frozen,
            locked=config.planner.locked,
            offline=config.planner.offline,
        )

    ctx = FingerprintContext(
        rustc=rustc,
        workspace_root=workspace.workspace_root if workspace else None,
        members=workspace.members if workspace else frozenset(),
        workspace_wrapper=config.fingerprint.workspace_wrapper or os.environ.get("RUSTC_WORKSPACE_WRAPPER"),
        default_lib_metadata=(
            config.fingerprint.default_lib_metadata or os.environ.get("__CARGO_DEFAULT_LIB_METADATA")
        ),
        separate_nightlies=config.fingerprint.separate_nightlies,
    )
    return output_root, planner, ctx


def cli_entrypoint() -> None:
    """Wrapped entrypoint with global error handling.

    Called from pyproject.toml [project.scripts].
    """
    try:
        main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        sys.exit(130)
    except Exception as e:
        handle_error(e, json_output=False)


@click.group()
@click.version_option(__version__, prog_name="cargo-gc-target")
def main() -> None:
    """Remove stale build outputs from a cargo target directory."""


@main.command("gc-target")
@click.option(
    "--manifest-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to Cargo.toml",
)
@click.option(
    "--target-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for all generated artifacts (default: the workspace's)",
)
@click.option("-v", "--verbose", count=True, help="List removed entries (-vv for logs)")
@click.option("-q", "--quiet", is_flag=True, help="No output printed to stderr")
@click.option(
    "--color",
    type=click.Choice(["auto", "always", "never"]),
    default="auto",
    help="Coloring",
)
@click.option("--frozen", is_flag=True, help="Require Cargo.lock and cache are up to date")
@click.option("--locked", is_flag=True, help="Require Cargo.lock is up to date")
@click.option("--offline", is_flag=True, help="Run without accessing the network")
@click.option("--dry-run", is_flag=True, help="Report what would be removed, remove nothing")
@click.option("--json", "json_output", is_flag=True, help="Print the report as JSON")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: .targetgc/config.yaml)",
)
@click.option(
    "--unit-graphs",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Replay <platform>.<profile>.<mode>.json unit graphs instead of running cargo",
)
@click.option("--debug", is_flag=True, help="Debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Append debug logs, every removal included, to this file",
)
def gc_target(
    manifest_path: Path | None,
    target_dir: Path | None,
    verbose: int,
    quiet: bool,
    color: str,
    frozen: bool,
    locked: bool,
    offline: bool,
    dry_run: bool,
    json_output: bool,
    config_path: Path | None,
    unit_graphs: Path | None,
    debug: bool,
    log_file: Path | None,
) -> None:
    """Collect stale artifacts in the target directory.

    \b
    Every debug and release directory, for the host and every platform
    subdirectory, is checked against what the current workspace would
    build for test, build, check and bench. Everything else is removed.

    \b
    Do not run this while a build is writing to the same target directory.

    \b
    Hash-suffixed names are recomputed here and are not guaranteed to match
    the ones cargo wrote, so live artifacts under deps/, build/ and
    .fingerprint/ can be removed. Try --dry-run first and expect a rebuild
    if they differ.
    """
    level = None
    if verbose >= 3:
        level = logging.DEBUG
    elif verbose == 2:
        level = logging.INFO

    console = _make_console(color)
    show_status = not (quiet or json_output)

    try:
        config = load_config(config_path)
        config = replace(
            config,
            planner=replace(
                config.planner,
                frozen=config.planner.frozen or frozen,
                locked=config.planner.locked or locked,
                offline=config.planner.offline or offline,
            ),
        )
        configure_logging(debug=debug or config.debug, level=level, log_file=log_file or config.log_file)
        verbose = max(verbose, 1 if config.verbose else 0)

        def on_event(event: str, detail: str) -> None:
            if not show_status:
                return
            if event == "collect":
                _status(console, "Collecting", detail)
            elif event == "remove" and verbose:
                _status(console, "Would remove" if dry_run else "Removing", detail)

        output_root, planner, ctx = prepare(config, manifest_path, target_dir, unit_graphs)
        report = gc_workspace(
            output_root,
            planner,
            ctx,
            profile_dirs=config.gc.profiles,
            modes=tuple(ModeRequest(mode) for mode in config.gc.compile_modes),
            manifest_path=manifest_path,
            dry_run=dry_run,
            lock=config.gc.lock_output_dir,
            on_event=on_event,
        )
    except TargetGcError as e:
        handle_error(e, json_output=json_output)

    _finish(report, console, show_status=show_status, json_output=json_output, quiet=quiet)


def _finish(
    report: GcReport,
    console: Console,
    *,
    show_status: bool,
    json_output: bool,
    quiet: bool,
) -> None:
    if json_output:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        if not quiet:
            for error in report.errors:
                print_human_error(error, console)
        if show_status:
            freed = format_size(report.bytes_freed)
            suffix = " (dry run)" if report.dry_run else ""
            _status(console, "Finished", f"{freed} freed{suffix}")

    if not report.ok:
        sys.exit(1)
