"""targetgc configuration management.

Loads configuration from .targetgc/config.yaml with sensible defaults.
All settings can be overridden via environment variables (TARGETGC_*).

Config locations (in priority order):
1. Explicit path passed to load_config()
2. .targetgc/config.yaml (project-local)
3. ~/.targetgc/config.yaml (user-global)
4. Built-in defaults

Example file:

    planner:
      cargo: cargo
      offline: true
    fingerprint:
      separate_nightlies: false
    gc:
      profiles: [debug, release]
      lock_output_dir: true
"""

import os
import threading
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from targetgc.foundation.errors import ErrorCode, TargetGcError, config_error

# Compile mode requests the enumerator knows how to plan for.
KNOWN_COMPILE_MODES = ("test", "build", "check", "check-test", "bench")


@dataclass(frozen=True, slots=True)
class PlannerConfig:
    """How the build planner and toolchain are invoked."""

    cargo: str = "cargo"
    """Cargo executable."""

    rustc: str = "rustc"
    """Compiler executable, queried for its version."""

    frozen: bool = False
    """Pass --frozen to every cargo invocation."""

    locked: bool = False
    """Pass --locked to every cargo invocation."""

    offline: bool = False
    """Pass --offline to every cargo invocation."""


@dataclass(frozen=True, slots=True)
class FingerprintConfig:
    """Inputs to the fingerprint hash that do not come from the unit graph."""

    separate_nightlies: bool = False
    """Hash the full compiler version on nightly channels too."""

    default_lib_metadata: str | None = None
    """Override value mixed into every fingerprint (forces fingerprinting)."""

    workspace_wrapper: str | None = None
    """Workspace wrapper tool path (e.g. clippy-driver) for member units."""


@dataclass(frozen=True, slots=True)
class GcConfig:
    """Which output directories are collected and how."""

    profiles: tuple[str, ...] = ("debug", "release")
    """Profile subdirectories of each output root to collect."""

    compile_modes: tuple[str, ...] = KNOWN_COMPILE_MODES
    """Compile purposes requested from the planner for every output dir."""

    lock_output_dir: bool = True
    """Take the advisory .cargo-lock while sweeping an output dir."""


@dataclass(frozen=True, slots=True)
class TargetGcConfig:
    """Root configuration for targetgc."""

    planner: PlannerConfig = field(default_factory=PlannerConfig)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    gc: GcConfig = field(default_factory=GcConfig)

    verbose: bool = False
    """Enable verbose output by default."""

    debug: bool = False
    """Enable debug logging by default."""

    log_file: str | None = None
    """Append every DEBUG record, removals included, to this file."""


_SECTIONS: dict[str, type] = {
    "planner": PlannerConfig,
    "fingerprint": FingerprintConfig,
    "gc": GcConfig,
}

# Global config instance (lazy-loaded, thread-safe)
_config: TargetGcConfig | None = None
_config_lock = threading.Lock()


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    if "," in value:
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow pattern: TARGETGC_SECTION_KEY, or
    TARGETGC_KEY for top-level keys. Comma-separated values become lists.

    Examples:
        TARGETGC_PLANNER_OFFLINE=true
        TARGETGC_GC_PROFILES=debug,release
        TARGETGC_VERBOSE=1
        TARGETGC_LOG_FILE=~/.cache/targetgc.log
    """
    prefix = "TARGETGC_"
    environ = os.environ if environ is None else environ

    for key, value in environ.items():
        if not key.startswith(prefix):
            continue
        path_str = key[len(prefix):].lower()

        if path_str in ("verbose", "debug"):
            config_dict[path_str] = _coerce_env_value(value)
            continue
        if path_str == "log_file":
            config_dict[path_str] = value
            continue

        for section, section_type in _SECTIONS.items():
            if not path_str.startswith(section + "_"):
                continue
            name = path_str[len(section) + 1:]
            if name not in {f.name for f in fields(section_type)}:
                break
            coerced = _coerce_env_value(value)
            if name in ("profiles", "compile_modes") and isinstance(coerced, str):
                coerced = [coerced]
            config_dict.setdefault(section, {})[name] = coerced
            break

    return config_dict


def _build_section(section: str, data: Any) -> Any:
    section_type = _SECTIONS[section]
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise config_error(ErrorCode.CONFIG_INVALID, key=section, detail="expected a mapping")

    known = {f.name for f in fields(section_type)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise config_error(
            ErrorCode.CONFIG_INVALID,
            key=f"{section}.{unknown[0]}",
            detail="unknown setting",
        )

    values = dict(data)
    for list_key in ("profiles", "compile_modes"):
        if list_key in values:
            raw = values[list_key]
            if isinstance(raw, str) or not all(isinstance(v, str) for v in raw):
                raise config_error(
                    ErrorCode.CONFIG_INVALID,
                    key=f"{section}.{list_key}",
                    detail="expected a list of strings",
                )
            values[list_key] = tuple(raw)

    return section_type(**values)


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise config_error(ErrorCode.CONFIG_INVALID, key=key, detail="expected a string")
    return value


def _dict_to_config(data: dict) -> TargetGcConfig:
    """Convert a dict to TargetGcConfig."""
    gc = _build_section("gc", data.get("gc"))
    for mode in gc.compile_modes:
        if mode not in KNOWN_COMPILE_MODES:
            raise config_error(
                ErrorCode.CONFIG_INVALID,
                key="gc.compile_modes",
                detail=f"unknown compile mode '{mode}' (known: {', '.join(KNOWN_COMPILE_MODES)})",
            )

    return TargetGcConfig(
        planner=_build_section("planner", data.get("planner")),
        fingerprint=_build_section("fingerprint", data.get("fingerprint")),
        gc=gc,
        verbose=bool(data.get("verbose", False)),
        debug=bool(data.get("debug", False)),
        log_file=_optional_str(data, "log_file"),
    )


def _defaults() -> dict[str, Any]:
    defaults = asdict(TargetGcConfig())
    defaults["gc"]["profiles"] = list(defaults["gc"]["profiles"])
    defaults["gc"]["compile_modes"] = list(defaults["gc"]["compile_modes"])
    return defaults


def load_config(path: str | Path | None = None) -> TargetGcConfig:
    """Load configuration from file with defaults and env overrides.

    Priority (highest to lowest):
    1. Environment variables (TARGETGC_*)
    2. Explicit path if provided
    3. .targetgc/config.yaml (project-local)
    4. ~/.targetgc/config.yaml (user-global)
    5. Built-in defaults

    Args:
        path: Optional explicit config file path.

    Returns:
        Merged TargetGcConfig instance.

    Raises:
        TargetGcError: CONFIG_MISSING if an explicit path does not exist,
            CONFIG_INVALID for unparsable or ill-typed settings.
    """
    global _config

    config_dict = _defaults()

    config_paths = []
    if path:
        explicit = Path(path)
        if not explicit.exists():
            raise config_error(ErrorCode.CONFIG_MISSING, key=str(explicit))
        config_paths.append(explicit)
    config_paths.extend([
        Path(".targetgc/config.yaml"),
        Path.home() / ".targetgc" / "config.yaml",
    ])

    for config_path in config_paths:
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise TargetGcError(
                code=ErrorCode.CONFIG_INVALID,
                context={"key": str(config_path), "detail": str(e)},
                cause=e,
            ) from e
        if not isinstance(file_config, dict):
            raise config_error(ErrorCode.CONFIG_INVALID, key=str(config_path), detail="expected a mapping")
        _deep_update(config_dict, file_config)
        break  # Use first found config

    config_dict = _apply_env_overrides(config_dict)

    try:
        _config = _dict_to_config(config_dict)
    except TypeError as e:
        raise TargetGcError(
            code=ErrorCode.CONFIG_INVALID,
            context={"key": "config", "detail": str(e)},
            cause=e,
        ) from e
    return _config


def get_config() -> TargetGcConfig:
    """Get the current configuration, loading if needed."""
    global _config

    if _config is not None:
        return _config

    with _config_lock:
        if _config is None:
            _config = load_config()
        return _config


def reset_config() -> None:
    """Reset the global config (useful for testing)."""
    global _config
    with _config_lock:
        _config = None
