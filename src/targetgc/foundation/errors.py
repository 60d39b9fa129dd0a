"""targetgc Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages
- Recovery hints
- Context for debugging
"""


from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Planning errors (build planner could not produce a unit graph)
        2xxx - Enumeration errors (output tree could not be listed)
        3xxx - Deletion errors
        5xxx - Configuration errors
        6xxx - Runtime errors
        7xxx - Toolchain/IO errors
    """

    # 1xxx - Planning Errors
    PLANNING_FAILED = 1001
    UNIT_GRAPH_INVALID = 1002
    UNIT_GRAPH_VERSION = 1003

    # 2xxx - Enumeration Errors
    ENUMERATION_FAILED = 2001
    OUTPUT_DIR_LOCKED = 2002

    # 3xxx - Deletion Errors
    DELETION_FAILED = 3001

    # 5xxx - Configuration Errors
    CONFIG_MISSING = 5001
    CONFIG_INVALID = 5002

    # 6xxx - Runtime Errors
    RUNTIME_STATE_INVALID = 6001

    # 7xxx - Toolchain/IO Errors
    TOOLCHAIN_QUERY_FAILED = 7001
    FILE_NOT_FOUND = 7003

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "planning",
            2: "enumeration",
            3: "deletion",
            5: "config",
            6: "runtime",
            7: "io",
        }.get(prefix, "unknown")

    @property
    def is_fatal(self) -> bool:
        """Whether this error aborts the whole run rather than one output dir."""
        return self.category in ("planning", "config", "io") or self == ErrorCode.RUNTIME_STATE_INVALID


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PLANNING_FAILED: "Build planner failed for {request}: {detail}",
    ErrorCode.UNIT_GRAPH_INVALID: "Malformed unit graph: {detail}",
    ErrorCode.UNIT_GRAPH_VERSION: "Unsupported unit graph version {version} (expected {expected}).",
    ErrorCode.ENUMERATION_FAILED: "Cannot read '{path}': {detail}",
    ErrorCode.OUTPUT_DIR_LOCKED: "Output directory '{path}' is locked by another process.",
    ErrorCode.DELETION_FAILED: "Failed to remove '{path}': {detail}",
    ErrorCode.CONFIG_MISSING: "Required configuration '{key}' not found.",
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
    ErrorCode.RUNTIME_STATE_INVALID: "Invalid runtime state: {detail}",
    ErrorCode.TOOLCHAIN_QUERY_FAILED: "Could not query '{program}': {detail}",
    ErrorCode.FILE_NOT_FOUND: "File not found: {path}",
}


RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.PLANNING_FAILED: [
        "Run the same cargo command by hand to see the full diagnostic",
        "--unit-graph is unstable: use a nightly toolchain or set RUSTC_BOOTSTRAP=1",
        "Check that Cargo.lock is up to date, or drop --locked/--frozen",
    ],
    ErrorCode.OUTPUT_DIR_LOCKED: [
        "Wait for the running build to finish",
        "Disable the lock with gc.lock_output_dir: false only if no build is running",
    ],
    ErrorCode.DELETION_FAILED: [
        "Check permissions on the target directory",
        "Make sure no build is writing to {path} and re-run",
    ],
    ErrorCode.TOOLCHAIN_QUERY_FAILED: [
        "Check that '{program}' is on PATH",
        "Point planner.{key} in .targetgc/config.yaml at the right executable",
    ],
    ErrorCode.CONFIG_INVALID: [
        "Fix '{key}' in .targetgc/config.yaml",
        "Unset the matching TARGETGC_* environment variable",
    ],
}


class TargetGcError(Exception):
    """Base error type for all targetgc errors.

    Example:
        >>> err = TargetGcError(
        ...     code=ErrorCode.DELETION_FAILED,
        ...     context={"path": "target/debug/deps/foo", "detail": "Permission denied"},
        ... )
        >>> print(err)
        [TG-3001] Failed to remove 'target/debug/deps/foo': Permission denied
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                formatted.append(hint)
        return formatted

    @property
    def is_fatal(self) -> bool:
        return self.code.is_fatal

    @property
    def category(self) -> str:
        """Get the error category."""
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'TG-1001')."""
        return f"TG-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"TargetGcError(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging/JSON output."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "fatal": self.is_fatal,
            "recovery_hints": self.recovery_hints,
            "context": {k: str(v) for k, v in self.context.items()},
        }


# Convenience factory functions

def planning_error(
    request: object,
    detail: str,
    cause: Exception | None = None,
    code: ErrorCode = ErrorCode.PLANNING_FAILED,
    **extra: Any,
) -> TargetGcError:
    """Create a planning error."""
    return TargetGcError(
        code=code,
        context={"request": request, "detail": detail, **extra},
        cause=cause,
    )


def unit_graph_error(detail: str, cause: Exception | None = None) -> TargetGcError:
    """Create a UNIT_GRAPH_INVALID error."""
    return TargetGcError(
        code=ErrorCode.UNIT_GRAPH_INVALID,
        context={"detail": detail},
        cause=cause,
    )


def deletion_error(path: object, cause: OSError) -> TargetGcError:
    """Create a DELETION_FAILED error from the underlying OSError."""
    return TargetGcError(
        code=ErrorCode.DELETION_FAILED,
        context={"path": path, "detail": cause.strerror or str(cause)},
        cause=cause,
    )


def enumeration_error(path: object, cause: OSError) -> TargetGcError:
    """Create an ENUMERATION_FAILED error from the underlying OSError."""
    return TargetGcError(
        code=ErrorCode.ENUMERATION_FAILED,
        context={"path": path, "detail": cause.strerror or str(cause)},
        cause=cause,
    )


def config_error(
    code: ErrorCode,
    key: str = "",
    detail: str = "",
) -> TargetGcError:
    """Create a configuration error."""
    return TargetGcError(
        code=code,
        context={"key": key, "detail": detail},
    )


def toolchain_error(
    program: str,
    detail: str,
    key: str = "cargo",
    cause: Exception | None = None,
) -> TargetGcError:
    """Create a TOOLCHAIN_QUERY_FAILED error."""
    return TargetGcError(
        code=ErrorCode.TOOLCHAIN_QUERY_FAILED,
        context={"program": program, "detail": detail, "key": key},
        cause=cause,
    )
