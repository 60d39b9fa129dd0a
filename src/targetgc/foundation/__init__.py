"""Foundation - errors, logging and configuration shared by every other module."""

from targetgc.foundation.config import (
    FingerprintConfig,
    GcConfig,
    PlannerConfig,
    TargetGcConfig,
    get_config,
    load_config,
    reset_config,
)
from targetgc.foundation.errors import ErrorCode, TargetGcError

__all__ = [
    "ErrorCode",
    "FingerprintConfig",
    "GcConfig",
    "PlannerConfig",
    "TargetGcConfig",
    "TargetGcError",
    "get_config",
    "load_config",
    "reset_config",
]
