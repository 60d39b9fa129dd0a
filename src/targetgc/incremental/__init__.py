"""Per-unit derived data: LTO requirements and fingerprints."""

from targetgc.incremental.hasher import (
    FINGERPRINT_LENGTH,
    METADATA_VERSION,
    FingerprintContext,
    compute_fingerprint,
    compute_fingerprints,
    fingerprint_of,
    should_fingerprint,
    target_short_hash,
)
from targetgc.incremental.lto import Lto, LtoKind, LtoMap, generate

__all__ = [
    "FINGERPRINT_LENGTH",
    "METADATA_VERSION",
    "FingerprintContext",
    "Lto",
    "LtoKind",
    "LtoMap",
    "compute_fingerprint",
    "compute_fingerprints",
    "fingerprint_of",
    "generate",
    "should_fingerprint",
    "target_short_hash",
]
