"""targetgc - garbage collection for cargo target directories.

Finds every artifact the current workspace would still produce, for every
profile, platform and compile purpose, and removes everything else.

Hash-suffixed names (deps/, build/, .fingerprint/) are computed by
:mod:`targetgc.incremental.hasher` and need not match the ones cargo wrote,
in which case live artifacts are removed and rebuilt. Run with
``--dry-run`` first on a target directory you care about.
"""

from targetgc.foundation.errors import ErrorCode, TargetGcError

__version__ = "0.1.0"

__all__ = ["ErrorCode", "TargetGcError", "__version__"]
