"""Filesystem helpers for captured media.

Features:
    - Timestamped capture paths (second resolution, collision suffix)
    - Atomic replace (temp file + rename in the same directory)
    - Ownership fixup for files written as root

Logging Strategy:
    DEBUG - Path generation, skipped ownership changes
    INFO  - Ownership changes
    WARN  - Ownership failures (never raised)
"""
from __future__ import annotations

import logging
import os
import pwd
import shutil
from datetime import datetime
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

TIMESTAMP_FORMAT: Final[str] = "%Y%m%d_%H%M%S"
"""Capture file timestamp (second resolution)."""

MAX_NAME_SUFFIX: Final[int] = 100

# ============================================================================
# Capture Paths
# ============================================================================

def capture_path(
    directory: Path,
    kind: str,
    extension: str,
    now: datetime | None = None,
) -> Path:
    """Build an absolute output path ``<kind>_<timestamp>.<ext>``.

    A numeric suffix is appended when a file with the same second-level
    name already exists.

    Examples:
        >>> capture_path(Path("/captures"), "video", "mp4", datetime(2025, 1, 2, 3, 4, 5))
        PosixPath('/captures/video_20250102_030405.mp4')
    """
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    base = directory.resolve()
    candidate = base / f"{kind}_{stamp}.{extension}"

    suffix = 1
    while candidate.exists() and suffix < MAX_NAME_SUFFIX:
        candidate = base / f"{kind}_{stamp}_{suffix}.{extension}"
        suffix += 1

    logger.debug(f"Capture path: {candidate}")
    return candidate


# ============================================================================
# Atomic Replace
# ============================================================================

def atomic_replace(src: str | Path, dst: str | Path) -> None:
    """Atomic rename (POSIX) or best-effort (Windows)."""
    src_path = Path(src)
    dst_path = Path(dst)

    if os.name == "nt":
        # Windows: remove target first (not atomic)
        if dst_path.exists():
            dst_path.unlink()

    src_path.rename(dst_path)


def remove_quietly(path: str | Path) -> None:
    """Delete a scratch file, logging instead of raising."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Temp cleanup failed for {path}: {e}")


# ============================================================================
# Ownership
# ============================================================================

def resolve_owner(user: str | None = None) -> str | None:
    """Target owner: explicit user, else SUDO_USER, else USER."""
    return user or os.getenv("SUDO_USER") or os.getenv("USER") or None


def chown_to_user(path: str | Path, user: str | None = None) -> bool:
    """Hand a captured file to the invoking user.

    The service usually runs as root to access the device; files are
    returned to the human user so they can be managed without sudo.
    Only attempted when running as root.

    Returns:
        True if ownership was changed
    """
    target = resolve_owner(user)
    if not target:
        logger.warning(f"Cannot determine target user for {path}; ownership remains unchanged")
        return False

    if os.geteuid() != 0:
        logger.debug(f"Not root, skipping chown of {path}")
        return False

    try:
        group = pwd.getpwnam(target).pw_gid
        shutil.chown(path, user=target, group=group)
    except (KeyError, LookupError, OSError) as e:
        logger.warning(f"Failed to change ownership of {path} to {target}: {e}")
        return False

    logger.info(f"Changed ownership of {path} to {target}")
    return True
