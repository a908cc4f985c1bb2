"""
Lockfile discovery and digest.

The digest follows the hashFiles() scheme CI caches use: each lockfile
is hashed on its own, the per-file digests are concatenated in sorted
relative-path order, and the result is hashed once more. Only file
bytes feed the per-file hashes, and the path sort makes the
combination independent of filesystem iteration order.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from nodeprep.core.errors import LockfileMissing

logger = logging.getLogger(__name__)

LOCKFILE_NAMES = ("package-lock.json", "npm-shrinkwrap.json")

# Never descend into installed trees or VCS metadata
_SKIP_DIRS = frozenset({"node_modules", ".git", ".hg", ".svn"})

_CHUNK = 1 << 16


def find_lockfiles(root: Path) -> list[Path]:
    """Return every lockfile under ``root``, sorted by relative path."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in _SKIP_DIRS]
        for name in filenames:
            if name in LOCKFILE_NAMES:
                found.append(Path(dirpath) / name)
    return sorted(found, key=lambda p: p.relative_to(root).as_posix())


def file_digest(path: Path) -> bytes:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.digest()


def compute_digest(root: Path) -> str:
    """Hex SHA-256 over all lockfiles in the working tree.

    Raises:
        LockfileMissing: If the tree holds no lockfile at all.
    """
    lockfiles = find_lockfiles(root)
    if not lockfiles:
        raise LockfileMissing(
            f"No lockfile ({', '.join(LOCKFILE_NAMES)}) found under {root}"
        )

    combined = hashlib.sha256()
    for path in lockfiles:
        combined.update(file_digest(path))

    digest = combined.hexdigest()
    logger.debug(
        "Lockfile digest %s from %d file(s): %s",
        digest[:12],
        len(lockfiles),
        ", ".join(p.relative_to(root).as_posix() for p in lockfiles),
    )
    return digest
