"""
Temporary-path bookkeeping for one pipeline invocation.

ScratchSpace hands out uniquely named files and directories under the
configured tmp root and removes all of them exactly once when the ``async
with`` block exits, whatever the exit path. Removal is best-effort: a path
that cannot be deleted produces a CleanupWarning in the log and in the
returned list, and the remaining paths are still attempted.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union

from app.core.errors import CleanupWarning
from app.core.logger import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]


def unique_prefix(kind: str) -> str:
    """``<kind>_<epoch-ms>_``; mkdtemp/mkstemp append the random suffix."""
    return f"{kind}_{int(time.time() * 1000)}_"


def cleanup_paths(files: Iterable[PathLike], directories: Iterable[PathLike]) -> List[CleanupWarning]:
    """Remove every listed file and directory, never raising.

    Missing paths are not failures. Returns the warnings for paths that could
    not be removed.
    """
    failures: List[CleanupWarning] = []

    for f in files:
        try:
            Path(f).unlink(missing_ok=True)
        except OSError as e:
            failures.append(CleanupWarning(str(f), str(e)))

    for d in directories:
        p = Path(d)
        if not p.exists():
            continue
        try:
            shutil.rmtree(p)
        except OSError as e:
            failures.append(CleanupWarning(str(d), str(e)))

    for w in failures:
        log.warning("%s", w)
    return failures


class ScratchSpace:
    """Scoped temporary storage with guaranteed release."""

    def __init__(self, root: Optional[PathLike] = None) -> None:
        self.root = Path(root) if root is not None else Path(tempfile.gettempdir())
        self.files: List[Path] = []
        self.directories: List[Path] = []
        self.warnings: List[CleanupWarning] = []
        self._closed = False

    def make_dir(self, kind: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=unique_prefix(kind), dir=self.root))
        self.directories.append(path)
        return path

    def make_file(self, kind: str, suffix: str = "") -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=unique_prefix(kind), suffix=suffix, dir=self.root)
        os.close(fd)
        path = Path(name)
        self.files.append(path)
        return path

    def track_dir(self, path: PathLike) -> None:
        self.directories.append(Path(path))

    def close(self) -> List[CleanupWarning]:
        if self._closed:
            return self.warnings
        self._closed = True
        self.warnings = cleanup_paths(self.files, self.directories)
        return self.warnings

    async def __aenter__(self) -> "ScratchSpace":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Shielded so a cancelled request still gets its files removed
        await asyncio.shield(asyncio.to_thread(self.close))
