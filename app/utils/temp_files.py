"""Merge service - Request-scoped temp file handling.

Every temp path a request creates is registered with a TempFileScope
as soon as the path is chosen. Leaving the scope removes all of them,
on normal return, early return or exception. Removal failures are
logged and never raised, so they cannot mask the request's own error.

cleanup_orphan_temp_files() is the startup sweep for files left behind
by a process that died before its scope exited.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)


class TempFileScope:
    """Tracks temp paths owned by one request and removes them on exit."""

    def __init__(self) -> None:
        self._paths: list[Path] = []

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def track(self, path: str | Path) -> Path:
        """Register a path for removal when the scope exits.

        The file does not need to exist yet.

        Returns:
            The registered path.
        """
        path = Path(path)
        self._paths.append(path)
        return path

    def cleanup(self) -> int:
        """Remove every tracked path that exists.

        Returns:
            Number of files removed.
        """
        removed = 0
        while self._paths:
            path = self._paths.pop()
            try:
                path.unlink()
                removed += 1
                logger.debug("Removed temp file %s", path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Failed to remove temp file %s: %s", path, e)
        return removed

    def __enter__(self) -> TempFileScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()


def cleanup_orphan_temp_files(
    directory: str | Path,
    prefixes: tuple[str, ...],
    max_age_seconds: float,
) -> int:
    """Clean up orphan request temp files in a directory.

    Called during startup. Only files whose name starts with one of
    the prefixes and whose mtime is older than max_age_seconds are
    removed, so in-flight files of sibling workers survive.

    Args:
        directory: Directory to scan.
        prefixes: Filename prefixes owned by this service.
        max_age_seconds: Minimum age for removal.

    Returns:
        Number of files removed.
    """
    directory = Path(directory)
    removed = 0

    if not directory.exists():
        return 0

    cutoff = time.time() - max_age_seconds
    for prefix in prefixes:
        for temp_file in directory.glob(f"{prefix}*"):
            try:
                if not temp_file.is_file() or temp_file.stat().st_mtime > cutoff:
                    continue
                temp_file.unlink()
                removed += 1
            except OSError:
                pass  # Best-effort cleanup

    return removed
