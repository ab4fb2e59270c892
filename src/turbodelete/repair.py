"""Clear read-only and immutable attributes across a residual tree."""

import asyncio
import logging
import os
import stat
import threading
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional

from .errors import RepairError, ScanError
from .logging import log_with_context
from .scanner import EntryKind, EntryScanner

_IMMUTABLE_FLAGS = getattr(stat, "UF_IMMUTABLE", 0) | getattr(stat, "UF_APPEND", 0)


def make_writable(path: Path) -> bool:
    """
    Clear the read-only attribute of ``path`` (following symlinks).

    Files get the owner write bit; directories get owner read, write and
    execute so they can be listed and emptied. On platforms with
    ``os.chflags`` the user immutable and append-only flags are cleared too.

    Returns:
        True if any attribute was changed, False if none was needed or the
        path no longer exists
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False

    changed = False
    flags = getattr(st, "st_flags", 0)
    if flags & _IMMUTABLE_FLAGS:
        os.chflags(path, flags & ~_IMMUTABLE_FLAGS)
        changed = True

    mode = stat.S_IMODE(st.st_mode)
    wanted = mode | (stat.S_IRWXU if stat.S_ISDIR(st.st_mode) else stat.S_IWUSR)
    if wanted != mode:
        os.chmod(path, wanted)
        changed = True
    return changed


class PermissionRepairer:
    """
    Walk a tree and make every reachable entry removable.

    Directories are fixed by the scanner before they are listed, so a tree
    that is unreadable only because of its own mode bits can still be
    enumerated. Any failure is fatal for the repair attempt.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        max_concurrency: int = 8,
        batch_size: int = 5000,
        logger: Optional[logging.Logger] = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.executor = executor
        self.max_concurrency = max_concurrency
        self.batch_size = batch_size
        self.logger = logger or logging.getLogger("turbodelete")
        self.changed = 0
        self._lock = threading.Lock()

    def _prepare_directory(self, directory: Path) -> None:
        if make_writable(directory):
            with self._lock:
                self.changed += 1

    async def repair(self, root: Path) -> int:
        """
        Clear read-only attributes of ``root`` and everything under it.

        Returns:
            Number of entries whose attributes were changed

        Raises:
            RepairError: If the tree could not be walked or an entry could not be changed
        """
        root = Path(root)
        self.changed = 0
        scanner = EntryScanner(
            self.executor,
            max_concurrency=self.max_concurrency,
            follow_symlinks=True,
            prepare=self._prepare_directory,
            logger=self.logger,
        )

        try:
            entries = await scanner.scan(root)
        except ScanError as e:
            raise RepairError(root, e.error) from e

        # Directories were already handled by the scanner before listing
        paths = [entry.path for entry in entries if entry.kind is not EntryKind.DIRECTORY]
        loop = asyncio.get_running_loop()
        failures: list[OSError] = []

        for start in range(0, len(paths), self.batch_size):
            batch = paths[start : start + self.batch_size]
            results = await asyncio.gather(
                *(loop.run_in_executor(self.executor, make_writable, path) for path in batch),
                return_exceptions=True,
            )
            for path, result in zip(batch, results):
                if isinstance(result, OSError):
                    failures.append(result)
                    self.logger.debug(f"Could not clear read-only attribute: {path}: {result}")
                elif isinstance(result, BaseException):
                    raise result
                elif result:
                    self.changed += 1

        if failures:
            raise RepairError(root, failures[0], failed=len(failures))

        log_with_context(
            self.logger,
            "info",
            "Permission repair completed",
            {"path": str(root), "entries": len(entries), "entries_changed": self.changed},
        )
        return self.changed
