"""Concurrent directory tree scanner."""

import asyncio
import logging
import os
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

import aiofiles.os

from .errors import ScanError

DirectoryHook = Callable[[Path], object]


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"  # Sockets, FIFOs, device nodes


@dataclass(frozen=True)
class Entry:
    """A filesystem node discovered by one scan pass."""

    path: Path
    depth: int
    kind: EntryKind
    via_symlink: bool = False


class _RawEntry(NamedTuple):
    path: Path
    kind: EntryKind
    descend: bool
    key: Optional[tuple[int, int]]


def _read_directory(
    directory: Path, follow_symlinks: bool, prepare: Optional[DirectoryHook] = None
) -> list[_RawEntry]:
    """List and classify one directory. Runs on an executor thread."""
    if prepare is not None:
        prepare(directory)

    result = []
    with os.scandir(directory) as entries:
        for dirent in entries:
            key = None
            if dirent.is_symlink():
                kind = EntryKind.SYMLINK
                descend = follow_symlinks and dirent.is_dir(follow_symlinks=True)
            elif dirent.is_dir(follow_symlinks=False):
                kind = EntryKind.DIRECTORY
                descend = True
            elif dirent.is_file(follow_symlinks=False):
                kind = EntryKind.FILE
                descend = False
            else:
                kind = EntryKind.OTHER
                descend = False

            if descend and follow_symlinks:
                st = dirent.stat(follow_symlinks=True)
                key = (st.st_dev, st.st_ino)

            result.append(_RawEntry(Path(dirent.path), kind, descend, key))
    return result


async def async_scandir(
    directory: Path,
    executor: Optional[Executor] = None,
    follow_symlinks: bool = True,
    prepare: Optional[DirectoryHook] = None,
) -> list[_RawEntry]:
    """Async wrapper for listing one directory on the given executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, _read_directory, directory, follow_symlinks, prepare)


class EntryScanner:
    """
    Walk a root path and collect every descendant entry with its depth.

    Directories are expanded concurrently; at most ``max_concurrency``
    listings are in flight at once. Hidden entries are included and, when
    ``follow_symlinks`` is set, symbolic links to directories are descended
    into (each branch tracks its ancestors so link loops terminate).

    Any directory that cannot be listed aborts the whole scan with
    ``ScanError``; a directory that disappeared before it was listed is
    skipped.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        max_concurrency: int = 8,
        follow_symlinks: bool = True,
        prepare: Optional[DirectoryHook] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self.executor = executor
        self.max_concurrency = max_concurrency
        self.follow_symlinks = follow_symlinks
        self.prepare = prepare
        self.logger = logger or logging.getLogger("turbodelete")
        self.dirs_scanned = 0
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def scan(self, root: Path) -> list[Entry]:
        """
        Scan ``root`` and return its descendants. The root itself is not included.

        Raises:
            ScanError: If any directory in the tree could not be enumerated
        """
        root = Path(root)
        ancestors: frozenset = frozenset()
        try:
            if self.follow_symlinks:
                st = await aiofiles.os.stat(root, executor=self.executor)
                ancestors = frozenset([(st.st_dev, st.st_ino)])
            return await self._expand(root, 1, ancestors, False)
        except OSError as e:
            raise ScanError(root, e) from e

    async def _expand(self, directory: Path, depth: int, ancestors: frozenset, via_symlink: bool) -> list[Entry]:
        try:
            async with self._semaphore:
                raw_entries = await async_scandir(directory, self.executor, self.follow_symlinks, self.prepare)
        except FileNotFoundError:
            if depth == 1:
                raise
            self.logger.debug(f"Directory vanished during scan: {directory}")
            return []
        self.dirs_scanned += 1

        entries: list[Entry] = []
        children = []
        for raw in raw_entries:
            entries.append(Entry(raw.path, depth, raw.kind, via_symlink))
            if not raw.descend:
                continue
            if raw.key is not None and raw.key in ancestors:
                self.logger.debug(f"Skipping symlink loop: {raw.path}")
                continue
            child_ancestors = ancestors | {raw.key} if raw.key is not None else ancestors
            children.append(
                self._expand(raw.path, depth + 1, child_ancestors, via_symlink or raw.kind is EntryKind.SYMLINK)
            )

        if children:
            # Wait for every branch before failing so no listing outlives the scan
            results = await asyncio.gather(*children, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
                entries.extend(result)

        return entries
