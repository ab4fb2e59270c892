"""Parallel tree deletion engine."""

import asyncio
import logging
import os
import shutil
import sys
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import aiofiles.os
import psutil

from . import __version__
from .errors import RepairError, RootResidualError, ScanError
from .logging import log_with_context, setup_logging
from .plan import DeletionPlan, DepthBucket, build_plan
from .progress import ProgressCounter
from .repair import PermissionRepairer, make_writable
from .scanner import Entry, EntryScanner

# Trees that must never be deleted, nor anything inside them
PROTECTED_PATHS = {
    "/proc",
    "/sys",
    "/dev",
    "/run",
    "/var/run",
    "/boot",
    "/bin",
    "/sbin",
    "/lib",
    "/lib64",
    "/usr/bin",
    "/usr/sbin",
    "/usr/lib",
    "/etc",
}


def get_memory_usage_mb() -> float:
    """Get current memory usage in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


def default_worker_count() -> int:
    """Size the worker pool to the available parallelism."""
    return psutil.cpu_count(logical=True) or os.cpu_count() or 4


def refuse_protected_path(path: Path) -> None:
    """
    Raise ValueError for the filesystem root and for system directories.

    Raises:
        ValueError: If path is, or is inside, a protected system directory
    """
    absolute = Path(os.path.abspath(path))
    if absolute == Path(absolute.anchor):
        raise ValueError(f"Refusing to delete filesystem root: {absolute}")

    # The target itself may be a link (only the link is removed), its parents are resolved
    resolved = absolute.parent.resolve() / absolute.name
    for candidate in (str(absolute), str(resolved)):
        for protected in PROTECTED_PATHS:
            if candidate == protected or candidate.startswith(protected + "/"):
                raise ValueError(
                    f"Refusing to delete system directory: {absolute}. "
                    f"This path is inside '{protected}' which contains critical system files."
                )


def _ignore_missing(function, path, error) -> None:
    """rmtree error hook: entries removed concurrently by another task are fine."""
    # onexc passes the exception, onerror an exc_info tuple
    if isinstance(error, tuple):
        error = error[1]
    if isinstance(error, FileNotFoundError):
        return
    raise error


def remove_entry(path: Path) -> None:
    """
    Remove a symlink (not its target), a whole directory subtree, or a file.

    A path, or part of a subtree, that is already gone is not an error.
    """
    if path.is_symlink():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_ignore_missing)
        else:
            shutil.rmtree(path, onerror=_ignore_missing)
    else:
        path.unlink(missing_ok=True)


async def path_lexists(path: Path, executor: Optional[Executor] = None) -> bool:
    """Like os.path.lexists: a dangling symlink still exists."""
    if await aiofiles.os.path.islink(path, executor=executor):
        return True
    return await aiofiles.os.path.exists(path, executor=executor)


class OutcomeStatus(Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Outcome:
    """Result of deleting one target path."""

    path: Path
    status: OutcomeStatus
    error: Optional[Exception] = None
    entries_scanned: int = 0
    buckets: int = 0
    repaired: bool = False
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


class TreeDeleter:
    """
    Delete files and directory trees with a bounded pool of worker threads.

    A directory target is scanned, its entries are bucketed by depth and one
    task per bucket is started, deepest bucket first. Each task removes its
    entries concurrently; directories are removed together with whatever is
    left under them. Buckets are not serialized against each other: removing
    an entry that a sibling or ancestor task already took away is a no-op,
    and any other per-entry failure is dropped on purpose. Only the root is
    checked after all tasks have joined. If it survived, read-only
    attributes are cleared once and the root is removed one final time.
    """

    def __init__(
        self,
        workers: int | None = None,
        batch_size: int = 5000,
        log_level: str = "INFO",
        progress_interval: float = 30,
    ):
        """
        Initialize the deleter.

        Args:
            workers: Worker threads per target (default: number of logical CPUs)
            batch_size: Maximum removals submitted at once by one bucket task
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            progress_interval: Seconds between progress log records

        Raises:
            ValueError: If invalid parameters are provided
        """
        if workers is None:
            workers = default_worker_count()
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if progress_interval <= 0:
            raise ValueError(f"progress_interval must be > 0, got {progress_interval}")

        self.workers = workers
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.logger = setup_logging("turbodelete", log_level)

    async def delete(self, root_path: str | Path, progress: Optional[ProgressCounter] = None) -> Outcome:
        """
        Delete a file or directory tree.

        Args:
            root_path: Target to delete
            progress: Counter ticked once per scanned entry (a fresh one is used if omitted)

        Returns:
            Outcome for the target

        Raises:
            ValueError: If the target is a protected system path
        """
        root = Path(root_path)
        refuse_protected_path(root)
        if progress is None:
            progress = ProgressCounter()
        start_time = time.time()

        if not await path_lexists(root):
            log_with_context(self.logger, "error", "Path does not exist", {"path": str(root)})
            return Outcome(root, OutcomeStatus.NOT_FOUND)

        # A fresh pool per target, torn down before the next target starts
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="turbodelete")
        try:
            is_link = await aiofiles.os.path.islink(root, executor=executor)
            if is_link or not await aiofiles.os.path.isdir(root, executor=executor):
                outcome = await self._delete_single(root, is_link, executor, start_time)
            else:
                outcome = await self._delete_tree(root, executor, progress, start_time)
        finally:
            executor.shutdown(wait=True)

        log_with_context(
            self.logger,
            "info" if outcome.succeeded else "error",
            "Deletion completed" if outcome.succeeded else "Deletion failed",
            {
                "version": __version__,
                "path": str(root),
                "status": outcome.status.value,
                "duration_seconds": outcome.duration_seconds,
                "entries_scanned": outcome.entries_scanned,
                "entries_processed": progress.value,
                "buckets": outcome.buckets,
                "repaired": outcome.repaired,
                "error": str(outcome.error) if outcome.error else None,
                "peak_memory_mb": round(get_memory_usage_mb(), 1),
            },
        )
        return outcome

    async def _delete_single(self, root: Path, is_link: bool, executor: Executor, start_time: float) -> Outcome:
        """Remove a file or symlink target directly, without scanning."""
        loop = asyncio.get_running_loop()
        try:
            if not is_link:
                await loop.run_in_executor(executor, make_writable, root)
            await aiofiles.os.remove(root, executor=executor)
        except OSError as e:
            return Outcome(
                root,
                OutcomeStatus.PARTIAL_FAILURE,
                error=e,
                duration_seconds=round(time.time() - start_time, 3),
            )
        return Outcome(root, OutcomeStatus.SUCCESS, duration_seconds=round(time.time() - start_time, 3))

    async def _delete_tree(
        self, root: Path, executor: Executor, progress: ProgressCounter, start_time: float
    ) -> Outcome:
        scanner = EntryScanner(executor, max_concurrency=self.workers, follow_symlinks=True, logger=self.logger)
        try:
            entries = await scanner.scan(root)
        except ScanError as e:
            log_with_context(
                self.logger,
                "error",
                "Failed to read directory",
                {"path": str(root), "error": str(e.error), "error_type": type(e.error).__name__},
            )
            return Outcome(
                root,
                OutcomeStatus.PARTIAL_FAILURE,
                error=e,
                duration_seconds=round(time.time() - start_time, 3),
            )

        plan = build_plan(entries)
        progress.total = plan.total_entries
        log_with_context(
            self.logger,
            "info",
            "Scan completed",
            {
                "path": str(root),
                "entries": plan.total_entries,
                "dirs_scanned": scanner.dirs_scanned,
                "buckets": len(plan),
                "max_depth": plan.max_depth,
            },
        )

        reporter = asyncio.create_task(self._background_progress_reporter(root, progress, time.time()))
        try:
            await self._remove_plan(root, plan, executor, progress)
        finally:
            reporter.cancel()
            try:
                await reporter
            except asyncio.CancelledError:
                pass  # Expected

        repaired = False
        if await path_lexists(root, executor=executor):
            repaired = True
            error = await self._repair_and_retry(root, executor)
            if error is not None:
                return Outcome(
                    root,
                    OutcomeStatus.PARTIAL_FAILURE,
                    error=error,
                    entries_scanned=len(entries),
                    buckets=len(plan),
                    repaired=True,
                    duration_seconds=round(time.time() - start_time, 3),
                )

        return Outcome(
            root,
            OutcomeStatus.SUCCESS,
            entries_scanned=len(entries),
            buckets=len(plan),
            repaired=repaired,
            duration_seconds=round(time.time() - start_time, 3),
        )

    async def _remove_plan(
        self, root: Path, plan: DeletionPlan, executor: Executor, progress: ProgressCounter
    ) -> None:
        """Start one task per bucket, deepest first, then the root; wait for all of them."""
        tasks = [asyncio.create_task(self._remove_bucket(bucket, executor, progress)) for bucket in plan]
        tasks.append(asyncio.create_task(self._remove_root(root, executor)))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                log_with_context(
                    self.logger,
                    "error",
                    "Unexpected exception in bucket removal",
                    {"error": str(result), "error_type": type(result).__name__},
                )

    async def _remove_bucket(self, bucket: DepthBucket, executor: Executor, progress: ProgressCounter) -> None:
        entries = list(bucket.entries)
        for start in range(0, len(entries), self.batch_size):
            batch = entries[start : start + self.batch_size]
            await asyncio.gather(*(self._remove_one(entry, executor, progress) for entry in batch))
        self.logger.debug(f"Bucket at depth {bucket.depth} processed ({len(entries)} entries)")

    async def _remove_one(self, entry: Entry, executor: Executor, progress: ProgressCounter) -> None:
        loop = asyncio.get_running_loop()
        try:
            # Entries reached through a followed link live outside the tree
            if not entry.via_symlink:
                await loop.run_in_executor(executor, remove_entry, entry.path)
        except OSError as e:
            # Dropped: usually already removed with an ancestor; residue is handled by the repair pass
            self.logger.debug(f"Removal skipped: {entry.path}: {e}")
        finally:
            progress.increment()

    async def _remove_root(self, root: Path, executor: Executor) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, remove_entry, root)
        except OSError as e:
            self.logger.debug(f"Root removal deferred: {root}: {e}")

    async def _repair_and_retry(self, root: Path, executor: Executor) -> Optional[RootResidualError]:
        """Clear read-only attributes under ``root`` and remove it once more."""
        log_with_context(
            self.logger,
            "warning",
            "Residual tree after parallel removal, repairing permissions",
            {"path": str(root)},
        )

        repairer = PermissionRepairer(executor, self.workers, self.batch_size, self.logger)
        try:
            await repairer.repair(root)
        except RepairError as e:
            log_with_context(
                self.logger,
                "error",
                "Permission repair failed",
                {"path": str(root), "error": str(e.error), "failed_entries": e.failed},
            )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, remove_entry, root)
        except OSError as e:
            return RootResidualError(root, e)
        return None

    async def _background_progress_reporter(self, root: Path, progress: ProgressCounter, started: float) -> None:
        """Log progress every ``progress_interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(self.progress_interval)

            processed = progress.value
            elapsed = time.time() - started
            progress_data = {
                "path": str(root),
                "elapsed_seconds": round(elapsed, 1),
                "entries_processed": processed,
                "entries_total": progress.total,
                "percent": round(processed / progress.total * 100, 1) if progress.total else 100.0,
                "entries_per_second": round(processed / elapsed, 1) if elapsed > 0 else 0.0,
                "memory_mb": round(get_memory_usage_mb(), 1),
            }
            if self.logger.isEnabledFor(logging.DEBUG):
                progress_data["workers"] = self.workers
                progress_data["batch_size"] = self.batch_size

            log_with_context(self.logger, "info", "Progress update", progress_data)
