"""Errors surfaced by the deletion engine."""

from pathlib import Path


class TurboDeleteError(Exception):
    """Base class for target-level deletion failures."""

    def __init__(self, path: Path, error: OSError, message: str):
        super().__init__(f"{message}: {path}: {error}")
        self.path = path
        self.error = error
        self.__cause__ = error


class ScanError(TurboDeleteError):
    """The tree under a target could not be enumerated."""

    def __init__(self, path: Path, error: OSError):
        super().__init__(path, error, "Failed to read directory")


class RepairError(TurboDeleteError):
    """Clearing read-only attributes under a target failed."""

    def __init__(self, path: Path, error: OSError, failed: int = 1):
        super().__init__(path, error, f"Failed to repair permissions ({failed} entries)")
        self.failed = failed


class RootResidualError(TurboDeleteError):
    """The target still exists after the repair pass and final retry."""

    def __init__(self, path: Path, error: OSError):
        super().__init__(path, error, "Failed to remove")
