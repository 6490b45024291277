from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any
import threading


MIN_THROTTLE_LIMIT = 1
MAX_THROTTLE_LIMIT = 32


class CopyValidationError(ValueError):
    """Raised before any filesystem work when the requested copy is invalid."""


class UpdateMode(str, Enum):
    SKIP = "Skip"
    OVERWRITE = "Overwrite"
    IF_NEWER = "IfNewer"
    PROMPT = "Prompt"

    @classmethod
    def parse(cls, value: str | UpdateMode) -> UpdateMode:
        if isinstance(value, UpdateMode):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Update mode must be a string, got {type(value).__name__}")
        key = value.strip().replace("-", "").replace("_", "").lower()
        for mode in cls:
            if mode.value.lower() == key:
                return mode
        choices = ", ".join(mode.value for mode in cls)
        raise ValueError(f"Unknown update mode '{value}'; expected one of: {choices}")


class CopyAction(Enum):
    COPY = "copy"
    SKIP = "skip"
    OVERWRITE = "overwrite"


@dataclass(slots=True, frozen=True)
class FileOperation:
    source: Path
    destination: Path
    source_mtime_ns: int | None = None


@dataclass(slots=True, frozen=True)
class DirectoryTask:
    source: Path
    destination: Path


COUNTER_NAMES = (
    "files_copied",
    "directories_created",
    "directories_excluded",
    "files_skipped",
    "files_overwritten",
    "files_failed",
)


@dataclass(slots=True)
class Counters:
    """Per-run tallies shared between the walker and copy workers.

    Every mutation goes through :meth:`increment`, which holds the lock only
    for the integer update.
    """

    files_copied: int = 0
    directories_created: int = 0
    directories_excluded: int = 0
    files_skipped: int = 0
    files_overwritten: int = 0
    files_failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in COUNTER_NAMES:
            raise KeyError(f"Unknown counter: {name}")
        if amount < 0:
            raise ValueError("Counters only move forward")
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {name: getattr(self, name) for name in COUNTER_NAMES}

    @property
    def files_decided(self) -> int:
        with self._lock:
            return self.files_copied + self.files_skipped + self.files_overwritten


@dataclass(slots=True)
class ExecutionConfig:
    throttle_limit: int = 1
    recurse: bool = True
    update_mode: UpdateMode = UpdateMode.SKIP
    use_native_tools: bool = False
    dry_run: bool = False
    follow_symlinks: bool = False

    def validate(self) -> None:
        if isinstance(self.throttle_limit, bool) or not isinstance(self.throttle_limit, int):
            raise CopyValidationError("Throttle limit must be an integer")
        if not MIN_THROTTLE_LIMIT <= self.throttle_limit <= MAX_THROTTLE_LIMIT:
            raise CopyValidationError(
                f"Throttle limit must be between {MIN_THROTTLE_LIMIT} and {MAX_THROTTLE_LIMIT}, "
                f"got {self.throttle_limit}"
            )
        if self.use_native_tools and not self.recurse:
            raise CopyValidationError("Native tools can only be used together with recursion")
        if self.use_native_tools and self.update_mode is UpdateMode.PROMPT:
            raise CopyValidationError("Prompt update mode cannot be combined with native tools")


@dataclass(slots=True, frozen=True)
class CopySummary:
    """Result of a walker-based run; every field is an exact count."""

    total_files: int
    total_directories: int
    excluded_directories: int
    files_skipped: int
    files_overwritten: int
    duration: timedelta
    strategy: str
    files_failed: int = 0
    cancelled: bool = False
    best_effort = False

    @classmethod
    def from_counters(
        cls,
        counters: Counters,
        duration: timedelta,
        strategy: str,
        cancelled: bool = False,
    ) -> CopySummary:
        values = counters.snapshot()
        return cls(
            total_files=values["files_copied"],
            total_directories=values["directories_created"],
            excluded_directories=values["directories_excluded"],
            files_skipped=values["files_skipped"],
            files_overwritten=values["files_overwritten"],
            duration=duration,
            strategy=strategy,
            files_failed=values["files_failed"],
            cancelled=cancelled,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "TotalFiles": self.total_files,
            "TotalDirectories": self.total_directories,
            "ExcludedDirectories": self.excluded_directories,
            "FilesSkipped": self.files_skipped,
            "FilesOverwritten": self.files_overwritten,
            "FilesFailed": self.files_failed,
            "Duration": round(self.duration.total_seconds(), 3),
            "Strategy": self.strategy,
            "Cancelled": self.cancelled,
            "BestEffort": self.best_effort,
        }


@dataclass(slots=True, frozen=True)
class NativeCopySummary:
    """Result of a run delegated to robocopy or rsync.

    Counts are scraped from the tool's output. ``total_directories`` and
    ``files_skipped`` are ``None`` when the backend does not report them, and
    overwrites are never reported.
    """

    total_files: int
    duration: timedelta
    backend: str
    exit_code: int
    succeeded: bool
    total_directories: int | None = None
    files_skipped: int | None = None
    strategy: str = "native"
    best_effort = True

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "TotalFiles": self.total_files,
            "Duration": round(self.duration.total_seconds(), 3),
        }
        if self.total_directories is not None:
            payload["TotalDirectories"] = self.total_directories
        if self.files_skipped is not None:
            payload["FilesSkipped"] = self.files_skipped
        payload.update(
            {
                "Strategy": self.strategy,
                "Backend": self.backend,
                "ExitCode": self.exit_code,
                "Succeeded": self.succeeded,
                "BestEffort": self.best_effort,
            }
        )
        return payload
