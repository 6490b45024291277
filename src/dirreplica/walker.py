from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Callable, Iterator
import logging
import os
import threading

from dirreplica.exclusions import ExclusionSet
from dirreplica.fileops import create_directory
from dirreplica.models import Counters, DirectoryTask, FileOperation, UpdateMode


class DirectoryWalker:
    """Breadth-first producer of :class:`FileOperation` items.

    Mirrored destination directories are created while iterating, before any
    file inside them is yielded, so consumers may copy as soon as an
    operation arrives. A subtree that cannot be read is logged and skipped.
    """

    def __init__(
        self,
        exclusions: ExclusionSet,
        counters: Counters,
        *,
        recurse: bool = True,
        update_mode: UpdateMode = UpdateMode.SKIP,
        dry_run: bool = False,
        follow_symlinks: bool = False,
        cancel_event: threading.Event | None = None,
        make_directory: Callable[[Path], None] = create_directory,
        logger: logging.Logger | None = None,
    ) -> None:
        self.exclusions = exclusions
        self.counters = counters
        self.recurse = recurse
        self.update_mode = update_mode
        self.dry_run = dry_run
        self.follow_symlinks = follow_symlinks
        self.cancel_event = cancel_event
        self._make_directory = make_directory
        self.log = logger or logging.getLogger("dirreplica.walker")

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def walk(self, source_root: Path, destination_root: Path) -> Iterator[FileOperation]:
        pending: deque[DirectoryTask] = deque([DirectoryTask(source_root, destination_root)])
        wants_mtime = self.update_mode is UpdateMode.IF_NEWER
        # (st_dev, st_ino) of every queued directory, tracked only while following symlinks.
        visited: set[tuple[int, int]] | None = None
        if self.follow_symlinks:
            visited = set()
            try:
                visited.add(_identity(source_root))
            except OSError as exc:
                self.log.warning("Cannot stat source %s: %s", source_root, exc)

        while pending:
            if self._cancelled():
                self.log.info("Walk cancelled with %s directories still pending", len(pending))
                return

            task = pending.popleft()
            try:
                with os.scandir(task.source) as iterator:
                    entries = sorted(iterator, key=lambda entry: entry.name)
            except OSError as exc:
                self.log.warning("Cannot read directory %s: %s", task.source, exc)
                continue

            for entry in entries:
                if self._cancelled():
                    return
                try:
                    is_dir = entry.is_dir(follow_symlinks=self.follow_symlinks)
                    is_file = not is_dir and entry.is_file()
                except OSError as exc:
                    self.log.warning("Cannot inspect %s: %s", entry.path, exc)
                    continue

                if is_dir:
                    child = self._enter_directory(task, entry.name, visited)
                    if child is not None:
                        pending.append(child)
                    continue

                if not is_file:
                    self.log.debug("Skipping special entry %s", entry.path)
                    continue

                source_mtime_ns = None
                if wants_mtime:
                    try:
                        source_mtime_ns = entry.stat().st_mtime_ns
                    except OSError as exc:
                        self.log.warning("Cannot stat %s: %s", entry.path, exc)
                        continue

                yield FileOperation(
                    source=Path(entry.path),
                    destination=task.destination / entry.name,
                    source_mtime_ns=source_mtime_ns,
                )

    def _enter_directory(
        self,
        task: DirectoryTask,
        name: str,
        visited: set[tuple[int, int]] | None = None,
    ) -> DirectoryTask | None:
        source = task.source / name
        if self.exclusions.is_excluded(name):
            self.log.debug("Excluding directory %s", source)
            self.counters.increment("directories_excluded")
            return None

        # Without recursion every subdirectory is reported as excluded.
        if not self.recurse:
            self.counters.increment("directories_excluded")
            return None

        if visited is not None:
            try:
                identity = _identity(source)
            except OSError as exc:
                self.log.warning("Cannot stat directory %s: %s", source, exc)
                return None
            if identity in visited:
                self.log.warning("Skipping %s: directory already visited (symlink loop)", source)
                return None
            visited.add(identity)

        destination = task.destination / name
        if not destination.is_dir():
            if not self.dry_run:
                try:
                    self._make_directory(destination)
                except OSError as exc:
                    self.log.warning("Cannot create directory %s: %s", destination, exc)
                    return None
            self.counters.increment("directories_created")

        return DirectoryTask(source, destination)


def _identity(path: Path) -> tuple[int, int]:
    stat_result = os.stat(path)
    return stat_result.st_dev, stat_result.st_ino
