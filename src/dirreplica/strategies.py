from __future__ import annotations

from pathlib import Path
import functools
from typing import Callable, Iterable, Protocol
import logging
import queue
import threading

from dirreplica.fileops import copy_file
from dirreplica.models import CopyAction, Counters, FileOperation, UpdateMode
from dirreplica.policy import decide


CopyFile = Callable[[Path, Path, bool], None]
Confirm = Callable[[Path], bool]

QUEUE_ITEMS_PER_WORKER = 8
_PUT_POLL_SECONDS = 0.1
_STOP = object()

_ACTION_COUNTERS = {
    CopyAction.COPY: "files_copied",
    CopyAction.SKIP: "files_skipped",
    CopyAction.OVERWRITE: "files_overwritten",
}


def _would_overwrite() -> bool:
    return True


def process_operation(
    operation: FileOperation,
    *,
    update_mode: UpdateMode,
    counters: Counters,
    dry_run: bool = False,
    confirm: Confirm | None = None,
    copier: CopyFile = copy_file,
    logger: logging.Logger | None = None,
) -> CopyAction | None:
    """Decide and perform the copy for a single file.

    Returns the action taken, or ``None`` when the file could not be handled.
    Failures are logged and counted, never raised.
    """
    log = logger or logging.getLogger("dirreplica.copy")

    try:
        destination_stat = operation.destination.stat()
    except FileNotFoundError:
        destination_stat = None
    except OSError as exc:
        log.warning("Cannot inspect destination %s: %s", operation.destination, exc)
        counters.increment("files_failed")
        return None

    try:
        source_mtime_ns = operation.source_mtime_ns
        if update_mode is UpdateMode.IF_NEWER and source_mtime_ns is None and destination_stat:
            source_mtime_ns = operation.source.stat().st_mtime_ns

        ask: Callable[[], bool] | None = None
        if dry_run:
            # Nothing is written, so every prompt counts as a would-be overwrite.
            ask = _would_overwrite
        elif confirm is not None:
            ask = functools.partial(confirm, operation.destination)

        action = decide(
            destination_stat is not None,
            update_mode,
            source_mtime_ns=source_mtime_ns,
            destination_mtime_ns=destination_stat.st_mtime_ns if destination_stat else None,
            confirm=ask,
        )
        log.debug("%s %s -> %s", action.value, operation.source, operation.destination)

        if action is not CopyAction.SKIP and not dry_run:
            copier(operation.source, operation.destination, action is CopyAction.OVERWRITE)
    except Exception as exc:
        log.warning("Failed to copy %s -> %s: %s", operation.source, operation.destination, exc)
        counters.increment("files_failed")
        return None

    counters.increment(_ACTION_COUNTERS[action])
    return action


class ExecutionStrategy(Protocol):
    name: str

    def execute(self, operations: Iterable[FileOperation]) -> None:
        ...


class SequentialStrategy:
    """Handles each operation to completion before pulling the next one."""

    name = "sequential"

    def __init__(
        self,
        counters: Counters,
        update_mode: UpdateMode,
        *,
        dry_run: bool = False,
        confirm: Confirm | None = None,
        copier: CopyFile = copy_file,
        cancel_event: threading.Event | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.counters = counters
        self.update_mode = update_mode
        self.dry_run = dry_run
        self.confirm = confirm
        self.copier = copier
        self.cancel_event = cancel_event
        self.log = logger or logging.getLogger("dirreplica.copy")

    def execute(self, operations: Iterable[FileOperation]) -> None:
        for operation in operations:
            if self.cancel_event is not None and self.cancel_event.is_set():
                break
            process_operation(
                operation,
                update_mode=self.update_mode,
                counters=self.counters,
                dry_run=self.dry_run,
                confirm=self.confirm,
                copier=self.copier,
                logger=self.log,
            )


class WorkerPoolStrategy:
    """Fans file copies out to a fixed pool of threads.

    The calling thread stays the single producer: it drives the walker (and
    therefore all directory creation) and feeds a bounded queue. Workers are
    stopped with one sentinel each and joined before :meth:`execute` returns.
    """

    name = "worker-pool"

    def __init__(
        self,
        counters: Counters,
        update_mode: UpdateMode,
        throttle_limit: int,
        *,
        dry_run: bool = False,
        copier: CopyFile = copy_file,
        cancel_event: threading.Event | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if update_mode is UpdateMode.PROMPT:
            raise ValueError("Prompt update mode cannot run on a worker pool")
        if throttle_limit < 1:
            raise ValueError("Worker pool needs at least one worker")
        self.counters = counters
        self.update_mode = update_mode
        self.throttle_limit = throttle_limit
        self.dry_run = dry_run
        self.copier = copier
        self.cancel_event = cancel_event or threading.Event()
        self.log = logger or logging.getLogger("dirreplica.copy")

    def _worker(self, work: queue.Queue) -> None:
        while True:
            item = work.get()
            try:
                if item is _STOP:
                    return
                if self.cancel_event.is_set():
                    continue
                process_operation(
                    item,
                    update_mode=self.update_mode,
                    counters=self.counters,
                    dry_run=self.dry_run,
                    copier=self.copier,
                    logger=self.log,
                )
            finally:
                work.task_done()

    def _put(self, work: queue.Queue, item: object) -> bool:
        while True:
            try:
                work.put(item, timeout=_PUT_POLL_SECONDS)
                return True
            except queue.Full:
                if self.cancel_event.is_set():
                    return False

    def execute(self, operations: Iterable[FileOperation]) -> None:
        work: queue.Queue = queue.Queue(maxsize=QUEUE_ITEMS_PER_WORKER * self.throttle_limit)
        workers = [
            threading.Thread(
                target=self._worker,
                args=(work,),
                name=f"dirreplica-copy-{index}",
                daemon=True,
            )
            for index in range(self.throttle_limit)
        ]
        for worker in workers:
            worker.start()

        try:
            for operation in operations:
                if self.cancel_event.is_set() or not self._put(work, operation):
                    break
        finally:
            for _ in workers:
                work.put(_STOP)
            for worker in workers:
                worker.join()
