from pathlib import Path
import logging
import os
import threading

import pytest

from dirreplica.models import CopyAction, Counters, FileOperation, UpdateMode
from dirreplica.strategies import SequentialStrategy, WorkerPoolStrategy, process_operation


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _operations(tmp_path: Path, count: int) -> list[FileOperation]:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    destination.mkdir(parents=True, exist_ok=True)
    operations = []
    for index in range(count):
        _write(source / f"f{index:03}.txt", f"content {index}")
        operations.append(FileOperation(source / f"f{index:03}.txt", destination / f"f{index:03}.txt"))
    return operations


def test_process_operation_copies_new_file(tmp_path: Path) -> None:
    (operation,) = _operations(tmp_path, 1)
    counters = Counters()

    action = process_operation(operation, update_mode=UpdateMode.SKIP, counters=counters)

    assert action is CopyAction.COPY
    assert operation.destination.read_text(encoding="utf-8") == "content 0"
    assert counters.files_copied == 1


def test_process_operation_overwrites_and_skips(tmp_path: Path) -> None:
    (operation,) = _operations(tmp_path, 1)
    _write(operation.destination, "old")

    skip_counters = Counters()
    assert process_operation(operation, update_mode=UpdateMode.SKIP, counters=skip_counters) is CopyAction.SKIP
    assert operation.destination.read_text(encoding="utf-8") == "old"
    assert skip_counters.files_skipped == 1

    overwrite_counters = Counters()
    action = process_operation(operation, update_mode=UpdateMode.OVERWRITE, counters=overwrite_counters)
    assert action is CopyAction.OVERWRITE
    assert operation.destination.read_text(encoding="utf-8") == "content 0"
    assert overwrite_counters.files_overwritten == 1
    assert overwrite_counters.files_copied == 0


def test_process_operation_dry_run_counts_without_writing(tmp_path: Path) -> None:
    (operation,) = _operations(tmp_path, 1)
    counters = Counters()

    action = process_operation(operation, update_mode=UpdateMode.SKIP, counters=counters, dry_run=True)

    assert action is CopyAction.COPY
    assert counters.files_copied == 1
    assert not operation.destination.exists()


def test_process_operation_if_newer_stats_source_when_time_missing(tmp_path: Path) -> None:
    (operation,) = _operations(tmp_path, 1)
    _write(operation.destination, "old")
    base = 1_700_000_000_000_000_000
    os.utime(operation.destination, ns=(base, base))
    os.utime(operation.source, ns=(base + 2_000_000_000, base + 2_000_000_000))

    counters = Counters()
    action = process_operation(operation, update_mode=UpdateMode.IF_NEWER, counters=counters)

    assert action is CopyAction.OVERWRITE
    assert counters.files_overwritten == 1


def test_process_operation_failure_is_logged_and_counted(tmp_path: Path, caplog) -> None:
    (operation,) = _operations(tmp_path, 1)
    counters = Counters()

    def broken_copier(source: Path, destination: Path, overwrite: bool) -> None:
        raise PermissionError("locked")

    with caplog.at_level("WARNING"):
        action = process_operation(
            operation,
            update_mode=UpdateMode.SKIP,
            counters=counters,
            copier=broken_copier,
            logger=logging.getLogger("tests.strategies"),
        )

    assert action is None
    assert counters.files_copied == 0
    assert counters.files_failed == 1
    assert "locked" in caplog.text


def test_prompt_confirm_receives_destination_path(tmp_path: Path) -> None:
    operations = _operations(tmp_path, 2)
    for operation in operations:
        _write(operation.destination, "old")
    asked: list[Path] = []

    def confirm(path: Path) -> bool:
        asked.append(path)
        return path.name == "f000.txt"

    counters = Counters()
    SequentialStrategy(counters, UpdateMode.PROMPT, confirm=confirm).execute(operations)

    assert asked == [operations[0].destination, operations[1].destination]
    assert counters.files_overwritten == 1
    assert counters.files_skipped == 1
    assert operations[0].destination.read_text(encoding="utf-8") == "content 0"
    assert operations[1].destination.read_text(encoding="utf-8") == "old"


def test_worker_pool_copies_everything_and_counts_consistently(tmp_path: Path) -> None:
    operations = _operations(tmp_path, 60)
    counters = Counters()

    WorkerPoolStrategy(counters, UpdateMode.SKIP, throttle_limit=8).execute(iter(operations))

    assert counters.files_copied == 60
    assert all(op.destination.exists() for op in operations)


def test_worker_pool_failure_does_not_stop_other_copies(tmp_path: Path) -> None:
    operations = _operations(tmp_path, 20)
    counters = Counters()
    lock = threading.Lock()
    copied: list[str] = []

    def flaky_copier(source: Path, destination: Path, overwrite: bool) -> None:
        if source.name == "f005.txt":
            raise OSError("disk hiccup")
        destination.write_bytes(source.read_bytes())
        with lock:
            copied.append(source.name)

    WorkerPoolStrategy(counters, UpdateMode.SKIP, throttle_limit=4, copier=flaky_copier).execute(operations)

    assert counters.files_copied == 19
    assert counters.files_failed == 1
    assert "f005.txt" not in copied


def test_worker_pool_rejects_prompt_mode() -> None:
    with pytest.raises(ValueError, match="Prompt"):
        WorkerPoolStrategy(Counters(), UpdateMode.PROMPT, throttle_limit=4)


def test_worker_pool_cancellation_stops_copying(tmp_path: Path) -> None:
    operations = _operations(tmp_path, 50)
    counters = Counters()
    cancel = threading.Event()

    def cancelling_copier(source: Path, destination: Path, overwrite: bool) -> None:
        cancel.set()
        destination.write_bytes(source.read_bytes())

    strategy = WorkerPoolStrategy(
        counters, UpdateMode.SKIP, throttle_limit=2, copier=cancelling_copier, cancel_event=cancel
    )
    strategy.execute(operations)

    assert counters.files_copied < 50


def test_prompt_dry_run_counts_overwrites_without_asking(tmp_path: Path) -> None:
    operations = _operations(tmp_path, 2)
    _write(operations[0].destination, "old")
    asked: list[Path] = []

    def confirm(path: Path) -> bool:
        asked.append(path)
        return False

    counters = Counters()
    SequentialStrategy(counters, UpdateMode.PROMPT, dry_run=True, confirm=confirm).execute(operations)

    assert asked == []
    assert counters.files_overwritten == 1
    assert counters.files_copied == 1
    assert operations[0].destination.read_text(encoding="utf-8") == "old"
    assert not operations[1].destination.exists()
