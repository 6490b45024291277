from datetime import timedelta
import threading

import pytest

from dirreplica.models import Counters, CopySummary, NativeCopySummary


def test_counters_are_safe_under_concurrent_increment() -> None:
    counters = Counters()

    def bump() -> None:
        for _ in range(2000):
            counters.increment("files_copied")

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counters.files_copied == 16000


def test_counters_reject_unknown_names_and_negative_amounts() -> None:
    counters = Counters()

    with pytest.raises(KeyError):
        counters.increment("files_deleted")
    with pytest.raises(ValueError):
        counters.increment("files_copied", -1)


def test_copy_summary_uses_external_field_names() -> None:
    counters = Counters()
    counters.increment("files_copied", 3)
    counters.increment("directories_created", 2)
    counters.increment("files_skipped")

    summary = CopySummary.from_counters(counters, timedelta(seconds=1.5), "sequential")

    assert summary.as_dict() == {
        "TotalFiles": 3,
        "TotalDirectories": 2,
        "ExcludedDirectories": 0,
        "FilesSkipped": 1,
        "FilesOverwritten": 0,
        "FilesFailed": 0,
        "Duration": 1.5,
        "Strategy": "sequential",
        "Cancelled": False,
        "BestEffort": False,
    }


def test_native_summary_omits_unreported_fields() -> None:
    rsync = NativeCopySummary(
        total_files=4, duration=timedelta(seconds=2), backend="rsync", exit_code=0, succeeded=True
    )
    robocopy = NativeCopySummary(
        total_files=4,
        duration=timedelta(seconds=2),
        backend="robocopy",
        exit_code=1,
        succeeded=True,
        total_directories=2,
        files_skipped=5,
    )

    assert "TotalDirectories" not in rsync.as_dict()
    assert "FilesSkipped" not in rsync.as_dict()
    assert robocopy.as_dict()["TotalDirectories"] == 2
    assert robocopy.as_dict()["FilesSkipped"] == 5
    assert robocopy.as_dict()["BestEffort"] is True
