from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable
import logging

from dirreplica.config import CopyJob, get_jobs, load_config
from dirreplica.models import CopySummary, CopyValidationError, NativeCopySummary
from dirreplica.orchestrator import CopyOrchestrator
from dirreplica.strategies import Confirm


EXIT_SUCCESS = 0
EXIT_RUNTIME_OR_CONFIG_ERROR = 1
EXIT_PARTIAL_FAILURES = 2
EXIT_INVALID_CONFIG = 3


@dataclass(slots=True)
class RunSummary:
    copied: int = 0
    overwritten: int = 0
    skipped: int = 0
    failed: int = 0
    processed_jobs: int = 0
    partial_failures: bool = False

    def absorb(self, summary: CopySummary | NativeCopySummary) -> None:
        self.copied += summary.total_files
        self.skipped += summary.files_skipped or 0
        self.processed_jobs += 1
        if isinstance(summary, NativeCopySummary):
            if not summary.succeeded:
                self.partial_failures = True
            return
        self.overwritten += summary.files_overwritten
        self.failed += summary.files_failed
        if summary.files_failed:
            self.partial_failures = True


def format_summary(job_name: str, job: CopyJob, summary: CopySummary | NativeCopySummary) -> str:
    fields = " ".join(f"{key}={value}" for key, value in summary.as_dict().items())
    return f"[{job_name}] {job.source} -> {job.destination} | {fields}"


def run_job(
    job: CopyJob,
    dry_run: bool = False,
    confirm: Confirm | None = None,
    orchestrator: CopyOrchestrator | None = None,
) -> CopySummary | NativeCopySummary:
    runner = orchestrator or CopyOrchestrator()
    return runner.run(
        job.source,
        job.destination,
        exclude_directories=job.exclude_directories,
        update_mode=job.update_mode,
        recurse=job.recurse,
        throttle_limit=job.throttle_limit,
        use_native_tools=job.use_native_tools,
        dry_run=dry_run,
        follow_symlinks=job.follow_symlinks,
        confirm=confirm,
    )


def run_copy_jobs(
    config_path: Path,
    job_name: str | None = None,
    dry_run: bool = False,
    confirm: Confirm | None = None,
    logger: logging.Logger | None = None,
    on_summary: Callable[[str], None] | None = None,
) -> tuple[int, RunSummary]:
    log = logger or logging.getLogger("dirreplica.run")

    try:
        config = load_config(config_path)
        jobs = get_jobs(config, job_name)
    except Exception as exc:
        log.error("Config/runtime error: %s", exc)
        return EXIT_INVALID_CONFIG, RunSummary(partial_failures=True)

    summary = RunSummary()
    orchestrator = CopyOrchestrator()

    for job in jobs:
        try:
            result = run_job(job, dry_run=dry_run, confirm=confirm, orchestrator=orchestrator)
        except CopyValidationError as exc:
            summary.partial_failures = True
            log.error("[%s] invalid copy request: %s", job.name, exc)
            continue
        except OSError as exc:
            summary.partial_failures = True
            log.error("[%s] failed: %s", job.name, exc)
            continue

        summary.absorb(result)
        line = format_summary(job.name, job, result)
        log.info("%s", line)
        if on_summary is not None:
            on_summary(line)

    exit_code = EXIT_PARTIAL_FAILURES if summary.partial_failures else EXIT_SUCCESS
    return exit_code, summary
