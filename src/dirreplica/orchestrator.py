from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable
import logging
import threading
import time

from dirreplica.exclusions import ExclusionSet
from dirreplica.fileops import copy_file, create_directory
from dirreplica.models import (
    CopySummary,
    CopyValidationError,
    Counters,
    ExecutionConfig,
    NativeCopySummary,
    UpdateMode,
)
from dirreplica.native_tools import NativeToolAdapter, NativeToolError
from dirreplica.strategies import Confirm, CopyFile, ExecutionStrategy, SequentialStrategy, WorkerPoolStrategy
from dirreplica.walker import DirectoryWalker


def _validate_paths(
    source_root: Path,
    destination_root: Path,
    exclusions: ExclusionSet,
    recurse: bool = True,
) -> None:
    if not source_root.exists() or not source_root.is_dir():
        raise CopyValidationError(f"Source directory does not exist or is not a directory: {source_root}")

    source_resolved = source_root.resolve()
    destination_resolved = destination_root.resolve()

    if source_resolved == destination_resolved:
        raise CopyValidationError(f"Source and destination are the same directory: {source_root}")

    if destination_resolved.is_relative_to(source_resolved):
        top_level = destination_resolved.relative_to(source_resolved).parts[0]
        # The walk never enters an excluded top-level directory.
        if recurse and not exclusions.is_excluded(top_level):
            raise CopyValidationError(
                f"Destination is inside source, which would copy into itself: {destination_root}"
            )

    if destination_root.exists() and not destination_root.is_dir():
        raise CopyValidationError(f"Destination exists and is not a directory: {destination_root}")


class CopyOrchestrator:
    """Validates a copy request, picks an execution strategy and runs it."""

    def __init__(
        self,
        *,
        native_adapter: NativeToolAdapter | None = None,
        copier: CopyFile = copy_file,
        make_directory: Callable[[Path], None] = create_directory,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._native_adapter = native_adapter
        self._copier = copier
        self._make_directory = make_directory
        self._clock = clock
        self.log = logger or logging.getLogger("dirreplica.orchestrator")

    @property
    def native_adapter(self) -> NativeToolAdapter:
        if self._native_adapter is None:
            self._native_adapter = NativeToolAdapter()
        return self._native_adapter

    def run(
        self,
        source: Path,
        destination: Path,
        exclude_directories: Iterable[str] = (),
        update_mode: UpdateMode | str = UpdateMode.SKIP,
        recurse: bool = True,
        throttle_limit: int = 1,
        use_native_tools: bool = False,
        dry_run: bool = False,
        *,
        follow_symlinks: bool = False,
        confirm: Confirm | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CopySummary | NativeCopySummary:
        try:
            mode = UpdateMode.parse(update_mode)
        except ValueError as exc:
            raise CopyValidationError(str(exc)) from exc

        config = ExecutionConfig(
            throttle_limit=throttle_limit,
            recurse=recurse,
            update_mode=mode,
            use_native_tools=use_native_tools,
            dry_run=dry_run,
            follow_symlinks=follow_symlinks,
        )
        config.validate()
        if mode is UpdateMode.PROMPT and confirm is None:
            raise CopyValidationError("Prompt update mode requires a confirmation callback")

        source = Path(source)
        destination = Path(destination)
        exclusions = ExclusionSet(exclude_directories)
        _validate_paths(source, destination, exclusions, config.recurse)

        started = self._clock()

        if not destination.exists():
            if dry_run:
                self.log.info("[dry-run] Would create destination %s", destination)
            else:
                self._make_directory(destination)

        if config.use_native_tools:
            summary = self._run_native(source, destination, exclusions, config, started)
            if summary is not None:
                return summary

        counters = Counters()
        strategy = self._select_strategy(config, counters, confirm, cancel_event)
        walker = DirectoryWalker(
            exclusions,
            counters,
            recurse=config.recurse,
            update_mode=config.update_mode,
            dry_run=config.dry_run,
            follow_symlinks=config.follow_symlinks,
            cancel_event=cancel_event,
            make_directory=self._make_directory,
        )

        self.log.info("Copying %s -> %s using %s strategy", source, destination, strategy.name)
        strategy.execute(walker.walk(source, destination))

        summary = CopySummary.from_counters(
            counters,
            duration=timedelta(seconds=self._clock() - started),
            strategy=strategy.name,
            cancelled=cancel_event is not None and cancel_event.is_set(),
        )
        self.log.info(
            "Finished %s -> %s | copied=%s overwritten=%s skipped=%s failed=%s dirs=%s excluded=%s",
            source,
            destination,
            summary.total_files,
            summary.files_overwritten,
            summary.files_skipped,
            summary.files_failed,
            summary.total_directories,
            summary.excluded_directories,
        )
        return summary

    def _select_strategy(
        self,
        config: ExecutionConfig,
        counters: Counters,
        confirm: Confirm | None,
        cancel_event: threading.Event | None,
    ) -> ExecutionStrategy:
        if config.throttle_limit > 1 and config.update_mode is not UpdateMode.PROMPT:
            return WorkerPoolStrategy(
                counters,
                config.update_mode,
                config.throttle_limit,
                dry_run=config.dry_run,
                copier=self._copier,
                cancel_event=cancel_event,
            )

        if config.throttle_limit > 1:
            self.log.info("Prompt update mode runs sequentially; ignoring throttle limit %s", config.throttle_limit)
        return SequentialStrategy(
            counters,
            config.update_mode,
            dry_run=config.dry_run,
            confirm=confirm,
            copier=self._copier,
            cancel_event=cancel_event,
        )

    def _run_native(
        self,
        source: Path,
        destination: Path,
        exclusions: ExclusionSet,
        config: ExecutionConfig,
        started: float,
    ) -> NativeCopySummary | None:
        adapter = self.native_adapter
        if not adapter.is_available():
            self.log.warning("%s was not found on PATH; falling back to in-process copy", adapter.backend)
            return None

        try:
            result = adapter.invoke(
                source,
                destination,
                exclusions,
                config.update_mode,
                config.throttle_limit,
                dry_run=config.dry_run,
            )
        except NativeToolError as exc:
            self.log.warning("%s could not be run (%s); falling back to in-process copy", adapter.backend, exc)
            return None

        succeeded = adapter.succeeded(result.exit_code)
        if not succeeded:
            self.log.warning("%s exited with code %s; counts may be incomplete", adapter.backend, result.exit_code)
        elif result.exit_code:
            self.log.info("%s exited with informational code %s", adapter.backend, result.exit_code)

        counts = adapter.parse(result)
        return NativeCopySummary(
            total_files=counts.files_copied,
            duration=timedelta(seconds=self._clock() - started),
            backend=result.backend,
            exit_code=result.exit_code,
            succeeded=succeeded,
            total_directories=counts.directories_created,
            files_skipped=counts.files_skipped,
        )


def copy_directory(
    source: Path,
    destination: Path,
    exclude_directories: Iterable[str] = (),
    update_mode: UpdateMode | str = UpdateMode.SKIP,
    recurse: bool = True,
    throttle_limit: int = 1,
    use_native_tools: bool = False,
    dry_run: bool = False,
    *,
    follow_symlinks: bool = False,
    confirm: Confirm | None = None,
    cancel_event: threading.Event | None = None,
) -> CopySummary | NativeCopySummary:
    return CopyOrchestrator().run(
        source,
        destination,
        exclude_directories,
        update_mode,
        recurse,
        throttle_limit,
        use_native_tools,
        dry_run,
        follow_symlinks=follow_symlinks,
        confirm=confirm,
        cancel_event=cancel_event,
    )
