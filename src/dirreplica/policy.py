from __future__ import annotations

from typing import Callable

from dirreplica.models import CopyAction, UpdateMode


def decide(
    destination_exists: bool,
    update_mode: UpdateMode,
    source_mtime_ns: int | None = None,
    destination_mtime_ns: int | None = None,
    confirm: Callable[[], bool] | None = None,
) -> CopyAction:
    """Return what to do with one source file given the destination state.

    ``IfNewer`` overwrites only when the source is strictly newer; equal
    timestamps count as up to date. ``Prompt`` defers to ``confirm``, which
    must be supplied for that mode.
    """
    if not destination_exists:
        return CopyAction.COPY

    if update_mode is UpdateMode.SKIP:
        return CopyAction.SKIP

    if update_mode is UpdateMode.OVERWRITE:
        return CopyAction.OVERWRITE

    if update_mode is UpdateMode.IF_NEWER:
        if source_mtime_ns is None or destination_mtime_ns is None:
            raise ValueError("IfNewer requires both source and destination modification times")
        return CopyAction.OVERWRITE if source_mtime_ns > destination_mtime_ns else CopyAction.SKIP

    if update_mode is UpdateMode.PROMPT:
        if confirm is None:
            raise ValueError("Prompt update mode requires a confirmation callback")
        return CopyAction.OVERWRITE if confirm() else CopyAction.SKIP

    raise ValueError(f"Unsupported update mode: {update_mode!r}")
