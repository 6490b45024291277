from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence
import logging
import platform
import re
import shutil
import subprocess

from dirreplica.exclusions import ExclusionSet
from dirreplica.models import UpdateMode


ROBOCOPY = "robocopy"
RSYNC = "rsync"

ROBOCOPY_FAILURE_THRESHOLD = 8
RSYNC_PARTIAL_VANISHED = 24

CommandRunner = Callable[[Sequence[str]], tuple[int, list[str]]]

_ROBOCOPY_MODE_FLAGS = {
    UpdateMode.SKIP: ["/XC", "/XN", "/XO"],
    UpdateMode.OVERWRITE: ["/IS", "/IT"],
    UpdateMode.IF_NEWER: ["/XO"],
}

_RSYNC_MODE_FLAGS = {
    UpdateMode.SKIP: ["--ignore-existing"],
    UpdateMode.OVERWRITE: ["--ignore-times"],
    UpdateMode.IF_NEWER: ["-u"],
}

# "Total Copied Skipped Mismatch FAILED Extras" columns of the summary block.
_ROBOCOPY_DIRS_RE = re.compile(r"^\s*Dirs\s*:\s*(\d+)\s+(\d+)\s+(\d+)", re.MULTILINE)
_ROBOCOPY_FILES_RE = re.compile(r"^\s*Files\s*:\s*(\d+)\s+(\d+)\s+(\d+)", re.MULTILINE)

_RSYNC_TRANSFERRED_RE = re.compile(
    r"^\s*Number of (?:regular )?files transferred:\s*([\d,.]+)", re.MULTILINE
)


class NativeToolError(RuntimeError):
    """The external mirroring tool could not be launched."""


@dataclass(slots=True, frozen=True)
class NativeResult:
    backend: str
    exit_code: int
    output: list[str]


@dataclass(slots=True, frozen=True)
class NativeCounts:
    files_copied: int
    directories_created: int | None = None
    files_skipped: int | None = None


def default_backend() -> str:
    return ROBOCOPY if platform.system() == "Windows" else RSYNC


def run_command(args: Sequence[str]) -> tuple[int, list[str]]:
    try:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise NativeToolError(f"Failed to launch {args[0]}: {exc}") from exc
    lines = completed.stdout.splitlines() + completed.stderr.splitlines()
    return completed.returncode, lines


def _to_int(text: str) -> int:
    return int(text.replace(",", "").replace(".", ""))


def case_insensitive_glob(entry: str) -> str:
    """Rewrite letters outside bracket expressions as ``[xX]`` classes.

    rsync matches exclude patterns case-sensitively, unlike ``ExclusionSet``.
    """
    parts: list[str] = []
    in_bracket = False
    for char in entry:
        if in_bracket:
            parts.append(char)
            if char == "]":
                in_bracket = False
        elif char == "[":
            parts.append(char)
            in_bracket = True
        elif char.lower() != char.upper():
            parts.append(f"[{char.lower()}{char.upper()}]")
        else:
            parts.append(char)
    return "".join(parts)


def parse_robocopy_output(lines: Sequence[str]) -> NativeCounts:
    text = "\n".join(lines)
    files_copied = 0
    files_skipped: int | None = None
    directories_created: int | None = None

    # The summary block is printed last; take the final match.
    files_matches = _ROBOCOPY_FILES_RE.findall(text)
    if files_matches:
        _, copied, skipped = files_matches[-1]
        files_copied = int(copied)
        files_skipped = int(skipped)

    dirs_matches = _ROBOCOPY_DIRS_RE.findall(text)
    if dirs_matches:
        directories_created = int(dirs_matches[-1][1])

    return NativeCounts(
        files_copied=files_copied,
        directories_created=directories_created,
        files_skipped=files_skipped,
    )


def parse_rsync_output(lines: Sequence[str]) -> NativeCounts:
    match = _RSYNC_TRANSFERRED_RE.search("\n".join(lines))
    return NativeCounts(files_copied=_to_int(match.group(1)) if match else 0)


class NativeToolAdapter:
    """Delegates a whole copy to robocopy (Windows) or rsync (elsewhere).

    Flag mappings are approximations of the in-process update policy, and
    the parsed counts are best effort. robocopy ``/XD`` already ignores case;
    rsync excludes are rewritten into case-insensitive character classes.
    """

    def __init__(
        self,
        backend: str | None = None,
        *,
        runner: CommandRunner = run_command,
        which: Callable[[str], str | None] = shutil.which,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend or default_backend()
        if self.backend not in {ROBOCOPY, RSYNC}:
            raise ValueError(f"Unsupported native backend: {self.backend}")
        self._runner = runner
        self._which = which
        self.log = logger or logging.getLogger("dirreplica.native")

    def is_available(self) -> bool:
        return self._which(self.backend) is not None

    def build_command(
        self,
        source: Path,
        destination: Path,
        exclusions: ExclusionSet,
        update_mode: UpdateMode,
        throttle_limit: int,
        dry_run: bool = False,
    ) -> list[str]:
        if update_mode is UpdateMode.PROMPT:
            raise ValueError("Prompt update mode has no native tool equivalent")

        if self.backend == ROBOCOPY:
            args = [ROBOCOPY, str(source), str(destination), "/E", "/R:1", "/W:1", "/NP", "/NFL", "/NDL"]
            args.extend(_ROBOCOPY_MODE_FLAGS[update_mode])
            args.append(f"/MT:{throttle_limit}")
            if exclusions:
                args.append("/XD")
                args.extend(exclusions.entries)
            if dry_run:
                args.append("/L")
            return args

        # rsync has no per-file parallelism flag, so the throttle limit is dropped.
        args = [RSYNC, "-a", "--stats"]
        args.extend(_RSYNC_MODE_FLAGS[update_mode])
        args.extend(f"--exclude={case_insensitive_glob(entry)}/" for entry in exclusions.entries)
        if dry_run:
            args.append("--dry-run")
        args.extend([f"{source}/", f"{destination}/"])
        return args

    def invoke(
        self,
        source: Path,
        destination: Path,
        exclusions: ExclusionSet,
        update_mode: UpdateMode,
        throttle_limit: int,
        dry_run: bool = False,
    ) -> NativeResult:
        args = self.build_command(source, destination, exclusions, update_mode, throttle_limit, dry_run)
        self.log.info("Running %s", " ".join(args))
        exit_code, output = self._runner(args)
        for line in output:
            self.log.debug("%s: %s", self.backend, line)
        return NativeResult(backend=self.backend, exit_code=exit_code, output=list(output))

    def succeeded(self, exit_code: int) -> bool:
        if self.backend == ROBOCOPY:
            return 0 <= exit_code < ROBOCOPY_FAILURE_THRESHOLD
        return exit_code in {0, RSYNC_PARTIAL_VANISHED}

    def parse(self, result: NativeResult) -> NativeCounts:
        if result.backend == ROBOCOPY:
            return parse_robocopy_output(result.output)
        return parse_rsync_output(result.output)
