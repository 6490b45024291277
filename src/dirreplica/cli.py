from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dirreplica.config import get_jobs, load_config
from dirreplica.log_setup import configure_logging
from dirreplica.models import MAX_THROTTLE_LIMIT, MIN_THROTTLE_LIMIT, CopySummary, CopyValidationError, UpdateMode
from dirreplica.orchestrator import CopyOrchestrator
from dirreplica.run_service import (
    EXIT_INVALID_CONFIG,
    EXIT_PARTIAL_FAILURES,
    EXIT_RUNTIME_OR_CONFIG_ERROR,
    EXIT_SUCCESS,
    run_copy_jobs,
)


def _throttle_limit(value: str) -> int:
    try:
        limit = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid throttle limit: {value}") from exc
    if not MIN_THROTTLE_LIMIT <= limit <= MAX_THROTTLE_LIMIT:
        raise argparse.ArgumentTypeError(
            f"throttle limit must be between {MIN_THROTTLE_LIMIT} and {MAX_THROTTLE_LIMIT}"
        )
    return limit


def _update_mode(value: str) -> UpdateMode:
    try:
        return UpdateMode.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dirreplica", description="Parallel policy-driven directory copy")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-file decisions")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to a rotating file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    copy_parser = subparsers.add_parser("copy", help="Copy one directory tree")
    copy_parser.add_argument("source", type=Path)
    copy_parser.add_argument("destination", type=Path)
    copy_parser.add_argument(
        "--exclude",
        dest="exclude_directories",
        action="append",
        default=[],
        metavar="NAME",
        help="Directory name (or wildcard) to skip; repeatable",
    )
    copy_parser.add_argument(
        "--update-mode",
        type=_update_mode,
        default=UpdateMode.SKIP,
        help="Skip, Overwrite, IfNewer or Prompt (default: Skip)",
    )
    copy_parser.add_argument("--no-recurse", dest="recurse", action="store_false")
    copy_parser.add_argument("--throttle-limit", type=_throttle_limit, default=1)
    copy_parser.add_argument("--native-tools", dest="use_native_tools", action="store_true")
    copy_parser.add_argument("--follow-symlinks", action="store_true")
    copy_parser.add_argument("--dry-run", action="store_true")
    copy_parser.add_argument("--json", action="store_true", help="Print the summary as JSON")

    run_parser = subparsers.add_parser("run", help="Run copy jobs from a config file")
    run_parser.add_argument("--config", required=True, type=Path)
    run_parser.add_argument("--job", help="Run only one job by name")
    run_parser.add_argument("--dry-run", action="store_true")

    validate_parser = subparsers.add_parser("validate-config", help="Validate config")
    validate_parser.add_argument("--config", required=True, type=Path)

    list_parser = subparsers.add_parser("list", help="List jobs and their source/destination")
    list_parser.add_argument("--config", required=True, type=Path)
    list_parser.add_argument("--job", help="List only one job by name")

    return parser


def confirm_overwrite(path: Path) -> bool:
    try:
        answer = input(f"Overwrite {path}? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def cmd_copy(args: argparse.Namespace) -> int:
    try:
        summary = CopyOrchestrator().run(
            args.source,
            args.destination,
            exclude_directories=args.exclude_directories,
            update_mode=args.update_mode,
            recurse=args.recurse,
            throttle_limit=args.throttle_limit,
            use_native_tools=args.use_native_tools,
            dry_run=args.dry_run,
            follow_symlinks=args.follow_symlinks,
            confirm=confirm_overwrite,
        )
    except CopyValidationError as exc:
        print(f"Invalid copy request: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR
    except OSError as exc:
        print(f"Copy failed: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR

    payload = summary.as_dict()
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        prefix = "[dry-run] " if args.dry_run else ""
        print(prefix + " ".join(f"{key}={value}" for key, value in payload.items()))

    if isinstance(summary, CopySummary):
        return EXIT_PARTIAL_FAILURES if summary.files_failed else EXIT_SUCCESS
    return EXIT_SUCCESS if summary.succeeded else EXIT_PARTIAL_FAILURES


def cmd_validate(config_path: Path) -> int:
    try:
        config = load_config(config_path)
    except Exception as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    print(f"Valid config: {config_path} ({len(config.jobs)} job(s))")
    for job in config.jobs:
        print(
            f"  - job={job.name} "
            f"updateMode={job.update_mode.value} "
            f"throttleLimit={job.throttle_limit} "
            f"useNativeTools={str(job.use_native_tools).lower()}"
        )
    return EXIT_SUCCESS


def cmd_list(config_path: Path, job_name: str | None) -> int:
    try:
        config = load_config(config_path)
        jobs = get_jobs(config, job_name)
    except Exception as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    for job in jobs:
        excludes = ", ".join(job.exclude_directories) or "(none)"
        print(f"job: {job.name} (recurse={str(job.recurse).lower()})")
        print(f"  - {job.source} -> {job.destination} [exclude: {excludes}]")
    return EXIT_SUCCESS


def cmd_run(config_path: Path, job_name: str | None, dry_run: bool) -> int:
    exit_code, _ = run_copy_jobs(
        config_path=config_path,
        job_name=job_name,
        dry_run=dry_run,
        confirm=confirm_overwrite,
        on_summary=print,
    )
    return exit_code


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    if args.command == "copy":
        return cmd_copy(args)
    if args.command == "run":
        return cmd_run(args.config, args.job, args.dry_run)
    if args.command == "validate-config":
        return cmd_validate(args.config)
    if args.command == "list":
        return cmd_list(args.config, args.job)

    parser.print_help()
    return EXIT_RUNTIME_OR_CONFIG_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
