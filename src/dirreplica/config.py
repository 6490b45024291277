from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import json
import yaml

from dirreplica.models import MAX_THROTTLE_LIMIT, MIN_THROTTLE_LIMIT, UpdateMode


@dataclass(slots=True)
class CopyJob:
    name: str
    source: Path
    destination: Path
    exclude_directories: list[str] = field(default_factory=list)
    update_mode: UpdateMode = UpdateMode.SKIP
    recurse: bool = True
    throttle_limit: int = 1
    use_native_tools: bool = False
    follow_symlinks: bool = False


@dataclass(slots=True)
class AppConfig:
    jobs: list[CopyJob]


def _as_path(value: Any, field_name: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string path")
    return Path(value).expanduser()


def _as_bool(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field_name} must be a boolean")


def _as_throttle(value: Any, field_name: str) -> int:
    if value is None:
        return MIN_THROTTLE_LIMIT
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    if not MIN_THROTTLE_LIMIT <= value <= MAX_THROTTLE_LIMIT:
        raise ValueError(f"{field_name} must be between {MIN_THROTTLE_LIMIT} and {MAX_THROTTLE_LIMIT}")
    return value


def _as_update_mode(value: Any, field_name: str) -> UpdateMode:
    if value is None:
        return UpdateMode.SKIP
    try:
        return UpdateMode.parse(value)
    except ValueError as exc:
        raise ValueError(f"{field_name}: {exc}") from exc


def _as_list_of_strings(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ValueError(f"{field_name} must be a list of strings")
    return [item for item in value if item.strip()]


def _load_raw_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ValueError(f"Config file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    text = config_path.read_text(encoding="utf-8")
    if suffix in {".yml", ".yaml"}:
        loaded = yaml.safe_load(text)
    elif suffix == ".json":
        loaded = json.loads(text)
    else:
        raise ValueError("Config file must be .yaml/.yml or .json")

    if not isinstance(loaded, dict):
        raise ValueError("Config root must be an object")
    return loaded


def load_config(config_path: Path) -> AppConfig:
    raw = _load_raw_config(config_path)
    raw_jobs = raw.get("jobs")
    if not isinstance(raw_jobs, list) or not raw_jobs:
        raise ValueError("Config must contain non-empty 'jobs' list")

    jobs: list[CopyJob] = []
    names: set[str] = set()

    for index, raw_job in enumerate(raw_jobs):
        prefix = f"jobs[{index}]"
        if not isinstance(raw_job, dict):
            raise ValueError(f"{prefix} must be an object")

        name = raw_job.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"{prefix}.name must be a non-empty string")
        if name in names:
            raise ValueError(f"Duplicate job name: {name}")
        names.add(name)

        update_mode = _as_update_mode(raw_job.get("updateMode"), f"{prefix}.updateMode")
        recurse = _as_bool(raw_job.get("recurse"), f"{prefix}.recurse", default=True)
        use_native_tools = _as_bool(raw_job.get("useNativeTools"), f"{prefix}.useNativeTools", default=False)
        if use_native_tools and (update_mode is UpdateMode.PROMPT or not recurse):
            raise ValueError(f"{prefix}.useNativeTools requires recurse: true and an updateMode other than Prompt")

        jobs.append(
            CopyJob(
                name=name,
                source=_as_path(raw_job.get("source"), f"{prefix}.source"),
                destination=_as_path(raw_job.get("destination"), f"{prefix}.destination"),
                exclude_directories=_as_list_of_strings(
                    raw_job.get("excludeDirectories"), f"{prefix}.excludeDirectories"
                ),
                update_mode=update_mode,
                recurse=recurse,
                throttle_limit=_as_throttle(raw_job.get("throttleLimit"), f"{prefix}.throttleLimit"),
                use_native_tools=use_native_tools,
                follow_symlinks=_as_bool(
                    raw_job.get("followSymlinks"), f"{prefix}.followSymlinks", default=False
                ),
            )
        )

    return AppConfig(jobs=jobs)


def get_jobs(config: AppConfig, job_name: str | None) -> list[CopyJob]:
    if not job_name:
        return config.jobs
    matched = [job for job in config.jobs if job.name == job_name]
    if not matched:
        raise ValueError(f"No job named '{job_name}' found")
    return matched
