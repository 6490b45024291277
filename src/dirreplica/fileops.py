from __future__ import annotations

from pathlib import Path
import shutil
import tempfile


def create_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def copy_file(source_file: Path, destination_file: Path, overwrite: bool = False) -> None:
    """Copy through a temporary sibling so readers never see a partial file.

    Metadata, including the modification time, is carried over with
    ``shutil.copy2``.
    """
    if not overwrite and destination_file.exists():
        raise FileExistsError(f"Destination already exists: {destination_file}")

    with tempfile.NamedTemporaryFile(
        delete=False,
        dir=str(destination_file.parent),
        prefix=f".{destination_file.name}.",
        suffix=".partial",
    ) as tmp:
        tmp_path = Path(tmp.name)
    try:
        shutil.copy2(source_file, tmp_path)
        tmp_path.replace(destination_file)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
