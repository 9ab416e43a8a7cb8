"""File-system helpers used by the SCSS generator: listing, reading, writing, renaming."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def list_files_with_extension(directory: PathLike, ext: str) -> List[str]:
    """
    Names (not paths) of the files in `directory` ending in `ext`, sorted.
    Raises OSError when the directory cannot be read.
    """
    ext = ext.lower()
    return sorted(
        p.name for p in Path(directory).iterdir()
        if p.is_file() and p.name.lower().endswith(ext)
    )


def read_file(path: PathLike, allow_missing: bool = False) -> Optional[str]:
    """Read UTF-8 text. Returns None for a missing file when `allow_missing`."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        if allow_missing:
            return None
        raise


def write_file(path: PathLike, text: str) -> Path:
    """Write UTF-8 text, creating parent directories as needed."""
    p = Path(path)
    ensure_dir(p.parent)
    p.write_text(text, encoding="utf-8")
    return p


def append_file(path: PathLike, text: str) -> Path:
    p = Path(path)
    ensure_dir(p.parent)
    with p.open("a", encoding="utf-8") as fh:
        fh.write(text)
    return p


def rename(src: PathLike, dst: PathLike) -> Path:
    # replace() overwrites an existing dst on every platform
    return Path(src).replace(dst)
