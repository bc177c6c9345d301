"""Filesystem helpers: atomic writes and YAML loading.

Provides:
    - Atomic writes: tmp file → fsync → rename (no half-written slice files)
    - Streaming atomic text output for writers that emit line by line
    - YAML loading for codec configuration
    - Directory creation with exist_ok semantics

Used by:
    - CLI encoder: opt-in atomic output (``write_cli_file(..., atomic=True)``)
    - SVG export: one atomic write per slice image
    - Config loader: ``codec.yaml``

All paths use pathlib.Path for cross-platform compatibility.

Usage:
    from slice_exchange.utils import fs
    fs.atomic_write_text(svg_text, out_dir / "part_00000.svg")
    with fs.atomic_open_text(path, encoding="ascii") as f:
        f.write("$$HEADERSTART\\n")
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, TextIO, Union

import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory if it doesn't exist, return Path object.

    Parameters
    ----------
    p : Union[str, Path]
        Directory path

    Returns
    -------
    Path
        Path object (guaranteed to exist)
    """
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _tmp_path_for(path: Path, tmp_suffix: str) -> Path:
    return path.with_suffix(path.suffix + tmp_suffix)


def atomic_write_text(
    text: str,
    path: Union[str, Path],
    encoding: str = "utf-8"
) -> None:
    """Write text to file atomically.

    Parameters
    ----------
    text : str
        Text content
    path : Union[str, Path]
        Target file path
    encoding : str
        Text encoding, default "utf-8"

    Notes
    -----
    Parent directories are created as needed.  Encoding errors surface
    before *path* is touched.
    """
    path = Path(path)
    ensure_dir(path.parent)
    with atomic_open_text(path, encoding=encoding) as f:
        f.write(text)


@contextmanager
def atomic_open_text(
    path: Union[str, Path],
    encoding: str = "utf-8",
    tmp_suffix: str = ".tmp"
) -> Iterator[TextIO]:
    """Open a text stream whose content replaces *path* only on success.

    Parameters
    ----------
    path : Union[str, Path]
        Target file path. The parent directory must already exist.
    encoding : str
        Text encoding, default "utf-8"
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Yields
    ------
    TextIO
        Writable stream backed by ``<path><tmp_suffix>``

    Notes
    -----
    Errors are re-raised unchanged (``OSError`` stays ``OSError``) so
    callers can classify them. The tmp file is
    removed on any failure and the previous content of *path* survives.
    """
    path = Path(path)
    tmp_path = _tmp_path_for(path, tmp_suffix)

    f = open(tmp_path, 'w', encoding=encoding, newline="\n")
    try:
        with f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails

    Notes
    -----
    Uses safe_load to prevent arbitrary code execution.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
