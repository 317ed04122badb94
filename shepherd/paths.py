"""
Path resolution for working copies.

Every registry entry maps to exactly one directory under the source tree:
``<source_dir>/<name>`` or, for categorised entries,
``<source_dir>/<category>/<name>``.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import RepositoryEntry


_FORBIDDEN_SEGMENTS = {"", ".", ".."}


def validate_segment(value: str, label: str) -> str:
    """
    Check that a name or category can be used as a single path segment.

    Raises:
        ValueError: If the value is empty, a relative marker, or contains a
            path separator or NUL byte.
    """
    if value.strip() in _FORBIDDEN_SEGMENTS:
        raise ValueError(f"{label} must not be empty, '.' or '..'")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(sep in value for sep in separators):
        raise ValueError(f"{label} must not contain path separators: {value!r}")
    if "\x00" in value:
        raise ValueError(f"{label} must not contain NUL bytes")
    return value


def expand_source_dir(value: str | Path) -> Path:
    """Expand ``~`` and environment variables in a configured source dir."""
    return Path(os.path.expandvars(str(value))).expanduser()


def resolve(source_dir: Path, entry: "RepositoryEntry") -> Path:
    """Get the working copy location of an entry under ``source_dir``."""
    if entry.category:
        return Path(source_dir) / entry.category / entry.name
    return Path(source_dir) / entry.name
