"""Roku Integration: discover, poll and control Roku devices over ECP."""

from importlib import metadata as _metadata
from pathlib import Path as _Path

EXTENSION_NAME = "roku-integration"
DEVICE_TYPE = "roku"


def _read_version() -> str:
    """Read version from the repo-level VERSION file (single source of truth)."""
    # Walk up from this file to find the VERSION file at repo root
    for parent in _Path(__file__).resolve().parents:
        candidate = parent / "VERSION"
        if candidate.is_file():
            return candidate.read_text().strip()
    try:
        return _metadata.version("roku-integration")
    except _metadata.PackageNotFoundError:
        return "0.0.0"

__version__ = _read_version()
