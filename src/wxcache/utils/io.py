"""I/O utilities for data paths and timestamps."""

from datetime import datetime, timezone
from pathlib import Path

# Project root is 4 levels up from this file
_PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


def get_data_path(stage: str = "cache") -> Path:
    """Get standardized data path for a storage stage.

    Args:
        stage: One of 'cache', 'db'

    Returns:
        Path to the data directory (creates if doesn't exist)

    Example:
        >>> path = get_data_path("cache")
        >>> path
        PosixPath('.../wxcache/data/cache')
    """
    valid_stages = {"cache", "db"}

    if stage not in valid_stages:
        raise ValueError(f"Invalid stage: {stage}. Must be one of {valid_stages}")

    path = _PROJECT_ROOT / "data" / stage
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_project_root() -> Path:
    """Get the project root directory."""
    return _PROJECT_ROOT


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the convention used for all timestamps)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
