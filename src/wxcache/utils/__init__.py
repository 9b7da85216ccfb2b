"""Shared utilities for wxcache."""

from .io import get_data_path, get_project_root, utcnow

__all__ = [
    "get_data_path",
    "get_project_root",
    "utcnow",
]
