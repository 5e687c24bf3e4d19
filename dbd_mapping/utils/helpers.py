"""Small shared helpers."""

from __future__ import annotations

import os
from pathlib import Path
import random
from typing import Any, Dict, Optional

import numpy as np
import yaml


def set_random_seed(seed: int = 42) -> None:
    """Seed the stdlib and numpy global generators.

    Args:
        seed: Random seed value

    Examples:
        >>> set_random_seed(42)
    """
    random.seed(seed)
    np.random.seed(seed)


def default_n_workers(n_workers: Optional[int] = None) -> int:
    """Resolve a worker pool size.

    ``None`` means all cores but one, leaving one for orchestration and I/O.

    Args:
        n_workers: Requested worker count or None

    Returns:
        Worker count clipped to ``[1, cpu_count]``

    Examples:
        >>> default_n_workers(1)
        1
    """
    cpu = os.cpu_count() or 1
    if n_workers is None:
        n_workers = cpu - 1
    return max(1, min(int(n_workers), cpu))


def ensure_directory(path: Path) -> Path:
    """Ensure directory exists, create if it doesn't.

    Args:
        path: Directory path to ensure

    Returns:
        The directory path
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_dict_to_yaml(data: Dict[str, Any], path: Path) -> None:
    """Save dictionary to YAML file, creating parent folders."""
    path = Path(path)
    ensure_directory(path.parent)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def load_yaml_to_dict(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping.

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the document is not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML mapping at {path}")
    return data


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string.

    Examples:
        >>> format_duration(3661.5)
        '1h 1m 1.5s'
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)
