"""Utilities module."""

from .helpers import (
    default_n_workers,
    ensure_directory,
    format_duration,
    load_yaml_to_dict,
    save_dict_to_yaml,
    set_random_seed,
)
from .logger import get_logger, setup_logger

__all__ = [
    "default_n_workers",
    "ensure_directory",
    "format_duration",
    "load_yaml_to_dict",
    "save_dict_to_yaml",
    "set_random_seed",
    "get_logger",
    "setup_logger",
]
