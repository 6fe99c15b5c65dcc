"""Utility helpers exposed by evmdeck."""

from .paths import config_file, state_dir

__all__ = ["config_file", "state_dir"]
