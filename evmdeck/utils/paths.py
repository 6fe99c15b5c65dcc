"""Filesystem path helpers for evmdeck state."""

from __future__ import annotations

import os
from pathlib import Path

STATE_DIR_ENV = "EVMDECK_STATE_DIR"


def state_dir() -> Path:
    """Return the directory used for persistent evmdeck state.

    The location defaults to ``~/.evmdeck`` but can be overridden via the
    ``EVMDECK_STATE_DIR`` environment variable. The path is expanded and
    resolved so callers always receive an absolute location.
    """

    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".evmdeck"


def config_file() -> Path:
    """Location of the JSON document holding config and deployments."""

    return state_dir() / "config.json"
