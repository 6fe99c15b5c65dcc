"""User interface components for evmdeck."""

from .terminal import EvmDeckApp, launch

__all__ = ["EvmDeckApp", "launch"]
