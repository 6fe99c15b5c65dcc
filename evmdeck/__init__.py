"""evmdeck: an interactive terminal workbench for EVM smart contracts."""

__version__ = "0.4.0"

__all__ = ["__version__"]
