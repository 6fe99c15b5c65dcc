"""Application entry point launching the evmdeck terminal UI."""

from __future__ import annotations

import argparse
import importlib.util
import logging
import os
import sys
from pathlib import Path
from textwrap import dedent
from typing import List, Optional, Sequence

from rich.console import Console

from . import __version__
from .core.config import ENV_PATH_DEFAULT, configure_logging, load_environment, resolve_config
from .core.store import DeploymentStore
from .utils import logbook
from .utils.paths import STATE_DIR_ENV

_BANNER = r"""
                     _           _
  _____   ___ __ ___| | ___  ___| | __
 / _ \ \ / / '_ ` _ \ |/ _ \/ __| |/ /
|  __/\ V /| | | | | | |  __/ (__|   <
 \___| \_/ |_| |_| |_|_|\___|\___|_|\_\
"""


def _missing_ui_dependencies() -> List[str]:
    """Return the third-party packages the terminal UI needs but cannot find."""

    required = ("textual", "rich", "web3")
    return [name for name in required if importlib.util.find_spec(name) is None]


def _print_dependency_error(missing: List[str]) -> None:
    message = dedent(
        f"""
        evmdeck could not start because the following Python packages are missing:
            {', '.join(sorted(missing))}

        Install the project dependencies before launching, e.g.:
            python -m pip install -e .
        """
    ).strip()
    print(message, file=sys.stderr)


def _render_splash(rpc_url: str, address: str) -> None:
    console = Console(highlight=False)
    console.print(f"[#00B7FF]{_BANNER}[/]", justify="center")
    console.print(f"[#00B7FF bold]evmdeck v{__version__}[/]", justify="center")
    console.print(f"[#7DF9FF]{rpc_url}  ·  {address}[/]", justify="center")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="evmdeck", description="Interactive EVM contract workbench")
    parser.add_argument("--version", action="version", version=f"evmdeck {__version__}")
    parser.add_argument("--rpc-url", help="JSON-RPC endpoint (overrides ETH_RPC_URL and the store)")
    parser.add_argument("--env-file", type=Path, default=ENV_PATH_DEFAULT, help="dotenv file to load")
    parser.add_argument("--state-dir", type=Path, help="Directory for the store, logs and audit trail")
    parser.add_argument("--no-splash", action="store_true", help="Skip the startup banner")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Start the evmdeck terminal UI."""

    options = _build_parser().parse_args(list(argv) if argv is not None else None)
    if options.state_dir is not None:
        os.environ[STATE_DIR_ENV] = str(options.state_dir.expanduser())

    missing = _missing_ui_dependencies()
    if missing:
        _print_dependency_error(missing)
        raise SystemExit(1)

    load_environment(options.env_file)
    logger = configure_logging()
    try:
        store = DeploymentStore.load()
    except ValueError as exc:
        print(f"evmdeck: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    config = resolve_config(store.config, rpc_url=options.rpc_url)
    logger.info("starting with %s (sources: %s)", config.rpc_url, config.sources)

    if not options.no_splash:
        _render_splash(config.rpc_url, config.address)

    from .core.session import Session
    from .ui import launch

    logbook.info({"action": "ui.start", "version": __version__, "rpc_url": config.rpc_url})
    try:
        launch(Session(store, config))
    finally:
        logging.shutdown()


__all__ = ["main"]
