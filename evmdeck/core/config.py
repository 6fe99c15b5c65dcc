"""Runtime configuration: environment, keyring and the stored defaults.

Precedence for each setting, highest first:

* ``rpc_url``: the ``--rpc-url`` launch option, then ``ETH_RPC_URL`` from
  the environment (``.env`` is loaded without overriding real variables),
  then the store.
* ``private_key``: ``PRIVATE_KEY`` from the environment, then the system
  keyring (service ``EVMDECK_KEYRING_SERVICE``, default ``evmdeck``), then
  the store.
* ``address``: derived from the private key when it parses, else the store.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import keyring
from dotenv import load_dotenv
from eth_account import Account
from keyring.errors import KeyringError

from ..utils.paths import state_dir
from .store import StoredConfig

RPC_ENV_KEY = "ETH_RPC_URL"
PRIVATE_KEY_ENV = "PRIVATE_KEY"
SERVICE_ENV_VAR = "EVMDECK_KEYRING_SERVICE"
LOG_LEVEL_ENV = "EVMDECK_LOG_LEVEL"
DEFAULT_SERVICE = "evmdeck"
ENV_PATH_DEFAULT = Path(".env")


@dataclass(frozen=True)
class Config:
    rpc_url: str
    address: str
    private_key: str = field(repr=False)
    sources: Dict[str, str] = field(default_factory=dict, compare=False)


def load_environment(path: Path = ENV_PATH_DEFAULT) -> bool:
    """Load ``.env`` into ``os.environ`` without overriding existing values."""

    return load_dotenv(path, override=False)


def keyring_service() -> str:
    return os.environ.get(SERVICE_ENV_VAR, DEFAULT_SERVICE)


def _keyring_secret(key: str) -> Optional[str]:
    try:
        return keyring.get_password(keyring_service(), key)
    except KeyringError as exc:
        logging.getLogger(__name__).warning("keyring lookup for %s failed: %s", key, exc)
        return None


def store_private_key(private_key: str) -> None:
    """Save ``private_key`` in the system keyring for later sessions."""

    keyring.set_password(keyring_service(), PRIVATE_KEY_ENV, private_key.strip())


def _normalise_key(private_key: str) -> str:
    key = private_key.strip()
    return key[2:] if key.startswith(("0x", "0X")) else key


def resolve_config(
    stored: StoredConfig,
    env: Optional[Mapping[str, str]] = None,
    *,
    rpc_url: Optional[str] = None,
) -> Config:
    """Resolve the effective settings; an explicit ``rpc_url`` beats everything."""

    env = os.environ if env is None else env
    sources: Dict[str, str] = {}

    if rpc_url:
        sources["rpc_url"] = "argv"
    else:
        rpc_url = env.get(RPC_ENV_KEY)
        sources["rpc_url"] = "env" if rpc_url else "store"
        rpc_url = rpc_url or stored.rpc_url

    private_key = env.get(PRIVATE_KEY_ENV)
    if private_key:
        sources["private_key"] = "env"
    else:
        private_key = _keyring_secret(PRIVATE_KEY_ENV)
        sources["private_key"] = "keyring" if private_key else "store"
    private_key = _normalise_key(private_key or stored.private_key)

    try:
        address = Account.from_key(bytes.fromhex(private_key)).address
        sources["address"] = "private_key"
    except ValueError:
        address = stored.address
        sources["address"] = "store"

    return Config(rpc_url=rpc_url, address=address, private_key=private_key, sources=sources)


def refresh_config(current: Config, stored: StoredConfig, env: Optional[Mapping[str, str]] = None) -> Config:
    """Re-resolve after the store changed, keeping a command-line RPC URL."""

    override = current.rpc_url if current.sources.get("rpc_url") == "argv" else None
    return resolve_config(stored, env, rpc_url=override)


def configure_logging(*, console: bool = False) -> logging.Logger:
    """Attach the diagnostic file handler to the ``evmdeck`` logger.

    The terminal UI owns stdout, so a console handler is only added for
    the headless CLI.
    """

    logger = logging.getLogger("evmdeck")
    if logger.handlers:
        return logger
    directory = state_dir()
    directory.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s - evmdeck - %(levelname)s - %(message)s")
    file_handler = logging.FileHandler(directory / "output.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    logger.setLevel(os.environ.get(LOG_LEVEL_ENV, "INFO").upper())
    return logger


__all__ = [
    "Config",
    "DEFAULT_SERVICE",
    "PRIVATE_KEY_ENV",
    "RPC_ENV_KEY",
    "configure_logging",
    "keyring_service",
    "load_environment",
    "refresh_config",
    "resolve_config",
    "store_private_key",
]
