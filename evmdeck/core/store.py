"""Persisted configuration and deployment addresses.

The store is one JSON document (``<state dir>/config.json``)::

    {
      "config": {"rpc_url": ..., "address": ..., "private_key": ...},
      "deployments": {"/abs/path/Counter.sol:Counter": ["0x..."]}
    }

A contract entry with an empty address list is a contract the user loaded
but never deployed; it stays until explicitly removed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from eth_utils import to_checksum_address

from ..utils import logbook
from ..utils.paths import config_file

logger = logging.getLogger(__name__)

# Well-known throwaway credentials of local dev nodes (Anvil, Hardhat, ...).
DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_ADDRESS = "0xf24FF3a9CF04c71Dbc94D0b566f7A27B94566cac"
DEFAULT_PRIVATE_KEY = "5fb92d6e98884f76de468fa3f6278f8807c48bebc13595d45af5bdc4da702133"


@dataclass
class StoredConfig:
    rpc_url: str = DEFAULT_RPC_URL
    address: str = DEFAULT_ADDRESS
    private_key: str = DEFAULT_PRIVATE_KEY

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, object]]) -> "StoredConfig":
        payload = payload or {}
        defaults = cls()
        return cls(
            rpc_url=str(payload.get("rpc_url") or defaults.rpc_url),
            address=str(payload.get("address") or defaults.address),
            private_key=str(payload.get("private_key") or defaults.private_key),
        )


@dataclass
class DeploymentStore:
    path: Path
    config: StoredConfig = field(default_factory=StoredConfig)
    deployments: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "DeploymentStore":
        """Read the store, writing a default document on first use."""

        target = Path(path) if path is not None else config_file()
        if not target.exists():
            store = cls(path=target)
            store.save()
            logger.info("created default store at %s", target)
            return store
        try:
            payload = json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to parse {target}: {exc}") from exc
        deployments = {
            str(key): [str(address) for address in addresses]
            for key, addresses in (payload.get("deployments") or {}).items()
        }
        return cls(path=target, config=StoredConfig.from_dict(payload.get("config")), deployments=deployments)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {"config": asdict(self.config), "deployments": self.deployments}
        self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")

    def get_deployments(self, key: str) -> List[str]:
        return list(self.deployments.get(key, []))

    def add_deployment(self, key: str, address: str) -> bool:
        checksummed = to_checksum_address(address)
        addresses = self.deployments.setdefault(key, [])
        if checksummed in addresses:
            return False
        addresses.append(checksummed)
        logbook.info({"action": "store.add_deployment", "contract": key, "address": checksummed})
        return True

    def remove_deployment(self, key: str, address: str) -> bool:
        """Forget one address; the contract entry itself is kept."""

        checksummed = to_checksum_address(address)
        addresses = self.deployments.get(key)
        if not addresses or checksummed not in addresses:
            return False
        addresses.remove(checksummed)
        logbook.info({"action": "store.remove_deployment", "contract": key, "address": checksummed})
        return True

    def remove_contract(self, key: str) -> bool:
        if self.deployments.pop(key, None) is None:
            return False
        logbook.info({"action": "store.remove_contract", "contract": key})
        return True

    def ensure_contract(self, key: str) -> None:
        self.deployments.setdefault(key, [])

    def all_contracts(self) -> List[str]:
        return sorted(self.deployments)

    def contract_for_address(self, address: str) -> Optional[str]:
        checksummed = to_checksum_address(address)
        for key, addresses in self.deployments.items():
            if checksummed in addresses:
                return key
        return None

    def clear(self) -> None:
        self.deployments.clear()
        logbook.info({"action": "store.clear"})


__all__ = [
    "DEFAULT_ADDRESS",
    "DEFAULT_PRIVATE_KEY",
    "DEFAULT_RPC_URL",
    "DeploymentStore",
    "StoredConfig",
]
