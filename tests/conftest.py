from __future__ import annotations

import json
import sys
from pathlib import Path

import keyring
import keyring.backend
import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


COUNTER_ABI = [
    {"type": "constructor", "inputs": [{"name": "start", "type": "uint256"}], "stateMutability": "nonpayable"},
    {
        "type": "function",
        "name": "count",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {"type": "function", "name": "increment", "inputs": [], "outputs": [], "stateMutability": "nonpayable"},
    {
        "type": "function",
        "name": "setCount",
        "inputs": [{"name": "value", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {"type": "function", "name": "fund", "inputs": [], "outputs": [], "stateMutability": "payable"},
    {
        "type": "event",
        "name": "Incremented",
        "inputs": [{"name": "newCount", "type": "uint256", "indexed": False}],
        "anonymous": False,
    },
    {
        "type": "error",
        "name": "TooLarge",
        "inputs": [{"name": "limit", "type": "uint256"}],
    },
]

COUNTER_BYTECODE = "0x6080604052348015600f57600080fd5b50"


class MemoryKeyring(keyring.backend.KeyringBackend):
    priority = 1

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self._data.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._data[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        self._data.pop((service, username), None)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("EVMDECK_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("ETH_RPC_URL", raising=False)
    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    keyring.set_keyring(MemoryKeyring())
    return tmp_path / "state"


def write_artifacts(root: Path, name: str = "Counter", abi: list | None = None, bytecode: str = COUNTER_BYTECODE) -> Path:
    """Lay out ``Counter.sol`` plus a Foundry-style ``out-evm`` artifact."""

    source = root / f"{name}.sol"
    source.write_text("// SPDX-License-Identifier: MIT\n", encoding="utf-8")
    out = root / "out-evm" / f"{name}.sol"
    out.mkdir(parents=True, exist_ok=True)
    payload = {"abi": abi if abi is not None else COUNTER_ABI, "bytecode": {"object": bytecode}}
    (out / f"{name}.json").write_text(json.dumps(payload), encoding="utf-8")
    return source


@pytest.fixture()
def counter_source(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    return write_artifacts(project)
