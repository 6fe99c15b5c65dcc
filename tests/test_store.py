from __future__ import annotations

import json
from pathlib import Path

import pytest

from evmdeck.core.store import DEFAULT_RPC_URL, DeploymentStore, StoredConfig

ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def test_first_load_writes_defaults(isolated_home: Path) -> None:
    store = DeploymentStore.load()
    assert store.path == isolated_home.resolve() / "config.json"
    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["config"]["rpc_url"] == DEFAULT_RPC_URL
    assert document["deployments"] == {}


def test_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = DeploymentStore.load(path)
    store.config.rpc_url = "http://node:8545"
    assert store.add_deployment("/src/A.sol:A", ADDRESS.lower())
    assert not store.add_deployment("/src/A.sol:A", ADDRESS)
    store.ensure_contract("/src/B.sol:B")
    store.save()

    loaded = DeploymentStore.load(path)
    assert loaded.config.rpc_url == "http://node:8545"
    assert loaded.get_deployments("/src/A.sol:A") == [ADDRESS]
    assert loaded.all_contracts() == ["/src/A.sol:A", "/src/B.sol:B"]
    assert loaded.contract_for_address(ADDRESS.lower()) == "/src/A.sol:A"


def test_remove_deployment_keeps_contract(tmp_path: Path) -> None:
    store = DeploymentStore(path=tmp_path / "config.json")
    store.add_deployment("k", ADDRESS)
    assert store.remove_deployment("k", ADDRESS)
    assert not store.remove_deployment("k", ADDRESS)
    assert store.all_contracts() == ["k"]
    assert store.remove_contract("k")
    assert not store.remove_contract("k")


def test_corrupt_store_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Failed to parse"):
        DeploymentStore.load(path)


def test_partial_config_falls_back_to_defaults() -> None:
    config = StoredConfig.from_dict({"rpc_url": "http://x"})
    assert config.rpc_url == "http://x"
    assert config.address == StoredConfig().address


def test_mutations_are_audited(tmp_path: Path, isolated_home: Path) -> None:
    store = DeploymentStore(path=tmp_path / "config.json")
    store.add_deployment("k", ADDRESS)
    store.clear()
    entries = [json.loads(line) for line in (isolated_home / "audit.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [entry["record"]["action"] for entry in entries] == ["store.add_deployment", "store.clear"]
