from __future__ import annotations

from pathlib import Path

from evmdeck.core.contract_manager import ContractManager, load_contracts
from evmdeck.core.sidebar import ContractTree, NodeKind
from evmdeck.core.store import DeploymentStore

INSTANCE = "0x1212121212121212121212121212121212121212"


def _setup(tmp_path: Path, counter_source: Path):
    store = DeploymentStore(path=tmp_path / "config.json")
    contracts = ContractManager()
    key = contracts.register(load_contracts(counter_source, build=False))[0]
    store.ensure_contract(key)
    return store, contracts, key


def test_collapsed_tree(tmp_path: Path, counter_source: Path) -> None:
    store, contracts, _ = _setup(tmp_path, counter_source)
    nodes = ContractTree().nodes(store, contracts)
    assert [node.kind for node in nodes] == [NodeKind.NEW_CONTRACT, NodeKind.CONTRACT]
    assert nodes[1].label == "Counter (Counter.sol)"
    assert nodes[1].expandable


def test_expanded_contract_and_instance(tmp_path: Path, counter_source: Path) -> None:
    store, contracts, key = _setup(tmp_path, counter_source)
    store.add_deployment(key, INSTANCE)
    tree = ContractTree()
    contract = tree.nodes(store, contracts)[1]
    assert tree.toggle(contract) is True

    nodes = tree.nodes(store, contracts)
    assert [node.kind for node in nodes[2:]] == [NodeKind.CONSTRUCTOR, NodeKind.LOAD_INSTANCE, NodeKind.INSTANCE]
    assert nodes[2].tag == "deploy"
    instance = nodes[4]
    assert instance.node_id == f"{key}@{INSTANCE}"

    tree.toggle(instance)
    methods = [node for node in tree.nodes(store, contracts) if node.kind is NodeKind.METHOD]
    assert [node.function.name for node in methods] == ["count", "fund", "increment", "setCount"]
    assert [node.tag for node in methods] == ["view", "payable", "send", "send"]
    assert all(node.address == INSTANCE and node.depth == 2 for node in methods)


def test_unloaded_contract_hides_constructor_and_methods(tmp_path: Path) -> None:
    store = DeploymentStore(path=tmp_path / "config.json")
    key = f"{tmp_path / 'Token.sol'}:Token"
    store.add_deployment(key, INSTANCE)
    tree = ContractTree()
    tree.expanded.update({key, f"{key}@{INSTANCE}"})
    nodes = tree.nodes(store, ContractManager())
    assert [node.kind for node in nodes] == [
        NodeKind.NEW_CONTRACT,
        NodeKind.CONTRACT,
        NodeKind.LOAD_INSTANCE,
        NodeKind.INSTANCE,
    ]


def test_move_clamps_and_toggle_ignores_leaves(tmp_path: Path, counter_source: Path) -> None:
    store, contracts, _ = _setup(tmp_path, counter_source)
    tree = ContractTree()
    nodes = tree.nodes(store, contracts)
    tree.move(5, len(nodes))
    assert tree.selected == 1
    tree.move(-9, len(nodes))
    assert tree.selected == 0
    assert tree.toggle(nodes[0]) is False
    tree.expanded.add("x")
    tree.reset()
    assert tree.expanded == set()
