"""Contract tree shown in the sidebar."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from .contract_manager import ContractManager, FunctionDescriptor, split_key
from .store import DeploymentStore


class NodeKind(str, Enum):
    NEW_CONTRACT = "new-contract"
    CONTRACT = "contract"
    CONSTRUCTOR = "constructor"
    LOAD_INSTANCE = "load-instance"
    INSTANCE = "instance"
    METHOD = "method"


@dataclass(frozen=True)
class TreeNode:
    kind: NodeKind
    label: str
    depth: int = 0
    contract_key: Optional[str] = None
    address: Optional[str] = None
    function: Optional[FunctionDescriptor] = None
    expanded: bool = False

    @property
    def tag(self) -> Optional[str]:
        return self.function.tag if self.function else None

    @property
    def expandable(self) -> bool:
        return self.kind in (NodeKind.CONTRACT, NodeKind.INSTANCE)

    @property
    def node_id(self) -> str:
        if self.kind is NodeKind.INSTANCE:
            return f"{self.contract_key}@{self.address}"
        return self.contract_key or self.kind.value


class ContractTree:
    """Expansion state and selection of the sidebar tree."""

    def __init__(self) -> None:
        self.expanded: Set[str] = set()
        self.selected = 0

    def nodes(self, store: DeploymentStore, contracts: ContractManager) -> List[TreeNode]:
        nodes = [TreeNode(NodeKind.NEW_CONTRACT, "+ New contract")]
        for key in sorted(set(store.all_contracts()) | set(contracts.keys())):
            path, name = split_key(key)
            expanded = key in self.expanded
            nodes.append(TreeNode(NodeKind.CONTRACT, f"{name} ({Path(path).name})", 0, key, expanded=expanded))
            if not expanded:
                continue
            artifact = contracts.get(key)
            if artifact is not None:
                constructor = artifact.interface.deploy_descriptor()
                nodes.append(TreeNode(NodeKind.CONSTRUCTOR, constructor.label, 1, key, function=constructor))
            nodes.append(TreeNode(NodeKind.LOAD_INSTANCE, "Load existing instance", 1, key))
            for address in store.get_deployments(key):
                instance_id = f"{key}@{address}"
                open_instance = instance_id in self.expanded
                nodes.append(TreeNode(NodeKind.INSTANCE, address, 1, key, address, expanded=open_instance))
                if open_instance and artifact is not None:
                    for function in artifact.interface.methods():
                        nodes.append(TreeNode(NodeKind.METHOD, function.label, 2, key, address, function))
        return nodes

    def clamp(self, count: int) -> None:
        self.selected = max(0, min(self.selected, count - 1)) if count else 0

    def move(self, delta: int, count: int) -> None:
        self.selected += delta
        self.clamp(count)

    def toggle(self, node: TreeNode) -> bool:
        if not node.expandable:
            return False
        if node.node_id in self.expanded:
            self.expanded.discard(node.node_id)
            return False
        self.expanded.add(node.node_id)
        return True

    def reset(self) -> None:
        self.expanded.clear()
        self.selected = 0


__all__ = ["ContractTree", "NodeKind", "TreeNode"]
