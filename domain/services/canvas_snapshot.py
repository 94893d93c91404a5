from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence

from domain.errors import MalformedNodeError
from domain.models import LayoutConfig, Node, StructuralIssue

logger = logging.getLogger(__name__)


class CanvasSnapshot:
    """Id-indexed view over one immutable list of nodes.

    Cross references stay plain ids; every lookup goes through the arena so a
    snapshot can be copied, patched and discarded without touching the store.
    """

    def __init__(self, nodes: Sequence[Node]) -> None:
        self._nodes: dict[str, Node] = {}
        self._order: list[str] = []
        for node in nodes:
            if node.id in self._nodes:
                msg = f"Duplicate node id found: {node.id}"
                raise ValueError(msg)
            self._nodes[node.id] = node
            self._order.append(node.id)
        self._children: dict[str, list[str]] = {}
        self._attic: dict[str, list[str]] = {}
        for node_id in self._order:
            node = self._nodes[node_id]
            if node.anchor_id is not None:
                self._children.setdefault(node.anchor_id, []).append(node_id)
            if node.attic_parent_id is not None:
                self._attic.setdefault(node.attic_parent_id, []).append(node_id)

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> CanvasSnapshot:
        return cls(list(nodes))

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Node]:
        return (self._nodes[node_id] for node_id in self._order)

    def get(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(node_id)
        return node

    def nodes(self) -> list[Node]:
        return [self._nodes[node_id] for node_id in self._order]

    def children(self, parent_id: str, mode: str | None = None) -> list[Node]:
        result: list[Node] = []
        for child_id in self._children.get(parent_id, []):
            child = self._nodes[child_id]
            if mode is None or child.connection_mode == mode:
                result.append(child)
        return result

    def slot_occupants(
        self,
        parent_id: str,
        mode: str,
        node_type: str | None = None,
        exclude: str | None = None,
    ) -> list[Node]:
        return [
            child
            for child in self.children(parent_id, mode)
            if child.id != exclude and (node_type is None or child.type == node_type)
        ]

    def attic_items(self, spine_id: str) -> list[Node]:
        return [self._nodes[node_id] for node_id in self._attic.get(spine_id, [])]

    def with_nodes(self, updated: Iterable[Node]) -> CanvasSnapshot:
        replacements = {node.id: node for node in updated}
        merged = [replacements.pop(node.id, node) for node in self]
        merged.extend(replacements.values())
        return CanvasSnapshot(merged)


def sanitize_nodes(
    nodes: Sequence[Node], config: LayoutConfig | None = None
) -> tuple[list[Node], list[StructuralIssue]]:
    """Degrade impossible field combinations to free nodes.

    With ``config.strict`` the first malformed record raises instead.
    """
    config = config or LayoutConfig()
    cleaned: list[Node] = []
    issues: list[StructuralIssue] = []
    for node in nodes:
        problem = _malformed_reason(node)
        if problem is None:
            cleaned.append(node)
            continue
        if config.strict:
            raise MalformedNodeError(node.id, problem)
        logger.warning("Malformed node %s treated as free: %s", node.id, problem)
        issues.append(StructuralIssue(code="malformed", node_id=node.id, message=problem))
        cleaned.append(
            node.model_copy(
                update={"anchor_id": None, "connection_mode": None, "attic_parent_id": None}
            )
        )
    return cleaned, issues


def _malformed_reason(node: Node) -> str | None:
    if node.anchor_id is not None and node.connection_mode is None:
        return f"Node {node.id} has an anchor but no connection mode"
    if node.anchor_id is not None and node.attic_parent_id is not None:
        return f"Node {node.id} is both anchored and parked in an attic"
    if node.attic_parent_id is not None and node.attic_parent_id == node.id:
        return f"Node {node.id} is parked in its own attic"
    return None
