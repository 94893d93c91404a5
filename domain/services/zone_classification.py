from __future__ import annotations

from collections.abc import Iterable

from domain.models import Node, Zone


def is_root_candidate(node: Node) -> bool:
    return (
        node.type == "SPINE"
        and node.anchor_id is None
        and node.attic_parent_id is None
        and not node.is_global
    )


def find_root(nodes: Iterable[Node]) -> Node | None:
    """First free spine in snapshot order; later free spines are bucket items."""
    for node in nodes:
        if is_root_candidate(node):
            return node
    return None


def classify_zone(node: Node, root_id: str | None) -> Zone:
    if node.attic_parent_id is not None:
        return "ATTIC"
    if node.anchor_id is None and node.id != root_id:
        return "BUCKET"
    return "ASSEMBLY"


def classify_zones(nodes: Iterable[Node]) -> dict[str, Zone]:
    materialized = list(nodes)
    root = find_root(materialized)
    root_id = root.id if root else None
    return {node.id: classify_zone(node, root_id) for node in materialized}
