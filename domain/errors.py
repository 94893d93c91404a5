from __future__ import annotations

from collections.abc import Sequence


class StructuralError(Exception):
    """Anchor graph is in a state the engine cannot resolve."""

    code = "structural"

    def __init__(self, node_id: str, message: str) -> None:
        super().__init__(message)
        self.node_id = node_id
        self.message = message


class CycleDetected(StructuralError):
    code = "cycle"

    def __init__(self, node_id: str, path: Sequence[str]) -> None:
        self.path = list(path)
        chain = " -> ".join(self.path)
        super().__init__(node_id, f"Cycle detected in anchor chain: {chain}")


class OrphanedAnchorError(StructuralError):
    code = "orphaned_anchor"

    def __init__(self, node_id: str, anchor_id: str) -> None:
        self.anchor_id = anchor_id
        super().__init__(node_id, f"Node {node_id} is anchored to missing node {anchor_id}")


class SlotConflictError(StructuralError):
    code = "slot_conflict"

    def __init__(self, node_id: str, mode: str, occupant_ids: Sequence[str]) -> None:
        self.mode = mode
        self.occupant_ids = list(occupant_ids)
        occupants = ", ".join(self.occupant_ids)
        super().__init__(node_id, f"Spine {node_id} has several {mode} spines: {occupants}")


class ChainTooDeepError(StructuralError):
    code = "corrupt_chain"

    def __init__(self, node_id: str, max_hops: int) -> None:
        self.max_hops = max_hops
        super().__init__(
            node_id, f"Anchor chain above {node_id} is longer than {max_hops} hops"
        )


class MalformedNodeError(ValueError):
    def __init__(self, node_id: str, message: str) -> None:
        super().__init__(message)
        self.node_id = node_id


class ChangeCommitError(RuntimeError):
    def __init__(self, change_name: str, node_id: str) -> None:
        super().__init__(f"Failed to commit '{change_name}' at node {node_id}; changes rolled back")
        self.change_name = change_name
        self.node_id = node_id


class NodeNotFoundError(KeyError):
    def __init__(self, canvas_id: str, node_id: str) -> None:
        super().__init__(f"Node {node_id} not found in canvas {canvas_id}")
        self.canvas_id = canvas_id
        self.node_id = node_id


class CanvasNotFoundError(KeyError):
    def __init__(self, canvas_id: str) -> None:
        super().__init__(f"Canvas {canvas_id} not found")
        self.canvas_id = canvas_id