from __future__ import annotations

import logging

from domain.models import CONNECTION_MODES, SIDE_MODES, LayoutConfig, LinkValidation
from domain.services.canvas_snapshot import CanvasSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAIN_HOPS = 500


def validate_link(
    snapshot: CanvasSnapshot,
    child_id: str,
    proposed_parent_id: str,
    mode: str,
    *,
    allow_insertion: bool = False,
    config: LayoutConfig | None = None,
) -> LinkValidation:
    """Check whether ``child_id`` may be anchored to ``proposed_parent_id``.

    Expected invalid states come back as a rejected ``LinkValidation`` whose
    reason can be shown to the editor as is; nothing here raises.
    """
    max_hops = config.max_chain_hops if config else DEFAULT_MAX_CHAIN_HOPS

    parent = snapshot.get(proposed_parent_id)
    if parent is None:
        return LinkValidation.reject(
            "parent_missing", f"Target node {proposed_parent_id} does not exist"
        )
    child = snapshot.get(child_id)
    if child is None:
        return LinkValidation.reject("child_missing", f"Node {child_id} does not exist")
    if child_id == proposed_parent_id:
        return LinkValidation.reject("self_link", "A node cannot be anchored to itself")
    if mode not in CONNECTION_MODES:
        return LinkValidation.reject("invalid_mode", f"Unknown connection mode: {mode}")

    chain_check = _check_ancestry(snapshot, child_id, proposed_parent_id, max_hops)
    if chain_check is not None:
        return chain_check

    if mode in SIDE_MODES and parent.type == "SPINE" and child.type == "SPINE":
        occupants = snapshot.slot_occupants(
            proposed_parent_id, mode, node_type="SPINE", exclude=child_id
        )
        if occupants and not allow_insertion:
            return LinkValidation.reject(
                "slot_occupied",
                f"Spine {proposed_parent_id} already has a {mode} spine ({occupants[0].id}); "
                "drop it as an insertion instead",
            )

    return LinkValidation.ok()


def _check_ancestry(
    snapshot: CanvasSnapshot, child_id: str, parent_id: str, max_hops: int
) -> LinkValidation | None:
    visited: set[str] = set()
    current_id: str | None = parent_id
    hops = 0
    while current_id is not None:
        if current_id == child_id:
            logger.info("Rejected link %s -> %s: would create a cycle", child_id, parent_id)
            return LinkValidation.reject(
                "cycle",
                f"Would create a cyclic dependency (paradox): {child_id} is already an "
                f"ancestor of {parent_id}",
            )
        if current_id in visited or hops >= max_hops:
            logger.error("Anchor chain above %s does not terminate", parent_id)
            return LinkValidation.reject(
                "corrupt_chain",
                f"The anchor chain above {parent_id} could not be resolved "
                "and is likely corrupt",
            )
        visited.add(current_id)
        node = snapshot.get(current_id)
        if node is None:
            # Chain ends at a dangling reference; that is the layout's problem, not a cycle.
            break
        current_id = node.anchor_id
        hops += 1
    return None
