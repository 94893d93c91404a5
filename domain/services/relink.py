from __future__ import annotations

import logging
from dataclasses import dataclass

from domain.errors import StructuralError
from domain.models import (
    BUCKET_PARKING_X,
    NODE_TYPES,
    SIDE_MODES,
    ChangeSet,
    DropTarget,
    LayoutConfig,
    LinkValidation,
    Node,
    NodeChange,
    Point,
)
from domain.services.anchor_resolution import (
    AnchorResolver,
    TimelineResolver,
    descendants,
    drift_for_time,
)
from domain.services.canvas_snapshot import CanvasSnapshot
from domain.services.chain_validation import validate_link
from domain.services.zone_classification import classify_zone, find_root

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkPlan:
    validation: LinkValidation
    change_set: ChangeSet | None = None
    displaced_ids: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return self.validation.valid

    @property
    def displaced_id(self) -> str | None:
        return self.displaced_ids[0] if self.displaced_ids else None

    @classmethod
    def rejected(cls, code: str, reason: str) -> LinkPlan:
        return cls(validation=LinkValidation.reject(code, reason))

    @classmethod
    def accepted(
        cls, name: str, changes: list[NodeChange], displaced_ids: tuple[str, ...] = ()
    ) -> LinkPlan:
        return cls(
            validation=LinkValidation.ok(),
            change_set=ChangeSet(name=name, changes=changes),
            displaced_ids=displaced_ids,
        )


def plan_link(
    snapshot: CanvasSnapshot,
    child_id: str,
    parent_id: str,
    mode: str,
    *,
    insert: bool = False,
    drift_x: float = 0.0,
    drift_y: int = 0,
    config: LayoutConfig | None = None,
) -> LinkPlan:
    """Plan anchoring ``child_id`` to ``parent_id``.

    With ``insert`` every occupant of the (parent, mode) side slot that has
    the child's node type is re-parented onto the new node at the same mode.
    Each displaced drift is rewritten so its absolute timeline time does not
    change. All steps are validated before the plan is returned; a rejected
    plan carries no changes, and neither does one that would leave the canvas
    without a root.
    """
    config = config or LayoutConfig()
    validation = validate_link(
        snapshot, child_id, parent_id, mode, allow_insertion=insert, config=config
    )
    if not validation.valid:
        return LinkPlan(validation=validation)

    child = snapshot.require(child_id)
    linked = child.model_copy(
        update={
            "anchor_id": parent_id,
            "connection_mode": mode,
            "drift_x": float(drift_x),
            "drift_y": int(drift_y),
            "attic_parent_id": None,
            "is_global": False,
        }
    )
    changes = [NodeChange(before=child, after=linked)]

    occupants = _insertion_occupants(snapshot, child, parent_id, mode) if insert else []
    if not occupants:
        return _guard_root(
            snapshot, LinkPlan.accepted(f"Link {child_id} to {parent_id} ({mode})", changes)
        )

    timeline = TimelineResolver(snapshot, config)
    staged = snapshot.with_nodes([linked])
    for occupant in occupants:
        try:
            target_time = timeline.absolute_time(occupant.id)
        except StructuralError as exc:
            return LinkPlan.rejected("corrupt_chain", exc.message)
        follow_up = validate_link(staged, occupant.id, child_id, mode, config=config)
        if not follow_up.valid:
            return LinkPlan.rejected(
                follow_up.code or "invalid",
                f"Cannot move {occupant.id} behind {child_id}: {follow_up.reason}",
            )
        moved = occupant.model_copy(
            update={
                "anchor_id": child_id,
                "drift_x": drift_for_time(staged, occupant, child_id, mode, target_time, config),
            }
        )
        changes.append(NodeChange(before=occupant, after=moved))
        staged = staged.with_nodes([moved])
        logger.debug("Insertion of %s displaces %s (%s)", child_id, occupant.id, mode)

    displaced = tuple(occupant.id for occupant in occupants)
    return _guard_root(
        snapshot,
        LinkPlan.accepted(
            f"Insert {child_id} before {', '.join(displaced)} ({mode})", changes, displaced
        ),
    )


def plan_unlink(snapshot: CanvasSnapshot, node_id: str) -> LinkPlan:
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    if node.anchor_id is None and node.attic_parent_id is None:
        return LinkPlan.accepted(f"Unlink {node_id}", [])

    root = find_root(snapshot)
    becomes_root = root is None and node.type == "SPINE"
    freed = node.model_copy(
        update={
            "anchor_id": None,
            "connection_mode": None,
            "drift_x": 0.0,
            "drift_y": 0,
            "attic_parent_id": None,
            "is_global": not becomes_root,
        }
    )
    return LinkPlan.accepted(f"Unlink {node_id}", [NodeChange(before=node, after=freed)])


def plan_move_to_bucket(snapshot: CanvasSnapshot, node_id: str) -> LinkPlan:
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    bucketed = node.model_copy(
        update={
            "anchor_id": None,
            "connection_mode": None,
            "drift_x": 0.0,
            "drift_y": 0,
            "attic_parent_id": None,
            "is_global": True,
            "x": BUCKET_PARKING_X,
            "y": 0.0,
        }
    )
    return _guard_root(
        snapshot,
        LinkPlan.accepted(f"Move {node_id} to bucket", [NodeChange(before=node, after=bucketed)]),
    )


def plan_park(snapshot: CanvasSnapshot, node_id: str, spine_id: str) -> LinkPlan:
    spine = snapshot.get(spine_id)
    if spine is None:
        return LinkPlan.rejected("parent_missing", f"Target node {spine_id} does not exist")
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    if node_id == spine_id:
        return LinkPlan.rejected("self_link", "A node cannot be parked in its own attic")
    if spine.type != "SPINE":
        return LinkPlan.rejected("not_spine", f"Only spines have an attic; {spine_id} is a satellite")
    root = find_root(snapshot)
    if classify_zone(spine, root.id if root else None) != "ASSEMBLY":
        return LinkPlan.rejected(
            "spine_not_in_assembly", f"Spine {spine_id} is not part of the assembly"
        )
    if spine_id in descendants(snapshot, node_id):
        return LinkPlan.rejected(
            "cycle", f"Cannot park {node_id} above {spine_id}, which is anchored under it"
        )
    parked = node.model_copy(
        update={
            "anchor_id": None,
            "connection_mode": None,
            "drift_x": 0.0,
            "drift_y": 0,
            "attic_parent_id": spine_id,
            "is_global": False,
        }
    )
    return _guard_root(
        snapshot,
        LinkPlan.accepted(
            f"Park {node_id} above {spine_id}", [NodeChange(before=node, after=parked)]
        ),
    )


def plan_change_type(snapshot: CanvasSnapshot, node_id: str, new_type: str) -> LinkPlan:
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    new_type = new_type.strip().upper()
    if new_type not in NODE_TYPES:
        return LinkPlan.rejected("invalid_type", f"Unknown node type: {new_type}")
    if node.type == new_type:
        return LinkPlan.accepted(f"Change {node_id} to {new_type}", [])

    if new_type == "SATELLITE":
        root = find_root(snapshot)
        if root is not None and root.id == node_id:
            return LinkPlan.rejected("root_must_be_spine", "The canvas root must remain a spine")
        if snapshot.attic_items(node_id):
            return LinkPlan.rejected(
                "has_attic", f"Spine {node_id} still has parked nodes in its attic"
            )
    else:
        conflict = _spine_conversion_conflict(snapshot, node)
        if conflict is not None:
            return conflict

    changed = node.model_copy(update={"type": new_type})
    return LinkPlan.accepted(
        f"Change {node_id} to {new_type}", [NodeChange(before=node, after=changed)]
    )


def plan_set_drift(
    snapshot: CanvasSnapshot, node_id: str, drift_x: float, drift_y: int
) -> LinkPlan:
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    if node.anchor_id is None:
        return LinkPlan.rejected("not_anchored", f"Node {node_id} has no anchor to drift from")
    drifted = node.model_copy(update={"drift_x": float(drift_x), "drift_y": int(drift_y)})
    return LinkPlan.accepted(f"Drift {node_id}", [NodeChange(before=node, after=drifted)])


def plan_move(
    snapshot: CanvasSnapshot,
    node_id: str,
    x: float,
    y: float,
    config: LayoutConfig | None = None,
) -> LinkPlan:
    """Record where a dragged node was released.

    Free nodes keep the new coordinates as their stored position. Anchored
    nodes store them too, but their drift is recomputed from the offset to
    their parent so the next layout puts them back where they were dropped.
    """
    node = snapshot.get(node_id)
    if node is None:
        return LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
    update: dict[str, object] = {"x": float(x), "y": float(y)}
    if node.anchor_id is not None:
        try:
            drift_x, drift_y = AnchorResolver(snapshot, config=config).offset_to_drift(
                node, Point(x, y)
            )
        except StructuralError as exc:
            return LinkPlan.rejected("corrupt_chain", exc.message)
        update.update(drift_x=drift_x, drift_y=drift_y)
    moved = node.model_copy(update=update)
    return LinkPlan.accepted(f"Move {node_id}", [NodeChange(before=node, after=moved)])


def plan_drop(
    snapshot: CanvasSnapshot,
    node_id: str,
    target: DropTarget,
    config: LayoutConfig | None = None,
) -> LinkPlan:
    if target.action == "bucket":
        return plan_move_to_bucket(snapshot, node_id)
    if target.parent_id is None:
        return LinkPlan.rejected("parent_missing", "Drop target has no node")
    if target.action == "park":
        return plan_park(snapshot, node_id, target.parent_id)
    if target.mode is None:
        return LinkPlan.rejected("invalid_mode", "Drop target has no connection mode")
    return plan_link(
        snapshot,
        node_id,
        target.parent_id,
        target.mode,
        insert=target.action == "insert",
        config=config,
    )


def _insertion_occupants(
    snapshot: CanvasSnapshot, child: Node, parent_id: str, mode: str
) -> list[Node]:
    if mode not in SIDE_MODES:
        return []
    return snapshot.slot_occupants(parent_id, mode, node_type=child.type, exclude=child.id)


def _guard_root(snapshot: CanvasSnapshot, plan: LinkPlan) -> LinkPlan:
    root = find_root(snapshot)
    if root is None or plan.change_set is None:
        return plan
    if root.id not in plan.change_set.node_ids():
        return plan
    after = snapshot.with_nodes([change.after for change in plan.change_set.changes])
    if find_root(after) is not None:
        return plan
    return LinkPlan.rejected(
        "root_locked",
        f"{root.id} is the canvas root; the canvas cannot be left without one",
    )


def _spine_conversion_conflict(snapshot: CanvasSnapshot, node: Node) -> LinkPlan | None:
    parent = snapshot.get(node.anchor_id)
    if parent is not None and parent.type == "SPINE" and node.connection_mode in SIDE_MODES:
        siblings = snapshot.slot_occupants(
            parent.id, node.connection_mode, node_type="SPINE", exclude=node.id
        )
        if siblings:
            return LinkPlan.rejected(
                "slot_occupied",
                f"Spine {parent.id} already has a {node.connection_mode} spine ({siblings[0].id})",
            )
    for mode in sorted(SIDE_MODES):
        spines = snapshot.slot_occupants(node.id, mode, node_type="SPINE")
        if len(spines) > 1:
            return LinkPlan.rejected(
                "slot_occupied",
                f"{node.id} has {len(spines)} {mode} spines; a spine keeps at most one",
            )
    return None
