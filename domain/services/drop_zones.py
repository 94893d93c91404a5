from __future__ import annotations

import math
from collections.abc import Sequence

from domain.models import (
    SIDE_MODES,
    DropTarget,
    DropZone,
    LayoutConfig,
    LayoutPlan,
    Point,
    PositionedNode,
    Rect,
)
from domain.services.anchor_resolution import descendants
from domain.services.canvas_snapshot import CanvasSnapshot


def attic_bounds(positioned: PositionedNode, config: LayoutConfig) -> Rect:
    """Attic strip of a spine, above its STACK drop zone."""
    rect = positioned.rect
    top = rect.y - config.top_zone_height - config.attic_margin_top - config.attic_height
    return Rect(rect.x, top, rect.width, config.attic_height)


def generate_drop_zones(plan: LayoutPlan, config: LayoutConfig | None = None) -> list[DropZone]:
    """Snap targets for every ASSEMBLY node, in plan order.

    Each node gets a left (PREPEND), right (APPEND) and top (STACK) rectangle;
    spines additionally get their attic strip. Indices are sequential over the
    whole list and double as the hit-test tie-breaker.
    """
    config = config or LayoutConfig()
    by_id = plan.by_id()
    zones: list[DropZone] = []
    for positioned in plan.nodes:
        if positioned.zone != "ASSEMBLY":
            continue
        rect = positioned.rect
        side_width = rect.width * config.side_zone_ratio
        spine_id = _owning_spine(positioned, by_id)
        rectangles = [
            ("left", Rect(rect.x - side_width / 2, rect.y, side_width, rect.height)),
            (
                "right",
                Rect(rect.x + rect.width - side_width / 2, rect.y, side_width, rect.height),
            ),
            (
                "top",
                Rect(rect.x, rect.y - config.top_zone_height, rect.width, config.top_zone_height),
            ),
        ]
        if positioned.node_type == "SPINE":
            rectangles.append(("attic", attic_bounds(positioned, config)))
        for kind, bounds in rectangles:
            zones.append(
                DropZone(
                    index=len(zones),
                    node_id=positioned.node_id,
                    spine_id=spine_id,
                    kind=kind,  # type: ignore[arg-type]
                    bounds=bounds,
                )
            )
    return zones


def detect_drop_zone(pointer: Point, zones: Sequence[DropZone]) -> DropZone | None:
    best: DropZone | None = None
    best_distance = math.inf
    for zone in zones:
        if not zone.bounds.contains(pointer):
            continue
        center = zone.bounds.center
        distance = math.hypot(pointer.x - center.x, pointer.y - center.y)
        if distance < best_distance or (
            distance == best_distance and best is not None and zone.index < best.index
        ):
            best = zone
            best_distance = distance
    return best


def resolve_void_drop(
    pointer: Point,
    plan: LayoutPlan,
    config: LayoutConfig | None = None,
    exclude: Sequence[str] = (),
) -> DropTarget:
    """Pointer outside every zone: nearest spine's attic if close enough, else bucket."""
    config = config or LayoutConfig()
    nearest: PositionedNode | None = None
    nearest_distance = math.inf
    for positioned in plan.nodes:
        if positioned.zone != "ASSEMBLY" or positioned.node_type != "SPINE":
            continue
        if positioned.node_id in exclude:
            continue
        distance = _horizontal_distance(pointer, positioned.rect)
        if distance < nearest_distance:
            nearest = positioned
            nearest_distance = distance
    if nearest is not None and nearest_distance <= config.void_drop_threshold:
        return DropTarget(action="park", parent_id=nearest.node_id)
    return DropTarget(action="bucket")


def resolve_drop_target(
    pointer: Point,
    zones: Sequence[DropZone],
    plan: LayoutPlan,
    snapshot: CanvasSnapshot,
    dragged_id: str,
    config: LayoutConfig | None = None,
) -> DropTarget:
    dragged = snapshot.require(dragged_id)
    # The dragged node and its subtree cannot receive it.
    blocked = {dragged_id, *descendants(snapshot, dragged_id)}
    eligible = [zone for zone in zones if zone.node_id not in blocked]
    zone = detect_drop_zone(pointer, eligible)
    if zone is None:
        return resolve_void_drop(pointer, plan, config, exclude=tuple(blocked))
    if zone.kind == "attic":
        return DropTarget(action="park", parent_id=zone.node_id, zone_index=zone.index)

    mode = zone.mode
    action = "link"
    if mode in SIDE_MODES and snapshot.slot_occupants(
        zone.node_id, mode, node_type=dragged.type, exclude=dragged_id
    ):
        action = "insert"
    return DropTarget(
        action=action,  # type: ignore[arg-type]
        parent_id=zone.node_id,
        mode=mode,
        zone_index=zone.index,
    )


def _horizontal_distance(pointer: Point, rect: Rect) -> float:
    if pointer.x < rect.x:
        return rect.x - pointer.x
    if pointer.x > rect.x + rect.width:
        return pointer.x - (rect.x + rect.width)
    return 0.0


def _owning_spine(positioned: PositionedNode, by_id: dict[str, PositionedNode]) -> str:
    current: PositionedNode | None = positioned
    visited: set[str] = set()
    while current is not None and current.node_id not in visited:
        if current.node_type == "SPINE":
            return current.node_id
        visited.add(current.node_id)
        current = by_id.get(current.node.anchor_id or "")
    return positioned.node_id
