from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Dict, List

from domain.errors import SlotConflictError, StructuralError
from domain.models import (
    MODE_TO_CHILD_HANDLE,
    MODE_TO_PARENT_HANDLE,
    SIDE_MODES,
    AnchorEdge,
    Bounds,
    LayoutConfig,
    LayoutPlan,
    Node,
    Point,
    PositionedNode,
    Size,
    StructuralIssue,
    Zone,
)
from domain.ports.layout import LayoutEngine
from domain.services.anchor_resolution import AnchorResolver, TimelineResolver
from domain.services.canvas_snapshot import CanvasSnapshot, sanitize_nodes
from domain.services.column_width import ColumnWidthCalculator
from domain.services.drop_zones import attic_bounds
from domain.services.duration import base_width, duration
from domain.services.zone_classification import classify_zone, find_root

logger = logging.getLogger(__name__)


class AnchorChainLayoutEngine(LayoutEngine):
    """Positions a canvas from its anchor chains.

    Assembly nodes are resolved recursively from the root through their
    anchors. Attic items sit in a flat row above their spine and bucket nodes
    keep the coordinates they were stored with. Nodes whose chain cannot be
    resolved fall back to their stored coordinates and the plan is flagged
    inconsistent through its ``issues``.
    """

    def __init__(self, config: LayoutConfig | None = None) -> None:
        self.config = config or LayoutConfig()

    def compute_layout(self, nodes: Sequence[Node]) -> LayoutPlan:
        config = self.config
        cleaned, issues = sanitize_nodes(nodes, config)
        snapshot = CanvasSnapshot(cleaned)
        root = find_root(snapshot)
        root_id = root.id if root else None
        zones: Dict[str, Zone] = {node.id: classify_zone(node, root_id) for node in snapshot}

        widths = ColumnWidthCalculator(snapshot, config)
        resolver = AnchorResolver(snapshot, widths, config)
        timeline = TimelineResolver(snapshot, config)

        placed: Dict[str, PositionedNode] = {}
        for node in snapshot:
            if zones[node.id] != "ASSEMBLY":
                continue
            try:
                placed[node.id] = PositionedNode(
                    node=node,
                    zone="ASSEMBLY",
                    position=resolver.resolve(node.id),
                    size=Size(widths.column_width(node.id), config.node_height(node.type)),
                    column_width=widths.column_width(node.id),
                    left_offset=widths.left_offset(node.id),
                    duration=duration(node, config),
                    timeline=timeline.resolve(node.id),
                    attached_children=widths.attached_children(node.id),
                )
            except StructuralError as exc:
                issues.append(StructuralIssue(code=exc.code, node_id=node.id, message=exc.message))
                placed[node.id] = self._at_stored_position(node, "ASSEMBLY")

        issues.extend(self._slot_conflicts(snapshot, zones))

        for node in snapshot:
            if zones[node.id] == "BUCKET":
                placed[node.id] = self._at_stored_position(node, "BUCKET")

        for spine_id, items in self._attic_rows(snapshot, placed, issues).items():
            bounds = attic_bounds(placed[spine_id], config)
            for index, item in enumerate(items):
                x = bounds.x + index * (config.attic_item_width + config.attic_item_gap)
                y = bounds.y + (config.attic_height - config.attic_item_height) / 2
                placed[item.id] = PositionedNode(
                    node=item,
                    zone="ATTIC",
                    position=Point(x, y),
                    size=Size(config.attic_item_width, config.attic_item_height),
                    column_width=config.attic_item_width,
                    left_offset=0.0,
                    duration=duration(item, config),
                    timeline=None,
                )
        for node in snapshot:
            if node.id not in placed:
                placed[node.id] = self._at_stored_position(node, zones[node.id])

        for issue in issues:
            logger.warning("Layout issue at %s (%s): %s", issue.node_id, issue.code, issue.message)

        return LayoutPlan(
            nodes=[placed[node.id] for node in snapshot],
            edges=self._edges(snapshot, zones),
            issues=issues,
            root_id=root_id,
        )

    def _at_stored_position(self, node: Node, zone: Zone) -> PositionedNode:
        width = base_width(node, self.config)
        return PositionedNode(
            node=node,
            zone=zone,
            position=Point(node.x, node.y),
            size=Size(width, self.config.node_height(node.type)),
            column_width=width,
            left_offset=0.0,
            duration=duration(node, self.config),
            timeline=None,
        )

    def _attic_rows(
        self,
        snapshot: CanvasSnapshot,
        placed: Dict[str, PositionedNode],
        issues: List[StructuralIssue],
    ) -> Dict[str, List[Node]]:
        rows: Dict[str, List[Node]] = {}
        for node in snapshot:
            spine_id = node.attic_parent_id
            if spine_id is None:
                continue
            spine = placed.get(spine_id)
            if spine is None or spine.zone != "ASSEMBLY" or spine.node_type != "SPINE":
                issues.append(
                    StructuralIssue(
                        code="orphaned_attic",
                        node_id=node.id,
                        message=f"Node {node.id} is parked above {spine_id}, "
                        "which is not a spine in the assembly",
                    )
                )
                continue
            rows.setdefault(spine_id, []).append(node)
        return rows

    def _slot_conflicts(
        self, snapshot: CanvasSnapshot, zones: Dict[str, Zone]
    ) -> List[StructuralIssue]:
        found: List[StructuralIssue] = []
        for node in snapshot:
            if node.type != "SPINE" or zones[node.id] != "ASSEMBLY":
                continue
            for mode in sorted(SIDE_MODES):
                spines = snapshot.slot_occupants(node.id, mode, node_type="SPINE")
                if len(spines) > 1:
                    conflict = SlotConflictError(node.id, mode, [spine.id for spine in spines])
                    found.append(
                        StructuralIssue(
                            code=conflict.code, node_id=node.id, message=conflict.message
                        )
                    )
        return found

    def _edges(self, snapshot: CanvasSnapshot, zones: Dict[str, Zone]) -> List[AnchorEdge]:
        edges: List[AnchorEdge] = []
        for node in snapshot:
            if zones[node.id] != "ASSEMBLY" or node.anchor_id is None:
                continue
            if node.anchor_id not in snapshot or node.connection_mode is None:
                continue
            edges.append(
                AnchorEdge(
                    parent_id=node.anchor_id,
                    child_id=node.id,
                    mode=node.connection_mode,
                    source_handle=MODE_TO_PARENT_HANDLE[node.connection_mode],
                    target_handle=MODE_TO_CHILD_HANDLE[node.connection_mode],
                )
            )
        return edges


def compute_tree_bounds(plan: LayoutPlan, padding: float = 0.0) -> Bounds | None:
    """Bounding box of the assembly and its attics, for fitting the view."""
    rects = [positioned.rect for positioned in plan.nodes if positioned.zone != "BUCKET"]
    if not rects:
        return None
    return Bounds(
        min_x=min(rect.x for rect in rects) - padding,
        min_y=min(rect.y for rect in rects) - padding,
        max_x=max(rect.x + rect.width for rect in rects) + padding,
        max_y=max(rect.y + rect.height for rect in rects) + padding,
    )
