from __future__ import annotations

from domain.errors import CycleDetected
from domain.models import AttachedChild, LayoutConfig, Node
from domain.services.canvas_snapshot import CanvasSnapshot
from domain.services.duration import base_width


class ColumnWidthCalculator:
    """Elastic column widths, computed bottom-up over STACK children.

    A node's column grows to contain everything stacked on it together with
    the PREPEND/APPEND attachments of those stacked children. A spine is
    also at least as wide as the row of items parked in its attic. Growth to
    the left is reported as ``left_offset`` so the node itself keeps its origin.
    """

    def __init__(self, snapshot: CanvasSnapshot, config: LayoutConfig | None = None) -> None:
        self.snapshot = snapshot
        self.config = config or LayoutConfig()
        self._widths: dict[str, float] = {}
        self._left_offsets: dict[str, float] = {}

    def base_width(self, node_id: str) -> float:
        return base_width(self.snapshot.require(node_id), self.config)

    def column_width(self, node_id: str) -> float:
        if node_id not in self._widths:
            self._compute(node_id)
        return self._widths[node_id]

    def left_offset(self, node_id: str) -> float:
        if node_id not in self._left_offsets:
            self._compute(node_id)
        return self._left_offsets[node_id]

    def attached_children(self, node_id: str) -> list[AttachedChild]:
        parent_width = self.column_width(node_id)
        attached: list[AttachedChild] = []
        for child in self.snapshot.children(node_id, "STACK"):
            offset = child.drift_x * self.config.pixels_per_second
            rel_x = (offset / parent_width) * 100 if parent_width else 0.0
            attached.append(AttachedChild(node_id=child.id, rel_x=max(0.0, min(100.0, rel_x))))
        return attached

    def _compute(self, node_id: str) -> float:
        # Iterative post-order over STACK children and their side attachments.
        trail: list[str] = []
        on_trail: set[str] = set()
        pending: list[tuple[str, bool]] = [(node_id, False)]
        while pending:
            current, expanded = pending.pop()
            if current in self._widths:
                continue
            if expanded:
                self._measure(current)
                trail.pop()
                on_trail.discard(current)
                continue
            trail.append(current)
            on_trail.add(current)
            pending.append((current, True))
            for dependency in self._dependencies(current):
                if dependency in on_trail:
                    cycle = trail[trail.index(dependency) :] + [dependency]
                    raise CycleDetected(dependency, cycle)
                if dependency not in self._widths:
                    pending.append((dependency, False))
        return self._widths[node_id]

    def _dependencies(self, node_id: str) -> list[str]:
        found: list[str] = []
        for child in self.snapshot.children(node_id, "STACK"):
            found.append(child.id)
            found.extend(side.id for side in self.snapshot.children(child.id, "PREPEND"))
            found.extend(side.id for side in self.snapshot.children(child.id, "APPEND"))
        return found

    def _measure(self, node_id: str) -> None:
        node = self.snapshot.require(node_id)
        base = base_width(node, self.config)
        leftmost = 0.0
        rightmost = base
        for child in self.snapshot.children(node_id, "STACK"):
            offset = child.drift_x * self.config.pixels_per_second
            prepend_width = sum(
                self._side_width(child, side) for side in self.snapshot.children(child.id, "PREPEND")
            )
            append_width = sum(
                self._side_width(child, side) for side in self.snapshot.children(child.id, "APPEND")
            )
            leftmost = min(leftmost, offset - prepend_width)
            rightmost = max(rightmost, offset + self._widths[child.id] + append_width)

        width = max(base, rightmost - leftmost, self._attic_width(node))
        self._widths[node_id] = width
        self._left_offsets[node_id] = max(0.0, -leftmost)

    def _attic_width(self, node: Node) -> float:
        # A spine breathes wide enough for its attic row.
        if node.type != "SPINE":
            return 0.0
        items = len(self.snapshot.attic_items(node.id))
        return items * (self.config.attic_item_width + self.config.attic_item_gap)

    def _side_width(self, owner: Node, side: Node) -> float:
        return self._widths[side.id] + self.config.gap(owner.type, side.type)
