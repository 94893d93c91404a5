from __future__ import annotations

from collections.abc import Container

from domain.errors import ChainTooDeepError, CycleDetected, OrphanedAnchorError
from domain.models import LayoutConfig, Node, Point, TimelinePosition
from domain.services.canvas_snapshot import CanvasSnapshot
from domain.services.column_width import ColumnWidthCalculator
from domain.services.duration import duration


class AnchorResolver:
    """Resolves canvas coordinates by walking each node's anchor chain.

    The chain above a node is collected iteratively up to the first resolved
    ancestor, then resolved top-down. Results are memoized for the lifetime of
    the resolver, which is meant to live for exactly one layout pass over one
    snapshot.
    """

    def __init__(
        self,
        snapshot: CanvasSnapshot,
        widths: ColumnWidthCalculator | None = None,
        config: LayoutConfig | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.config = config or (widths.config if widths else LayoutConfig())
        self.widths = widths or ColumnWidthCalculator(snapshot, self.config)
        self._resolved: dict[str, Point] = {}
        self._depths: dict[str, int] = {}

    def resolve(self, node_id: str) -> Point:
        cached = self._resolved.get(node_id)
        if cached is not None:
            return cached
        for node in reversed(unresolved_chain(self.snapshot, node_id, self._resolved)):
            if node.anchor_id is None:
                self._resolved[node.id] = Point(node.x, node.y)
                self._depths[node.id] = 0
                continue
            depth = self._depths[node.anchor_id] + 1
            if depth > self.config.max_chain_hops:
                raise ChainTooDeepError(node.id, self.config.max_chain_hops)
            parent = self.snapshot.require(node.anchor_id)
            self._resolved[node.id] = self._offset_from_parent(
                node, parent, self._resolved[parent.id]
            )
            self._depths[node.id] = depth
        return self._resolved[node_id]

    def _offset_from_parent(self, node: Node, parent: Node, parent_point: Point) -> Point:
        config = self.config
        parent_left_offset = self.widths.left_offset(parent.id)
        track_shift = node.drift_y * config.pixels_per_track

        if node.connection_mode == "STACK":
            x = parent_point.x + node.drift_x * config.pixels_per_second + parent_left_offset
            y = parent_point.y - config.node_height(node.type) - config.stack_gap - track_shift
        elif node.connection_mode == "PREPEND":
            gap = config.gap(parent.type, node.type)
            x = parent_point.x + parent_left_offset - self.widths.column_width(node.id) - gap
            y = parent_point.y - track_shift
        else:
            gap = config.gap(parent.type, node.type)
            x = parent_point.x + self.widths.column_width(parent.id) + gap
            y = parent_point.y - track_shift
        return Point(x, y)

    def offset_to_drift(self, node: Node, target: Point) -> tuple[float, int]:
        """Inverse of the parent offset: drift that puts ``node`` at ``target``.

        Only STACK children carry a vertical drift; side attachments stay on
        their parent's track. A PREPEND drift grows as the node moves left,
        away from the parent it plays before.
        """
        config = self.config
        parent = self.snapshot.require(node.anchor_id)
        parent_point = self.resolve(parent.id)
        if node.connection_mode == "STACK":
            base_x = parent_point.x + self.widths.left_offset(parent.id)
            base_y = parent_point.y - config.node_height(node.type) - config.stack_gap
            drift_y = round((base_y - target.y) / config.pixels_per_track)
            return (target.x - base_x) / config.pixels_per_second, drift_y
        if node.connection_mode == "PREPEND":
            gap = config.gap(parent.type, node.type)
            base_x = (
                parent_point.x
                + self.widths.left_offset(parent.id)
                - self.widths.column_width(node.id)
                - gap
            )
            return (base_x - target.x) / config.pixels_per_second, 0
        base_x = parent_point.x + self.widths.column_width(parent.id) + config.gap(
            parent.type, node.type
        )
        return (target.x - base_x) / config.pixels_per_second, 0


class TimelineResolver:
    """Absolute timeline placement (seconds, track index, chain depth).

    The chain root sits at time 0 on track 0; every anchored node is placed
    relative to its parent according to its connection mode and drift.
    """

    def __init__(self, snapshot: CanvasSnapshot, config: LayoutConfig | None = None) -> None:
        self.snapshot = snapshot
        self.config = config or LayoutConfig()
        self._resolved: dict[str, TimelinePosition] = {}

    def resolve(self, node_id: str) -> TimelinePosition:
        cached = self._resolved.get(node_id)
        if cached is not None:
            return cached
        for node in reversed(unresolved_chain(self.snapshot, node_id, self._resolved)):
            if node.anchor_id is None:
                self._resolved[node.id] = TimelinePosition(time=0.0, track=0, generation=0)
                continue
            parent = self.snapshot.require(node.anchor_id)
            position = self._place(node, parent, self._resolved[parent.id])
            if position.generation > self.config.max_chain_hops:
                raise ChainTooDeepError(node.id, self.config.max_chain_hops)
            self._resolved[node.id] = position
        return self._resolved[node_id]

    def absolute_time(self, node_id: str) -> float:
        return self.resolve(node_id).time

    def _place(self, node: Node, parent: Node, parent_position: TimelinePosition) -> TimelinePosition:
        if node.connection_mode == "STACK":
            time = parent_position.time + node.drift_x
            track = parent_position.track + 1 + node.drift_y
        elif node.connection_mode == "PREPEND":
            # drift_x is the gap before the parent: 0 means touching.
            time = parent_position.time - duration(node, self.config) - node.drift_x
            track = parent_position.track + node.drift_y
        else:
            time = parent_position.time + duration(parent, self.config) + node.drift_x
            track = parent_position.track + node.drift_y
        return TimelinePosition(time=time, track=track, generation=parent_position.generation + 1)


def unresolved_chain(
    snapshot: CanvasSnapshot, node_id: str, resolved: Container[str]
) -> list[Node]:
    """Nodes from ``node_id`` up its anchor chain, stopping below the first resolved one.

    The last entry is either a free node or one whose anchor is already in
    ``resolved``. Raises ``CycleDetected`` or ``OrphanedAnchorError`` when the
    chain cannot end that way.
    """
    chain: list[Node] = []
    positions: dict[str, int] = {}
    node = snapshot.require(node_id)
    while True:
        positions[node.id] = len(chain)
        chain.append(node)
        if node.anchor_id is None or node.anchor_id in resolved:
            return chain
        if node.anchor_id in positions:
            cycle = [item.id for item in chain[positions[node.anchor_id] :]]
            raise CycleDetected(node.anchor_id, cycle + [node.anchor_id])
        parent = snapshot.get(node.anchor_id)
        if parent is None:
            raise OrphanedAnchorError(node.id, node.anchor_id)
        node = parent


def drift_for_time(
    snapshot: CanvasSnapshot,
    node: Node,
    parent_id: str,
    mode: str,
    target_time: float,
    config: LayoutConfig | None = None,
) -> float:
    """drift_x that places ``node`` at ``target_time`` when anchored to ``parent_id``.

    Generalises ``new_drift = old_parent_drift + old_child_drift`` to every
    connection mode.
    """
    config = config or LayoutConfig()
    parent = snapshot.require(parent_id)
    parent_time = TimelineResolver(snapshot, config).absolute_time(parent_id)
    if mode == "STACK":
        return target_time - parent_time
    if mode == "PREPEND":
        return parent_time - duration(node, config) - target_time
    return target_time - parent_time - duration(parent, config)


def descendants(snapshot: CanvasSnapshot, node_id: str) -> list[str]:
    found: list[str] = []
    visited: set[str] = {node_id}
    stack = [node_id]
    while stack:
        current = stack.pop()
        for child in snapshot.children(current):
            if child.id in visited:
                continue
            visited.add(child.id)
            found.append(child.id)
            stack.append(child.id)
    return found
