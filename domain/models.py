from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

NodeType = Literal["SPINE", "SATELLITE"]
NodeSubtype = Literal["VIDEO", "MUSIC", "TEXT", "IMAGE"]
ConnectionMode = Literal["STACK", "PREPEND", "APPEND"]
Zone = Literal["ASSEMBLY", "ATTIC", "BUCKET"]
DropZoneKind = Literal["left", "right", "top", "attic"]
DropAction = Literal["link", "insert", "park", "bucket"]

NODE_TYPES: tuple[str, ...] = ("SPINE", "SATELLITE")
CONNECTION_MODES: tuple[str, ...] = ("STACK", "PREPEND", "APPEND")
SIDE_MODES = frozenset({"PREPEND", "APPEND"})

# Parent handle names exposed to the canvas for each connection mode.
MODE_TO_PARENT_HANDLE: Dict[str, str] = {
    "STACK": "anchor-top",
    "PREPEND": "anchor-left",
    "APPEND": "anchor-right",
}
MODE_TO_CHILD_HANDLE: Dict[str, str] = {
    "STACK": "tether-target",
    "PREPEND": "tether-right",
    "APPEND": "tether-left",
}

ZONE_KIND_TO_MODE: Dict[str, ConnectionMode] = {
    "left": "PREPEND",
    "right": "APPEND",
    "top": "STACK",
}

# Stored x used for nodes sent to the bucket.
BUCKET_PARKING_X = -1000.0


def normalize_connection_mode(value: Any) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip().upper()
    return normalized or None


class Node(BaseModel):
    id: str = Field(..., min_length=1)
    type: NodeType
    subtype: NodeSubtype = "VIDEO"
    asset_id: Optional[str] = None
    label: Optional[str] = None
    clip_in: float = 0.0
    clip_out: Optional[float] = None
    anchor_id: Optional[str] = None
    connection_mode: Optional[ConnectionMode] = None
    drift_x: float = 0.0
    drift_y: int = 0
    attic_parent_id: Optional[str] = None
    is_global: bool = False
    x: float = 0.0
    y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: object) -> str:
        return str(value).strip().upper()

    @field_validator("connection_mode", mode="before")
    @classmethod
    def normalize_mode(cls, value: object) -> str | None:
        return normalize_connection_mode(value)

    @field_validator("anchor_id", "attic_parent_id", "asset_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("drift_y", mode="before")
    @classmethod
    def snap_track(cls, value: object) -> int:
        if value is None or value == "":
            return 0
        return int(round(float(value)))  # type: ignore[arg-type]

    @field_validator("drift_x", "clip_in", mode="before")
    @classmethod
    def none_to_zero(cls, value: object) -> object:
        return 0.0 if value is None else value

    @property
    def is_anchored(self) -> bool:
        return self.anchor_id is not None

    @property
    def is_parked(self) -> bool:
        return self.attic_parent_id is not None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class CanvasDocument(BaseModel):
    canvas_id: str = Field(..., min_length=1)
    nodes: List[Node] = Field(default_factory=list)

    @field_validator("nodes", mode="after")
    @classmethod
    def ensure_unique_node_ids(cls, nodes: List[Node]) -> List[Node]:
        seen: set[str] = set()
        for node in nodes:
            if node.id in seen:
                msg = f"Duplicate node id found: {node.id}"
                raise ValueError(msg)
            seen.add(node.id)
        return nodes


@dataclass(frozen=True)
class LayoutConfig:
    base_width: float = 200.0
    pixels_per_second: float = 20.0
    default_duration: float = 5.0
    spine_gap: float = 100.0
    satellite_gap: float = 50.0
    stack_gap: float = 50.0
    pixels_per_track: float = 120.0
    spine_height: float = 130.0
    satellite_height: float = 180.0
    attic_margin_top: float = 50.0
    attic_height: float = 80.0
    attic_item_width: float = 180.0
    attic_item_height: float = 60.0
    attic_item_gap: float = 10.0
    side_zone_ratio: float = 0.2
    top_zone_height: float = 50.0
    void_drop_threshold: float = 300.0
    max_chain_hops: int = 500
    strict: bool = False

    def gap(self, parent_type: str, child_type: str) -> float:
        if parent_type == "SPINE" and child_type == "SPINE":
            return self.spine_gap
        return self.satellite_gap

    def node_height(self, node_type: str) -> float:
        return self.spine_height if node_type == "SPINE" else self.satellite_height


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def contains(self, point: Point) -> bool:
        return (
            self.x <= point.x <= self.x + self.width
            and self.y <= point.y <= self.y + self.height
        )

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class Bounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float


@dataclass(frozen=True)
class TimelinePosition:
    time: float
    track: int
    generation: int


@dataclass(frozen=True)
class AttachedChild:
    node_id: str
    rel_x: float  # 0-100 along the parent's top edge


@dataclass(frozen=True)
class StructuralIssue:
    code: str  # "cycle", "orphaned_anchor", "orphaned_attic", "malformed"
    node_id: str
    message: str


@dataclass(frozen=True)
class PositionedNode:
    node: Node
    zone: Zone
    position: Point
    size: Size
    column_width: float
    left_offset: float
    duration: float
    timeline: TimelinePosition | None
    attached_children: List[AttachedChild] = field(default_factory=list)

    @property
    def node_id(self) -> str:
        return self.node.id

    @property
    def node_type(self) -> str:
        return self.node.type

    @property
    def rect(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.size.width, self.size.height)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.node.id,
            "type": self.node.type,
            "zone": self.zone,
            "x": self.position.x,
            "y": self.position.y,
            "width": self.size.width,
            "height": self.size.height,
            "column_width": self.column_width,
            "left_offset": self.left_offset,
            "duration": self.duration,
            "generation": self.timeline.generation if self.timeline else None,
            "absolute_time": self.timeline.time if self.timeline else None,
            "absolute_track": self.timeline.track if self.timeline else None,
            "has_anchor": self.node.is_anchored,
            "attached_children": [
                {"id": child.node_id, "rel_x": child.rel_x} for child in self.attached_children
            ],
        }


@dataclass(frozen=True)
class AnchorEdge:
    parent_id: str
    child_id: str
    mode: ConnectionMode
    source_handle: str
    target_handle: str

    @property
    def edge_id(self) -> str:
        return f"edge-{self.parent_id}-{self.child_id}"


@dataclass(frozen=True)
class LayoutPlan:
    nodes: List[PositionedNode]
    edges: List[AnchorEdge]
    issues: List[StructuralIssue]
    root_id: str | None

    @property
    def inconsistent(self) -> bool:
        return bool(self.issues)

    def by_id(self) -> Dict[str, PositionedNode]:
        return {positioned.node_id: positioned for positioned in self.nodes}

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_id": self.root_id,
            "inconsistent": self.inconsistent,
            "nodes": [positioned.to_dict() for positioned in self.nodes],
            "edges": [
                {
                    "id": edge.edge_id,
                    "source": edge.parent_id,
                    "target": edge.child_id,
                    "mode": edge.mode,
                    "source_handle": edge.source_handle,
                    "target_handle": edge.target_handle,
                }
                for edge in self.edges
            ],
            "issues": [
                {"code": issue.code, "node_id": issue.node_id, "message": issue.message}
                for issue in self.issues
            ],
        }


@dataclass(frozen=True)
class DropZone:
    index: int
    node_id: str
    spine_id: str
    kind: DropZoneKind
    bounds: Rect

    @property
    def mode(self) -> ConnectionMode | None:
        return ZONE_KIND_TO_MODE.get(self.kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "node_id": self.node_id,
            "spine_id": self.spine_id,
            "kind": self.kind,
            "mode": self.mode,
            "bounds": {
                "x": self.bounds.x,
                "y": self.bounds.y,
                "width": self.bounds.width,
                "height": self.bounds.height,
            },
        }


@dataclass(frozen=True)
class DropTarget:
    action: DropAction
    parent_id: str | None = None
    mode: ConnectionMode | None = None
    zone_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "parent_id": self.parent_id,
            "mode": self.mode,
            "zone_index": self.zone_index,
        }


@dataclass(frozen=True)
class LinkValidation:
    valid: bool
    reason: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls) -> LinkValidation:
        return cls(valid=True)

    @classmethod
    def reject(cls, code: str, reason: str) -> LinkValidation:
        return cls(valid=False, reason=reason, code=code)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"valid": self.valid}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.code is not None:
            payload["code"] = self.code
        return payload


@dataclass(frozen=True)
class NodeChange:
    before: Node
    after: Node

    @property
    def node_id(self) -> str:
        return self.after.id


@dataclass(frozen=True)
class ChangeSet:
    name: str
    changes: List[NodeChange]

    def node_ids(self) -> List[str]:
        return [change.node_id for change in self.changes]

    def inverted(self) -> ChangeSet:
        return ChangeSet(
            name=self.name,
            changes=[
                NodeChange(before=change.after, after=change.before)
                for change in reversed(self.changes)
            ],
        )
