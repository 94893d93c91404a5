from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from domain.errors import ChangeCommitError
from domain.models import (
    ChangeSet,
    DropTarget,
    DropZone,
    LayoutConfig,
    LayoutPlan,
    LinkValidation,
    NodeChange,
    Point,
)
from domain.ports.layout import LayoutEngine
from domain.ports.repositories import NodeStore
from domain.services.canvas_snapshot import CanvasSnapshot
from domain.services.chain_validation import validate_link
from domain.services.drop_zones import generate_drop_zones, resolve_drop_target
from domain.services.edit_history import EditHistory
from domain.services.relink import (
    LinkPlan,
    plan_change_type,
    plan_drop,
    plan_link,
    plan_move,
    plan_move_to_bucket,
    plan_park,
    plan_set_drift,
    plan_unlink,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditOutcome:
    validation: LinkValidation
    change_set: ChangeSet | None = None
    displaced_ids: tuple[str, ...] = ()
    target: DropTarget | None = None

    @property
    def applied(self) -> bool:
        return self.validation.valid and self.change_set is not None

    @property
    def displaced_id(self) -> str | None:
        return self.displaced_ids[0] if self.displaced_ids else None

    def to_dict(self) -> dict[str, Any]:
        payload = self.validation.to_dict()
        payload["changed"] = self.change_set.node_ids() if self.change_set else []
        if self.displaced_ids:
            payload["displaced_id"] = self.displaced_ids[0]
            payload["displaced_ids"] = list(self.displaced_ids)
        if self.target is not None:
            payload["target"] = self.target.to_dict()
        return payload


class CanvasEditor:
    """Applies planned structural edits to a canvas held in a ``NodeStore``.

    Every edit is planned and validated against a fresh snapshot first; only
    a valid plan reaches the store. A store failure part way through a change
    set reverts the updates already written and raises ``ChangeCommitError``.
    """

    def __init__(
        self,
        store: NodeStore,
        layout_engine: LayoutEngine,
        config: LayoutConfig | None = None,
        history_limit: int = 100,
    ) -> None:
        self.store = store
        self.layout_engine = layout_engine
        self.config = config or LayoutConfig()
        self.history_limit = history_limit
        self._histories: Dict[str, EditHistory] = {}

    def history(self, canvas_id: str) -> EditHistory:
        history = self._histories.get(canvas_id)
        if history is None:
            history = EditHistory(limit=self.history_limit)
            self._histories[canvas_id] = history
        return history

    def snapshot(self, canvas_id: str) -> CanvasSnapshot:
        return CanvasSnapshot.from_nodes(self.store.list(canvas_id))

    def layout(self, canvas_id: str) -> LayoutPlan:
        return self.layout_engine.compute_layout(self.snapshot(canvas_id).nodes())

    def drop_zones(self, canvas_id: str) -> List[DropZone]:
        return generate_drop_zones(self.layout(canvas_id), self.config)

    def validate_link(
        self, canvas_id: str, child_id: str, parent_id: str, mode: str, insert: bool = False
    ) -> LinkValidation:
        return validate_link(
            self.snapshot(canvas_id),
            child_id,
            parent_id,
            mode,
            allow_insertion=insert,
            config=self.config,
        )

    def link(
        self,
        canvas_id: str,
        child_id: str,
        parent_id: str,
        mode: str,
        *,
        insert: bool = False,
        drift_x: float = 0.0,
        drift_y: int = 0,
    ) -> EditOutcome:
        plan = plan_link(
            self.snapshot(canvas_id),
            child_id,
            parent_id,
            mode,
            insert=insert,
            drift_x=drift_x,
            drift_y=drift_y,
            config=self.config,
        )
        return self._apply(canvas_id, plan)

    def unlink(self, canvas_id: str, node_id: str) -> EditOutcome:
        return self._apply(canvas_id, plan_unlink(self.snapshot(canvas_id), node_id))

    def park(self, canvas_id: str, node_id: str, spine_id: str) -> EditOutcome:
        return self._apply(canvas_id, plan_park(self.snapshot(canvas_id), node_id, spine_id))

    def move_to_bucket(self, canvas_id: str, node_id: str) -> EditOutcome:
        return self._apply(canvas_id, plan_move_to_bucket(self.snapshot(canvas_id), node_id))

    def change_type(self, canvas_id: str, node_id: str, new_type: str) -> EditOutcome:
        return self._apply(
            canvas_id, plan_change_type(self.snapshot(canvas_id), node_id, new_type)
        )

    def set_drift(self, canvas_id: str, node_id: str, drift_x: float, drift_y: int) -> EditOutcome:
        return self._apply(
            canvas_id, plan_set_drift(self.snapshot(canvas_id), node_id, drift_x, drift_y)
        )

    def move(self, canvas_id: str, node_id: str, x: float, y: float) -> EditOutcome:
        return self._apply(
            canvas_id, plan_move(self.snapshot(canvas_id), node_id, x, y, self.config)
        )

    def drop(self, canvas_id: str, node_id: str, pointer: Point) -> EditOutcome:
        """Resolve where a dragged node lands and apply the matching edit."""
        snapshot = self.snapshot(canvas_id)
        if node_id not in snapshot:
            missing = LinkPlan.rejected("child_missing", f"Node {node_id} does not exist")
            return self._apply(canvas_id, missing)
        plan = self.layout_engine.compute_layout(snapshot.nodes())
        zones = generate_drop_zones(plan, self.config)
        target = resolve_drop_target(pointer, zones, plan, snapshot, node_id, self.config)
        logger.debug("Drop of %s at (%s, %s) resolved to %s", node_id, pointer.x, pointer.y, target)
        outcome = self._apply(canvas_id, plan_drop(snapshot, node_id, target, self.config))
        return EditOutcome(
            validation=outcome.validation,
            change_set=outcome.change_set,
            displaced_ids=outcome.displaced_ids,
            target=target,
        )

    def undo(self, canvas_id: str) -> ChangeSet | None:
        return self.history(canvas_id).undo(lambda change_set: self.commit(canvas_id, change_set))

    def redo(self, canvas_id: str) -> ChangeSet | None:
        return self.history(canvas_id).redo(lambda change_set: self.commit(canvas_id, change_set))

    def commit(self, canvas_id: str, change_set: ChangeSet) -> None:
        applied: List[NodeChange] = []
        for change in change_set.changes:
            try:
                self.store.update(canvas_id, change.after)
            except Exception as exc:
                logger.exception(
                    "Commit of '%s' failed at node %s; rolling back %d update(s)",
                    change_set.name,
                    change.node_id,
                    len(applied),
                )
                self._rollback(canvas_id, applied)
                raise ChangeCommitError(change_set.name, change.node_id) from exc
            applied.append(change)
        logger.debug("Committed '%s' on canvas %s", change_set.name, canvas_id)

    def _apply(self, canvas_id: str, plan: LinkPlan) -> EditOutcome:
        if not plan.valid or plan.change_set is None:
            logger.info("Rejected edit on canvas %s: %s", canvas_id, plan.validation.reason)
            return EditOutcome(validation=plan.validation)
        self.commit(canvas_id, plan.change_set)
        self.history(canvas_id).record(plan.change_set)
        return EditOutcome(
            validation=plan.validation,
            change_set=plan.change_set,
            displaced_ids=plan.displaced_ids,
        )

    def _rollback(self, canvas_id: str, applied: List[NodeChange]) -> None:
        for change in reversed(applied):
            try:
                self.store.update(canvas_id, change.before)
            except Exception:
                logger.exception("Rollback of node %s failed", change.node_id)
