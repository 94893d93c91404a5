from __future__ import annotations

from collections.abc import Callable

from domain.models import ChangeSet


class EditHistory:
    """Undo/redo stacks of committed change sets for one canvas.

    ``undo`` and ``redo`` take the function that writes a change set; a change
    set only moves between stacks once that write succeeded.
    """

    def __init__(self, limit: int = 100) -> None:
        self.limit = limit
        self._undo: list[ChangeSet] = []
        self._redo: list[ChangeSet] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def record(self, change_set: ChangeSet) -> None:
        if not change_set.changes:
            return
        self._undo.append(change_set)
        if len(self._undo) > self.limit:
            del self._undo[0]
        self._redo.clear()

    def undo(self, apply: Callable[[ChangeSet], None]) -> ChangeSet | None:
        if not self._undo:
            return None
        change_set = self._undo[-1]
        apply(change_set.inverted())
        self._undo.pop()
        self._redo.append(change_set)
        return change_set

    def redo(self, apply: Callable[[ChangeSet], None]) -> ChangeSet | None:
        if not self._redo:
            return None
        change_set = self._redo[-1]
        apply(change_set)
        self._redo.pop()
        self._undo.append(change_set)
        return change_set

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
