from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from domain.models import LayoutPlan, Node


class LayoutEngine(Protocol):
    def compute_layout(self, nodes: Sequence[Node]) -> LayoutPlan:
        ...
