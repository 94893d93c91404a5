from __future__ import annotations

from domain.models import LayoutConfig, Node


def duration(node: Node, config: LayoutConfig | None = None) -> float:
    """Playback length of the node's trim window in seconds.

    Nodes without an out point have no known length yet and fall back to
    ``config.default_duration`` so that layout stays deterministic.
    """
    config = config or LayoutConfig()
    if node.clip_out is None:
        return config.default_duration
    return max(0.0, node.clip_out - (node.clip_in or 0.0))


def base_width(node: Node, config: LayoutConfig | None = None) -> float:
    config = config or LayoutConfig()
    return max(config.base_width, duration(node, config) * config.pixels_per_second)
