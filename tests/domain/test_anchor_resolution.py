from __future__ import annotations

import pytest

from domain.errors import ChainTooDeepError, CycleDetected, OrphanedAnchorError
from domain.models import LayoutConfig, Point
from domain.services.anchor_resolution import (
    AnchorResolver,
    TimelineResolver,
    descendants,
    drift_for_time,
)
from tests.helpers.node_fixtures import anchored, satellite, snapshot_of, spine

CONFIG = LayoutConfig()


def _scenario():
    return snapshot_of(
        spine("A", clip_out=10.0, x=0.0, y=400.0),
        anchored("B", "A", "APPEND", node_type="SPINE"),
        anchored("C", "A", "STACK"),
    )


def test_unanchored_node_keeps_stored_coordinates() -> None:
    resolver = AnchorResolver(snapshot_of(spine("A", x=12.0, y=-40.0)), config=CONFIG)
    assert resolver.resolve("A") == Point(12.0, -40.0)


def test_append_and_stack_scenario() -> None:
    resolver = AnchorResolver(_scenario(), config=CONFIG)
    widths = resolver.widths

    a = resolver.resolve("A")
    b = resolver.resolve("B")
    c = resolver.resolve("C")

    assert b.x == a.x + widths.column_width("A") + CONFIG.spine_gap
    assert b.y == a.y
    assert c.x == a.x + widths.left_offset("A")
    assert c.y == a.y - CONFIG.satellite_height - CONFIG.stack_gap


def test_prepend_sits_left_of_parent_with_its_own_width() -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0, x=1000.0, y=0.0),
        anchored("P", "A", "PREPEND", clip_out=15.0),
    )
    resolver = AnchorResolver(snapshot, config=CONFIG)

    assert resolver.resolve("P") == Point(1000.0 - 300.0 - CONFIG.satellite_gap, 0.0)


def test_prepend_accounts_for_parent_left_offset() -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0),
        anchored("C", "A", "STACK"),
        anchored("D", "C", "PREPEND"),
    )
    resolver = AnchorResolver(snapshot, config=CONFIG)

    c = resolver.resolve("C")
    d = resolver.resolve("D")
    assert c.x == 250.0
    assert d.x == c.x - 200.0 - CONFIG.satellite_gap


def test_spine_gap_exceeds_satellite_gap_on_appends() -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0),
        anchored("B", "A", "APPEND", node_type="SPINE"),
        anchored("S", "A", "APPEND"),
    )
    resolver = AnchorResolver(snapshot, config=CONFIG)
    assert resolver.resolve("B").x > resolver.resolve("S").x


def test_track_drift_moves_node_up_by_track_height() -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0),
        anchored("S", "A", "APPEND", drift_y=2),
    )
    resolver = AnchorResolver(snapshot, config=CONFIG)
    assert resolver.resolve("S").y == -2 * CONFIG.pixels_per_track


def test_cycle_is_detected_with_path() -> None:
    snapshot = snapshot_of(
        satellite("a", anchor_id="b", connection_mode="APPEND"),
        satellite("b", anchor_id="a", connection_mode="APPEND"),
    )
    with pytest.raises(CycleDetected) as exc_info:
        AnchorResolver(snapshot, config=CONFIG).resolve("a")
    assert exc_info.value.path[0] == exc_info.value.path[-1]
    assert exc_info.value.code == "cycle"


def test_missing_parent_raises_orphaned_anchor() -> None:
    snapshot = snapshot_of(anchored("a", "ghost", "STACK"))
    with pytest.raises(OrphanedAnchorError) as exc_info:
        AnchorResolver(snapshot, config=CONFIG).resolve("a")
    assert exc_info.value.anchor_id == "ghost"


def test_long_chain_resolves() -> None:
    nodes = [spine("n0", clip_out=10.0)]
    nodes += [anchored(f"n{i}", f"n{i - 1}", "APPEND", node_type="SPINE") for i in range(1, 300)]
    resolver = AnchorResolver(snapshot_of(*nodes), config=CONFIG)
    assert resolver.resolve("n299").x > resolver.resolve("n298").x


def test_timeline_positions_follow_connection_modes() -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0),
        anchored("B", "A", "APPEND", node_type="SPINE", clip_out=6.0, drift_x=1.0),
        anchored("C", "A", "STACK", drift_x=2.5, drift_y=1),
        anchored("P", "A", "PREPEND", clip_out=4.0),
    )
    timeline = TimelineResolver(snapshot, CONFIG)

    assert timeline.resolve("A").time == 0.0
    assert timeline.resolve("B").time == 11.0
    assert timeline.resolve("C").time == 2.5
    assert timeline.resolve("C").track == 2
    assert timeline.resolve("P").time == -4.0
    assert timeline.resolve("B").generation == 1


@pytest.mark.parametrize("mode", ["STACK", "PREPEND", "APPEND"])
def test_drift_for_time_inverts_timeline(mode: str) -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0),
        anchored("N", "A", "APPEND", node_type="SPINE", clip_out=3.0),
        anchored("X", "A", "STACK", clip_out=7.0),
    )
    node = snapshot.require("X")
    drift = drift_for_time(snapshot, node, "N", mode, target_time=4.0, config=CONFIG)

    moved = node.model_copy(update={"anchor_id": "N", "connection_mode": mode, "drift_x": drift})
    assert TimelineResolver(snapshot.with_nodes([moved]), CONFIG).absolute_time("X") == 4.0


def test_descendants_cover_whole_subtree_once() -> None:
    snapshot = snapshot_of(
        spine("A"),
        anchored("B", "A", "APPEND"),
        anchored("C", "B", "STACK"),
        anchored("D", "C", "PREPEND"),
        spine("free"),
    )
    assert sorted(descendants(snapshot, "A")) == ["B", "C", "D"]
    assert descendants(snapshot, "free") == []


def _stack_tower(height: int) -> list:
    nodes = [spine("t0", x=0.0, y=0.0)]
    nodes += [anchored(f"t{i}", f"t{i - 1}", "STACK") for i in range(1, height)]
    return nodes


def test_deep_chain_listed_leaf_first_resolves_without_recursion() -> None:
    config = LayoutConfig(max_chain_hops=5000)
    snapshot = snapshot_of(*reversed(_stack_tower(1500)))
    resolver = AnchorResolver(snapshot, config=config)
    timeline = TimelineResolver(snapshot, config)

    step = config.satellite_height + config.stack_gap
    assert resolver.resolve("t1499") == Point(0.0, -1499 * step)
    assert resolver.widths.column_width("t0") == config.base_width
    assert timeline.resolve("t1499").generation == 1499
    assert timeline.resolve("t1499").track == 1499


def test_chain_longer_than_hop_limit_is_structural() -> None:
    config = LayoutConfig(max_chain_hops=3)
    snapshot = snapshot_of(*_stack_tower(6))

    assert AnchorResolver(snapshot, config=config).resolve("t3").y < 0
    with pytest.raises(ChainTooDeepError) as exc_info:
        AnchorResolver(snapshot, config=config).resolve("t5")
    assert exc_info.value.code == "corrupt_chain"
    with pytest.raises(ChainTooDeepError):
        TimelineResolver(snapshot, config).resolve("t4")


@pytest.mark.parametrize(
    ("node_id", "target", "expected"),
    [
        ("C", Point(60.0, 400.0 - 180.0 - 50.0 - 120.0), (3.0, 1)),
        ("B", Point(200.0 + 100.0 + 40.0, 0.0), (2.0, 0)),
        ("P", Point(-200.0 - 50.0 - 40.0, 400.0), (2.0, 0)),
    ],
)
def test_offset_to_drift_inverts_parent_offset(
    node_id: str, target: Point, expected: tuple[float, int]
) -> None:
    snapshot = snapshot_of(
        spine("A", clip_out=10.0, x=0.0, y=400.0),
        anchored("B", "A", "APPEND", node_type="SPINE"),
        anchored("C", "A", "STACK"),
        anchored("P", "A", "PREPEND"),
    )
    resolver = AnchorResolver(snapshot, config=CONFIG)
    assert resolver.offset_to_drift(snapshot.require(node_id), target) == expected
