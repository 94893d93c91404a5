from __future__ import annotations

import pytest

from adapters.layout.anchor_chain import AnchorChainLayoutEngine, compute_tree_bounds
from domain.errors import MalformedNodeError
from domain.models import LayoutConfig, Node
from tests.helpers.node_fixtures import anchored, load_canvas_fixture, satellite, spine


def _layout(nodes, config: LayoutConfig | None = None):
    return AnchorChainLayoutEngine(config).compute_layout(nodes)


def test_scenario_append_and_stack_positions() -> None:
    config = LayoutConfig(spine_gap=50.0, satellite_gap=25.0)
    plan = _layout(
        [
            spine("A", clip_out=10.0, x=0.0, y=400.0),
            anchored("B", "A", "APPEND", node_type="SPINE"),
            anchored("C", "A", "STACK", drift_x=0.0),
        ],
        config,
    )
    placed = plan.by_id()
    a, b, c = placed["A"], placed["B"], placed["C"]

    assert a.column_width == 200.0
    assert b.position.x == a.position.x + a.column_width + config.spine_gap
    assert c.position.x == a.position.x + a.left_offset
    assert c.position.y == a.position.y - c.size.height - config.stack_gap
    assert not plan.inconsistent
    assert plan.root_id == "A"


def test_positioned_nodes_carry_size_generation_and_duration() -> None:
    plan = _layout(
        [
            spine("A", clip_out=10.0),
            anchored("B", "A", "APPEND", node_type="SPINE", clip_out=15.0),
            anchored("C", "B", "STACK"),
        ]
    )
    placed = plan.by_id()

    assert placed["B"].size.width == 300.0
    assert placed["B"].size.height == LayoutConfig().spine_height
    assert placed["C"].size.height == LayoutConfig().satellite_height
    assert placed["C"].timeline is not None
    assert placed["C"].timeline.generation == 2
    assert placed["B"].duration == 15.0
    assert [child.node_id for child in placed["B"].attached_children] == ["C"]


def test_edges_expose_mode_handles() -> None:
    plan = _layout([spine("A"), anchored("P", "A", "PREPEND"), anchored("S", "A", "STACK")])
    edges = {edge.child_id: edge for edge in plan.edges}

    assert edges["P"].source_handle == "anchor-left"
    assert edges["P"].target_handle == "tether-right"
    assert edges["S"].source_handle == "anchor-top"
    assert edges["S"].edge_id == "edge-A-S"


def test_cycle_falls_back_to_stored_coordinates_and_flags_plan() -> None:
    document = load_canvas_fixture("paradox.json")

    plan = _layout(document.nodes)

    assert plan.inconsistent
    assert {issue.node_id for issue in plan.issues} == {"a", "b"}
    assert {issue.code for issue in plan.issues} == {"cycle"}
    placed = plan.by_id()
    assert (placed["a"].position.x, placed["a"].position.y) == (0.0, 0.0)
    assert placed["a"].timeline is None
    assert placed["root"].timeline is not None


def test_orphaned_anchor_is_reported() -> None:
    plan = _layout([spine("A"), anchored("S", "ghost", "STACK", x=5.0, y=6.0)])

    assert [issue.code for issue in plan.issues] == ["orphaned_anchor"]
    assert plan.by_id()["S"].position.x == 5.0
    assert plan.edges == []


def test_malformed_record_degrades_to_bucket() -> None:
    plan = _layout([spine("A"), Node(id="S", type="SATELLITE", anchor_id="A", x=9.0)])

    assert plan.issues[0].code == "malformed"
    assert plan.by_id()["S"].zone == "BUCKET"
    assert plan.by_id()["S"].position.x == 9.0


def test_strict_layout_raises_on_malformed_record() -> None:
    with pytest.raises(MalformedNodeError):
        _layout(
            [spine("A"), Node(id="S", type="SATELLITE", anchor_id="A")],
            LayoutConfig(strict=True),
        )


def test_attic_items_form_a_row_above_their_spine() -> None:
    config = LayoutConfig()
    plan = _layout(
        [
            spine("A", clip_out=10.0, x=0.0, y=400.0),
            satellite("p1", attic_parent_id="A"),
            satellite("p2", attic_parent_id="A"),
        ],
        config,
    )
    placed = plan.by_id()

    attic_top = 400.0 - config.top_zone_height - config.attic_margin_top - config.attic_height
    offset_y = (config.attic_height - config.attic_item_height) / 2
    assert placed["p1"].zone == "ATTIC"
    assert (placed["p1"].position.x, placed["p1"].position.y) == (0.0, attic_top + offset_y)
    assert placed["p2"].position.x == config.attic_item_width + config.attic_item_gap
    assert placed["p2"].size.width == config.attic_item_width
    assert not plan.inconsistent


def test_attic_on_missing_spine_is_reported() -> None:
    plan = _layout([spine("A"), satellite("p", attic_parent_id="ghost", x=3.0, y=4.0)])
    assert [issue.code for issue in plan.issues] == ["orphaned_attic"]
    assert plan.by_id()["p"].position.x == 3.0


def test_bucket_nodes_keep_stored_coordinates() -> None:
    plan = _layout([spine("A"), satellite("loose", x=-1000.0, y=20.0), spine("extra", x=77.0)])
    placed = plan.by_id()

    assert placed["loose"].zone == "BUCKET"
    assert (placed["loose"].position.x, placed["loose"].position.y) == (-1000.0, 20.0)
    assert placed["extra"].zone == "BUCKET"


def test_plan_preserves_input_order_and_covers_every_node() -> None:
    document = load_canvas_fixture("documentary.json")
    plan = _layout(document.nodes)

    assert [positioned.node_id for positioned in plan.nodes] == [node.id for node in document.nodes]
    assert not plan.inconsistent


def test_tree_bounds_ignore_bucket() -> None:
    plan = _layout([spine("A", x=0.0, y=0.0), satellite("loose", x=-1000.0)])
    bounds = compute_tree_bounds(plan)

    assert bounds is not None
    assert bounds.min_x == 0.0
    assert bounds.max_x == 200.0
    assert compute_tree_bounds(_layout([satellite("only")])) is None


def test_plan_serializes_to_dict() -> None:
    payload = _layout([spine("A"), anchored("S", "A", "STACK")]).to_dict()

    assert payload["root_id"] == "A"
    assert payload["inconsistent"] is False
    assert {node["id"] for node in payload["nodes"]} == {"A", "S"}
    assert payload["edges"][0]["mode"] == "STACK"


def test_empty_canvas_lays_out_empty_plan() -> None:
    plan = _layout([])
    assert plan.nodes == []
    assert plan.root_id is None


def test_existing_double_successor_is_reported_as_slot_conflict() -> None:
    plan = _layout(
        [
            spine("A"),
            anchored("B", "A", "APPEND", node_type="SPINE"),
            anchored("C", "A", "APPEND", node_type="SPINE"),
        ]
    )

    assert [issue.code for issue in plan.issues] == ["slot_conflict"]
    assert plan.issues[0].node_id == "A"
    assert "B, C" in plan.issues[0].message


def _spine_chain(length: int) -> list[Node]:
    nodes = [spine("n0", x=0.0, y=0.0)]
    nodes += [anchored(f"n{i}", f"n{i - 1}", "APPEND", node_type="SPINE") for i in range(1, length)]
    return nodes


def test_long_chain_listed_deepest_first_is_fully_placed() -> None:
    config = LayoutConfig(max_chain_hops=5000)
    plan = _layout(list(reversed(_spine_chain(1500))), config)

    assert not plan.inconsistent
    assert plan.root_id == "n0"
    last = plan.by_id()["n1499"]
    assert last.position.x == 1499 * (config.base_width + config.spine_gap)
    assert last.timeline is not None
    assert last.timeline.generation == 1499


def test_chain_past_hop_limit_is_flagged_not_crashed() -> None:
    plan = _layout(_spine_chain(600))

    flagged = {issue.node_id for issue in plan.issues}
    assert {issue.code for issue in plan.issues} == {"corrupt_chain"}
    assert flagged == {f"n{i}" for i in range(501, 600)}
    assert plan.by_id()["n500"].timeline is not None
    assert len(plan.nodes) == 600


def test_spine_widens_for_its_attic_row() -> None:
    config = LayoutConfig()
    plan = _layout(
        [
            spine("A", clip_out=10.0, x=0.0, y=400.0),
            anchored("B", "A", "APPEND", node_type="SPINE"),
            satellite("p1", attic_parent_id="A"),
            satellite("p2", attic_parent_id="A"),
            satellite("p3", attic_parent_id="A"),
            satellite("q1", attic_parent_id="B"),
        ],
        config,
    )
    placed = plan.by_id()
    row = 3 * (config.attic_item_width + config.attic_item_gap)

    assert placed["A"].column_width == row
    assert placed["B"].position.x == row + config.spine_gap
    assert placed["p3"].rect.x + placed["p3"].rect.width < placed["q1"].rect.x
