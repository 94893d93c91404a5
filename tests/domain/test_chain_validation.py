from __future__ import annotations

from domain.models import LayoutConfig
from domain.services.chain_validation import validate_link
from tests.helpers.node_fixtures import anchored, satellite, snapshot_of, spine


def _primary_sequence():
    return snapshot_of(
        spine("A", clip_out=10.0),
        anchored("B", "A", "APPEND", node_type="SPINE"),
        satellite("S"),
        spine("loose", is_global=True),
    )


def test_valid_link_is_accepted() -> None:
    result = validate_link(_primary_sequence(), "S", "B", "STACK")
    assert result.valid
    assert result.reason is None


def test_missing_parent_is_rejected_first() -> None:
    result = validate_link(_primary_sequence(), "nope", "ghost", "STACK")
    assert not result.valid
    assert result.code == "parent_missing"


def test_missing_child_is_rejected() -> None:
    result = validate_link(_primary_sequence(), "ghost", "A", "STACK")
    assert result.code == "child_missing"


def test_self_link_is_rejected() -> None:
    result = validate_link(_primary_sequence(), "A", "A", "STACK")
    assert result.code == "self_link"


def test_unknown_mode_is_rejected() -> None:
    result = validate_link(_primary_sequence(), "S", "A", "SIDEWAYS")
    assert result.code == "invalid_mode"


def test_anchoring_ancestor_onto_descendant_is_a_cycle() -> None:
    result = validate_link(_primary_sequence(), "A", "B", "APPEND")
    assert not result.valid
    assert result.code == "cycle"
    assert "cyclic" in (result.reason or "")


def test_deep_cycle_is_detected() -> None:
    snapshot = snapshot_of(
        spine("A"),
        anchored("B", "A", "STACK"),
        anchored("C", "B", "STACK"),
        anchored("D", "C", "APPEND"),
    )
    assert validate_link(snapshot, "B", "D", "STACK").code == "cycle"


def test_corrupt_existing_chain_is_reported_instead_of_looping() -> None:
    snapshot = snapshot_of(
        satellite("x", anchor_id="y", connection_mode="STACK"),
        satellite("y", anchor_id="x", connection_mode="STACK"),
        satellite("new"),
    )
    result = validate_link(snapshot, "new", "x", "STACK")
    assert result.code == "corrupt_chain"


def test_chain_longer_than_hop_bound_is_reported() -> None:
    nodes = [spine("n0")]
    nodes += [anchored(f"n{i}", f"n{i - 1}", "STACK") for i in range(1, 20)]
    nodes.append(satellite("new"))
    result = validate_link(snapshot_of(*nodes), "new", "n19", "STACK", config=LayoutConfig(max_chain_hops=10))
    assert result.code == "corrupt_chain"


def test_second_append_spine_is_rejected() -> None:
    result = validate_link(_primary_sequence(), "loose", "A", "APPEND")
    assert not result.valid
    assert result.code == "slot_occupied"
    assert "B" in (result.reason or "")


def test_second_prepend_spine_is_rejected() -> None:
    snapshot = _primary_sequence().with_nodes(
        [anchored("P", "A", "PREPEND", node_type="SPINE"), spine("other", is_global=True)]
    )
    assert validate_link(snapshot, "other", "A", "PREPEND").code == "slot_occupied"


def test_occupied_slot_is_allowed_as_insertion() -> None:
    result = validate_link(_primary_sequence(), "loose", "A", "APPEND", allow_insertion=True)
    assert result.valid


def test_satellites_may_share_a_side_slot() -> None:
    snapshot = _primary_sequence().with_nodes([anchored("T", "A", "APPEND")])
    assert validate_link(snapshot, "S", "A", "APPEND").valid


def test_relinking_current_occupant_to_same_slot_is_valid() -> None:
    assert validate_link(_primary_sequence(), "B", "A", "APPEND").valid
