import pytest

from src.matchmaking.match_detector import match_id_for


def test_match_id_ignores_argument_order():
    assert match_id_for("alice", "bob") == match_id_for("bob", "alice")


def test_match_id_is_stable_across_calls():
    first = match_id_for("user-1", "user-2")
    assert first == match_id_for("user-1", "user-2")
    assert len(first) == 40
    int(first, 16)  # hex digest


def test_different_pairs_get_different_ids():
    ids = {
        match_id_for("alice", "bob"),
        match_id_for("alice", "carol"),
        match_id_for("bob", "carol"),
    }
    assert len(ids) == 3


def test_ids_containing_separators_do_not_collide():
    """("a|b", "c") and ("a", "b|c") would join to the same string without the length prefix."""
    assert match_id_for("a|b", "c") != match_id_for("a", "b|c")
    assert match_id_for("a_b", "c") != match_id_for("a", "b_c")


def test_self_pair_is_rejected():
    with pytest.raises(ValueError):
        match_id_for("alice", "alice")
