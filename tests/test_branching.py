import pytest

from zeno.client.branching import ROOT, MessageTree, clamp
from zeno.models import Message


def msg(id, role="user", parent=None):
    return Message(id=id, role=role, content=id, parent_id=parent)


@pytest.fixture
def tree():
    # u1 -> (a1 | a2); a1 -> u2 -> a3; second root r2
    return MessageTree(
        [
            msg("u1"),
            msg("a1", "assistant", "u1"),
            msg("a2", "assistant", "u1"),
            msg("u2", "user", "a1"),
            msg("a3", "assistant", "u2"),
            msg("r2"),
        ]
    )


def ids(path):
    return [m.id for m in path]


def assert_linked(path):
    assert path[0].parent_id is None
    for previous, current in zip(path, path[1:]):
        assert current.parent_id == previous.id


def test_default_selection_follows_first_children(tree):
    path = tree.active_path({})

    assert ids(path) == ["u1", "a1", "u2", "a3"]
    assert_linked(path)


def test_selection_switches_branches(tree):
    assert ids(tree.active_path({"u1": 1})) == ["u1", "a2"]
    assert ids(tree.active_path({ROOT: 1})) == ["r2"]


def test_out_of_range_selection_clamps(tree):
    assert ids(tree.active_path({"u1": 99})) == ["u1", "a2"]
    assert ids(tree.active_path({"u1": -5})) == ids(tree.active_path({}))


def test_active_path_is_deterministic(tree):
    selection = {"u1": 0, "a1": 0}

    assert ids(tree.active_path(selection)) == ids(tree.active_path(selection))


def test_children_and_positions(tree):
    assert ids(tree.children("u1")) == ["a1", "a2"]
    assert ids(tree.children(None)) == ["u1", "r2"]
    assert tree.child_count("a3") == 0
    assert tree.sibling_position("a2") == 1
    assert "a3" in tree and len(tree) == 6


def test_add_returns_sibling_position_and_rejects_duplicates(tree):
    assert tree.add(msg("a4", "assistant", "u1")) == 2

    with pytest.raises(ValueError):
        tree.add(msg("a4", "assistant", "u1"))


def test_orphans_are_not_on_the_path():
    tree = MessageTree([msg("x", parent="missing"), msg("root")])

    assert ids(tree.active_path({})) == ["root"]


def test_clamp():
    assert clamp(5, 3) == 2
    assert clamp(-1, 3) == 0
    assert clamp(1, 3) == 1
    assert clamp(4, 0) == 0
