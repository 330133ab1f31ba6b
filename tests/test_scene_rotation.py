"""
Tests for per-channel scene rotation.
"""

import pytest

from govee_touch.errors import ConfigError
from govee_touch.scene_rotation import SceneRotation


@pytest.fixture
def rotation():
    return SceneRotation({"NIGHT": ["A", "B", "C"], "FUN": ["X"]}, {4: "NIGHT", 5: "FUN"})


def test_rotation_wraps_after_last_scene(rotation):
    scenes = []
    for _ in range(4):
        selection = rotation.next_scene(4)
        scenes.append(selection.scene)
        rotation.commit(selection)

    assert scenes == ["A", "B", "C", "A"]
    assert rotation.cursor(4) == 1


def test_next_scene_does_not_advance(rotation):
    assert rotation.next_scene(4).scene == "A"
    assert rotation.next_scene(4).scene == "A"
    assert rotation.cursor(4) == 0


def test_stale_selection_does_not_advance_twice(rotation):
    selection = rotation.next_scene(4)
    rotation.commit(selection)

    assert rotation.commit(selection) == 1
    assert rotation.next_scene(4).scene == "B"


def test_channels_have_separate_cursors(rotation):
    rotation.commit(rotation.next_scene(4))

    assert rotation.next_scene(5).scene == "X"
    rotation.commit(rotation.next_scene(5))
    assert rotation.cursor(5) == 0
    assert rotation.cursor(4) == 1


def test_duplicate_scenes_across_collections_are_allowed():
    rotation = SceneRotation({"ONE": ["A", "B"], "TWO": ["B", "A"]}, {1: "ONE", 2: "TWO"})

    assert rotation.next_scene(1).scene == "A"
    assert rotation.next_scene(2).scene == "B"


def test_unknown_collection_is_a_config_error():
    with pytest.raises(ConfigError):
        SceneRotation({"NIGHT": ["A"]}, {4: "DAY"})


def test_empty_collection_is_a_config_error():
    with pytest.raises(ConfigError):
        SceneRotation({"NIGHT": []}, {4: "NIGHT"})


def test_unassigned_channel(rotation):
    assert not rotation.handles(7)
    with pytest.raises(KeyError):
        rotation.next_scene(7)


def test_state(rotation):
    state = rotation.get_state()

    assert state[4] == {"collection": "NIGHT", "cursor": 0, "next_scene": "A"}
    assert set(state) == {4, 5}
