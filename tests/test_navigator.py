"""Tests for the menu navigator state machine."""

from __future__ import annotations

import random

import pytest

from sshdeck.navigator import Back, Cancelled, MenuKey, MenuNavigator, Selected


def test_down_from_last_wraps_to_first() -> None:
    navigator = MenuNavigator(["a", "b", "c"], index=2)

    navigator.press(MenuKey.DOWN)

    assert navigator.index == 0


def test_up_from_first_wraps_to_last() -> None:
    navigator = MenuNavigator(["a", "b", "c"])

    navigator.press(MenuKey.UP)

    assert navigator.index == 2


def test_scripted_sequence_tracks_index() -> None:
    navigator = MenuNavigator(["a", "b", "c", "d"])
    seen: list[int] = []

    for key in ("down", "down", "up", "down", "down", "down"):
        assert navigator.press(key) is None
        seen.append(navigator.index)

    assert seen == [1, 2, 1, 2, 3, 0]
    assert navigator.press("enter") == Selected(0)


@pytest.mark.parametrize("size", [1, 2, 5, 9])
def test_index_stays_in_range(size: int) -> None:
    rng = random.Random(size)
    navigator = MenuNavigator([str(i) for i in range(size)])

    for _ in range(200):
        navigator.press(rng.choice([MenuKey.UP, MenuKey.DOWN]))
        assert 0 <= navigator.index < size


def test_single_item_menu_wraps_onto_itself() -> None:
    navigator = MenuNavigator(["only"])

    assert navigator.run(["up", "down", "up", "enter"]) == Selected(0)


def test_back_only_when_allowed() -> None:
    root = MenuNavigator(["a", "b"])
    nested = MenuNavigator(["a", "b"], allow_back=True)

    assert root.press("b") is None
    assert root.index == 0
    assert nested.press("B") == Back()


def test_cancel_keys() -> None:
    assert MenuNavigator(["a"]).press("q") == Cancelled()
    assert MenuNavigator(["a"]).press("escape") == Cancelled()


def test_other_keys_are_ignored() -> None:
    navigator = MenuNavigator(["a", "b", "c"], index=1)

    assert navigator.run(["x", "left", "tab", "1"]) is None
    assert navigator.index == 1


def test_outcome_is_final() -> None:
    navigator = MenuNavigator(["a", "b"])

    assert navigator.run(["down", "enter", "up", "enter"]) == Selected(1)
    assert navigator.press("up") == Selected(1)
    assert navigator.index == 1


def test_empty_menu_rejected() -> None:
    with pytest.raises(ValueError):
        MenuNavigator([])


def test_from_name_maps_textual_keys() -> None:
    assert MenuKey.from_name("enter") is MenuKey.CONFIRM
    assert MenuKey.from_name("up") is MenuKey.UP
    assert MenuKey.from_name("z") is MenuKey.OTHER
