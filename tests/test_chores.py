from datetime import date

import pytest

from chorebank.chores import (
    ALLOWED_TRANSITIONS,
    BONUS_ORDER_BASE,
    Chore,
    ChoreBoard,
    ChoreType,
    CompletionState,
    Weekday,
    category_rank,
    weekdays_from_labels,
)
from chorebank.exceptions import ChoreNotFoundError, InvalidTransitionError

KEY = "2024-01-01"
STATES = [None, *CompletionState]


@pytest.mark.parametrize("source", STATES)
@pytest.mark.parametrize("target", STATES)
def test_only_listed_transitions_are_reachable(source, target) -> None:
    chore = Chore(id="c1", name="Dishes", value=100)
    if source is not None:
        chore.completions[KEY] = source

    if (source, target) in ALLOWED_TRANSITIONS:
        chore.transition(KEY, target)
        assert chore.state_on(KEY) is target
    else:
        with pytest.raises(InvalidTransitionError):
            chore.transition(KEY, target)
        assert chore.state_on(KEY) is source


def test_forward_flow_and_earnings() -> None:
    chore = Chore(id="c1", name="Dishes", value=150)
    chore.mark_completed("2024-01-01")
    chore.mark_completed("2024-01-03")
    assert chore.earned_value() == 300

    chore.mark_pending_cash_out("2024-01-01")
    assert chore.earned_value() == 150
    chore.mark_cashed_out("2024-01-01")
    assert chore.dates_in(CompletionState.CASHED_OUT) == ["2024-01-01"]
    assert chore.dates_in(CompletionState.COMPLETED) == ["2024-01-03"]


def test_is_due_uses_weekdays_or_one_off_date() -> None:
    weekly = Chore(id="w", name="Trash", value=50, days=weekdays_from_labels(["Mon", "Fri"]))
    assert weekly.is_due(date(2024, 1, 1))
    assert not weekly.is_due(date(2024, 1, 2))
    assert weekly.is_due(date(2024, 1, 5))

    once = Chore(
        id="o",
        name="Wash car",
        value=500,
        days=frozenset({Weekday.MONDAY}),
        is_one_off=True,
        one_off_date="2024-01-01",
    )
    assert once.is_due(date(2024, 1, 1))
    assert not once.is_due(date(2024, 1, 8))


def test_weekday_labels_round_trip_through_dict() -> None:
    chore = Chore(
        id="c1",
        name="Feed cat",
        value=25,
        days=frozenset({Weekday.SUNDAY, Weekday.MONDAY}),
        completions={KEY: CompletionState.PENDING_CASH_OUT},
        category="Pets",
    )
    payload = chore.as_dict()
    assert payload["days"] == ["Mon", "Sun"]
    assert payload["completions"] == {KEY: "pending_cash_out"}
    assert Chore.from_dict(payload) == chore
    with pytest.raises(ValueError):
        Weekday.from_label("Funday")


def _board() -> ChoreBoard:
    board = ChoreBoard([])
    for index in range(3):
        board.add(Chore(id=f"k{index}", name=f"Kitchen {index}", value=10, category="Kitchen"))
    board.add(Chore(id="b0", name="Bed", value=10, category="Bedroom"))
    return board


def test_add_assigns_contiguous_order_per_category() -> None:
    board = _board()
    assert [chore.order for chore in board.partition("Kitchen")] == [0, 1, 2]
    assert board.get("b0").order == 0

    bonus = board.add(Chore(id="bonus", name="Bonus", value=500, type=ChoreType.BONUS))
    assert bonus.order == BONUS_ORDER_BASE + 4
    assert bonus not in board.partition(None)


def test_reorder_moves_dragged_chore_into_target_slot() -> None:
    board = _board()
    assert board.reorder("k2", "k0")
    assert [chore.id for chore in board.partition("Kitchen")] == ["k2", "k0", "k1"]

    assert board.reorder("k2", "k1")
    assert [chore.id for chore in board.partition("Kitchen")] == ["k0", "k2", "k1"]
    assert [chore.order for chore in board.partition("Kitchen")] == [0, 1, 2]


def test_reorder_across_categories_is_refused() -> None:
    board = _board()
    assert not board.reorder("k0", "b0")
    assert not board.reorder("k0", "missing")
    assert [chore.id for chore in board.partition("Kitchen")] == ["k0", "k1", "k2"]


def test_remove_and_category_change_repack_partitions() -> None:
    board = _board()
    board.remove("k0")
    assert [(chore.id, chore.order) for chore in board.partition("Kitchen")] == [("k1", 0), ("k2", 1)]

    board.update("k1", category="Bedroom")
    assert [(chore.id, chore.order) for chore in board.partition("Kitchen")] == [("k2", 0)]
    assert [(chore.id, chore.order) for chore in board.partition("Bedroom")] == [("b0", 0), ("k1", 1)]

    with pytest.raises(ChoreNotFoundError):
        board.remove("k0")


def test_sorted_orders_default_then_custom_categories() -> None:
    board = ChoreBoard([])
    board.add(Chore(id="g", name="Garden", value=10, category="Garage"))
    board.add(Chore(id="m", name="Brush teeth", value=10, category="Morning Routine"))
    board.add(Chore(id="u", name="Misc", value=10))
    board.add(Chore(id="k", name="Dishes", value=10, category="Kitchen"))

    assert [chore.id for chore in board.sorted(custom_categories=["Garage"])] == ["m", "k", "u", "g"]
    assert category_rank("Garage", ["Attic", "Garage"]) > category_rank("Attic", ["Attic", "Garage"])


def test_all_done_ignores_bonus_chores() -> None:
    monday = date(2024, 1, 1)
    board = ChoreBoard([])
    board.add(Chore(id="a", name="A", value=100, days=frozenset({Weekday.MONDAY})))
    board.add(Chore(id="b", name="B", value=50, days=frozenset({Weekday.MONDAY})))
    board.add(
        Chore(
            id="bonus",
            name="Bonus",
            value=500,
            type=ChoreType.BONUS,
            days=frozenset({Weekday.MONDAY}),
            is_one_off=True,
            one_off_date="2024-01-01",
        )
    )
    board.get("a").mark_completed("2024-01-01")
    assert not board.all_done_on(monday)

    board.get("b").mark_completed("2024-01-01")
    assert board.all_done_on(monday)
    assert board.earnings_on(monday) == 150
