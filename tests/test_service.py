import threading
from datetime import date

import pytest

from chorebank import Actor, ChoreBank, CompletionState, ManualClock, PayDayMode, ToggleOutcome
from chorebank.events import ALL_CHORES_DONE, CHORE_COMPLETED_TODAY
from chorebank.exceptions import (
    ChoreNotFoundError,
    PasscodeLockedError,
    ProfileNotFoundError,
    ValidationError,
)

MONDAY = date(2024, 1, 1)


def _ledger_total(bank: ChoreBank, profile_id: str) -> int:
    history = sum(record.amount for record in bank.earnings_history(profile_id))
    pending = sum(record.amount for record in bank.pending_cash_outs(profile_id))
    return history + pending


def test_profile_lifecycle_and_cascade(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava", pay_day_config={"mode": "manual", "day": "Sat"})
    ben = bank.add_profile("Ben")
    assert [profile.name for profile in bank.profiles()] == ["Ava", "Ben"]
    assert ava.pay_day_config.mode is PayDayMode.MANUAL
    assert ben.show_potential_earnings is False

    chore = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    bank.toggle_completion(ava.id, chore.id, MONDAY)
    bank.request_cash_out(ava.id)
    bank.award_bonus([ava.id], 50)

    bank.delete_profile(ava.id)
    assert [profile.id for profile in bank.profiles()] == [ben.id]
    state = bank.store.state
    for collection in (state.chores, state.pending_cash_outs, state.bonus_notifications, state.earnings_history):
        assert ava.id not in collection
    with pytest.raises(ProfileNotFoundError):
        bank.chores_for(ava.id)
    assert bank.audit_log.latest().action == "delete_profile"


def test_profile_validation(bank: ChoreBank) -> None:
    with pytest.raises(ValidationError):
        bank.add_profile("  ")
    with pytest.raises(ValidationError):
        bank.add_profile("Ava", pay_day_config={"mode": "automatic", "day": "Fri"})
    with pytest.raises(ValidationError):
        bank.add_profile("Ava", pay_day_config={"mode": "weekly"})
    ava = bank.add_profile("Ava")
    with pytest.raises(ValidationError):
        bank.update_profile(ava.id, balance=10)
    updated = bank.update_profile(ava.id, show_potential_earnings=True, pay_day_config={"mode": "manual", "day": "Fri"})
    assert updated.show_potential_earnings
    assert updated.pay_day_config.day.label == "Fri"


def test_add_chore_uses_default_value_and_sorts(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    bank.update_parent_settings(default_chore_value=35)
    first = bank.add_chore(ava.id, "Sweep", days=["Mon"], category="Kitchen")
    second = bank.add_chore(ava.id, "Make bed", value=10, days=["Tue"], category="Bedroom")
    assert first.value == 35
    assert [chore.id for chore in bank.chores_for(ava.id)] == [second.id, first.id]
    assert [chore.id for chore in bank.chores_for(ava.id, MONDAY)] == [first.id]

    with pytest.raises(ValidationError):
        bank.add_chore(ava.id, "Bad", value=-5)
    with pytest.raises(ValidationError):
        bank.add_chore(ava.id, "Bad days", days=["Someday"])


def test_child_toggle_today_flips_and_emits_events(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    trash = bank.add_chore(ava.id, "Trash", value=50, days=["Mon"])
    events = []
    bank.events.register(events.append)

    assert bank.toggle_completion(ava.id, dishes.id, MONDAY) is ToggleOutcome.COMPLETED
    assert [event["event"] for event in events] == [CHORE_COMPLETED_TODAY]

    assert bank.toggle_completion(ava.id, trash.id, "2024-01-01") is ToggleOutcome.COMPLETED
    assert events[-1] == {"event": ALL_CHORES_DONE, "profile": ava.id, "earnings": 150}
    assert bank.current_earnings(ava.id) == 150

    assert bank.toggle_completion(ava.id, trash.id, MONDAY) is ToggleOutcome.CLEARED
    assert bank.current_earnings(ava.id) == 100

    bank.events.unregister(events.append)
    bank.toggle_completion(ava.id, trash.id, MONDAY)
    assert events[-1]["event"] == ALL_CHORES_DONE
    assert len(events) == 3


def test_settled_and_bonus_chores_are_not_toggled(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    bank.request_cash_out(ava.id)

    for actor in Actor:
        assert bank.toggle_completion(ava.id, dishes.id, MONDAY, actor=actor) is ToggleOutcome.IGNORED
    assert bank.chores_for(ava.id)[0].state_on(MONDAY) is CompletionState.PENDING_CASH_OUT

    bonus = bank.award_bonus([ava.id], 200)[0]
    assert bank.toggle_completion(ava.id, bonus.id, MONDAY, actor=Actor.PARENT) is ToggleOutcome.IGNORED

    with pytest.raises(ChoreNotFoundError):
        bank.toggle_completion(ava.id, "missing", MONDAY)


def test_child_past_toggle_queues_approval(bank: ChoreBank, clock: ManualClock) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon", "Sun"])
    sunday = date(2023, 12, 31)

    assert bank.toggle_completion(ava.id, dishes.id, sunday) is ToggleOutcome.APPROVAL_REQUESTED
    assert bank.toggle_completion(ava.id, dishes.id, sunday) is ToggleOutcome.APPROVAL_REQUESTED
    queue = bank.past_chore_approvals(ava.id)
    assert [entry.id for entry in queue] == [f"{dishes.id}-2023-12-31"]
    assert bank.chores_for(ava.id)[0].state_on(sunday) is None

    assert bank.toggle_completion(ava.id, dishes.id, sunday, actor=Actor.PARENT) is ToggleOutcome.COMPLETED
    assert bank.logger.entries("past_chore_queued")


def test_past_chore_approve_and_dismiss(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Sat", "Sun"])
    saturday, sunday = date(2023, 12, 30), date(2023, 12, 31)
    bank.toggle_completion(ava.id, dishes.id, saturday)
    bank.toggle_completion(ava.id, dishes.id, sunday)
    first, second = bank.past_chore_approvals(ava.id)

    assert bank.dismiss_past_chore(ava.id, first.id) == first
    assert bank.chores_for(ava.id)[0].state_on(saturday) is None

    assert bank.approve_past_chore(ava.id, second.id) == second
    assert bank.chores_for(ava.id)[0].state_on(sunday) is CompletionState.COMPLETED
    assert bank.past_chore_approvals(ava.id) == ()

    assert bank.approve_past_chore(ava.id, second.id) is None
    assert bank.dismiss_past_chore(ava.id, first.id) is None


def test_approve_all_and_dismiss_all(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Sat", "Sun"])
    trash = bank.add_chore(ava.id, "Trash", value=40, days=["Sun"])
    bank.toggle_completion(ava.id, dishes.id, "2023-12-30")
    bank.toggle_completion(ava.id, trash.id, "2023-12-31")

    approved = bank.approve_all_past_chores(ava.id)
    assert len(approved) == 2
    assert bank.current_earnings(ava.id) == 140

    bank.toggle_completion(ava.id, dishes.id, "2023-12-31")
    assert len(bank.dismiss_all_past_chores(ava.id)) == 1
    assert bank.current_earnings(ava.id) == 140


def test_deleting_chore_discards_its_approvals_but_keeps_snapshots(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon", "Sun"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    record = bank.request_cash_out(ava.id)
    bank.toggle_completion(ava.id, dishes.id, "2023-12-31")

    bank.delete_chore(ava.id, dishes.id)
    assert bank.past_chore_approvals(ava.id) == ()
    assert bank.pending_cash_outs(ava.id)[0].completions_snapshot == record.completions_snapshot


def test_cash_out_with_no_earnings_is_a_no_op(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    assert bank.request_cash_out(ava.id) is None
    assert bank.pending_cash_outs(ava.id) == ()


def test_cash_out_review_and_approval(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon", "Sun"])
    trash = bank.add_chore(ava.id, "Trash", value=40, days=["Mon"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    bank.toggle_completion(ava.id, dishes.id, "2023-12-31", actor=Actor.PARENT)
    bank.toggle_completion(ava.id, trash.id, MONDAY)

    record = bank.request_cash_out(ava.id)
    assert record.amount == 240
    assert [(entry.chore_id, entry.date) for entry in record.completions_snapshot] == [
        (dishes.id, "2023-12-31"),
        (dishes.id, "2024-01-01"),
        (trash.id, "2024-01-01"),
    ]
    assert bank.current_earnings(ava.id) == 0
    assert _ledger_total(bank, ava.id) == 240
    assert [entry.id for entry in bank.unseen_cash_outs(ava.id)] == [record.id]

    reviewed = bank.review_cash_out(record, {(trash.id, "2024-01-01"): False})
    assert reviewed.amount == 200
    assert bank.pending_cash_outs(ava.id)[0].amount == 240

    approved = bank.approve_reviewed_cash_out(ava.id, reviewed)
    assert approved.amount == 200
    assert len(approved.completions_snapshot) == 2
    assert bank.pending_cash_outs(ava.id) == ()
    assert [entry.id for entry in bank.earnings_history(ava.id)] == [record.id]
    chores = {chore.id: chore for chore in bank.chores_for(ava.id)}
    assert chores[dishes.id].dates_in(CompletionState.CASHED_OUT) == ["2023-12-31", "2024-01-01"]
    assert chores[trash.id].state_on(MONDAY) is None

    assert bank.approve_reviewed_cash_out(ava.id, reviewed) is None
    assert bank.audit_log.entries(action="approve_cash_out")[0].details["denied"] == 1


def test_approval_rejects_entries_outside_the_request(bank: ChoreBank) -> None:
    from dataclasses import replace

    from chorebank.models import CompletionSnapshot

    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    record = bank.request_cash_out(ava.id)
    forged = replace(
        record,
        completions_snapshot=[*record.completions_snapshot, CompletionSnapshot("other", "Other", 999, "2024-01-01")],
    )
    with pytest.raises(ValidationError):
        bank.approve_reviewed_cash_out(ava.id, forged)
    assert [entry.id for entry in bank.pending_cash_outs(ava.id)] == [record.id]
    assert bank.chores_for(ava.id)[0].state_on(MONDAY) is CompletionState.PENDING_CASH_OUT


def test_ledger_total_never_decreases_without_override(bank: ChoreBank, clock: ManualClock) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon", "Tue", "Wed"])
    totals = [_ledger_total(bank, ava.id)]
    for _ in range(3):
        bank.toggle_completion(ava.id, dishes.id, clock.today())
        record = bank.request_cash_out(ava.id)
        totals.append(_ledger_total(bank, ava.id))
        bank.approve_reviewed_cash_out(ava.id, record)
        totals.append(_ledger_total(bank, ava.id))
        clock.advance(days=1)
    assert totals == sorted(totals)
    assert totals[-1] == 300

    record_id = bank.earnings_history(ava.id)[0].id
    bank.update_history_amount(ava.id, record_id, 50)
    assert _ledger_total(bank, ava.id) == 250
    audit = bank.audit_log.entries(action="update_history_amount")[0]
    assert audit.details == {"profile": ava.id, "previous": 100, "amount": 50}
    with pytest.raises(ValidationError):
        bank.update_history_amount(ava.id, record_id, -1)
    with pytest.raises(ValidationError):
        bank.update_history_amount(ava.id, "missing", 10)


def test_mark_cash_outs_seen(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    bank.request_cash_out(ava.id)
    assert bank.mark_cash_outs_seen(ava.id) == 1
    assert bank.unseen_cash_outs(ava.id) == ()
    assert bank.mark_cash_outs_seen(ava.id) == 0


def test_bonus_award_to_two_children(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    ben = bank.add_profile("Ben")
    bank.add_chore(ava.id, "Dishes", value=100, days=["Mon"])

    chores = bank.award_bonus([ava.id, ben.id], 500, "Great week")
    assert len(chores) == 2
    for chore in chores:
        assert chore.is_bonus
        assert chore.name == "Great week"
        assert chore.state_on(MONDAY) is CompletionState.COMPLETED
        assert chore.one_off_date == "2024-01-01"
    assert chores[0].order == 10001
    assert chores[1].order == 10000
    assert bank.current_earnings(ava.id) == 500
    assert bank.current_earnings(ben.id) == 500

    notification = bank.consume_next_bonus_notification(ava.id)
    assert notification.amount == 500
    assert notification.note == "Great week"
    assert bank.consume_next_bonus_notification(ava.id) is None
    assert bank.consume_next_bonus_notification(ben.id).amount == 500
    assert bank.consume_next_bonus_notification(ben.id) is None


def test_bonus_validation_mutates_nothing(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    with pytest.raises(ValidationError):
        bank.award_bonus([ava.id], 0)
    with pytest.raises(ValidationError):
        bank.award_bonus([], 100)
    with pytest.raises(ProfileNotFoundError):
        bank.award_bonus([ava.id, "ghost"], 100)
    assert bank.chores_for(ava.id) == []
    assert bank.pending_bonus_notifications(ava.id) == ()


def test_projection_scenario(bank: ChoreBank) -> None:
    ava = bank.add_profile(
        "Ava",
        pay_day_config={"mode": "manual", "day": "Fri"},
        show_potential_earnings=True,
    )
    chore = bank.add_chore(ava.id, "Practice", value=100, days=["Mon", "Wed", "Fri"])
    bank.toggle_completion(ava.id, chore.id, MONDAY)
    assert bank.project_potential_earnings(ava.id) == 300

    bank.request_cash_out(ava.id)
    assert bank.current_earnings(ava.id) == 0
    assert bank.project_potential_earnings(ava.id) == 200


def test_projection_is_zero_when_opted_out_or_anytime(bank: ChoreBank) -> None:
    opted_out = bank.add_profile("Ava", pay_day_config={"mode": "manual", "day": "Fri"})
    anytime = bank.add_profile("Ben", show_potential_earnings=True)
    for profile in (opted_out, anytime):
        bank.add_chore(profile.id, "Practice", value=100, days=["Mon"])
    assert bank.project_potential_earnings(opted_out.id) == 0
    assert bank.project_potential_earnings(anytime.id) == 0


def test_totals_and_graph(bank: ChoreBank, clock: ManualClock) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=100, days=["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"])
    for _ in range(2):
        bank.toggle_completion(ava.id, dishes.id, clock.today())
        bank.approve_reviewed_cash_out(ava.id, bank.request_cash_out(ava.id))
        clock.advance(days=1)

    totals = bank.earnings_totals(ava.id)
    assert totals.as_dict() == {"week": 200, "month": 200, "threeMonths": 200, "sixMonths": 200, "year": 200}
    graph = bank.earnings_graph(ava.id, "week")
    assert [(point.date, point.total) for point in graph] == [("2024-01-01", 100), ("2024-01-02", 100)]
    with pytest.raises(ValidationError):
        bank.earnings_graph(ava.id, "decade")

    clock.advance(days=40)
    assert bank.earnings_totals(ava.id).month == 0
    assert bank.earnings_graph(ava.id, "month") == []
    assert len(bank.earnings_graph(ava.id, "3 months")) == 2


def test_cash_out_visibility(bank: ChoreBank) -> None:
    anytime = bank.add_profile("Ava")
    saturday = bank.add_profile("Ben", pay_day_config={"mode": "manual", "day": "Sat"})
    monday = bank.add_profile("Cy", pay_day_config={"mode": "manual", "day": "Mon"})
    auto = bank.add_profile("Di", pay_day_config={"mode": "automatic", "day": "Mon", "time": "18:00"})

    assert bank.cash_out_available(anytime.id)
    assert not bank.cash_out_available(saturday.id)
    assert bank.cash_out_available(monday.id)
    assert not bank.cash_out_available(auto.id)
    assert bank.cash_out_available(auto.id, actor=Actor.PARENT)


def test_parent_settings_and_passcode(bank: ChoreBank) -> None:
    assert bank.verify_passcode("")
    settings = bank.update_parent_settings(custom_categories=["Garage", " Garage ", ""], default_bonus_value=250)
    assert settings.custom_categories == ["Garage"]
    assert settings.default_bonus_value == 250
    with pytest.raises(ValidationError):
        bank.update_parent_settings(default_bonus_value=0)
    with pytest.raises(ValidationError):
        bank.set_passcode("12a4")

    bank.set_passcode("1234")
    assert bank.has_passcode()
    assert bank.verify_passcode("1234")
    for _ in range(5):
        assert not bank.verify_passcode("0000")
    with pytest.raises(PasscodeLockedError):
        bank.verify_passcode("1234")

    bank.clock.advance(minutes=16)
    assert bank.verify_passcode("1234")
    bank.set_passcode(None)
    assert not bank.has_passcode()


def test_update_chore_and_reorder(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    first = bank.add_chore(ava.id, "Sweep", value=10, category="Kitchen")
    second = bank.add_chore(ava.id, "Dishes", value=10, category="Kitchen")
    assert bank.reorder_chores(ava.id, second.id, first.id)
    assert [chore.id for chore in bank.chores_for(ava.id)] == [second.id, first.id]

    moved = bank.update_chore(ava.id, second.id, category="Bedroom", value="25", days=["Tue"])
    assert moved.value == 25
    assert moved.order == 0
    assert bank.chores_for(ava.id)[1].order == 0
    with pytest.raises(ValidationError):
        bank.update_chore(ava.id, second.id, colour="red")


def test_persist_callback_runs_after_commit(clock: ManualClock) -> None:
    from chorebank.exceptions import PersistenceError

    written = []
    bank = ChoreBank(clock=clock, persist=written.append)
    ava = bank.add_profile("Ava")
    assert written[-1]["profiles"]["data"][0]["id"] == ava.id

    def failing(_blob) -> None:
        raise PersistenceError("disk full")

    broken = ChoreBank(clock=clock, persist=failing)
    broken.add_profile("Ben")
    assert [profile.name for profile in broken.profiles()] == ["Ben"]
    assert broken.logger.entries("persistence_error")[0]["error"] == "disk full"


def test_concurrent_writers_persist_in_commit_order(clock: ManualClock) -> None:
    saved = []
    first_flush = threading.Event()
    release = threading.Event()

    def persist(blob) -> None:
        names = [profile["name"] for profile in blob["profiles"]["data"]]
        if names == ["Ava"]:
            first_flush.set()
            release.wait(timeout=5)
        saved.append(names)

    bank = ChoreBank(clock=clock, persist=persist)
    slow = threading.Thread(target=bank.add_profile, args=("Ava",))
    slow.start()
    assert first_flush.wait(timeout=5)

    fast = threading.Thread(target=bank.add_profile, args=("Ben",))
    fast.start()
    fast.join(timeout=0.2)
    assert fast.is_alive()

    release.set()
    slow.join(timeout=5)
    fast.join(timeout=5)
    assert saved == [["Ava"], ["Ava", "Ben"]]
    assert saved[-1] == [profile.name for profile in bank.profiles()]


def test_ledger_events_log_formatted_amounts(bank: ChoreBank) -> None:
    ava = bank.add_profile("Ava")
    dishes = bank.add_chore(ava.id, "Dishes", value=1250, days=["Mon"])
    bank.toggle_completion(ava.id, dishes.id, MONDAY)
    record = bank.request_cash_out(ava.id)
    bank.approve_reviewed_cash_out(ava.id, record)
    bank.award_bonus([ava.id], 500)

    assert bank.logger.entries("cash_out_requested")[0]["display"] == "$12.50"
    assert bank.logger.entries("cash_out_approved")[0]["display"] == "$12.50"
    assert bank.logger.entries("bonus_awarded")[0]["display"] == "$5.00"
