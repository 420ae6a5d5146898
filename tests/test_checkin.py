import threading
from datetime import datetime, timedelta

import pytest

import checkin
from checkin import calculate_check_in_points, check_in_history, check_in_status, confirm_settlement, perform_check_in
from errors import AlreadyCheckedInToday, Conflict, InvalidInput, NotFound
from extensions import db
from ledger import ensure_user, reconcile
from models_checkin import CheckIn
from models_ledger import LedgerEntry, User


NOW = datetime(2024, 5, 10, 12, 0)


def _set_streak(handle, streak, last_check_in):
    user = ensure_user(handle)
    user.current_streak = streak
    user.longest_streak = streak
    user.last_check_in = last_check_in
    db.session.commit()


@pytest.mark.parametrize(
    "streak_day,expected",
    [(1, 10), (6, 10), (7, 15), (13, 15), (14, 20), (70, 60), (700, 60)],
)
def test_calculate_check_in_points(streak_day, expected):
    assert calculate_check_in_points(streak_day) == expected


def test_first_check_in_starts_streak(app):
    result = perform_check_in("player-1", now=NOW)

    assert result.points == 10
    assert result.streak_day == 1
    user = db.session.get(User, "player-1")
    assert user.balance == 10
    assert user.current_streak == 1
    assert user.longest_streak == 1
    assert user.last_check_in == NOW


def test_second_check_in_same_day_conflicts(app):
    perform_check_in("player-1", now=NOW)

    with pytest.raises(AlreadyCheckedInToday) as exc:
        perform_check_in("player-1", now=NOW + timedelta(hours=5))

    assert isinstance(exc.value, Conflict)
    assert exc.value.status_code == 409
    assert reconcile("player-1") == (10, 10)
    assert CheckIn.query.filter_by(user_handle="player-1").count() == 1


def test_consecutive_day_extends_streak_with_weekly_bonus(app):
    _set_streak("player-1", 6, NOW - timedelta(days=1))

    result = perform_check_in("player-1", now=NOW)

    assert result.streak_day == 7
    assert result.points == 15
    entry = LedgerEntry.query.filter_by(user_handle="player-1").one()
    assert entry.amount == 15
    assert entry.reason == "Daily check-in (Day 7)"


def test_gap_resets_streak_but_keeps_longest(app):
    _set_streak("player-1", 12, NOW - timedelta(days=3))

    result = perform_check_in("player-1", now=NOW)

    assert result.streak_day == 1
    assert result.points == 10
    user = db.session.get(User, "player-1")
    assert user.current_streak == 1
    assert user.longest_streak == 12


def test_check_in_just_after_midnight_counts_as_next_day(app):
    perform_check_in("player-1", now=datetime(2024, 5, 9, 23, 59))
    result = perform_check_in("player-1", now=datetime(2024, 5, 10, 0, 1))

    assert result.streak_day == 2


def test_unique_constraint_backstops_a_missed_gate(app, monkeypatch):
    perform_check_in("player-1", now=NOW)
    monkeypatch.setattr(checkin, "_find_check_in", lambda handle, day: None)

    with pytest.raises(AlreadyCheckedInToday):
        perform_check_in("player-1", now=NOW)

    assert reconcile("player-1") == (10, 10)
    assert CheckIn.query.count() == 1


def test_settlement_updates_status_only(app):
    perform_check_in("player-1", settlement_ref="0xabc", now=NOW)

    row = confirm_settlement("player-1", "2024-05-10", "failed")

    assert row.settlement_status == "failed"
    assert row.settlement_ref == "0xabc"
    assert reconcile("player-1") == (10, 10)


def test_settlement_moves_out_of_pending_once(app):
    perform_check_in("player-1", settlement_ref="0xabc", now=NOW)
    confirm_settlement("player-1", "2024-05-10", "confirmed")

    with pytest.raises(Conflict):
        confirm_settlement("player-1", "2024-05-10", "failed")
    with pytest.raises(Conflict):
        confirm_settlement("player-1", "2024-05-10", "confirmed")

    assert CheckIn.query.one().settlement_status == "confirmed"
    assert reconcile("player-1") == (10, 10)


def test_settlement_rejects_unknown_status_and_missing_day(app):
    perform_check_in("player-1", now=NOW)

    with pytest.raises(InvalidInput):
        confirm_settlement("player-1", "2024-05-10", "pending")
    with pytest.raises(NotFound):
        confirm_settlement("player-1", "2024-05-09", "confirmed")


def test_status_defaults_for_unknown_user(app):
    status = check_in_status(None, now=NOW)

    assert status["can_check_in"] is False
    assert status["current_streak"] == 0
    assert status["next_check_in_points"] == 10
    assert check_in_status("nobody", now=NOW) == status


def test_status_after_check_in(app):
    _set_streak("player-1", 5, NOW - timedelta(days=1))
    before = check_in_status("player-1", now=NOW)
    perform_check_in("player-1", now=NOW)
    after = check_in_status("player-1", now=NOW)

    assert before["can_check_in"] is True
    assert before["next_check_in_points"] == 10
    assert after["can_check_in"] is False
    assert after["has_checked_in_today"] is True
    assert after["current_streak"] == 6
    # Tomorrow would be day 7.
    assert after["next_check_in_points"] == 15


def test_history_newest_first(app):
    perform_check_in("player-1", now=NOW - timedelta(days=1))
    perform_check_in("player-1", now=NOW)

    assert [c.day for c in check_in_history("player-1")] == ["2024-05-10", "2024-05-09"]


def test_simultaneous_check_ins_credit_once(file_app):
    app = file_app
    with app.app_context():
        ensure_user("player-1")

    outcomes = []
    barrier = threading.Barrier(4)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                perform_check_in("player-1", now=NOW)
                outcomes.append("ok")
            except Conflict:
                outcomes.append("conflict")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "conflict", "conflict", "ok"]
    with app.app_context():
        assert CheckIn.query.count() == 1
        assert reconcile("player-1") == (10, 10)
