import threading
from datetime import datetime, timedelta

import pytest

from boosts import activate
from errors import AlreadyClaimed, Conflict, InvalidInput, NotCompleted, NotFound
from extensions import db
from ledger import reconcile
from models_ledger import LedgerEntry
from models_quests import QuestDefinition, QuestProgress
from quests import claim, quest_board, quest_stats, record_signal, update_progress


NOW = datetime(2024, 5, 10, 12, 0)


def _quest(quest_id="quest_2024-05-10_0", quest_type="playtime", requirement=30, reward=75,
           period="day", period_key="2024-05-10", title="Morning Warrior"):
    db.session.add(QuestDefinition(
        quest_id=quest_id,
        period=period,
        period_key=period_key,
        type=quest_type,
        title=title,
        description="",
        requirement=requirement,
        reward=reward,
        icon="sunrise",
    ))
    db.session.commit()


def test_progress_completes_at_requirement(app):
    _quest()

    row = update_progress("player-1", "quest_2024-05-10_0", 20, now=NOW)
    assert row.progress == 20
    assert row.completed is False

    row = update_progress("player-1", "quest_2024-05-10_0", 15, now=NOW)
    assert row.progress == 35
    assert row.completed is True
    assert row.completed_at == NOW


def test_completed_never_reverts(app):
    _quest()
    update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)
    row = update_progress("player-1", "quest_2024-05-10_0", 0, now=NOW)

    assert row.completed is True


def test_progress_on_another_days_quest_is_not_found(app):
    _quest()

    with pytest.raises(NotFound):
        update_progress("player-1", "quest_2024-05-10_0", 5, now=NOW + timedelta(days=1))


@pytest.mark.parametrize("delta", [-1, 1.5, True, None])
def test_progress_rejects_bad_delta(app, delta):
    _quest()
    with pytest.raises(InvalidInput):
        update_progress("player-1", "quest_2024-05-10_0", delta, now=NOW)


def test_claim_requires_completion(app):
    _quest()
    update_progress("player-1", "quest_2024-05-10_0", 10, now=NOW)

    with pytest.raises(NotCompleted) as exc:
        claim("player-1", "quest_2024-05-10_0", now=NOW)

    assert isinstance(exc.value, Conflict)
    assert reconcile("player-1") == (0, 0)


def test_claim_credits_once(app):
    _quest()
    update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)

    result = claim("player-1", "quest_2024-05-10_0", now=NOW, use_boost=False)
    assert result.points_awarded == 75

    with pytest.raises(AlreadyClaimed):
        claim("player-1", "quest_2024-05-10_0", now=NOW, use_boost=False)

    assert reconcile("player-1") == (75, 75)
    entry = LedgerEntry.query.one()
    assert entry.reason == "Completed quest: Morning Warrior"
    assert QuestProgress.query.one().claimed is True


def test_claim_applies_live_boosts(app):
    _quest(reward=100)
    activate("player-1", "0xcard-a", 10, now=NOW - timedelta(days=1))
    activate("player-1", "0xcard-b", 15, now=NOW - timedelta(days=1))
    update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)

    result = claim("player-1", "quest_2024-05-10_0", now=NOW)

    assert result.base_points == 100
    assert result.boost_percentage == 25
    assert result.points_awarded == 125
    assert reconcile("player-1") == (125, 125)


def test_claim_ignores_boosts_when_disabled(app):
    app.config["QUEST_CLAIMS_USE_BOOSTS"] = False
    _quest(reward=100)
    activate("player-1", "0xcard-a", 10, now=NOW - timedelta(days=1))
    update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)

    assert claim("player-1", "quest_2024-05-10_0", now=NOW).points_awarded == 100


def test_record_signal_feeds_daily_and_monthly_quests_of_that_type(app):
    _quest()
    _quest(quest_id="quest_2024-05-10_1", quest_type="game_count", requirement=3, title="Genre Explorer")
    _quest(quest_id="monthly_2024-05_checkin_5", quest_type="checkin", requirement=5, reward=20,
           period="month", period_key="2024-05", title="5 Check-ins")
    _quest(quest_id="quest_2024-05-09_0", period_key="2024-05-09")

    rows = record_signal("player-1", "playtime", 45, now=NOW)
    assert [(r.quest_id, r.progress, r.completed) for r in rows] == [("quest_2024-05-10_0", 45, True)]

    rows = record_signal("player-1", "checkin", 1, now=NOW)
    assert [(r.quest_id, r.progress) for r in rows] == [("monthly_2024-05_checkin_5", 1)]

    assert record_signal("player-1", "social", 1, now=NOW) == []
    assert record_signal("player-1", "playtime", 0, now=NOW) == []


def test_board_and_stats(app):
    _quest()
    _quest(quest_id="quest_2024-05-10_1", quest_type="game_count", requirement=3, title="Genre Explorer")
    update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)
    claim("player-1", "quest_2024-05-10_0", now=NOW)

    board = quest_board("player-1", "day", now=NOW)
    assert [q["id"] for q in board["quests"]] == ["quest_2024-05-10_0", "quest_2024-05-10_1"]
    assert board["user_progress"][0]["claimed"] is True
    assert quest_board(None, "day", now=NOW)["user_progress"] == []

    stats = quest_stats("player-1", now=NOW)
    assert stats == {"today_completed": 1, "today_total": 1, "total_completed": 1, "total_claimed": 1}


def test_simultaneous_claims_credit_once(file_app):
    app = file_app
    with app.app_context():
        _quest()
        update_progress("player-1", "quest_2024-05-10_0", 30, now=NOW)

    outcomes = []
    barrier = threading.Barrier(4)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                claim("player-1", "quest_2024-05-10_0", now=NOW)
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
        assert reconcile("player-1") == (75, 75)
        assert LedgerEntry.query.filter_by(user_handle="player-1").count() == 1
