from datetime import datetime, timedelta

import pytest

from errors import InvalidInput
from models_playtime import DailyPlaytime, GameTitle
from playtime import PlaytimeSnapshot, daily_playtime, game_analytics, ingest, ingest_one, parse_snapshot


NOW = datetime(2024, 5, 10, 12, 0)


def test_first_sighting_sets_baseline_only(app):
    summary = ingest_one("player-1", 730, "CS2", 6000, now=NOW)

    assert summary.new_titles == 1
    assert summary.delta_minutes == 0
    assert DailyPlaytime.query.count() == 0
    assert GameTitle.query.one().cumulative_minutes == 6000


def test_increase_is_attributed_to_today(app):
    ingest_one("player-1", 730, "CS2", 6000, now=NOW - timedelta(days=1))
    summary = ingest_one("player-1", 730, "CS2", 6045, now=NOW)

    assert summary.delta_minutes == 45
    assert summary.titles_started_today == 1
    record = DailyPlaytime.query.one()
    assert record.day == "2024-05-10"
    assert record.minutes == 45


def test_same_snapshot_twice_records_no_extra_delta(app):
    ingest_one("player-1", 730, "CS2", 6000, now=NOW - timedelta(days=1))
    ingest_one("player-1", 730, "CS2", 6045, now=NOW)
    summary = ingest_one("player-1", 730, "CS2", 6045, now=NOW + timedelta(hours=1))

    assert summary.delta_minutes == 0
    assert DailyPlaytime.query.one().minutes == 45


def test_multiple_syncs_accumulate_within_the_day(app):
    ingest_one("player-1", 730, "CS2", 100, now=NOW - timedelta(days=1))
    ingest_one("player-1", 730, "CS2", 130, now=NOW)
    summary = ingest_one("player-1", 730, "CS2", 150, now=NOW + timedelta(hours=2))

    assert summary.titles_started_today == 0
    assert DailyPlaytime.query.one().minutes == 50
    assert GameTitle.query.one().cumulative_minutes == 150


def test_decrease_is_ignored(app):
    ingest_one("player-1", 730, "CS2", 100, now=NOW - timedelta(days=1))
    summary = ingest_one("player-1", 730, "CS2", 80, now=NOW)

    assert summary.delta_minutes == 0
    assert DailyPlaytime.query.count() == 0
    assert GameTitle.query.one().cumulative_minutes == 100


def test_metadata_follows_latest_snapshot(app):
    ingest("player-1", [PlaytimeSnapshot(730, "Counter-Strike", 100)], now=NOW - timedelta(days=1))
    played = datetime(2024, 5, 10, 9, 30)
    ingest("player-1", [PlaytimeSnapshot(730, "CS2", 100, last_played=played, image_url="https://img/cs2.jpg")], now=NOW)

    title = GameTitle.query.one()
    assert title.name == "CS2"
    assert title.image_url == "https://img/cs2.jpg"
    assert title.last_played == played


def test_daily_sum_never_exceeds_cumulative(app):
    ingest_one("player-1", 570, "Dota 2", 0, now=NOW - timedelta(days=3))
    for offset, total in [(2, 60), (1, 90), (0, 200)]:
        ingest_one("player-1", 570, "Dota 2", total, now=NOW - timedelta(days=offset))

    days = daily_playtime("player-1", days=7, now=NOW)
    assert [(d.day, d.minutes) for d in days] == [("2024-05-08", 60), ("2024-05-09", 30), ("2024-05-10", 110)]
    assert sum(d.minutes for d in days) <= GameTitle.query.one().cumulative_minutes


def test_parse_snapshot():
    snap = parse_snapshot({"app_id": "730", "name": "CS2", "playtime": 10, "last_played": 0})

    assert snap.app_id == 730
    assert snap.cumulative_minutes == 10
    assert snap.last_played is None


@pytest.mark.parametrize("raw", [
    {"app_id": "x", "playtime": 10},
    {"app_id": 1, "playtime": -1},
    {"app_id": True, "playtime": 1},
    "not-a-dict",
])
def test_parse_snapshot_rejects_bad_input(raw):
    with pytest.raises(InvalidInput):
        parse_snapshot(raw)


def test_game_analytics(app):
    ingest("player-1", [
        PlaytimeSnapshot(1, "Short", 300),
        PlaytimeSnapshot(2, "Long", 9000),
    ], now=NOW)

    analytics = game_analytics("player-1")
    assert analytics["total_games"] == 2
    assert analytics["total_playtime"] == 9300
    assert analytics["top_games"][0]["name"] == "Long"
    assert analytics["playtime_ranges"]["0-10h"] == 1
    assert analytics["playtime_ranges"]["100-500h"] == 1
    assert game_analytics("nobody") is None
