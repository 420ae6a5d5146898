"""Playtime delta tracker.

Routes:
- POST /api/playtime/sync        {"games": [{"app_id", "name", "playtime", "last_played", "image_url"}]}
- GET  /api/playtime/analytics
- GET  /api/playtime/daily?days=7

The game-library source reports cumulative minutes per title. We diff against the
stored cumulative value and attribute positive increments to today's record.
A title seen for the first time only sets the baseline: its accumulated playtime
cannot be attributed to any particular day.
This module never awards points; the sync route forwards the deltas to quests.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request

from auth import current_handle, require_user
from clock import as_naive_utc, day_key, from_epoch, utcnow
from errors import InvalidInput
from extensions import db, limiter
from ledger import locked_account, unit_of_work
from models_playtime import DailyPlaytime, GameTitle
from quests import record_signal


playtime_api = Blueprint("playtime_api", __name__)

MAX_SNAPSHOTS_PER_SYNC = 5000

# (label, lower bound inclusive, upper bound exclusive) in minutes
PLAYTIME_BUCKETS = [
    ("0-10h", 0, 600),
    ("10-50h", 600, 3000),
    ("50-100h", 3000, 6000),
    ("100-500h", 6000, 30000),
    ("500h+", 30000, None),
]


@dataclass
class PlaytimeSnapshot:
    app_id: int
    name: str
    cumulative_minutes: int
    last_played: datetime | None = None
    image_url: str | None = None


@dataclass
class IngestSummary:
    titles_seen: int = 0
    new_titles: int = 0
    delta_minutes: int = 0
    # titles that got their first daily record for today during this sync
    titles_started_today: int = 0
    deltas: dict[int, int] = field(default_factory=dict)


def parse_snapshot(raw) -> PlaytimeSnapshot:
    if not isinstance(raw, dict):
        raise InvalidInput("Each game must be an object")
    app_id = raw.get("app_id", raw.get("appId"))
    if isinstance(app_id, bool):
        raise InvalidInput("app_id must be an integer")
    try:
        app_id = int(app_id)
        minutes = int(raw.get("playtime", raw.get("cumulative_minutes")))
    except (TypeError, ValueError):
        raise InvalidInput("app_id and playtime must be integers")
    if minutes < 0:
        raise InvalidInput("playtime cannot be negative")

    last_played = raw.get("last_played", raw.get("lastPlayed"))
    try:
        last_played = from_epoch(last_played)
    except (TypeError, ValueError, OverflowError, OSError):
        raise InvalidInput("last_played must be a unix timestamp")

    return PlaytimeSnapshot(
        app_id=app_id,
        name=str(raw.get("name") or "")[:255],
        cumulative_minutes=minutes,
        last_played=last_played,
        image_url=(str(raw.get("image_url") or raw.get("imageUrl") or "")[:500] or None),
    )


def _apply_snapshot(handle: str, snap: PlaytimeSnapshot, today: str, now: datetime, summary: IngestSummary) -> None:
    if snap.cumulative_minutes < 0:
        raise InvalidInput("playtime cannot be negative")

    title = GameTitle.query.filter_by(user_handle=handle, app_id=snap.app_id).one_or_none()
    summary.titles_seen += 1

    if title is None:
        db.session.add(GameTitle(
            user_handle=handle,
            app_id=snap.app_id,
            name=snap.name,
            image_url=snap.image_url,
            cumulative_minutes=snap.cumulative_minutes,
            last_played=snap.last_played,
            first_seen_at=now,
            updated_at=now,
        ))
        summary.new_titles += 1
        return

    delta = snap.cumulative_minutes - int(title.cumulative_minutes or 0)
    if delta > 0:
        record = DailyPlaytime.query.filter_by(user_handle=handle, app_id=snap.app_id, day=today).one_or_none()
        if record is None:
            db.session.add(DailyPlaytime(
                user_handle=handle,
                app_id=snap.app_id,
                game_name=snap.name or title.name,
                day=today,
                minutes=delta,
            ))
            summary.titles_started_today += 1
        else:
            record.minutes = int(record.minutes or 0) + delta
        title.cumulative_minutes = snap.cumulative_minutes
        summary.delta_minutes += delta
        summary.deltas[snap.app_id] = summary.deltas.get(snap.app_id, 0) + delta

    # Metadata follows the latest snapshot even when the playtime did not move.
    if snap.name:
        title.name = snap.name
    if snap.image_url:
        title.image_url = snap.image_url
    if snap.last_played is not None:
        title.last_played = snap.last_played
    title.updated_at = now
    db.session.flush()


def ingest(handle: str, snapshots, now=None) -> IngestSummary:
    """Apply one library sync atomically."""
    now = as_naive_utc(now) if now else utcnow()
    today = day_key(now)
    snapshots = list(snapshots)
    if len(snapshots) > MAX_SNAPSHOTS_PER_SYNC:
        raise InvalidInput(f"At most {MAX_SNAPSHOTS_PER_SYNC} games per sync")

    summary = IngestSummary()
    with unit_of_work(handle):
        locked_account(handle)
        for snap in snapshots:
            _apply_snapshot(handle, snap, today, now, summary)

    current_app.logger.info(
        "Playtime sync %s: %s titles, %s new, +%s min today",
        handle, summary.titles_seen, summary.new_titles, summary.delta_minutes,
    )
    return summary


def ingest_one(handle: str, app_id: int, name: str, cumulative_minutes: int, now=None) -> IngestSummary:
    return ingest(handle, [PlaytimeSnapshot(app_id=app_id, name=name, cumulative_minutes=cumulative_minutes)], now)


def daily_playtime(handle: str, days: int = 7, now=None) -> list[DailyPlaytime]:
    now = as_naive_utc(now) if now else utcnow()
    since = day_key(now - timedelta(days=days - 1))
    return (
        DailyPlaytime.query.filter(DailyPlaytime.user_handle == handle)
        .filter(DailyPlaytime.day >= since)
        .order_by(DailyPlaytime.day.asc(), DailyPlaytime.app_id.asc())
        .all()
    )


def game_analytics(handle: str) -> dict | None:
    games = GameTitle.query.filter_by(user_handle=handle).all()
    if not games:
        return None

    total = sum(int(g.cumulative_minutes or 0) for g in games)
    top = sorted(games, key=lambda g: g.cumulative_minutes or 0, reverse=True)[:10]
    recent = sorted((g for g in games if g.last_played), key=lambda g: g.last_played, reverse=True)[:5]

    ranges = {}
    for label, lo, hi in PLAYTIME_BUCKETS:
        ranges[label] = sum(
            1 for g in games
            if (g.cumulative_minutes or 0) >= lo and (hi is None or (g.cumulative_minutes or 0) < hi)
        )

    return {
        "total_games": len(games),
        "total_playtime": total,
        "average_playtime": total / len(games),
        "top_games": [
            {
                "name": g.name,
                "playtime": g.cumulative_minutes,
                "percentage": (g.cumulative_minutes / total) * 100 if total > 0 else 0,
            }
            for g in top
        ],
        "recent_games": [g.to_dict() for g in recent],
        "playtime_ranges": ranges,
    }


@playtime_api.post("/api/playtime/sync")
@limiter.limit("30 per hour")
def api_playtime_sync():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    games = data.get("games")
    if not isinstance(games, list):
        raise InvalidInput("games must be a list")

    summary = ingest(handle, [parse_snapshot(g) for g in games])

    # Feed today's playtime quests; the sync itself is already committed.
    try:
        if summary.delta_minutes > 0:
            record_signal(handle, "playtime", summary.delta_minutes)
        if summary.titles_started_today > 0:
            record_signal(handle, "game_count", summary.titles_started_today)
    except Exception:
        current_app.logger.exception("Quest progress update after playtime sync failed for %s", handle)

    out = asdict(summary)
    out["deltas"] = {str(k): v for k, v in summary.deltas.items()}
    return jsonify({"success": True, **out})


@playtime_api.get("/api/playtime/analytics")
def api_playtime_analytics():
    handle = current_handle()
    return jsonify({"success": True, "analytics": game_analytics(handle) if handle else None})


@playtime_api.get("/api/playtime/daily")
def api_playtime_daily():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "days": []})
    try:
        days = max(1, min(int(request.args.get("days") or 7), 90))
    except ValueError:
        days = 7
    return jsonify({"success": True, "days": [r.to_dict() for r in daily_playtime(handle, days)]})
