"""Quest progress tracking and claims.

Routes:
- GET  /api/quests?period=day|month
- POST /api/quests/progress   {"quest_id": "...", "delta": 1, "period": "day"}
- POST /api/quests/claim      {"quest_id": "...", "period": "day"}
- GET  /api/quests/stats

Progress can only be recorded against quests on the current board of the period.
Claiming credits the quest reward once; with QUEST_CLAIMS_USE_BOOSTS enabled the
reward goes through the boost engine first.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import and_, or_

from auth import current_handle, require_user
from boosts import boosted_amount, total_boost_percentage
from clock import as_naive_utc, day_key, month_key, utcnow
from errors import AlreadyClaimed, InvalidInput, NotCompleted, NotFound
from extensions import db, limiter
from ledger import credit, locked_account, unit_of_work
from models_quests import PERIOD_DAY, PERIOD_MONTH, PERIODS, QuestDefinition, QuestProgress


quests_api = Blueprint("quests_api", __name__)


@dataclass
class ClaimResult:
    points_awarded: int
    base_points: int
    boost_percentage: int


def period_key(period: str, now) -> str:
    if period == PERIOD_MONTH:
        return month_key(now)
    return day_key(now)


def _normalize_period(period) -> str:
    period = (period or PERIOD_DAY).strip().lower()
    if period not in PERIODS:
        raise InvalidInput("period must be 'day' or 'month'")
    return period


def _current_definition(quest_id: str, period: str, now) -> QuestDefinition:
    definition = QuestDefinition.query.filter_by(
        quest_id=(quest_id or "").strip(), period=period, period_key=period_key(period, now)
    ).one_or_none()
    if definition is None:
        raise NotFound("Quest not found for the current period")
    return definition


def _find_progress(handle: str, definition: QuestDefinition) -> QuestProgress | None:
    return QuestProgress.query.filter_by(
        user_handle=handle, quest_id=definition.quest_id, period_key=definition.period_key
    ).one_or_none()


def _add_progress(handle: str, definition: QuestDefinition, delta: int, now) -> QuestProgress:
    row = _find_progress(handle, definition)
    if row is None:
        row = QuestProgress(
            user_handle=handle,
            quest_id=definition.quest_id,
            period_key=definition.period_key,
            progress=0,
            completed=False,
            claimed=False,
        )
        db.session.add(row)

    row.progress = int(row.progress or 0) + delta
    if not row.completed and row.progress >= int(definition.requirement):
        row.completed = True
        row.completed_at = now
    db.session.flush()
    return row


def update_progress(handle: str, quest_id: str, delta, period: str = PERIOD_DAY, now=None) -> QuestProgress:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta < 0:
        raise InvalidInput("delta must be a non-negative integer")
    period = _normalize_period(period)
    now = as_naive_utc(now) if now else utcnow()

    definition = _current_definition(quest_id, period, now)
    with unit_of_work(handle):
        locked_account(handle)
        row = _add_progress(handle, definition, delta, now)
    return row


def record_signal(handle: str, quest_type: str, amount: int, now=None) -> list[QuestProgress]:
    """Add `amount` to every current daily and monthly quest of `quest_type`."""
    if amount <= 0:
        return []
    now = as_naive_utc(now) if now else utcnow()
    definitions = (
        QuestDefinition.query.filter(QuestDefinition.type == quest_type)
        .filter(
            or_(
                and_(QuestDefinition.period == PERIOD_DAY, QuestDefinition.period_key == day_key(now)),
                and_(QuestDefinition.period == PERIOD_MONTH, QuestDefinition.period_key == month_key(now)),
            )
        )
        .all()
    )
    if not definitions:
        return []

    with unit_of_work(handle):
        locked_account(handle)
        rows = [_add_progress(handle, d, amount, now) for d in definitions]
    return rows


def _use_boosts() -> bool:
    return bool(current_app.config.get("QUEST_CLAIMS_USE_BOOSTS", True))


def claim(handle: str, quest_id: str, period: str = PERIOD_DAY, now=None, use_boost: bool | None = None) -> ClaimResult:
    period = _normalize_period(period)
    now = as_naive_utc(now) if now else utcnow()
    if use_boost is None:
        use_boost = _use_boosts()

    definition = _current_definition(quest_id, period, now)
    base = int(definition.reward or 0)

    with unit_of_work(handle, conflict=AlreadyClaimed):
        locked_account(handle)
        row = _find_progress(handle, definition)
        if row is not None and row.claimed:
            raise AlreadyClaimed()
        if row is None or not row.completed:
            raise NotCompleted()

        pct = total_boost_percentage(handle, now) if use_boost else 0
        points = boosted_amount(base, pct)
        row.claimed = True
        row.claimed_at = now
        if points > 0:
            credit(handle, points, f"Completed quest: {definition.title}")

    current_app.logger.info("Quest %s claimed by %s: %s points (+%s%%)", definition.quest_id, handle, points, pct)
    return ClaimResult(points_awarded=points, base_points=base, boost_percentage=pct)


def current_quests(period: str, now=None) -> list[QuestDefinition]:
    now = as_naive_utc(now) if now else utcnow()
    return (
        QuestDefinition.query.filter_by(period=period, period_key=period_key(period, now))
        .order_by(QuestDefinition.quest_id.asc())
        .all()
    )


def quest_board(handle: str | None, period: str = PERIOD_DAY, now=None) -> dict:
    now = as_naive_utc(now) if now else utcnow()
    quests = current_quests(period, now)
    progress = []
    if handle and quests:
        progress = (
            QuestProgress.query.filter_by(user_handle=handle, period_key=period_key(period, now))
            .filter(QuestProgress.quest_id.in_([q.quest_id for q in quests]))
            .all()
        )
    return {
        "period": period,
        "period_key": period_key(period, now),
        "quests": [q.to_dict() for q in quests],
        "user_progress": [p.to_dict() for p in progress],
    }


def quest_stats(handle: str, now=None) -> dict:
    now = as_naive_utc(now) if now else utcnow()
    rows = QuestProgress.query.filter_by(user_handle=handle).all()
    today = [r for r in rows if r.period_key == day_key(now)]
    return {
        "today_completed": sum(1 for r in today if r.completed),
        "today_total": len(today),
        "total_completed": sum(1 for r in rows if r.completed),
        "total_claimed": sum(1 for r in rows if r.claimed),
    }


@quests_api.get("/api/quests")
def api_quests():
    period = _normalize_period(request.args.get("period"))
    return jsonify({"success": True, **quest_board(current_handle(), period)})


@quests_api.post("/api/quests/progress")
def api_quest_progress():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    row = update_progress(handle, data.get("quest_id"), data.get("delta"), data.get("period") or PERIOD_DAY)
    return jsonify({"success": True, "progress": row.to_dict()})


@quests_api.post("/api/quests/claim")
@limiter.limit("30 per minute")
def api_quest_claim():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    result = claim(handle, data.get("quest_id"), data.get("period") or PERIOD_DAY)
    return jsonify({"success": True, **asdict(result)})


@quests_api.get("/api/quests/stats")
def api_quest_stats():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "stats": None})
    return jsonify({"success": True, "stats": quest_stats(handle)})
