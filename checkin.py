"""Daily check-in (streak engine) and its API.

Routes:
- POST /api/check-in              {"settlement_ref": "..."}
- GET  /api/check-in/status
- GET  /api/check-in/history
- POST /api/check-in/settlement   {"handle": "...", "day": "YYYY-MM-DD", "status": "confirmed|failed"}
                                  (payment watcher only, X-Settlement-Key)

Points are credited optimistically at check-in time. Settlement confirmation from
the chain only moves CheckIn.settlement_status, once, out of "pending"; it never
touches the balance.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from flask import Blueprint, current_app, jsonify, request

from auth import current_handle, require_settlement_key, require_user
from clock import as_naive_utc, day_key, utcnow, yesterday_key
from errors import AlreadyCheckedInToday, Conflict, InvalidInput, NotFound
from extensions import db, limiter
from ledger import credit, get_account, locked_account, unit_of_work
from models_checkin import SETTLEMENT_FAILED, SETTLEMENT_PENDING, SETTLEMENT_STATUSES, CheckIn
from quests import record_signal


checkin_api = Blueprint("checkin_api", __name__)

BASE_POINTS = 10
WEEKLY_BONUS = 5
MAX_STREAK_BONUS = 50


@dataclass
class CheckInResult:
    points: int
    streak_day: int
    longest_streak: int


def calculate_check_in_points(streak_day: int) -> int:
    """+5 per full week of streak, capped at +50."""
    bonus = min((max(0, int(streak_day)) // 7) * WEEKLY_BONUS, MAX_STREAK_BONUS)
    return BASE_POINTS + bonus


def _find_check_in(handle: str, day: str) -> CheckIn | None:
    return CheckIn.query.filter_by(user_handle=handle, day=day).one_or_none()


def _next_streak(current_streak: int, last_check_in, now) -> int:
    if last_check_in is not None and day_key(last_check_in) == yesterday_key(now):
        return int(current_streak or 0) + 1
    return 1


def perform_check_in(handle: str, settlement_ref: str | None = None, now=None) -> CheckInResult:
    now = as_naive_utc(now) if now else utcnow()
    today = day_key(now)
    if settlement_ref is not None:
        settlement_ref = str(settlement_ref).strip()[:128] or None

    with unit_of_work(handle, conflict=AlreadyCheckedInToday):
        if _find_check_in(handle, today) is not None:
            raise AlreadyCheckedInToday()

        user = locked_account(handle)
        streak_day = _next_streak(user.current_streak, user.last_check_in, now)
        points = calculate_check_in_points(streak_day)

        db.session.add(CheckIn(
            user_handle=handle,
            day=today,
            points=points,
            streak_day=streak_day,
            settlement_ref=settlement_ref,
            settlement_status=SETTLEMENT_PENDING,
            created_at=now,
            updated_at=now,
        ))
        credit(handle, points, f"Daily check-in (Day {streak_day})")

        user.current_streak = streak_day
        user.longest_streak = max(int(user.longest_streak or 0), streak_day)
        user.last_check_in = now
        result = CheckInResult(points=points, streak_day=streak_day, longest_streak=user.longest_streak)

    current_app.logger.info("Check-in %s day=%s streak=%s points=%s", handle, today, streak_day, points)
    return result


def confirm_settlement(handle: str, day: str, status: str) -> CheckIn:
    status = (status or "").strip().lower()
    if status not in SETTLEMENT_STATUSES or status == SETTLEMENT_PENDING:
        raise InvalidInput("status must be 'confirmed' or 'failed'")

    with unit_of_work(handle):
        check_in = _find_check_in(handle, day)
        if check_in is None:
            raise NotFound("Check-in not found")
        if check_in.settlement_status != SETTLEMENT_PENDING:
            raise Conflict(f"Settlement already {check_in.settlement_status}")
        check_in.settlement_status = status
        check_in.updated_at = utcnow()

    if status == SETTLEMENT_FAILED:
        # Optimistic crediting: no compensating debit.
        current_app.logger.warning(
            "Settlement failed for check-in %s on %s (ref=%s); points were already credited",
            handle, day, check_in.settlement_ref,
        )
    return check_in


def check_in_status(handle: str | None, now=None) -> dict:
    """Advisory status; unknown or anonymous users get the default payload."""
    defaults = {
        "can_check_in": False,
        "has_checked_in_today": False,
        "current_streak": 0,
        "longest_streak": 0,
        "last_check_in": None,
        "next_check_in_points": calculate_check_in_points(1),
    }
    if not handle:
        return defaults
    user = get_account(handle)
    if user is None:
        return defaults

    now = as_naive_utc(now) if now else utcnow()
    checked_in = _find_check_in(handle, day_key(now)) is not None
    if checked_in:
        next_streak = int(user.current_streak or 0) + 1
    else:
        next_streak = _next_streak(user.current_streak, user.last_check_in, now)
    return {
        "can_check_in": not checked_in,
        "has_checked_in_today": checked_in,
        "current_streak": int(user.current_streak or 0),
        "longest_streak": int(user.longest_streak or 0),
        "last_check_in": user.last_check_in.isoformat() if user.last_check_in else None,
        "next_check_in_points": calculate_check_in_points(next_streak),
    }


def check_in_history(handle: str, limit: int = 30) -> list[CheckIn]:
    return (
        CheckIn.query.filter_by(user_handle=handle)
        .order_by(CheckIn.day.desc())
        .limit(limit)
        .all()
    )


@checkin_api.post("/api/check-in")
@limiter.limit("10 per minute")
def api_check_in():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    result = perform_check_in(handle, data.get("settlement_ref"))

    try:
        record_signal(handle, "checkin", 1)
    except Exception:
        current_app.logger.exception("Quest progress update after check-in failed for %s", handle)

    return jsonify({"success": True, **asdict(result)})


@checkin_api.get("/api/check-in/status")
def api_check_in_status():
    return jsonify({"success": True, **check_in_status(current_handle())})


@checkin_api.get("/api/check-in/history")
def api_check_in_history():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "check_ins": []})
    return jsonify({"success": True, "check_ins": [c.to_dict() for c in check_in_history(handle)]})


@checkin_api.post("/api/check-in/settlement")
def api_check_in_settlement():
    require_settlement_key()
    data = request.get_json(silent=True) or {}
    handle = str(data.get("handle") or "").strip()
    if not handle:
        raise InvalidInput("handle is required")
    day = (data.get("day") or "").strip()
    if len(day) != 10:
        raise InvalidInput("day must be YYYY-MM-DD")
    check_in = confirm_settlement(handle, day, data.get("status"))
    return jsonify({"success": True, "check_in": check_in.to_dict()})
