"""Points summary, point history and leaderboard.

Routes:
- GET /api/points
- GET /api/points/history?days=30
- GET /api/leaderboard?limit=10
- GET /api/leaderboard/me

All of these are read-only and degrade to empty payloads for anonymous callers.
The public board identifies players by User.public_id only.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from auth import current_handle
from extensions import db
from ledger import get_account, point_history, recent_entries
from models_ledger import User


leaderboard_api = Blueprint("leaderboard_api", __name__)

MAX_LEADERBOARD_SIZE = 100


def _int_arg(name: str, default: int, lo: int, hi: int) -> int:
    try:
        value = int(request.args.get(name) or default)
    except ValueError:
        value = default
    return max(lo, min(value, hi))


def top_users(limit: int = 10) -> list[User]:
    return (
        User.query.filter(User.balance > 0)
        .order_by(User.balance.desc(), User.created_at.asc(), User.handle.asc())
        .limit(limit)
        .all()
    )


def user_rank(handle: str) -> int | None:
    """1-based rank by balance; ties share a rank."""
    user = get_account(handle)
    if user is None:
        return None
    higher = db.session.query(db.func.count(User.handle)).filter(User.balance > int(user.balance or 0)).scalar()
    return int(higher or 0) + 1


@leaderboard_api.get("/api/points")
def api_points():
    handle = current_handle()
    user = get_account(handle) if handle else None
    if user is None:
        return jsonify({"success": True, "balance": 0, "level": 1, "entries": []})
    return jsonify({
        "success": True,
        "balance": int(user.balance or 0),
        "level": int(user.level or 1),
        "entries": [e.to_dict() for e in recent_entries(handle)],
    })


@leaderboard_api.get("/api/points/history")
def api_points_history():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "history": []})
    days = _int_arg("days", 30, 1, 365)
    return jsonify({"success": True, "history": point_history(handle, days)})


@leaderboard_api.get("/api/leaderboard")
def api_leaderboard():
    limit = _int_arg("limit", 10, 1, MAX_LEADERBOARD_SIZE)
    rows = []
    for position, user in enumerate(top_users(limit), start=1):
        rows.append({
            "rank": position,
            "player": user.public_id,
            "balance": int(user.balance or 0),
            "level": int(user.level or 1),
            "longest_streak": int(user.longest_streak or 0),
        })
    return jsonify({"success": True, "leaderboard": rows})


@leaderboard_api.get("/api/leaderboard/me")
def api_leaderboard_me():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "rank": None, "balance": 0})
    user = get_account(handle)
    return jsonify({
        "success": True,
        "rank": user_rank(handle),
        "balance": int(user.balance or 0) if user else 0,
    })
