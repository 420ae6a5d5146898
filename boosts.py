"""Boost engine: time-bounded point multipliers from owned NFTs.

Routes:
- GET  /api/boosts
- POST /api/boosts/activate     {"source_id": "...", "percentage": 10}
- POST /api/boosts/deactivate   {"source_id": "..."}

Live boosts (active and not yet expired) add up: +10% and +15% give +25%.
apply_boost() is a pure read; nothing here sweeps expired rows.
"""

from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from auth import current_handle, require_user
from clock import as_naive_utc, utcnow
from errors import InvalidInput, NotFound
from extensions import db
from ledger import locked_account, unit_of_work
from models_boosts import Boost


boosts_api = Blueprint("boosts_api", __name__)

MAX_BOOST_PERCENTAGE = 100


def _duration() -> timedelta:
    return timedelta(days=int(current_app.config.get("BOOST_DURATION_DAYS", 30)))


def _validate_percentage(percentage) -> int:
    if isinstance(percentage, bool):
        raise InvalidInput("percentage must be an integer")
    try:
        percentage = int(percentage)
    except (TypeError, ValueError):
        raise InvalidInput("percentage must be an integer")
    if percentage < 1 or percentage > MAX_BOOST_PERCENTAGE:
        raise InvalidInput(f"percentage must be between 1 and {MAX_BOOST_PERCENTAGE}")
    return percentage


def activate(handle: str, source_id: str, percentage, now=None, duration: timedelta | None = None) -> Boost:
    """Create or re-arm the boost for (user, source)."""
    source_id = (source_id or "").strip()
    if not source_id or len(source_id) > 128:
        raise InvalidInput("source_id is required")
    percentage = _validate_percentage(percentage)
    now = as_naive_utc(now) if now else utcnow()
    expires_at = now + (duration if duration is not None else _duration())

    with unit_of_work(handle):
        locked_account(handle)
        boost = Boost.query.filter_by(user_handle=handle, source_id=source_id).one_or_none()
        if boost is None:
            boost = Boost(user_handle=handle, source_id=source_id)
            db.session.add(boost)
        boost.percentage = percentage
        boost.is_active = True
        boost.activated_at = now
        boost.expires_at = expires_at

    current_app.logger.info("Boost %s activated for %s: +%s%% until %s", source_id, handle, percentage, expires_at)
    return boost


def deactivate(handle: str, source_id: str) -> Boost:
    with unit_of_work(handle):
        boost = Boost.query.filter_by(user_handle=handle, source_id=(source_id or "").strip()).one_or_none()
        if boost is None:
            raise NotFound("Boost not found")
        boost.is_active = False
    return boost


def active_boosts(handle: str, now=None) -> list[Boost]:
    now = as_naive_utc(now) if now else utcnow()
    return (
        Boost.query.filter(Boost.user_handle == handle)
        .filter(Boost.is_active.is_(True))
        .filter(Boost.expires_at.isnot(None))
        .filter(Boost.expires_at > now)
        .all()
    )


def total_boost_percentage(handle: str, now=None) -> int:
    return sum(int(b.percentage or 0) for b in active_boosts(handle, now))


def boosted_amount(base_points: int, total_pct: int) -> int:
    # floor(base * (1 + pct/100)) without float rounding
    return (int(base_points) * (100 + int(total_pct))) // 100


def apply_boost(handle: str, base_points: int, now=None) -> int:
    return boosted_amount(base_points, total_boost_percentage(handle, now))


@boosts_api.get("/api/boosts")
def api_list_boosts():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "boosts": [], "total_percentage": 0})
    now = utcnow()
    boosts = Boost.query.filter_by(user_handle=handle).order_by(Boost.activated_at.desc()).all()
    return jsonify({
        "success": True,
        "boosts": [b.to_dict(now) for b in boosts],
        "total_percentage": sum(int(b.percentage or 0) for b in boosts if b.is_live(now)),
    })


@boosts_api.post("/api/boosts/activate")
def api_activate_boost():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    boost = activate(handle, data.get("source_id"), data.get("percentage"))
    return jsonify({
        "success": True,
        "boost": boost.to_dict(),
        "message": f"+{boost.percentage}% point boost activated!",
    })


@boosts_api.post("/api/boosts/deactivate")
def api_deactivate_boost():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    boost = deactivate(handle, data.get("source_id"))
    return jsonify({"success": True, "boost": boost.to_dict()})
