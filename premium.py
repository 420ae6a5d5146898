"""Premium pass: activation and the 30-day claim track.

Routes:
- GET  /api/premium
- POST /api/premium/activate   {"handle": "...", "settlement_ref": "0x..."}
                               (payment watcher only, X-Settlement-Key)
- POST /api/premium/claim      {"day": 5, "settlement_ref": "0x..."}
- GET  /api/premium/rewards

Every fifth day of the track pays points through the ledger; the other days
grant a collectible emblem.
"""

from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from auth import current_handle, require_settlement_key, require_user
from clock import as_naive_utc, day_key, utcnow
from errors import AlreadyClaimed, Conflict, InvalidInput, NoActivePass
from extensions import db, limiter
from ledger import credit, locked_account, unit_of_work
from models_premium import REWARD_EMBLEM, REWARD_POINTS, PremiumClaim, PremiumPass


premium_api = Blueprint("premium_api", __name__)

TRACK_DAYS = 30
MILESTONE_POINTS = {5: 20, 10: 50, 15: 75, 20: 100, 25: 150, 30: 200}
EMBLEMS = [
    "controller", "target", "flame", "bolt", "star", "gem", "trophy", "rocket",
    "comet", "crown", "tent", "palette", "masks", "clapper", "microphone",
    "headphones", "keys", "drum", "trumpet", "guitar", "violin", "dice",
    "slots", "bowling",
]


def pass_duration() -> timedelta:
    return timedelta(days=int(current_app.config.get("PREMIUM_PASS_DAYS", 30)))


def track_step(day_number: int) -> dict:
    points = MILESTONE_POINTS.get(day_number, 0)
    if points:
        reward_type, reward_data = REWARD_POINTS, str(points)
    else:
        reward_type, reward_data = REWARD_EMBLEM, EMBLEMS[day_number % len(EMBLEMS)]
    return {
        "day_number": day_number,
        "title": f"Day {day_number} Check-in",
        "reward_type": reward_type,
        "reward_data": reward_data,
        "points": points,
    }


def _day_number(value) -> int:
    if isinstance(value, bool):
        raise InvalidInput("day must be an integer")
    try:
        day_number = int(value)
    except (TypeError, ValueError):
        raise InvalidInput("day must be an integer")
    if not 1 <= day_number <= TRACK_DAYS:
        raise InvalidInput(f"day must be between 1 and {TRACK_DAYS}")
    return day_number


def active_pass(handle: str, now=None) -> PremiumPass | None:
    now = as_naive_utc(now) if now else utcnow()
    return (
        PremiumPass.query.filter_by(user_handle=handle, is_active=True)
        .filter(PremiumPass.expires_at > now)
        .order_by(PremiumPass.expires_at.desc())
        .first()
    )


def pass_day(premium_pass: PremiumPass, now) -> int:
    """1-based day of the pass; day 1 is the first 24 hours after activation."""
    return (now - premium_pass.purchased_at).days + 1


def activate_pass(handle: str, settlement_ref: str, now=None) -> PremiumPass:
    now = as_naive_utc(now) if now else utcnow()
    settlement_ref = (settlement_ref or "").strip()
    if not settlement_ref or len(settlement_ref) > 128:
        raise InvalidInput("settlement_ref is required")

    with unit_of_work(handle, conflict=Conflict):
        if PremiumPass.query.filter_by(settlement_ref=settlement_ref).first() is not None:
            raise Conflict("Transaction already used")
        locked_account(handle)
        premium_pass = PremiumPass(
            user_handle=handle,
            settlement_ref=settlement_ref,
            purchased_at=now,
            expires_at=now + pass_duration(),
            is_active=True,
        )
        db.session.add(premium_pass)

    current_app.logger.info("Premium pass activated for %s until %s (ref=%s)", handle, premium_pass.expires_at, settlement_ref)
    return premium_pass


def claim_day(handle: str, day_number, now=None, settlement_ref: str | None = None) -> PremiumClaim:
    now = as_naive_utc(now) if now else utcnow()
    day_number = _day_number(day_number)
    today = day_key(now)

    with unit_of_work(handle, conflict=AlreadyClaimed):
        locked_account(handle)
        premium_pass = active_pass(handle, now)
        if premium_pass is None:
            raise NoActivePass()

        current_day = pass_day(premium_pass, now)
        if day_number > current_day:
            raise InvalidInput(
                f"This quest unlocks on Day {day_number}. You are currently on Day {current_day}."
            )
        if PremiumClaim.query.filter_by(pass_id=premium_pass.id, day_number=day_number).first() is not None:
            raise AlreadyClaimed()
        if PremiumClaim.query.filter_by(user_handle=handle, claim_day=today).first() is not None:
            raise Conflict("You have already claimed a premium quest today. Come back tomorrow!")

        step = track_step(day_number)
        row = PremiumClaim(
            user_handle=handle,
            pass_id=premium_pass.id,
            day_number=day_number,
            claim_day=today,
            reward_type=step["reward_type"],
            reward_data=step["reward_data"],
            points=step["points"],
            settlement_ref=(settlement_ref or "").strip()[:128] or None,
            claimed_at=now,
        )
        db.session.add(row)
        if step["points"]:
            credit(handle, step["points"], f"Premium Quest: {step['title']}")

    current_app.logger.info("Premium day %s claimed by %s (%s)", day_number, handle, row.reward_type)
    return row


def premium_board(handle: str | None, now=None) -> dict | None:
    """The caller's live pass and track, or None without one."""
    if not handle:
        return None
    now = as_naive_utc(now) if now else utcnow()
    premium_pass = active_pass(handle, now)
    if premium_pass is None:
        return None

    claimed = {
        c.day_number
        for c in PremiumClaim.query.filter_by(pass_id=premium_pass.id).all()
    }
    current_day = pass_day(premium_pass, now)
    track = []
    for day_number in range(1, TRACK_DAYS + 1):
        step = track_step(day_number)
        step["unlocked"] = day_number <= current_day
        step["claimed"] = day_number in claimed
        track.append(step)
    return {
        "pass": premium_pass.to_dict(now),
        "current_day": current_day,
        "claimed_today": PremiumClaim.query.filter_by(user_handle=handle, claim_day=day_key(now)).first() is not None,
        "track": track,
    }


def user_premium_rewards(handle: str) -> list[PremiumClaim]:
    return (
        PremiumClaim.query.filter_by(user_handle=handle, reward_type=REWARD_EMBLEM)
        .order_by(PremiumClaim.claimed_at.desc(), PremiumClaim.id.desc())
        .all()
    )


@premium_api.get("/api/premium")
def api_premium():
    board = premium_board(current_handle())
    if board is None:
        return jsonify({"success": True, "pass": None})
    return jsonify({"success": True, **board})


@premium_api.post("/api/premium/activate")
def api_premium_activate():
    require_settlement_key()
    data = request.get_json(silent=True) or {}
    handle = str(data.get("handle") or "").strip()
    if not handle:
        raise InvalidInput("handle is required")
    premium_pass = activate_pass(handle, data.get("settlement_ref"))
    return jsonify({"success": True, "pass": premium_pass.to_dict()})


@premium_api.post("/api/premium/claim")
@limiter.limit("10 per minute")
def api_premium_claim():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    row = claim_day(handle, data.get("day"), settlement_ref=data.get("settlement_ref"))
    return jsonify({"success": True, "claim": row.to_dict()})


@premium_api.get("/api/premium/rewards")
def api_premium_rewards():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "rewards": []})
    return jsonify({"success": True, "rewards": [r.to_dict() for r in user_premium_rewards(handle)]})
