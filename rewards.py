"""Reward redemption.

Routes:
- GET  /api/rewards
- POST /api/rewards/redeem        {"reward_id": 1}
- GET  /api/rewards/redemptions

The debit and the Redemption row are written in the same unit of work: either
both exist or neither does.
"""

from __future__ import annotations

import secrets
import string

from flask import Blueprint, current_app, jsonify, request

from auth import current_handle, require_user
from clock import utcnow
from errors import InvalidInput, RewardInactive, RewardNotFound
from extensions import db, limiter
from ledger import debit, unit_of_work
from models_rewards import REDEMPTION_DELIVERED, Redemption, Reward


rewards_api = Blueprint("rewards_api", __name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 12


def generate_code(reward: Reward) -> str:
    """e.g. STEAMWALLET-7K2Q9XA1B3ZP. Unique in practice, not guaranteed."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f"{reward.category.code_prefix}-{suffix}"


def available_rewards() -> list[Reward]:
    return Reward.query.filter_by(is_active=True).order_by(Reward.points_cost.asc(), Reward.id.asc()).all()


def redeem(handle: str, reward_id) -> dict:
    try:
        reward_id = int(reward_id)
    except (TypeError, ValueError):
        raise InvalidInput("reward_id must be an integer")

    reward = db.session.get(Reward, reward_id)
    if reward is None:
        raise RewardNotFound()
    if not reward.is_active:
        raise RewardInactive()

    with unit_of_work(handle):
        debit(handle, int(reward.points_cost), f"Redeemed: {reward.name}")
        redemption = Redemption(
            user_handle=handle,
            reward_id=reward.id,
            reward_name=reward.name,
            points_spent=int(reward.points_cost),
            code=generate_code(reward),
            status=REDEMPTION_DELIVERED,
            redeemed_at=utcnow(),
        )
        db.session.add(redemption)

    current_app.logger.info("Redemption %s by %s: %s (-%s)", redemption.id, handle, reward.name, reward.points_cost)
    return {
        "code": redemption.code,
        "message": f"Successfully redeemed {reward.name}!",
        "redemption": redemption,
    }


def user_redemptions(handle: str) -> list[Redemption]:
    return (
        Redemption.query.filter_by(user_handle=handle)
        .order_by(Redemption.redeemed_at.desc(), Redemption.id.desc())
        .all()
    )


@rewards_api.get("/api/rewards")
def api_rewards():
    return jsonify({"success": True, "rewards": [r.to_dict() for r in available_rewards()]})


@rewards_api.post("/api/rewards/redeem")
@limiter.limit("10 per minute")
def api_redeem():
    handle = require_user()
    data = request.get_json(silent=True) or {}
    result = redeem(handle, data.get("reward_id"))
    return jsonify({
        "success": True,
        "code": result["code"],
        "message": result["message"],
        "redemption": result["redemption"].to_dict(),
    })


@rewards_api.get("/api/rewards/redemptions")
def api_redemptions():
    handle = current_handle()
    if not handle:
        return jsonify({"success": True, "redemptions": []})
    return jsonify({"success": True, "redemptions": [r.to_dict() for r in user_redemptions(handle)]})
