"""Catalog bootstrap: reward catalog and quest boards.

Every function here is idempotent. Rewards are keyed by name, daily boards by
date and monthly boards by month, so running the seed twice (or from the worker
and a cron script at the same time) never duplicates anything.
"""

from __future__ import annotations

import random

from flask import current_app
from sqlalchemy.exc import IntegrityError

from clock import as_naive_utc, day_key, month_key, utcnow
from extensions import db
from models_quests import (
    PERIOD_DAY,
    PERIOD_MONTH,
    QUEST_TYPE_ACHIEVEMENT,
    QUEST_TYPE_CHECKIN,
    QUEST_TYPE_CONSISTENCY,
    QUEST_TYPE_GAME_COUNT,
    QUEST_TYPE_PLAYTIME,
    QUEST_TYPE_SOCIAL,
    QuestDefinition,
)
from models_rewards import Reward, RewardCategory


REWARD_CATALOG = [
    {
        "name": "$5 Steam Wallet Code",
        "description": "Add $5 to your Steam Wallet",
        "points_cost": 500,
        "category": RewardCategory.STEAM_WALLET,
        "face_value": 5,
    },
    {
        "name": "$10 Steam Wallet Code",
        "description": "Add $10 to your Steam Wallet",
        "points_cost": 950,
        "category": RewardCategory.STEAM_WALLET,
        "face_value": 10,
    },
    {
        "name": "$25 Steam Wallet Code",
        "description": "Add $25 to your Steam Wallet",
        "points_cost": 2250,
        "category": RewardCategory.STEAM_WALLET,
        "face_value": 25,
    },
    {
        "name": "$10 Amazon Gift Card",
        "description": "Shop on Amazon with a $10 gift card",
        "points_cost": 950,
        "category": RewardCategory.AMAZON,
        "face_value": 10,
    },
    {
        "name": "$25 Amazon Gift Card",
        "description": "Shop on Amazon with a $25 gift card",
        "points_cost": 2250,
        "category": RewardCategory.AMAZON,
        "face_value": 25,
    },
    {
        "name": "$10 Nintendo eShop Card",
        "description": "Buy games on the Nintendo eShop",
        "points_cost": 950,
        "category": RewardCategory.NINTENDO,
        "face_value": 10,
    },
    {
        "name": "$20 Nintendo eShop Card",
        "description": "Buy games on the Nintendo eShop",
        "points_cost": 1850,
        "category": RewardCategory.NINTENDO,
        "face_value": 20,
    },
]

# (title, description, type, requirement, reward, icon)
DAILY_QUEST_TEMPLATES = [
    ("Morning Warrior", "Play any game for 30 minutes", QUEST_TYPE_PLAYTIME, 30, 75, "sunrise"),
    ("Evening Grind", "Play for 2 hours today", QUEST_TYPE_PLAYTIME, 120, 200, "moon"),
    ("Genre Explorer", "Play 3 different games today", QUEST_TYPE_GAME_COUNT, 3, 150, "compass"),
    ("Achievement Sprint", "Unlock 3 achievements today", QUEST_TYPE_ACHIEVEMENT, 3, 180, "medal"),
    ("Weekend Marathon", "Play for 5 hours today", QUEST_TYPE_PLAYTIME, 300, 400, "flame"),
    ("Library Diversity", "Play 5 different games today", QUEST_TYPE_GAME_COUNT, 5, 250, "library"),
    ("Trophy Collector", "Unlock 10 achievements today", QUEST_TYPE_ACHIEVEMENT, 10, 500, "trophy"),
    ("Speed Runner", "Play a game for 45 minutes straight", QUEST_TYPE_PLAYTIME, 45, 100, "zap"),
    ("Multiplayer Master", "Play 2 multiplayer sessions", QUEST_TYPE_SOCIAL, 2, 150, "users"),
    ("Daily Dedication", "Log in 3 days in a row", QUEST_TYPE_CONSISTENCY, 3, 300, "calendar"),
]

# (check-ins required, reward)
MONTHLY_CHECKIN_MILESTONES = [
    (5, 20),
    (10, 50),
    (15, 75),
    (20, 100),
    (25, 150),
    (30, 200),
]

DEFAULT_DAILY_QUEST_COUNT = 5


def seed_rewards() -> int:
    """Insert catalog rewards that are missing by name. Returns how many were added."""
    existing = {name for (name,) in db.session.query(Reward.name).all()}
    added = 0
    for item in REWARD_CATALOG:
        if item["name"] in existing:
            continue
        db.session.add(Reward(is_active=True, **item))
        added += 1
    _commit_idempotent("rewards")
    return added


def _daily_quest_id(date_key: str, index: int) -> str:
    return f"quest_{date_key}_{index}"


def _monthly_quest_id(month: str, required: int) -> str:
    return f"monthly_{month}_checkin_{required}"


def ensure_daily_quests(now=None, count: int | None = None) -> int:
    """Create today's board if it does not exist yet. Returns how many quests were added."""
    now = as_naive_utc(now) if now else utcnow()
    today = day_key(now)
    if QuestDefinition.query.filter_by(period=PERIOD_DAY, period_key=today).first():
        return 0

    if count is None:
        count = int(current_app.config.get("DAILY_QUEST_COUNT", DEFAULT_DAILY_QUEST_COUNT))
    count = max(1, min(count, len(DAILY_QUEST_TEMPLATES)))

    # Seeded by date so every process picks the same board for the same day.
    picked = random.Random(today).sample(DAILY_QUEST_TEMPLATES, count)
    for i, (title, description, quest_type, requirement, reward, icon) in enumerate(picked):
        db.session.add(QuestDefinition(
            quest_id=_daily_quest_id(today, i),
            period=PERIOD_DAY,
            period_key=today,
            type=quest_type,
            title=title,
            description=description,
            requirement=requirement,
            reward=reward,
            icon=icon,
            created_at=now,
        ))
    if not _commit_idempotent("daily quests"):
        return 0
    return count


def ensure_monthly_quests(now=None) -> int:
    now = as_naive_utc(now) if now else utcnow()
    month = month_key(now)
    existing = {
        q.quest_id for q in QuestDefinition.query.filter_by(period=PERIOD_MONTH, period_key=month).all()
    }

    added = 0
    for required, reward in MONTHLY_CHECKIN_MILESTONES:
        quest_id = _monthly_quest_id(month, required)
        if quest_id in existing:
            continue
        db.session.add(QuestDefinition(
            quest_id=quest_id,
            period=PERIOD_MONTH,
            period_key=month,
            type=QUEST_TYPE_CHECKIN,
            title=f"{required} Check-ins",
            description=f"Check in {required} times this month",
            requirement=required,
            reward=reward,
            icon="calendar-check",
            created_at=now,
        ))
        added += 1
    if not _commit_idempotent("monthly quests"):
        return 0
    return added


def _commit_idempotent(what: str) -> bool:
    """Commit; a concurrent seeder winning the race is not an error."""
    try:
        db.session.commit()
        return True
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("Concurrent seed of %s detected; keeping the existing rows", what)
        return False


def seed_catalog(now=None) -> dict:
    return {
        "rewards_added": seed_rewards(),
        "daily_quests_added": ensure_daily_quests(now),
        "monthly_quests_added": ensure_monthly_quests(now),
    }
