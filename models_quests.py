"""Quest models.

- QuestDefinition rows form a board per period: daily boards keyed by YYYY-MM-DD,
  monthly boards keyed by YYYY-MM. They are written by bootstrap.py.
- QuestProgress is one row per (user, quest, period key). completed and claimed
  only ever move false -> true.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from clock import utcnow
from extensions import db


PERIOD_DAY = "day"
PERIOD_MONTH = "month"
PERIODS = {PERIOD_DAY, PERIOD_MONTH}

QUEST_TYPE_PLAYTIME = "playtime"
QUEST_TYPE_GAME_COUNT = "game_count"
QUEST_TYPE_CHECKIN = "checkin"
QUEST_TYPE_ACHIEVEMENT = "achievement"
QUEST_TYPE_SOCIAL = "social"
QUEST_TYPE_CONSISTENCY = "consistency"


class QuestDefinition(db.Model):
    __tablename__ = "quest_definitions"

    id = Column(Integer, primary_key=True)
    quest_id = Column(String(80), nullable=False, unique=True)
    period = Column(String(10), nullable=False, default=PERIOD_DAY)
    period_key = Column(String(10), nullable=False)
    type = Column(String(30), nullable=False)
    title = Column(String(120), nullable=False)
    description = Column(Text, nullable=False, default="")
    requirement = Column(Integer, nullable=False)
    reward = Column(Integer, nullable=False, default=0)
    icon = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_quest_definitions_period", "period", "period_key"),
    )

    def to_dict(self):
        return {
            "id": self.quest_id,
            "period": self.period,
            "period_key": self.period_key,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "requirement": self.requirement,
            "reward": self.reward,
            "icon": self.icon,
        }


class QuestProgress(db.Model):
    __tablename__ = "user_quest_progress"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    quest_id = Column(String(80), nullable=False)
    period_key = Column(String(10), nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    claimed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_handle", "quest_id", "period_key", name="uq_quest_progress_user_quest_period"),
        Index("idx_quest_progress_user_period", "user_handle", "period_key"),
    )

    def to_dict(self):
        return {
            "quest_id": self.quest_id,
            "period_key": self.period_key,
            "progress": self.progress,
            "completed": self.completed,
            "claimed": self.claimed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
        }
