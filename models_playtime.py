"""Game library models.

GameTitle holds the last cumulative playtime seen for a (user, app). DailyPlaytime
holds the positive increments attributed to each UTC day.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from clock import utcnow
from extensions import db


class GameTitle(db.Model):
    __tablename__ = "game_titles"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    app_id = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default="")
    image_url = Column(String(500), nullable=True)
    cumulative_minutes = Column(Integer, nullable=False, default=0)
    last_played = Column(DateTime, nullable=True)  # NULL = unknown
    first_seen_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_handle", "app_id", name="uq_game_title_user_app"),
    )

    def to_dict(self):
        return {
            "app_id": self.app_id,
            "name": self.name,
            "image_url": self.image_url,
            "playtime": self.cumulative_minutes,
            "last_played": self.last_played.isoformat() if self.last_played else None,
        }


class DailyPlaytime(db.Model):
    __tablename__ = "daily_playtime"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    app_id = Column(Integer, nullable=False)
    game_name = Column(String(255), nullable=False, default="")
    # YYYY-MM-DD (UTC)
    day = Column(String(10), nullable=False)
    minutes = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_handle", "app_id", "day", name="uq_daily_playtime_user_app_day"),
        Index("idx_daily_playtime_user_day", "user_handle", "day"),
    )

    def to_dict(self):
        return {
            "app_id": self.app_id,
            "game_name": self.game_name,
            "day": self.day,
            "minutes": self.minutes,
        }
