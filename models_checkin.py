from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from clock import utcnow
from extensions import db


SETTLEMENT_PENDING = "pending"
SETTLEMENT_CONFIRMED = "confirmed"
SETTLEMENT_FAILED = "failed"

SETTLEMENT_STATUSES = {SETTLEMENT_PENDING, SETTLEMENT_CONFIRMED, SETTLEMENT_FAILED}


class CheckIn(db.Model):
    """One row per (user, UTC day). The unique key is the check-in idempotency gate."""

    __tablename__ = "daily_check_ins"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    # YYYY-MM-DD (UTC)
    day = Column(String(10), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    streak_day = Column(Integer, nullable=False, default=1)
    settlement_ref = Column(String(128), nullable=True)
    settlement_status = Column(String(20), nullable=False, default=SETTLEMENT_PENDING)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_handle", "day", name="uq_check_in_user_day"),
        Index("idx_check_ins_day", "day"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_handle": self.user_handle,
            "day": self.day,
            "points": self.points,
            "streak_day": self.streak_day,
            "settlement_ref": self.settlement_ref,
            "settlement_status": self.settlement_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
