"""Premium pass models.

A pass is bought on chain; the payment watcher reports the settlement reference
(tx hash) and the pass runs for PREMIUM_PASS_DAYS from activation. Each pass has
a 30-step track: step N unlocks on day N of the pass, and at most one step can
be claimed per UTC day.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from clock import utcnow
from extensions import db


REWARD_POINTS = "points"
REWARD_EMBLEM = "emblem"


class PremiumPass(db.Model):
    __tablename__ = "premium_passes"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    # One pass per payment.
    settlement_ref = Column(String(128), nullable=False, unique=True)
    purchased_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_premium_passes_user_expiry", "user_handle", "is_active", "expires_at"),
    )

    def is_live(self, now) -> bool:
        return bool(self.is_active) and self.expires_at > now

    def to_dict(self, now=None):
        now = now or utcnow()
        return {
            "id": self.id,
            "settlement_ref": self.settlement_ref,
            "purchased_at": self.purchased_at.isoformat() if self.purchased_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_live": self.is_live(now),
        }


class PremiumClaim(db.Model):
    __tablename__ = "premium_claims"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    pass_id = Column(Integer, ForeignKey("premium_passes.id"), nullable=False, index=True)
    day_number = Column(Integer, nullable=False)
    # YYYY-MM-DD (UTC) of the claim, not of the unlocked step
    claim_day = Column(String(10), nullable=False)
    reward_type = Column(String(20), nullable=False)
    reward_data = Column(String(64), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    settlement_ref = Column(String(128), nullable=True)
    claimed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("pass_id", "day_number", name="uq_premium_claim_pass_day"),
        UniqueConstraint("user_handle", "claim_day", name="uq_premium_claim_user_claim_day"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "day_number": self.day_number,
            "claim_day": self.claim_day,
            "reward_type": self.reward_type,
            "reward_data": self.reward_data,
            "points": self.points,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
        }
