"""NFT boost models.

One row per (user, source). source_id is the on-chain asset address supplied by
the wallet/minting flow. Rows are never deleted; expiry is evaluated at read time.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from clock import utcnow
from extensions import db


class Boost(db.Model):
    __tablename__ = "nft_boosts"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    source_id = Column(String(128), nullable=False)
    percentage = Column(Integer, nullable=False, default=0)  # 10 == +10%
    is_active = Column(Boolean, nullable=False, default=True)
    activated_at = Column(DateTime, nullable=False, default=utcnow)
    # NULL expiry counts as already expired, never as "forever".
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_handle", "source_id", name="uq_boost_user_source"),
        Index("idx_boosts_user_active_expiry", "user_handle", "is_active", "expires_at"),
    )

    def is_live(self, now) -> bool:
        return bool(self.is_active) and self.expires_at is not None and self.expires_at > now

    def to_dict(self, now=None):
        now = now or utcnow()
        return {
            "id": self.id,
            "source_id": self.source_id,
            "percentage": self.percentage,
            "is_active": self.is_active,
            "is_live": self.is_live(now),
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
