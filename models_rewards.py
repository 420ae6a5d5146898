"""Reward catalog and redemption models."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text

from clock import utcnow
from extensions import db


class RewardCategory(str, enum.Enum):
    STEAM_WALLET = "steam_wallet"
    AMAZON = "amazon"
    NINTENDO = "nintendo"
    PLAYSTATION = "playstation"
    XBOX = "xbox"

    @property
    def code_prefix(self) -> str:
        return self.value.replace("_", "").upper()


REDEMPTION_DELIVERED = "delivered"


class Reward(db.Model):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False, unique=True)  # natural key for seeding
    description = Column(Text, nullable=False, default="")
    points_cost = Column(Integer, nullable=False)
    category = Column(Enum(RewardCategory, native_enum=False, length=32), nullable=False)
    face_value = Column(Integer, nullable=False, default=0)  # in whole currency units
    image_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_rewards_active", "is_active"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points_cost": self.points_cost,
            "category": self.category.value if self.category else None,
            "face_value": self.face_value,
            "image_url": self.image_url,
            "is_active": self.is_active,
        }


class Redemption(db.Model):
    __tablename__ = "reward_redemptions"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    reward_name = Column(String(200), nullable=False)
    points_spent = Column(Integer, nullable=False)
    code = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=REDEMPTION_DELIVERED)
    redeemed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_redemptions_user_redeemed", "user_handle", "redeemed_at"),
        Index("idx_redemptions_status", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "reward_id": self.reward_id,
            "reward_name": self.reward_name,
            "points_spent": self.points_spent,
            "code": self.code,
            "status": self.status,
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
        }
