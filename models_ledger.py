"""Account and point ledger models.

- users.handle is the account key: the SHA-256 digest of the identity token.
  Public views use User.public_id, a short prefix of it.
- users.balance is a cached sum of point_ledger.amount for that user. It is only
  written by ledger.credit() / ledger.debit().
- point_ledger is append-only.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from clock import utcnow
from extensions import db


POINTS_PER_LEVEL = 500
PUBLIC_ID_LENGTH = 12


class User(db.Model):
    __tablename__ = "users"

    handle = Column(String(128), primary_key=True, nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_check_in = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_active = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        Index("idx_users_balance", "balance"),
    )

    @property
    def public_id(self) -> str:
        return (self.handle or "")[:PUBLIC_ID_LENGTH]

    def to_dict(self):
        return {
            "player": self.public_id,
            "balance": int(self.balance or 0),
            "level": int(self.level or 1),
            "current_streak": int(self.current_streak or 0),
            "longest_streak": int(self.longest_streak or 0),
            "last_check_in": self.last_check_in.isoformat() if self.last_check_in else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class LedgerEntry(db.Model):
    __tablename__ = "point_ledger"

    id = Column(Integer, primary_key=True)
    user_handle = Column(String(128), ForeignKey("users.handle"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed: credit > 0, debit < 0
    reason = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_point_ledger_user_created", "user_handle", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_handle": self.user_handle,
            "amount": self.amount,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def level_for_balance(balance: int) -> int:
    return max(0, int(balance or 0)) // POINTS_PER_LEVEL + 1
