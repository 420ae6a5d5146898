"""Error taxonomy for ledger operations.

Engines raise these; app.py renders them as JSON with the matching status code.
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "ERROR"
    status_code = 500
    default_message = "Ledger error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"success": False, "error": self.message, "code": self.code}


class Unauthenticated(LedgerError):
    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "User not logged in"


class NotFound(LedgerError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class RewardNotFound(NotFound):
    default_message = "Reward not found"


class RewardInactive(NotFound):
    default_message = "Reward is inactive"


class Conflict(LedgerError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Conflicting operation"


class AlreadyCheckedInToday(Conflict):
    default_message = "Already checked in today"


class AlreadyClaimed(Conflict):
    default_message = "Quest already claimed"


class NotCompleted(Conflict):
    default_message = "Quest not completed yet"


class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 402
    default_message = "Insufficient points"


class InvalidInput(LedgerError):
    code = "INVALID_INPUT"
    status_code = 400
    default_message = "Invalid input"


class Forbidden(LedgerError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class NoActivePass(Forbidden):
    default_message = "No active Premium Pass"
