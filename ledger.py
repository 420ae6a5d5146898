"""Ledger store: the only code that writes users.balance.

Every balance change goes through credit() or debit(), which update the cached
balance/level on the account row and append a LedgerEntry in the same
transaction. Callers wrap their whole read-validate-write in unit_of_work(),
which holds a per-user lock, commits once, and turns uniqueness violations into
Conflict errors. credit() and debit() refuse to run outside a unit of work for
the same handle.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import timedelta

import redis
from flask import current_app, g
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from clock import day_key, utcnow
from errors import Conflict, InsufficientBalance, InvalidInput
from extensions import db
from models_ledger import LedgerEntry, User, level_for_balance


# Fixed stripes: unrelated handles may share a lock, memory stays bounded.
LOCK_STRIPES = 64
_local_locks = [threading.RLock() for _ in range(LOCK_STRIPES)]
_redis_clients: dict[str, redis.Redis] = {}


def normalize_handle(handle) -> str:
    handle = (handle or "").strip()
    if not handle or len(handle) > 128 or any(ch.isspace() for ch in handle):
        raise InvalidInput("Invalid user handle")
    return handle


def _lock_timeout() -> float:
    return float(current_app.config.get("LEDGER_LOCK_TIMEOUT_SECONDS", 10))


def _redis_for(url: str) -> redis.Redis:
    client = _redis_clients.get(url)
    if client is None:
        client = redis.from_url(url)
        _redis_clients[url] = client
    return client


@contextmanager
def user_lock(handle: str):
    """Serialize read-validate-write sequences for one user.

    Uses a Redis lock when LEDGER_LOCK_REDIS_URL is configured (multi-process
    deployments), otherwise one of LOCK_STRIPES process-local locks chosen by handle.
    """
    timeout = _lock_timeout()
    redis_url = current_app.config.get("LEDGER_LOCK_REDIS_URL")

    if redis_url:
        lock = _redis_for(redis_url).lock(
            f"ledger:user:{handle}", timeout=timeout * 3, blocking_timeout=timeout
        )
        if not lock.acquire():
            current_app.logger.warning("Ledger lock busy for %s", handle)
            raise Conflict("Another operation is in progress for this user")
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                current_app.logger.warning("Ledger lock for %s expired before release", handle)
        return

    lock = _local_locks[hash(handle) % LOCK_STRIPES]
    if not lock.acquire(timeout=timeout):
        current_app.logger.warning("Ledger lock busy for %s", handle)
        raise Conflict("Another operation is in progress for this user")
    try:
        yield
    finally:
        lock.release()


@contextmanager
def unit_of_work(handle: str, conflict: type[Conflict] = Conflict):
    """One atomic, per-user-serialized transaction.

    Commits when the block exits cleanly, rolls back on any error. A uniqueness
    violation (two writers racing past the same idempotency gate) surfaces as
    `conflict`, never as a silent overwrite.
    """
    with user_lock(handle):
        units = g.setdefault("ledger_units", [])
        units.append(handle)
        try:
            yield
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning("Uniqueness backstop rejected write for %s", handle)
            raise conflict()
        except Exception:
            db.session.rollback()
            raise
        finally:
            units.remove(handle)


def locked_account(handle: str) -> User:
    """Load (or create) the account row for update inside a unit of work."""
    stmt = (
        select(User)
        .where(User.handle == handle)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = db.session.execute(stmt).scalar_one_or_none()
    if user is None:
        now = utcnow()
        user = User(
            handle=handle,
            balance=0,
            level=1,
            current_streak=0,
            longest_streak=0,
            created_at=now,
            last_active=now,
        )
        db.session.add(user)
        db.session.flush()
    return user


def get_account(handle: str) -> User | None:
    return db.session.get(User, handle)


def ensure_user(handle: str) -> User:
    """Get-or-create the account on first authenticated contact."""
    handle = normalize_handle(handle)
    user = db.session.get(User, handle)
    if user:
        user.last_active = utcnow()
        db.session.commit()
        return user

    now = utcnow()
    user = User(handle=handle, balance=0, level=1, current_streak=0, longest_streak=0, created_at=now, last_active=now)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request.
        db.session.rollback()
        user = db.session.get(User, handle)
    return user


def _validate_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInput("Amount must be a positive integer")
    return amount


def _append(user: User, amount: int, reason: str) -> LedgerEntry:
    user.balance = int(user.balance or 0) + amount
    user.level = level_for_balance(user.balance)
    entry = LedgerEntry(user_handle=user.handle, amount=amount, reason=(reason or "")[:200], created_at=utcnow())
    db.session.add(entry)
    db.session.flush()
    return entry


def _require_unit_of_work(handle: str) -> None:
    if handle not in g.get("ledger_units", ()):
        raise RuntimeError("credit/debit must run inside unit_of_work(handle)")


def credit(handle: str, amount: int, reason: str) -> LedgerEntry:
    _require_unit_of_work(handle)
    amount = _validate_amount(amount)
    user = locked_account(handle)
    return _append(user, amount, reason)


def debit(handle: str, amount: int, reason: str) -> LedgerEntry:
    _require_unit_of_work(handle)
    amount = _validate_amount(amount)
    user = locked_account(handle)
    if int(user.balance or 0) < amount:
        raise InsufficientBalance()
    return _append(user, -amount, reason)


def ledger_sum(handle: str) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0))
        .filter(LedgerEntry.user_handle == handle)
        .scalar()
    )
    return int(total or 0)


def reconcile(handle: str) -> tuple[int, int]:
    """Return (cached balance, sum of ledger entries). They must be equal."""
    user = db.session.get(User, handle)
    balance = int(user.balance or 0) if user else 0
    return balance, ledger_sum(handle)


def recent_entries(handle: str, limit: int = 50) -> list[LedgerEntry]:
    return (
        LedgerEntry.query.filter_by(user_handle=handle)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def point_history(handle: str, days: int = 30, now=None) -> list[dict]:
    """Net points per UTC day over the last `days` days, oldest first."""
    now = now or utcnow()
    since = now - timedelta(days=days)
    entries = (
        LedgerEntry.query.filter(LedgerEntry.user_handle == handle)
        .filter(LedgerEntry.created_at >= since)
        .all()
    )
    per_day: dict[str, int] = {}
    for e in entries:
        key = day_key(e.created_at)
        per_day[key] = per_day.get(key, 0) + int(e.amount)
    return [{"date": d, "points": p} for d, p in sorted(per_day.items())]
