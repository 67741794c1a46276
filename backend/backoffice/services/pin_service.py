# Overview: Service-layer operations for manager PINs; bcrypt hashing, verification and lockout.

"""
Manager PIN authorization.

WHY: Variance-gated register closes and cash transfers need a second person
(a manager) to approve on the spot. A short numeric PIN typed on the POS is
the approval; it is hashed with bcrypt and locked out after repeated misses.

SECURITY NOTES:
- PINs are never stored or logged in clear
- PIN_MAX_FAILED_ATTEMPTS misses lock the PIN for PIN_LOCKOUT_MINUTES
- A successful check clears the failure counter
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, UserPin
from backoffice.context import MANAGER_ROLES, RequestContext
from backoffice.errors import NotFound, PinNotConfigured, Unauthorized
from backoffice.time_utils import utcnow


PIN_RE = re.compile(r"^\d{4,6}$")


@dataclass(frozen=True)
class ManagerApproval:
    """A manager's on-the-spot approval: who they are and the PIN they typed."""
    user_id: int
    pin: str


# (ctx, approval) -> approving User; raises Unauthorized / PinNotConfigured
PinVerifier = Callable[[RequestContext, ManagerApproval], User]


def validate_pin(pin, *, exact_length: int | None = None) -> str:
    if not isinstance(pin, str) or not PIN_RE.match(pin):
        raise ValueError("PIN must be 4 to 6 digits")
    if exact_length is not None and len(pin) != exact_length:
        raise ValueError(f"PIN must be exactly {exact_length} digits")
    return pin


def hash_pin(pin: str) -> str:
    rounds = current_app.config.get("PIN_BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def check_pin(pin: str, pin_hash: str | None) -> bool:
    """Timing-safe comparison; False for missing or malformed hashes."""
    if not pin or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def set_user_pin(user_id: int, pin: str) -> UserPin:
    validate_pin(pin)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("user not found", details={"user_id": user_id})

    record = db.session.query(UserPin).filter_by(user_id=user.id).one_or_none()
    if record is None:
        record = UserPin(user_id=user.id, pin_hash=hash_pin(pin))
        db.session.add(record)
    else:
        record.pin_hash = hash_pin(pin)
    record.failed_attempts = 0
    record.locked_until = None
    db.session.commit()
    return record


def ensure_not_locked(locked_until, now) -> None:
    if locked_until is not None and locked_until > now:
        raise Unauthorized(
            "PIN locked after too many failed attempts",
            details={"locked_until": locked_until.isoformat()},
        )


def next_failure_state(failed_attempts: int | None, now) -> tuple[int, object]:
    """
    Failure counter and lock expiry after one more miss.

    Returns (failed_attempts, locked_until); reaching PIN_MAX_FAILED_ATTEMPTS
    sets the lock and restarts the counter.
    """
    attempts = (failed_attempts or 0) + 1
    if attempts >= current_app.config.get("PIN_MAX_FAILED_ATTEMPTS", 5):
        minutes = current_app.config.get("PIN_LOCKOUT_MINUTES", 15)
        return 0, now + timedelta(minutes=minutes)
    return attempts, None


def verify_manager_pin(ctx: RequestContext, approval: ManagerApproval) -> User:
    """
    Default PinVerifier.

    The approver must be an active manager-level user of the caller's tenant
    holding a PIN that is not locked out. Failure counts are committed
    immediately so they survive the caller's rollback.
    """
    user = db.session.get(User, approval.user_id)
    if user is None or user.tenant_id != ctx.tenant_id or not user.is_active:
        raise Unauthorized("approver not found")
    if user.role not in MANAGER_ROLES:
        raise Unauthorized("approver is not a manager", details={"role": user.role})

    record = db.session.query(UserPin).filter_by(user_id=user.id).one_or_none()
    if record is None:
        raise PinNotConfigured("approver has no PIN set", details={"user_id": user.id})

    now = utcnow()
    ensure_not_locked(record.locked_until, now)

    if not check_pin(approval.pin, record.pin_hash):
        record.failed_attempts, record.locked_until = next_failure_state(record.failed_attempts, now)
        if record.locked_until is not None:
            current_app.logger.warning("manager PIN locked for user %s", user.id)
        db.session.commit()
        raise Unauthorized("invalid PIN")

    record.failed_attempts = 0
    record.locked_until = None
    record.last_used_at = now
    db.session.commit()
    return user
