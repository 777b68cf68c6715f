"""Operator authentication for the hedge desk API.

Login takes a password plus a current TOTP code. Issued tokens carry a
fixed scope claim, so a token signed with the same secret by another
service is not accepted here. Repeated failures for one username lock it
out for ``login_lockout_seconds``.
"""

import logging
import math
import time
from datetime import datetime, timedelta, timezone

import bcrypt
import pyotp
from jose import JWTError, jwt
from sqlmodel import Session, select

from hedgedesk.config import settings
from hedgedesk.models.operator import Operator

logger = logging.getLogger(__name__)

TOKEN_SCOPE = "hedgedesk:operator"
TOTP_ISSUER = "Hedge Desk"


class AuthenticationFailed(Exception):
    """Login refused. ``retry_after`` (seconds) is set while locked out."""

    def __init__(self, message: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(message)


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    pw = password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    pw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(pw, hashed.encode("utf-8"))


def create_access_token(operator_name: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": operator_name,
        "scope": TOKEN_SCOPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str | None:
    """Operator name from a hedge desk token; ``None`` if invalid, expired or foreign."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("scope") != TOKEN_SCOPE:
        return None
    return payload.get("sub")


def verify_totp(secret: str, code: str) -> bool:
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_totp_uri(secret: str, username: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=TOTP_ISSUER)


class LoginThrottle:
    """Counts failed logins per username inside a sliding window."""

    def __init__(self, max_failures: int, window_seconds: int, clock=time.monotonic):
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self.clock = clock
        self._failures: dict[str, list[float]] = {}

    def _recent(self, username: str) -> list[float]:
        cutoff = self.clock() - self.window_seconds
        recent = [t for t in self._failures.get(username, []) if t > cutoff]
        if recent:
            self._failures[username] = recent
        else:
            self._failures.pop(username, None)
        return recent

    def retry_after(self, username: str) -> int | None:
        """Seconds until the username may try again, or ``None`` if not locked."""
        recent = self._recent(username)
        if len(recent) < self.max_failures:
            return None
        unlock_at = recent[-self.max_failures] + self.window_seconds
        return max(1, math.ceil(unlock_at - self.clock()))

    def record_failure(self, username: str):
        self._failures.setdefault(username, []).append(self.clock())

    def reset(self, username: str):
        self._failures.pop(username, None)

    def clear(self):
        self._failures.clear()


login_throttle = LoginThrottle(settings.login_max_failures, settings.login_lockout_seconds)


def authenticate(
    session: Session,
    username: str,
    password: str,
    totp_code: str,
    throttle: LoginThrottle | None = None,
) -> Operator:
    """Check password and TOTP, stamp ``last_login_at`` and return the operator."""
    throttle = throttle or login_throttle

    wait = throttle.retry_after(username)
    if wait is not None:
        logger.warning(f"Login for {username} refused, locked out for {wait}s")
        raise AuthenticationFailed("Too many failed logins, try again later", retry_after=wait)

    operator = session.exec(select(Operator).where(Operator.username == username)).first()
    reason = None
    if not operator or not operator.is_active or not verify_password(password, operator.hashed_password):
        reason = "Invalid credentials"
    elif not verify_totp(operator.totp_secret, totp_code):
        reason = "Invalid TOTP code"
    if reason:
        throttle.record_failure(username)
        logger.warning(f"Login failed for {username}: {reason}")
        raise AuthenticationFailed(reason)

    throttle.reset(username)
    operator.last_login_at = datetime.now(timezone.utc)
    session.add(operator)
    session.commit()
    session.refresh(operator)
    logger.info(f"Operator {username} logged in")
    return operator
