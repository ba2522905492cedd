"""Password hashing and session token helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

PASSWORD_HASH_ROUNDS = 8


class InvalidToken(Exception):
    """Raised for any token that cannot be trusted."""


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as asserted by a verified token."""

    id: str
    role: str


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=PASSWORD_HASH_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        # Malformed hash or a password over bcrypt's 72 byte limit.
        return False


def issue_token(
    subject: str,
    role: str,
    secret: str,
    ttl: timedelta,
    algorithm: str = "HS256",
) -> str:
    """Sign a token asserting ``subject`` holds ``role`` until ``ttl`` elapses."""
    if not secret:
        raise ValueError("JWT secret is not configured")
    now = datetime.now(timezone.utc)
    payload = {
        "role": role,
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> Identity:
    """Return the identity carried by ``token``.

    Bad signatures, malformed or expired tokens and tokens missing a claim all
    raise :class:`InvalidToken`, as does an unconfigured secret.
    """
    if not secret:
        raise InvalidToken("JWT secret is not configured")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidToken(str(exc)) from exc

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not isinstance(role, str):
        raise InvalidToken("token is missing identity claims")
    return Identity(id=str(subject), role=role)
