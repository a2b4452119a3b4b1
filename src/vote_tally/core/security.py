"""JWT helpers for the opaque voter identity."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from vote_tally.core.settings import settings


def create_access_token(voter_id: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a bearer token whose subject is the voter identifier.

    Tokens are normally minted by the external identity provider; this helper
    exists for operator tooling and tests.
    """
    to_encode: dict[str, object] = {"sub": voter_id}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_voter_id(token: str) -> str | None:
    """Return the voter identifier carried by ``token``.

    Returns None when the token is malformed, expired, signed with another key,
    or carries an empty subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        return None
    return subject
