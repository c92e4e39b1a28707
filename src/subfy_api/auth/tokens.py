"""HS256 session tokens for authenticated wallets."""

from __future__ import annotations

import time

import jwt

from subfy_api.errors import UnauthorizedError

ALGORITHM = "HS256"


def issue_token(public_key: str, secret: str, ttl: int = 86400, now: int | None = None) -> str:
    issued = int(time.time()) if now is None else now
    payload = {"sub": public_key, "iat": issued, "exp": issued + ttl}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(token: str, secret: str) -> dict:
    """Decode a session token, returning its claims."""
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedError("Token has expired") from exc
    except jwt.InvalidSignatureError as exc:
        raise UnauthorizedError("Invalid token signature") from exc
    except jwt.DecodeError as exc:
        raise UnauthorizedError("Malformed token") from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid token") from exc
    if not claims.get("sub"):
        raise UnauthorizedError("Malformed token")
    return claims
