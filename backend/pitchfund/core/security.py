"""Access-token verification for tokens issued by the managed auth provider."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from pitchfund.domain.errors import AuthenticationError

from .config import settings


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Malformed Authorization header")
    return token.strip()


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired access token") from exc
    if not claims.get("sub"):
        raise AuthenticationError("Access token has no subject")
    return claims


def create_access_token(
    subject: str,
    *,
    email: str | None = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a token shaped like the provider's; used by local tooling and tests."""

    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": subject,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.supabase_jwt_secret, algorithm=settings.jwt_algorithm)
