import datetime as dt
import uuid
from typing import Any

from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from checkout.core.config import Settings


class SessionClaims(BaseModel):
    sub: str
    exp: int
    typ: str = "session"
    jti: str | None = None
    aud: str | list[str] | None = None
    iss: str | None = None
    nbf: int | None = None
    iat: int | None = None


def _verification_key(settings: Settings) -> str:
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_secret_key and settings.jwt_algorithm.startswith("HS"):
        return settings.jwt_secret_key
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No verification key available")


def _get_leeway(settings: Settings) -> int:
    return max(0, settings.jwt_clock_skew_seconds)


def verify_token(token: str, settings: Settings) -> SessionClaims:
    """
    Verify the session JWT the billing UI sends; enforce aud/iss when configured
    and the iat skew rule.
    """
    options = {
        "verify_aud": settings.jwt_audience is not None,
        "verify_iss": settings.jwt_issuer is not None,
        "leeway": _get_leeway(settings),
    }
    try:
        payload = jwt.decode(
            token,
            _verification_key(settings),
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
        claims = SessionClaims(**payload)
    except (JWTError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token verification failed") from exc

    if claims.typ != "session":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unexpected token type")

    now_ts = int(dt.datetime.now(dt.timezone.utc).timestamp())
    if claims.iat and claims.iat - _get_leeway(settings) > now_ts:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token issued in the future")
    return claims


def create_session_token(account_id: str, settings: Settings, expire_minutes: int = 15) -> str:
    """Dev/test signer; production tokens come from the main application."""
    if not (settings.jwt_secret_key and settings.jwt_algorithm.startswith("HS")):
        raise RuntimeError("No signing key configured")
    now = dt.datetime.now(dt.timezone.utc)
    payload: dict[str, Any] = {
        "sub": account_id,
        "exp": int((now + dt.timedelta(minutes=expire_minutes)).timestamp()),
        "iat": int(now.timestamp()),
        "typ": "session",
        "jti": str(uuid.uuid4()),
    }
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
