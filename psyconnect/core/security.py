import secrets
from datetime import datetime, timedelta, timezone
from jose import jwt
from .config import settings

ALGORITHM = "HS256"

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _jti() -> str:
    return secrets.token_urlsafe(32)

def create_session_token(session_id: str) -> tuple[str, int]:
    ttl = int(settings.SESSION_TOKEN_TTL_SECONDS)
    exp = _now() + timedelta(seconds=ttl)
    payload = {
        "sub": session_id,
        "iss": settings.SESSION_TOKEN_ISSUER,
        "aud": settings.SESSION_TOKEN_AUDIENCE,
        "iat": int(_now().timestamp()),
        "exp": int(exp.timestamp()),
        "typ": "session",
        "jti": _jti(),
    }
    token = jwt.encode(payload, settings.SESSION_SECRET, algorithm=ALGORITHM)
    return token, ttl

def decode_token(token: str) -> dict:
    return jwt.decode(
        token,
        settings.SESSION_SECRET,
        algorithms=[ALGORITHM],
        audience=settings.SESSION_TOKEN_AUDIENCE,
        issuer=settings.SESSION_TOKEN_ISSUER,
        options={"verify_aud": True, "verify_iss": True},
    )
