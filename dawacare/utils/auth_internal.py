"""
Access tokens (python-jose, HS256).

Logins happen elsewhere; this service only checks the tokens that flow hands
out. Desktop installs and tests mint their own through create_access_token.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from dawacare.config import settings

TOKEN_ISSUER = "dawacare-internal"
TOKEN_TYPE = "access"


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Signed token for user_id, usable as a bearer header or the session cookie."""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": TOKEN_TYPE,
        "iss": TOKEN_ISSUER,
        "jti": uuid.uuid4().hex,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Claims of a valid, unexpired access token; None for anything else."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], issuer=TOKEN_ISSUER)
    except JWTError:
        return None
    if claims.get("type") != TOKEN_TYPE or not claims.get("sub"):
        return None
    return claims
