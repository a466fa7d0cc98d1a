from datetime import datetime, timedelta, UTC
from typing import Optional

from fastapi import Header, Request
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from taskboard.config import SECRET_KEY, ALGORITHM, COOKIE_NAME
from taskboard.utils.errors import AuthenticationFailure

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str):
    """Hash a password after validating bcrypt's 72-byte limit.

    Raises ValueError if the UTF-8 encoding of the password exceeds 72 bytes.
    """
    if isinstance(password, str):
        b = password.encode("utf-8")
        if len(b) > 72:
            # make the failure explicit and consistent
            raise ValueError("password too long: must be at most 72 bytes when UTF-8 encoded")
    return pwd_context.hash(password)


def verify_password(plain, hashed):
    """Verify a plaintext password against a hash.

    If verification raises a ValueError (for example plain >72 bytes), return False
    to allow the caller to respond with an authentication failure instead of an error.
    """
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def create_token(user_id: int):
    # read expiry at call-time so tests (and runtime overrides) that modify
    # taskboard.config.ACCESS_TOKEN_EXPIRE_MINUTES take effect immediately
    import taskboard.config as _cfg
    expire = datetime.now(UTC) + timedelta(minutes=_cfg.ACCESS_TOKEN_EXPIRE_MINUTES)
    data = {"sub": str(user_id), "exp": int(expire.timestamp())}  # JWT spec uses Unix timestamp
    return jwt.encode(data, SECRET_KEY, algorithm=ALGORITHM)


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Return token from the session cookie or an Authorization: Bearer header.
    Cookie has precedence.
    """
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    return None


def get_current_user_id(request: Request, authorization: Optional[str] = Header(None)) -> int:
    """Resolve the authenticated owner id for the request, or fail with 401."""
    tok = _extract_token(request, authorization)
    if not tok:
        raise AuthenticationFailure("No token provided")
    try:
        # jwt.decode validates exp automatically
        payload = jwt.decode(tok, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationFailure("Token has expired")
    except JWTError:
        raise AuthenticationFailure("Invalid token")
    sub = payload.get("sub")
    if not sub or not str(sub).isdigit():
        raise AuthenticationFailure("Invalid token: missing user")
    return int(sub)
