import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from configs.config import get_config

logger = logging.getLogger(__name__)
cfg = get_config()

# Sessions are issued by the external credential provider; we only verify them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=False)

SESSION_COOKIE = "access_token"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token signed with the auth secret.

    Production sessions are minted by the external credential provider. This
    helper issues compatible tokens for local development and for tests.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, cfg.AUTH_SECRET, algorithm=cfg.JWT_ALGORITHM)
    return encoded_jwt


def decode_session(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the session user for a valid token, or None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, cfg.AUTH_SECRET, algorithms=[cfg.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected session token: %s", exc)
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return {"id": user_id, "email": payload.get("email"), "name": payload.get("name")}


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> Dict[str, Any]:
    """Dependency to retrieve the session user from a bearer token or session cookie."""
    user = decode_session(token or request.cookies.get(SESSION_COOKIE))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
