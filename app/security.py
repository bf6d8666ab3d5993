"""
Identity-provider token verification

The identity provider issues an HS256 JWT whose "sub" claim is the user id.
Every core operation receives that id explicitly as current_user_id.
"""
import logging
from typing import Any, Mapping, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthError(Exception):
    pass


def parse_bearer(headers: Mapping[str, str], query_params: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """Parse a Bearer token from the Authorization header, falling back to ?token="""
    auth = headers.get("authorization") or headers.get("Authorization")
    if auth:
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    if query_params is not None:
        token = query_params.get("token")
        if isinstance(token, str) and token:
            return token
    return None


def decode_user_id(token: str) -> str:
    """
    Verify a token and return its subject

    Raises:
        AuthError: Bad signature, expired, wrong audience/issuer, or no subject
    """
    options = {
        "verify_aud": bool(settings.JWT_AUDIENCE),
        "verify_iss": bool(settings.JWT_ISSUER),
    }
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE or None,
            issuer=settings.JWT_ISSUER or None,
            options=options,
        )
    except JWTError as e:
        raise AuthError(str(e)) from e

    user_id = claims.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise AuthError("Token has no subject")
    return user_id


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Dependency resolving the authenticated caller's user id"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_user_id(credentials.credentials)
    except AuthError as e:
        logger.warning(f"JWT validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
