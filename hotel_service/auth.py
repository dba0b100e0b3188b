import os
from typing import Callable, Dict, Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .coordinator import ANONYMOUS_CUSTOMER

# MUST MATCH the identity provider that issues the tokens
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "super-secret-hotel-booking-key")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

security = HTTPBearer()


def decode_claims(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT and return its username/role claims, or None if the token is
    invalid or lacks either claim.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    username = payload.get("sub")
    role = payload.get("role")
    if username is None or role is None:
        return None
    return {"username": username, "role": role}


def username_from_header(authorization: Optional[str]) -> str:
    """
    Best-effort caller name for request logging.

    Never raises; anything that is not a valid bearer token maps to
    'anonymousUser'.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        return ANONYMOUS_CUSTOMER
    claims = decode_claims(authorization.split(" ", 1)[1])
    return claims["username"] if claims else ANONYMOUS_CUSTOMER


async def get_current_user_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Decode a JWT bearer token and extract user claims.

    The token is expected in the Authorization header as a Bearer token.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials
        Authorization header parsed by FastAPI's HTTPBearer.

    Returns
    -------
    Dict[str, Any]
        A dictionary containing:
        - 'username' : str
        - 'role' : str

    Raises
    ------
    HTTPException
        If the token is missing, invalid, or cannot be decoded.
    """
    claims = decode_claims(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


def require_roles(*allowed_roles: str) -> Callable:
    """
    Build a dependency that enforces a set of allowed roles.

    Parameters
    ----------
    allowed_roles : str
        One or more role names that are permitted to access a route.

    Returns
    -------
    Callable
        A FastAPI dependency that checks the caller's role and raises
        HTTP 403 if access is not allowed.
    """

    async def dependency(claims: Dict[str, Any] = Depends(get_current_user_claims)) -> Dict[str, Any]:
        if claims["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return claims

    return dependency
