"""Bearer token verification for the HTTP routes."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import DecodeError, InvalidTokenError

logger = logging.getLogger(__name__)

USER_ID_CLAIM = "userId"

security_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        InvalidTokenError: If the signature, expiry or structure is invalid
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except (InvalidTokenError, DecodeError) as exc:
        raise InvalidTokenError(f"Invalid token: {exc}") from exc


def owner_id_from_claims(claims: Dict[str, Any]) -> int:
    owner_id = claims.get(USER_ID_CLAIM)
    # bool is an int subclass
    if isinstance(owner_id, bool) or not isinstance(owner_id, (int, str)):
        raise InvalidTokenError(f"Token has no usable {USER_ID_CLAIM} claim")
    try:
        owner_id = int(owner_id)
    except ValueError as exc:
        raise InvalidTokenError(f"Token has no usable {USER_ID_CLAIM} claim") from exc
    if owner_id < 1:
        raise InvalidTokenError(f"Token has no usable {USER_ID_CLAIM} claim")
    return owner_id


def owner_dependency(secret: str, algorithm: str = "HS256") -> Callable[..., int]:
    """Build a FastAPI dependency that resolves the caller's user id from a Bearer token."""

    async def get_owner_id(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    ) -> int:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            return owner_id_from_claims(decode_token(credentials.credentials, secret, algorithm))
        except InvalidTokenError as exc:
            logger.info(f"Rejected bearer token: {exc}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token",
                headers={"WWW-Authenticate": "Bearer"},
            )

    return get_owner_id
