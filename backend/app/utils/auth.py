"""
Bearer-token permission checks.

Sessions and user accounts are managed elsewhere; this module only verifies
that a signed token carries the permission an endpoint needs.
"""
from fastapi import HTTPException, Request, status
from jose import jwt, JWTError
from typing import Any, Callable, Dict

from ..config import settings


def decode_bearer_token(request: Request) -> Dict[str, Any]:
    """
    Decode and verify the Bearer token from the Authorization header.

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Missing or invalid Authorization header"
        )

    token = auth_header.split(" ", 1)[1]
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Invalid token"
        )


def has_permission(claims: Dict[str, Any], permission: str) -> bool:
    role = claims.get("role") or {}
    permissions = role.get("permissions") if isinstance(role, dict) else None
    return bool(permissions) and permission in permissions


def require_permission(permission: str) -> Callable[[Request], Dict[str, Any]]:
    """
    Dependency factory: the token's role must list `permission`.

    Usage:
        @router.put("/", dependencies=[Depends(require_permission("tasks.unpost"))])
    """
    def checker(request: Request) -> Dict[str, Any]:
        claims = decode_bearer_token(request)
        if not has_permission(claims, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized: Missing or insufficient permissions"
            )
        return claims

    return checker
