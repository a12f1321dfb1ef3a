"""
Staff authentication and authorization.

Tokens are issued by the external auth service; this module only verifies
them. Staff claims: ``sub`` (user id), ``branch_ids`` and ``roles``.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header, HTTPException, status

from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE
from shared.config.logging import get_logger
from shared.utils.exceptions import BranchAccessError, InsufficientRoleError

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


def sign_jwt(payload: dict[str, Any], ttl_seconds: int = 900) -> str:
    """
    Sign a staff access token.

    Used by service tooling and tests; production tokens come from the
    auth service with the same issuer, audience and secret.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a staff JWT.

    Returns:
        Decoded claims with ``branch_ids`` and ``roles`` normalized to lists.

    Raises:
        HTTPException: 401 if the token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        # Real reason only goes to the log
        logger.warning("JWT validation failed", error=str(e))
        raise _unauthorized("Invalid token")

    if "sub" not in payload:
        raise _unauthorized("Invalid token: missing subject claim")
    try:
        int(payload["sub"])
    except (ValueError, TypeError):
        raise _unauthorized("Invalid token: malformed subject claim")

    branch_ids = payload.get("branch_ids", [])
    if not isinstance(branch_ids, list) or not all(isinstance(b, int) for b in branch_ids):
        raise _unauthorized("Invalid token: malformed branch_ids claim")

    roles = payload.get("roles", [])
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise _unauthorized("Invalid token: malformed roles claim")

    payload["branch_ids"] = branch_ids
    payload["roles"] = roles
    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed.
    """
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency returning the verified staff claims.

    Usage:
        @router.get("/orders")
        def list_orders(ctx: dict = Depends(current_user_context)):
            user_id = int(ctx["sub"])
    """
    token = get_bearer_token(authorization)
    return verify_jwt(token)


def require_roles(ctx: dict[str, Any], allowed) -> None:
    """
    Verify that the user has at least one of the allowed roles.

    Raises:
        InsufficientRoleError: 403 if no role matches.
    """
    user_roles = set(ctx.get("roles", []))
    if not user_roles.intersection(set(allowed)):
        raise InsufficientRoleError(sorted(allowed), user_id=ctx.get("sub"))


def require_branch(ctx: dict[str, Any], branch_id: int) -> None:
    """
    Verify that the user has access to the specified branch.

    Raises:
        BranchAccessError: 403 if the branch is not in the token's branch_ids.
    """
    if branch_id not in set(ctx.get("branch_ids", [])):
        raise BranchAccessError(branch_id, user_id=ctx.get("sub"))
