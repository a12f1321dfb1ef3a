"""
Security module: staff JWT verification, role/branch checks, rate limiting.
"""

from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_user_context,
    require_roles,
    require_branch,
)
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_user_context",
    "require_roles",
    "require_branch",
    # rate_limit
    "limiter",
    "rate_limit_exceeded_handler",
]
