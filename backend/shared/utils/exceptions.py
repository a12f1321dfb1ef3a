"""
HTTP exceptions for authorization failures.

Domain failures of the order engine are plain exceptions
(``rest_api.services.domain.errors``) mapped at the API boundary; these are
the HTTP-only errors raised by security dependencies.

Usage:
    from shared.utils.exceptions import BranchAccessError

    raise BranchAccessError(branch_id, user_id=user_id)
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger("security.audit")


class AppException(HTTPException):
    """
    Base exception with automatic logging.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("adjust stock")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        detail = f"Not allowed to {action}" if action else "Access denied"
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            action=action,
            **log_context,
        )


class BranchAccessError(ForbiddenError):
    """User doesn't have access to the branch."""

    def __init__(self, branch_id: int | None = None, **log_context: Any):
        super().__init__(f"access branch {branch_id}", branch_id=branch_id, **log_context)


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )
