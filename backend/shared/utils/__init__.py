"""
Utilities module: HTTP exceptions and shared schemas.
"""

from shared.utils.exceptions import (
    AppException,
    ForbiddenError,
    BranchAccessError,
    InsufficientRoleError,
)
from shared.utils.schemas import ErrorResponse, OrderOutput

__all__ = [
    # exceptions
    "AppException",
    "ForbiddenError",
    "BranchAccessError",
    "InsufficientRoleError",
    # schemas
    "ErrorResponse",
    "OrderOutput",
]
