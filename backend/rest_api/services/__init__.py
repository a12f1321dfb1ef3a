"""
Services module for business logic.

- domain/: order lifecycle, inventory and sequence allocation
- events/: order projection and post-commit fanout
- collaborators: catalog, branch settings, recipe and audit seams
- audit: audit log writer

Usage:
    from rest_api.services.domain import OrderService
    service = OrderService(db, fanout=fanout)
    order, created = service.create_order(request)
"""

from .audit import EntityRef, log_change, SqlAuditSink
from .collaborators import Collaborators

__all__ = [
    "EntityRef",
    "log_change",
    "SqlAuditSink",
    "Collaborators",
]
