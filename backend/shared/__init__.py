"""
Shared module for common utilities across REST API and WS Gateway.

STRUCTURE:
- shared.security: Authentication and authorization
  - auth.py: staff JWT verification, current_user_context, require_roles, require_branch
  - rate_limit.py: slowapi limiter for the public order endpoint

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: X-Request-ID propagation
  - events/: Redis pub/sub, room routing, publishing with circuit breaker

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Roles, OrderStatus, PaymentStatus, limits

- shared.utils: Utilities
  - exceptions.py: HTTP authorization errors with auto-logging
  - schemas.py: Request/response Pydantic schemas

IMPORT EXAMPLES:
    from shared.security.auth import verify_jwt, current_user_context
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Roles, OrderStatus
    from shared.utils.schemas import OrderOutput
"""
