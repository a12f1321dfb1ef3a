"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from shared.security.rate_limit import limiter
from rest_api.core.cors import configure_cors
from rest_api.core.errors import register_exception_handlers
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.health import router as health_router
from rest_api.routers.inventory import router as inventory_router
from rest_api.routers.orders import router as orders_router


app = FastAPI(
    title="Order Lifecycle API",
    description="Table-side ordering, order lifecycle and stock ledger",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter

register_exception_handlers(app)
register_middlewares(app)
configure_cors(app)

app.include_router(health_router)
app.include_router(orders_router)
app.include_router(inventory_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=True,
    )
