"""
WebSocket Gateway main application.

Staff screens connect to ``/ws/orders`` and join branch rooms; order
lifecycle events published by the REST API on Redis are relayed to the room
named by their channel. Delivery is best-effort with no replay: a client
that reconnects re-fetches orders from the REST API.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from shared.config.constants import ALL_STAFF_ROLES, CASHIER_ACCESS_ROLES, KITCHEN_ACCESS_ROLES
from shared.config.logging import setup_logging, ws_gateway_logger as logger
from shared.config.settings import settings
from shared.infrastructure.events import (
    Event,
    channel_branch,
    channel_branch_admin,
    channel_branch_kitchen,
    close_redis_pool,
    get_redis_pool,
    parse_room,
)
from shared.security.auth import verify_jwt
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import run_subscriber

ENDPOINT = "/ws/orders"

manager = ConnectionManager()

# Room role suffix -> roles allowed to join
ROOM_ROLES: dict[str | None, frozenset[str]] = {
    None: ALL_STAFF_ROLES,
    "kitchen": KITCHEN_ACCESS_ROLES,
    "admin": CASHIER_ACCESS_ROLES,
}

ROOM_BUILDERS = {
    "branch": channel_branch,
    "kitchen": channel_branch_kitchen,
    "admin": channel_branch_admin,
}


def room_allowed(claims: dict[str, Any], room: str) -> bool:
    """True if the token's branches and roles cover the room."""
    parsed = parse_room(room)
    if parsed is None:
        return False
    branch_id, role = parsed
    if branch_id not in claims.get("branch_ids", []):
        return False
    return bool(set(claims.get("roles", [])) & ROOM_ROLES[role])


def requested_rooms(branch_id: int, rooms: str | None) -> list[str]:
    """
    Expand ``rooms=kitchen,admin`` into room names for one branch.

    No selection means the branch-wide room.

    Raises:
        ValueError: unknown room kind
    """
    kinds = [kind.strip() for kind in (rooms or "branch").split(",") if kind.strip()]
    names = []
    for kind in kinds or ["branch"]:
        builder = ROOM_BUILDERS.get(kind)
        if builder is None:
            raise ValueError(f"unknown room {kind!r}")
        names.append(builder(branch_id))
    return names


async def relay_event(room: str, event: Event) -> int:
    """Forward one event to the connections in its room."""
    sent = await manager.send_to_room(room, event.to_dict())
    if sent:
        logger.debug(
            "Dispatched event to room",
            event_type=event.type,
            order_id=event.order_id,
            room=room,
            clients=sent,
        )
    return sent


async def start_redis_subscriber() -> None:
    """Relay Redis messages until cancelled; a dead Redis only stops real-time updates."""
    try:
        await run_subscriber(relay_event)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Redis subscriber error", error=str(e), exc_info=True)


async def start_heartbeat_cleanup() -> None:
    """Close connections without a recent heartbeat every 30 seconds."""
    while True:
        try:
            await asyncio.sleep(30)
            cleaned = await manager.cleanup_stale_connections()
            if cleaned > 0:
                logger.info("Cleaned up stale connections", count=cleaned)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the Redis subscriber and heartbeat cleanup; stop them on shutdown.
    """
    setup_logging()
    logger.info("Starting WebSocket Gateway", port=settings.ws_gateway_port, env=settings.environment)

    subscriber_task = asyncio.create_task(start_redis_subscriber())
    cleanup_task = asyncio.create_task(start_heartbeat_cleanup())

    yield

    logger.info("Shutting down WebSocket Gateway")
    await manager.shutdown()
    for task in (subscriber_task, cleanup_task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await close_redis_pool()
    logger.info("Redis connection pool closed")


app = FastAPI(
    title="Order Events WebSocket Gateway",
    description="Real-time order lifecycle events for staff screens",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    or ["http://localhost:5173", "http://localhost:5177", "http://127.0.0.1:5177"],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Authorization"],
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
async def health_check():
    checks: dict[str, Any] = {
        "service": "ws-gateway",
        "environment": settings.environment,
        "connections": manager.get_stats(),
    }
    try:
        redis = await get_redis_pool()
        await redis.ping()
        checks["redis"] = "healthy"
        checks["status"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {e}"
        checks["status"] = "degraded"
    return checks


# =============================================================================
# WebSocket Endpoint
# =============================================================================


async def _handle_client_message(websocket: WebSocket, claims: dict[str, Any], data: str) -> None:
    """Apply one ``join``/``leave``/``ping`` message from a client."""
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        message = {"type": data.strip()}
    if not isinstance(message, dict):
        await websocket.send_json({"type": "error", "detail": "message must be an object"})
        return

    kind = message.get("type")
    if kind == "ping":
        await websocket.send_json({"type": "pong"})
    elif kind == "join":
        room = str(message.get("room", ""))
        if not room_allowed(claims, room):
            await websocket.send_json({"type": "error", "detail": f"cannot join {room}"})
            logger.warning("Room join rejected", user_id=claims.get("sub"), room=room)
            return
        await manager.join(websocket, room)
        await websocket.send_json({"type": "joined", "room": room})
    elif kind == "leave":
        room = str(message.get("room", ""))
        await manager.leave(websocket, room)
        await websocket.send_json({"type": "left", "room": room})
    else:
        logger.debug("Unknown message from client", user_id=claims.get("sub"), message=data[:100])


@app.websocket(ENDPOINT)
async def orders_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="Staff JWT"),
    branch_id: int = Query(..., gt=0),
    rooms: str | None = Query(default=None, description="Comma-separated: branch, kitchen, admin"),
):
    """
    Order events for one branch.

    ``rooms`` selects the initial rooms; clients may later send
    ``{"type": "join" | "leave", "room": "branch:1:kitchen"}`` and
    ``{"type": "ping"}``. Disconnecting leaves every room.
    """
    try:
        claims = verify_jwt(token)
    except HTTPException as e:
        logger.warning("WebSocket auth failed", branch_id=branch_id, reason=str(e.detail))
        await websocket.close(code=4001, reason=str(e.detail))
        return

    user_id = int(claims["sub"])
    try:
        initial_rooms = requested_rooms(branch_id, rooms)
    except ValueError as e:
        await websocket.close(code=4400, reason=str(e))
        return

    denied = [room for room in initial_rooms if not room_allowed(claims, room)]
    if denied:
        logger.warning("WebSocket rooms denied", user_id=user_id, branch_id=branch_id, rooms=denied)
        await websocket.close(code=4003, reason="Insufficient access")
        return

    try:
        await manager.connect(websocket, user_id)
    except ConnectionError as e:
        logger.warning("WebSocket connection rejected", user_id=user_id, branch_id=branch_id, reason=str(e))
        return

    for room in initial_rooms:
        await manager.join(websocket, room)
    logger.info("WebSocket connected", user_id=user_id, branch_id=branch_id, rooms=initial_rooms)
    await websocket.send_json({"type": "connected", "rooms": initial_rooms})

    try:
        while True:
            data = await websocket.receive_text()
            if len(data) > settings.ws_max_message_size:
                logger.warning("Message size exceeded limit", user_id=user_id, size=len(data))
                await websocket.close(code=1009, reason="Message too large")
                break
            manager.record_heartbeat(websocket)
            await _handle_client_message(websocket, claims, data)
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
        logger.info("WebSocket disconnected", user_id=user_id, branch_id=branch_id)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        host="0.0.0.0",
        port=settings.ws_gateway_port,
        reload=True,
    )
