import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from app.api.deps import AuthenticationFailed, authenticate_credentials, parse_basic_authorization
from app.core.metrics import WS_CONNECTIONS
from app.core.request_context import request_id_ctx_var
from app.db.models import User
from app.realtime.gateway import VALIDATION_ERROR
from app.realtime.hub import RealtimeHub
from app.realtime.registry import ClientConnection

router = APIRouter(tags=["realtime"])
logger = logging.getLogger("app.realtime.socket")


def _authenticate(hub: RealtimeHub, websocket: WebSocket) -> User | None:
    credentials = parse_basic_authorization(websocket.headers.get("authorization"))
    if credentials is None:
        return None
    client_key = websocket.client.host if websocket.client else "unknown"
    db = hub.session_factory()
    try:
        return authenticate_credentials(db, credentials[0], credentials[1], client_key)
    except AuthenticationFailed:
        return None
    finally:
        db.close()


@router.websocket("/ws")
async def reservations_socket(websocket: WebSocket) -> None:
    hub: RealtimeHub = websocket.app.state.realtime
    user = await run_in_threadpool(_authenticate, hub, websocket)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = ClientConnection(transport=websocket, username=user.username, role=user.role)
    hub.registry.register(connection)
    WS_CONNECTIONS.inc()
    token = request_id_ctx_var.set(connection.id)
    logger.info("ws_connected connection_id=%s username=%s", connection.id, user.username)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", status.WS_1000_NORMAL_CLOSURE))
            raw = frame.get("text")
            if raw is None:
                await hub.gateway.reply_error(connection, VALIDATION_ERROR, "Message must be a JSON text frame")
                continue
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await hub.gateway.reply_error(connection, VALIDATION_ERROR, "Message must be valid JSON")
                continue
            if not isinstance(message, dict):
                await hub.gateway.reply_error(connection, VALIDATION_ERROR, "Message must be an object")
                continue
            await hub.gateway.handle(connection, message.get("event"), message.get("data"))
    except WebSocketDisconnect as exc:
        logger.info("ws_disconnected connection_id=%s code=%s", connection.id, exc.code)
    finally:
        hub.registry.on_disconnect(connection.id)
        WS_CONNECTIONS.dec()
        request_id_ctx_var.reset(token)
