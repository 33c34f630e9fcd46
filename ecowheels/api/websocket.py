"""WebSocket handler streaming a driver's order buckets."""

import asyncio
import json
from contextlib import suppress
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ecowheels.api.dependencies import Services
from ecowheels.auth.session import DriverSession
from ecowheels.errors import AuthenticationError, EcoWheelsError
from ecowheels.utils.logging import get_logger
from ecowheels.workflow.feed import OrderFeed
from ecowheels.workflow.visibility import OrderBuckets

logger = get_logger(__name__)

SIGNED_OUT_CLOSE_CODE = 4001


class ClientMessage(BaseModel):
    """Message sent by the driver app: ``ping`` or ``refresh``."""

    type: str
    metadata: dict[str, Any] = {}


class ConnectionManager:
    """Open order feed sockets, one per signed-in session."""

    def __init__(self) -> None:
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections[session_id] = websocket
        logger.info("websocket_connected", session_id=session_id)

    def disconnect(self, session_id: str) -> None:
        if self.active_connections.pop(session_id, None) is not None:
            logger.info("websocket_disconnected", session_id=session_id)

    async def send_orders(self, session_id: str, buckets: OrderBuckets) -> None:
        websocket = self.active_connections.get(session_id)
        if websocket is not None:
            await websocket.send_json({"type": "orders", **buckets.model_dump(mode="json")})


manager = ConnectionManager()


def _parse(data: str) -> ClientMessage | str:
    """Decode a client frame, returning an error description when malformed."""
    try:
        return ClientMessage.model_validate(json.loads(data))
    except (json.JSONDecodeError, ValidationError) as exc:
        return str(exc)


async def _receive_loop(
    websocket: WebSocket,
    session: DriverSession,
    services: Services,
) -> None:
    while True:
        message = _parse(await websocket.receive_text())
        if isinstance(message, str):
            await websocket.send_json(
                {"type": "error", "message": "Invalid message format", "details": message}
            )
        elif message.type == "ping":
            await websocket.send_json({"type": "pong"})
        elif message.type == "refresh":
            try:
                buckets = await services.engine.visible_orders(session)
            except EcoWheelsError as exc:
                logger.error("websocket_refresh_failed", uid=session.uid, error=exc.message)
                await websocket.send_json({"type": "error", **exc.to_dict()})
            else:
                await manager.send_orders(session.session_id, buckets)
        else:
            await websocket.send_json(
                {"type": "error", "message": f"Unknown message type: {message.type}"}
            )


async def handle_order_feed(websocket: WebSocket, token: str, services: Services) -> None:
    """
    Stream the driver's available and active orders until disconnect or sign-out.

    Args:
        websocket: WebSocket connection
        token: Access token issued at sign-in
        services: Application services
    """
    try:
        session = await services.auth.resolve_session(token)
    except AuthenticationError as e:
        await websocket.close(code=1008, reason=e.message)
        return

    await manager.connect(session.session_id, websocket)

    signed_out = asyncio.Event()

    def on_auth_state(uid: str, new_session: DriverSession | None) -> None:
        if uid == session.uid and new_session is None:
            signed_out.set()

    auth_subscription = services.auth.on_auth_state_changed(on_auth_state)

    async def push(buckets: OrderBuckets) -> None:
        await manager.send_orders(session.session_id, buckets)

    tasks: list[asyncio.Task] = []
    try:
        async with OrderFeed(services.store, session.uid, push):
            receiver = asyncio.create_task(_receive_loop(websocket, session, services))
            closer = asyncio.create_task(signed_out.wait())
            tasks = [receiver, closer]

            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            if closer in done:
                logger.info("websocket_session_ended", uid=session.uid)
                await websocket.close(code=SIGNED_OUT_CLOSE_CODE, reason="Signed out")
            else:
                receiver.result()

    except WebSocketDisconnect:
        logger.info("websocket_client_disconnected", session_id=session.session_id)

    except EcoWheelsError as e:
        logger.error("websocket_error", session_id=session.session_id, error=e.message)
        with suppress(RuntimeError):
            await websocket.close(code=1011, reason=e.message)

    finally:
        for task in tasks:
            task.cancel()
            with suppress(asyncio.CancelledError, WebSocketDisconnect):
                await task
        auth_subscription.unsubscribe()
        manager.disconnect(session.session_id)
