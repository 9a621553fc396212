# ─────────────────────────────────────────────────────────────────
# routes/live.py — WebSocket Channel for Live Dashboards
#
# Connect to /ws with a logged-in session cookie and you get:
#   1. The current snapshot, straight away
#   2. Every later snapshot and every online/offline transition
#
# The browser may send {"event": "manual-check"} to ask for a sweep.
#
# Each connection runs two coroutines:
#   writer → drains this subscriber's queue into the socket
#   reader → handles messages coming from the browser
# Both check the session first, so an expired login gets no more
# pushes. When either ends the other is cancelled and the
# subscriber is removed.
# ─────────────────────────────────────────────────────────────────

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from auth import is_authorized
from broadcaster import Subscriber
from service import MonitorService

logger = logging.getLogger("routes.live")

router = APIRouter(tags=["Live"])

MANUAL_CHECK = "manual-check"


async def _writer(websocket: WebSocket, subscriber: Subscriber):
    settings = websocket.app.state.settings

    while True:
        message = await subscriber.next_message()
        if message is None:
            return

        if not is_authorized(websocket.session, settings.session_ttl):
            logger.info(f"Session for {subscriber.user} expired — closing live channel")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.send_json(message)


async def _reader(websocket: WebSocket, service: MonitorService, user: str):
    settings = websocket.app.state.settings

    while True:
        raw = await websocket.receive_text()

        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON message from {user}")
            continue

        if not isinstance(message, dict) or message.get("event") != MANUAL_CHECK:
            continue

        # Sessions can expire while the socket stays open
        if not is_authorized(websocket.session, settings.session_ttl):
            logger.info(f"Session for {user} expired — closing live channel")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        started = service.request_sweep()
        logger.info(f"[MANUAL CHECK] requested by {user} ({'started' if started else 'coalesced'})")


@router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    settings = websocket.app.state.settings
    service: MonitorService = websocket.app.state.service

    if not is_authorized(websocket.session, settings.session_ttl):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user = websocket.session["user_id"]
    await websocket.accept()

    subscriber = service.subscribe(user)
    tasks = [
        asyncio.create_task(_writer(websocket, subscriber)),
        asyncio.create_task(_reader(websocket, service, user)),
    ]

    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                # A broken connection only costs this subscriber
                logger.info(f"Live channel for {user} ended: {exc!r}")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        service.unsubscribe(subscriber)

        # Subscriber was dropped (queue overflow) while the browser is still there
        if (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        ):
            try:
                await websocket.close()
            except RuntimeError as exc:
                logger.debug(f"Live channel for {user} already gone: {exc}")
