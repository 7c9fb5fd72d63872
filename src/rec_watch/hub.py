"""Fan-out of live events to connected WebSocket clients."""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Set

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

logger = logging.getLogger(__name__)

Snapshot = Callable[[], Dict[str, Any]]


def _is_open(ws: WebSocket) -> bool:
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class BroadcastHub:
    def __init__(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._clients: Set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, ws: WebSocket) -> None:
        """Register an accepted client and send it the current snapshot."""
        self._clients.add(ws)
        logger.info("New client connected. Total clients: %d", len(self._clients))
        await ws.send_text(json.dumps(self._snapshot()))

    def disconnect(self, ws: WebSocket) -> None:
        self._clients.discard(ws)
        logger.info("Client disconnected. Remaining clients: %d", len(self._clients))

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Send payload to every open client. Returns how many received it."""
        active_clients = [ws for ws in self._clients if _is_open(ws)]
        if not active_clients:
            logger.debug("No active clients for %s event", payload.get("type"))
            return 0

        msg = json.dumps(payload)
        results = await asyncio.gather(
            *[ws.send_text(msg) for ws in active_clients], return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, Exception)]
        for err in errors:
            logger.warning("Broadcast error: %s", err)
        logger.debug(
            "Broadcast %s event to %d client(s)",
            payload.get("type"),
            len(active_clients) - len(errors),
        )
        return len(active_clients) - len(errors)
