"""LiveFeed: the set of connected WebSocket clients and the broadcast primitive."""

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = structlog.get_logger()


def is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class LiveFeed:
    """Tracks open client connections and fans payloads out to them.

    No queueing and no replay: broadcast() only reaches clients that are
    open at that moment.
    """

    def __init__(self):
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("live_feed.client_connected", clients=len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info("live_feed.client_disconnected", clients=len(self._clients))

    async def broadcast(self, payload: str) -> int:
        """Send payload to every open client. Returns how many received it.

        A failing client is dropped and logged; the others still get the
        message.
        """
        delivered = 0
        for websocket in list(self._clients):
            if not is_open(websocket):
                continue
            try:
                await websocket.send_text(payload)
            except Exception as e:
                logger.warning("live_feed.send_failed", error=str(e))
                self._clients.discard(websocket)
                continue
            delivered += 1
        return delivered
