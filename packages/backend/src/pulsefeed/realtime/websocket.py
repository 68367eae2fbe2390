"""WebSocket endpoint: the live contract feed.

Each client connects to /ws (or /, which older clients use). Server ->
client messages are raw event payloads with no envelope. The only thing a
client may send is {"type": "ping"}, answered with {"type": "pong"};
anything else is ignored.
"""

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from pulsefeed.realtime.feed import LiveFeed

router = APIRouter()


@router.websocket("/ws")
@router.websocket("/")
async def live_feed_websocket(websocket: WebSocket):
    feed: LiveFeed = websocket.app.state.live_feed
    await feed.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    finally:
        feed.disconnect(websocket)
