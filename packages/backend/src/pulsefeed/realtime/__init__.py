"""Real-time infrastructure: Redis pub/sub + WebSocket fan-out.

Events flow one way:
1. Producer -> Redis PUBLISH on the events channel
2. RelayBridge SUBSCRIBE -> LiveFeed.broadcast -> every open WebSocket

Delivery is fire-and-forget. A client that is not connected when an event
arrives never sees it; GET /contracts is how clients catch up.
"""
