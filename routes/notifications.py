import asyncio
import json
import logging
from typing import Dict, List, Optional, Set

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from services.notifications import ChangeFeed, Subscription, TOPICS, change_feed, view_cache
from utils.auth import decode_access_token

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def invalidate_message(topic: str) -> dict:
    return {"event": "invalidate", "topic": topic}


def subscriptions_message(topics) -> dict:
    return {"event": "subscriptions", "topics": sorted(topics)}


def is_resync_request(message: dict) -> bool:
    """Client came back from background/suspension and may have missed messages."""
    event = message.get("event")
    if event in ("focus", "resync"):
        return True
    return event == "visibility" and message.get("state") == "visible"


class ClientConnection:
    """Outgoing queue of one socket, the loop serving it and the topics it listens to."""

    def __init__(self, queue: asyncio.Queue, loop: asyncio.AbstractEventLoop):
        self.queue = queue
        self.loop = loop
        self.topics: Set[str] = set(TOPICS)


class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[WebSocket, ClientConnection] = {}
        self._subscriptions: List[Subscription] = []

    def attach(self, feed: ChangeFeed):
        self._subscriptions = feed.subscribe_all(self.on_change)

    def detach(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    async def connect(self, websocket: WebSocket) -> asyncio.Queue:
        # Registered before accepting so no commit after the handshake is missed
        queue: asyncio.Queue = asyncio.Queue()
        self.active_connections[websocket] = ClientConnection(queue, asyncio.get_running_loop())
        await websocket.accept()
        logger.debug(f"WebSocket connected. Total connections: {len(self.active_connections)}")
        return queue

    def disconnect(self, websocket: WebSocket):
        self.active_connections.pop(websocket, None)
        logger.debug(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    def _enqueue(self, connection: ClientConnection, message: dict):
        # Commits may happen off the event loop thread
        if connection.loop.is_closed():
            return
        connection.loop.call_soon_threadsafe(connection.queue.put_nowait, message)

    def on_change(self, topic: str):
        for connection in list(self.active_connections.values()):
            if topic in connection.topics:
                self._enqueue(connection, invalidate_message(topic))

    def subscribe(self, websocket: WebSocket, topic: str) -> Set[str]:
        connection = self.active_connections[websocket]
        if topic in TOPICS:
            connection.topics.add(topic)
        else:
            logger.warning(f"Ignoring subscription to unknown topic {topic!r}")
        return connection.topics

    def unsubscribe(self, websocket: WebSocket, topic: str) -> Set[str]:
        connection = self.active_connections[websocket]
        if topic in TOPICS:
            connection.topics.discard(topic)
        return connection.topics

    def resync(self, websocket: WebSocket):
        connection = self.active_connections.get(websocket)
        if connection is None:
            return
        for topic in TOPICS:
            if topic in connection.topics:
                connection.queue.put_nowait(invalidate_message(topic))

    def broadcast_resync(self):
        for topic in TOPICS:
            self.on_change(topic)


connection_manager = ConnectionManager()
connection_manager.attach(change_feed)


async def reconcile_periodically(interval: float):
    """Safety net for notifications lost while clients or the channel were suspended."""
    while True:
        await asyncio.sleep(interval)
        view_cache.clear()
        connection_manager.broadcast_resync()
        logger.debug(f"Reconciliation poll: resync sent to {len(connection_manager.active_connections)} client(s)")


async def _pump(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"Failed to send WebSocket message: {str(e)}")
            return


@router.websocket("/ws")
async def websocket_notifications(websocket: WebSocket, token: Optional[str] = None):
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user = decode_access_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    queue = await connection_manager.connect(websocket)
    sender = asyncio.create_task(_pump(websocket, queue))
    logger.info(f"User {user.id} ({user.role.value}) subscribed to change notifications")
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue
            if is_resync_request(message):
                view_cache.clear()
                connection_manager.resync(websocket)
            elif message.get("event") == "subscribe":
                topics = connection_manager.subscribe(websocket, message.get("topic"))
                queue.put_nowait(subscriptions_message(topics))
            elif message.get("event") == "unsubscribe":
                topics = connection_manager.unsubscribe(websocket, message.get("topic"))
                queue.put_nowait(subscriptions_message(topics))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for user {user.id}: {str(e)}")
    finally:
        sender.cancel()
        connection_manager.disconnect(websocket)
