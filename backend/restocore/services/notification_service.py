"""
Order notification sink.

Real-time order and payment events pushed to staff screens over WebSocket,
one broadcast group per store. Delivery is fire-and-forget: the core never
waits on it and a failing sink never fails the operation that triggered it.
"""

import asyncio
import json
import logging
from concurrent.futures import Future
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Messages kept per store while no screen is connected
QUEUE_LIMIT = 100
# Messages replayed to a screen when it connects
REPLAY_LIMIT = 50


class OrderEvent(str, Enum):
    """Notification event types"""
    CONNECTED = "connected"

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_CANCELLED = "order.cancelled"
    DISCOUNT_APPLIED = "order.discount_applied"
    DISCOUNT_REMOVED = "order.discount_removed"

    PAYMENT_RECORDED = "payment.recorded"
    REFUND_RECORDED = "payment.refunded"
    ORDER_PAID = "order.paid"


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass
class NotificationMessage:
    """Standard WebSocket message format"""
    event: str
    data: Dict[str, Any]
    store_id: Optional[int] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.event, Enum):
            self.event = self.event.value
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=_default)


class ConnectionManager:
    """
    Tracks WebSocket connections per store and broadcasts to them.
    Messages for a store with no connected screen are queued and replayed
    on the next connect.
    """

    def __init__(self):
        self.store_connections: Dict[int, Set[WebSocket]] = {}
        self.connection_info: Dict[WebSocket, Dict] = {}
        self.message_queue: Dict[int, List[NotificationMessage]] = {}
        self.stats = {
            "total_connections": 0,
            "messages_sent": 0,
            "messages_broadcast": 0,
        }

    async def connect(self, websocket: WebSocket, store_id: int, user_id: Optional[str] = None):
        """Accept a new WebSocket connection"""
        await websocket.accept()

        self.store_connections.setdefault(store_id, set()).add(websocket)
        self.connection_info[websocket] = {
            "store_id": store_id,
            "user_id": user_id,
            "connected_at": datetime.now(timezone.utc).isoformat(),
        }
        self.stats["total_connections"] += 1

        await self.send_personal(websocket, NotificationMessage(
            event=OrderEvent.CONNECTED,
            data={"message": "Connected to order updates", "store_id": store_id},
            store_id=store_id,
        ))

        queued = self.message_queue.pop(store_id, [])
        for msg in queued[-REPLAY_LIMIT:]:
            await self.send_personal(websocket, msg)

        logger.info(f"WebSocket connected: store={store_id}, user={user_id}")

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection"""
        info = self.connection_info.pop(websocket, {})
        store_id = info.get("store_id")

        if store_id is not None and store_id in self.store_connections:
            self.store_connections[store_id].discard(websocket)
            if not self.store_connections[store_id]:
                del self.store_connections[store_id]

        logger.info(f"WebSocket disconnected: store={store_id}")

    async def send_personal(self, websocket: WebSocket, message: NotificationMessage):
        """Send message to a specific connection"""
        try:
            await websocket.send_text(message.to_json())
            self.stats["messages_sent"] += 1
        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            self.disconnect(websocket)

    def enqueue(self, store_id: int, message: NotificationMessage) -> None:
        queue = self.message_queue.setdefault(store_id, [])
        queue.append(message)
        self.message_queue[store_id] = queue[-QUEUE_LIMIT:]

    async def broadcast_store(self, store_id: int, message: NotificationMessage):
        """Broadcast message to all connections for a store"""
        message.store_id = store_id
        connections = self.store_connections.get(store_id, set()).copy()

        if not connections:
            self.enqueue(store_id, message)
            return

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message.to_json())
            except Exception:
                disconnected.append(websocket)

        for ws in disconnected:
            self.disconnect(ws)

        self.stats["messages_broadcast"] += 1

    def get_connection_count(self) -> int:
        return sum(len(c) for c in self.store_connections.values())

    def get_stats(self) -> Dict:
        """Get connection statistics"""
        return {
            **self.stats,
            "active_stores": len(self.store_connections),
            "active_connections": self.get_connection_count(),
        }


class OrderNotifier:
    """Fire-and-forget bridge from the (synchronous) services to the manager.

    Services call ``notify`` after their transaction commits. When the app's
    event loop is bound the broadcast is scheduled on it; otherwise the
    message is queued for the store. Errors are logged, never raised.
    """

    def __init__(self, connection_manager: ConnectionManager):
        self.manager = connection_manager
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        self.loop = loop

    def notify(self, store_id: int, event: OrderEvent, data: Dict[str, Any]) -> None:
        try:
            message = NotificationMessage(event=event, data=data, store_id=store_id)
            loop = self.loop
            if loop is not None and loop.is_running():
                future = asyncio.run_coroutine_threadsafe(
                    self.manager.broadcast_store(store_id, message), loop
                )
                future.add_done_callback(
                    lambda done: self._log_broadcast_failure(done, store_id, message.event)
                )
            else:
                self.manager.enqueue(store_id, message)
        except Exception as e:
            logger.warning(f"[notify] Dropped {getattr(event, 'value', event)} for store {store_id}: {e}")

    @staticmethod
    def _log_broadcast_failure(future: Future, store_id: int, event: str) -> None:
        if future.cancelled():
            logger.warning(f"[notify] Broadcast of {event} to store {store_id} was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"[notify] Broadcast of {event} to store {store_id} failed: {error}")


def order_payload(order) -> Dict[str, Any]:
    """Compact order snapshot sent with every order event."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "order_type": order.order_type,
        "table_name": order.table_name,
        "grand_total": order.grand_total,
        "total_paid": order.total_paid,
    }


# Global connection manager instance
manager = ConnectionManager()
order_notifier = OrderNotifier(manager)
