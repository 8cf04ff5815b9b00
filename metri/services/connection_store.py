import asyncio
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, Optional


@dataclass
class SessionBuffer:
    mime_type: str
    pending_meta: Optional[Dict[str, Any]] = None


@dataclass
class FrameContext:
    mime_type: str
    meta: Optional[Dict[str, Any]] = None


@dataclass
class Connection:
    connection_id: str
    websocket: Any
    connected_at: float = field(default_factory=time.time)
    # Serializes chunk processing so results go out in the order frames arrived
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ConnectionStore:
    """
    Thread-safe in-memory registry of live connections and their session buffers.
    Each key is only written by the owning connection's handlers.
    """

    def __init__(self, default_mime_type: str = "audio/webm"):
        self._connections: Dict[str, Connection] = {}
        self._buffers: Dict[str, SessionBuffer] = {}
        self._default_mime_type = default_mime_type
        self._lock = RLock()

    @property
    def default_mime_type(self) -> str:
        return self._default_mime_type

    def register(self, websocket: Any) -> Connection:
        connection = Connection(connection_id=str(uuid.uuid4()), websocket=websocket)
        with self._lock:
            self._connections[connection.connection_id] = connection
        return connection

    def unregister(self, connection_id: str):
        with self._lock:
            self._connections.pop(connection_id, None)
            self._buffers.pop(connection_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._connections)

    def start_buffer(self, connection_id: str, mime_type: Optional[str] = None) -> SessionBuffer:
        # Last start wins: any earlier buffer is replaced
        buffer = SessionBuffer(mime_type=mime_type or self._default_mime_type)
        with self._lock:
            self._buffers[connection_id] = buffer
        return buffer

    def set_pending_meta(self, connection_id: str, meta: Dict[str, Any]) -> bool:
        with self._lock:
            buffer = self._buffers.get(connection_id)
            if buffer is None:
                return False
            buffer.pending_meta = meta
            return True

    def end_buffer(self, connection_id: str):
        with self._lock:
            self._buffers.pop(connection_id, None)

    def get_buffer(self, connection_id: str) -> Optional[SessionBuffer]:
        with self._lock:
            return self._buffers.get(connection_id)

    def next_frame(self, connection_id: str) -> FrameContext:
        """Resolve the format of the next binary frame and hand over any pending chunk metadata."""
        with self._lock:
            buffer = self._buffers.get(connection_id)
            if buffer is None:
                return FrameContext(mime_type=self._default_mime_type)
            meta, buffer.pending_meta = buffer.pending_meta, None
            return FrameContext(mime_type=buffer.mime_type, meta=meta)
