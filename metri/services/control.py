import json
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from metri.core.errors import MalformedControlMessage
from metri.core.log import get_logger
from metri.models.messages import AudioEnd, AudioStart, ChunkMeta
from metri.services.connection_store import ConnectionStore

logger = get_logger("control")

ControlMessage = Union[AudioStart, ChunkMeta, AudioEnd]

CONTROL_MODELS = {
    "audio_start": AudioStart,
    "chunk_meta": ChunkMeta,
    "audio_end": AudioEnd,
}


def parse_control(raw: str) -> ControlMessage:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise MalformedControlMessage("Invalid message format") from e
    if not isinstance(data, dict):
        raise MalformedControlMessage("Invalid message format")

    msg_type = data.get("type")
    model = CONTROL_MODELS.get(msg_type)
    if model is None:
        raise MalformedControlMessage(f"Unknown message type: {msg_type}")
    try:
        return model(**data)
    except ValidationError as e:
        raise MalformedControlMessage("Invalid message format") from e


def handle_control(store: ConnectionStore, connection_id: str, raw: str) -> Optional[Dict[str, Any]]:
    """
    Apply one control frame to the connection's session buffer.

    Idle --audio_start--> Buffering --chunk_meta--> Buffering --audio_end--> Idle.
    Returns the reply to send back, if any. Bad frames leave the state untouched.
    """
    try:
        msg = parse_control(raw)
    except MalformedControlMessage as e:
        logger.warning("control.rejected cid=%s err=%s", connection_id, e)
        return {"type": "error", "message": e.client_message}

    if isinstance(msg, AudioStart):
        buffer = store.start_buffer(connection_id, msg.mimeType)
        logger.info("control.audio_start cid=%s mime=%s", connection_id, buffer.mime_type)
        return {"type": "audio_start_ack"}

    if isinstance(msg, ChunkMeta):
        stored = store.set_pending_meta(connection_id, msg.model_dump(exclude={"type"}))
        if not stored:
            logger.debug("control.chunk_meta.ignored cid=%s (no audio_start)", connection_id)
        return None

    store.end_buffer(connection_id)
    logger.info("control.audio_end cid=%s", connection_id)
    return None
