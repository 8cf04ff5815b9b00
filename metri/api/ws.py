import asyncio
import json
from typing import Any, Dict, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from metri.api.deps import get_connection_store, get_pipeline
from metri.core.log import get_logger
from metri.services.connection_store import Connection, ConnectionStore
from metri.services.control import handle_control
from metri.services.pipeline import ChunkPipeline

router = APIRouter()
logger = get_logger("ws")


@router.websocket("/ws")
async def ws_live_transcribe(
        websocket: WebSocket,
        store: ConnectionStore = Depends(get_connection_store),
        pipeline: ChunkPipeline = Depends(get_pipeline),
):
    await websocket.accept()
    connection = store.register(websocket)
    cid = connection.connection_id
    logger.info("ws.connect cid=%s total=%d", cid, store.count())
    await _send(websocket, {"type": "connected", "connectionId": cid})

    # Keep references so in-flight chunks are not garbage collected
    in_flight: Set[asyncio.Task] = set()

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            # Binary frame = one recorded audio chunk
            if message.get("bytes") is not None:
                frame = store.next_frame(cid)
                if frame.meta:
                    logger.debug("chunk.meta cid=%s meta=%s", cid, frame.meta)
                task = asyncio.create_task(_process_frame(pipeline, connection, message["bytes"], frame.mime_type))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
                continue

            # Text frame = JSON control message
            reply = handle_control(store, cid, message.get("text") or "")
            if reply is not None:
                await _send(websocket, reply)

    except WebSocketDisconnect:
        # Client disconnected; nothing to do
        pass
    except Exception as e:
        logger.error("ws.error cid=%s err=%s", cid, e)
    finally:
        # Chunks still in flight finish on their own; their sends become no-ops
        store.unregister(cid)
        logger.info("ws.disconnect cid=%s total=%d pending=%d", cid, store.count(), len(in_flight))


async def _process_frame(pipeline: ChunkPipeline, connection: Connection, data: bytes, mime_type: str):
    async with connection.lock:
        await pipeline.process(
            data,
            mime_type,
            send=lambda payload: _send(connection.websocket, payload),
            connection_id=connection.connection_id,
        )


async def _send(ws: WebSocket, payload: Dict[str, Any]):
    # Always send text JSON for compatibility; a closed socket swallows the message
    if ws.application_state != WebSocketState.CONNECTED or ws.client_state != WebSocketState.CONNECTED:
        return
    try:
        await ws.send_text(json.dumps(payload))
    except (WebSocketDisconnect, RuntimeError, OSError) as e:
        logger.debug("ws.send.dropped type=%s err=%s", payload.get("type"), e)
