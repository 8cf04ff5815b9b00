import asyncio
import time
from typing import Any, Awaitable, Callable, Dict

from metri.core.errors import TranscriptionFailed
from metri.core.log import get_logger
from metri.services.chunk_storage import ChunkStorage
from metri.services.transcriber import Transcriber, TranscriptionResult, check_payload_size

logger = get_logger("pipeline")

Send = Callable[[Dict[str, Any]], Awaitable[None]]


def now_ms() -> int:
    return int(time.time() * 1000)


def transcript_message(result: TranscriptionResult) -> Dict[str, Any]:
    return {
        "type": "transcript",
        "text": result.text,
        "lang": result.lang,
        "time": now_ms(),
    }


class ChunkPipeline:
    """
    Turns one binary audio frame into exactly one of transcript / silence / error.
    A failing chunk never ends the connection.
    """

    def __init__(self, transcriber: Transcriber, storage: ChunkStorage, max_bytes: int):
        self.transcriber = transcriber
        self.storage = storage
        self.max_bytes = max_bytes

    async def process(self, data: bytes, mime_type: str, send: Send, connection_id: str = "-") -> Dict[str, Any]:
        t0 = time.perf_counter()
        logger.info("chunk.recv cid=%s bytes=%d mime=%s", connection_id, len(data), mime_type)
        try:
            check_payload_size(len(data), self.max_bytes)
            with self.storage.transient(data, mime_type) as path:
                # Demo results are immediate; no processing status for them
                if self.transcriber.configured:
                    await send({"type": "processing"})
                # Blocking client call; keep the event loop free for other connections
                result = await asyncio.get_event_loop().run_in_executor(
                    None,
                    lambda: self.transcriber.transcribe_file(path, mime_type),
                )
        except TranscriptionFailed as e:
            logger.warning("chunk.error cid=%s err=%s", connection_id, e)
            message = {"type": "error", "message": e.client_message}
        except Exception as e:
            logger.exception("chunk.error.unexpected cid=%s err=%s", connection_id, e)
            message = {"type": "error", "message": TranscriptionFailed.client_message}
        else:
            if result.text:
                message = transcript_message(result)
                logger.info(
                    "chunk.transcript cid=%s lang=%s chars=%d ms=%d",
                    connection_id, result.lang, len(result.text), (time.perf_counter() - t0) * 1000,
                )
            else:
                # Backend heard nothing; not an error
                message = {"type": "silence"}
                logger.info("chunk.silence cid=%s", connection_id)

        await send(message)
        return message
