from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException

from metri.core.config import settings
from metri.core.firebase import verify_firebase_token
from metri.services.chunk_storage import ChunkStorage
from metri.services.connection_store import ConnectionStore
from metri.services.pipeline import ChunkPipeline
from metri.services.session_repository import SessionRepository
from metri.services.summarizer import Summarizer
from metri.services.transcriber import Transcriber, build_transcriber

# Singletons for the process lifetime
connection_store = ConnectionStore(default_mime_type=settings.DEFAULT_MIME_TYPE)


def get_connection_store() -> ConnectionStore:
    return connection_store


@lru_cache(maxsize=1)
def get_transcriber() -> Transcriber:
    return build_transcriber(settings)


@lru_cache(maxsize=1)
def get_chunk_storage() -> ChunkStorage:
    return ChunkStorage(settings.TEMP_DIR)


@lru_cache(maxsize=1)
def get_pipeline() -> ChunkPipeline:
    return ChunkPipeline(get_transcriber(), get_chunk_storage(), settings.MAX_AUDIO_BYTES)


@lru_cache(maxsize=1)
def get_repository() -> SessionRepository:
    return SessionRepository()


@lru_cache(maxsize=1)
def get_summarizer() -> Optional[Summarizer]:
    if not settings.whisper_configured:
        return None
    return Summarizer(api_key=settings.OPENAI_API_KEY, model=settings.SUMMARY_MODEL)


def current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """Firebase ID token from the `Authorization: Bearer <token>` header."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    _, _, token = authorization.partition(" ")
    try:
        return verify_firebase_token(token or authorization)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
