import asyncio
import datetime
from typing import Any, Dict, Optional

import pytz
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse

from metri.api.deps import (
    current_user,
    get_chunk_storage,
    get_connection_store,
    get_repository,
    get_summarizer,
    get_transcriber,
)
from metri.core.config import settings
from metri.core.errors import PayloadTooLarge, TranscriptionFailed
from metri.core.log import get_logger
from metri.models.messages import HealthResponse, SessionCreate, SummarizeRequest, TranscribeResponse
from metri.services.chunk_storage import ChunkStorage
from metri.services.connection_store import ConnectionStore
from metri.services.session_repository import SessionRepository, build_session
from metri.services.summarizer import SummaryFailed, Summarizer
from metri.services.transcriber import Transcriber, check_payload_size
from metri.services.transcript_export import download_filename, format_transcript_text

router = APIRouter(prefix="/api")
logger = get_logger("api")


@router.get("/health", response_model=HealthResponse)
def health(
        transcriber: Transcriber = Depends(get_transcriber),
        store: ConnectionStore = Depends(get_connection_store),
):
    return HealthResponse(
        status="ok",
        whisperConfigured=transcriber.configured,
        backend=transcriber.name,
        connections=store.count(),
        timestamp=datetime.datetime.now(tz=pytz.UTC).isoformat(),
    )


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(
        audio: Optional[UploadFile] = File(None),
        mimeType: Optional[str] = Form(None),
        transcriber: Transcriber = Depends(get_transcriber),
        storage: ChunkStorage = Depends(get_chunk_storage),
):
    """Single-shot transcription of one uploaded audio file."""
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file received")
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="No audio file received")

    mime_type = audio.content_type or ""
    # generic multipart type; the form field is more specific
    if mimeType and mime_type in ("", "application/octet-stream"):
        mime_type = mimeType

    try:
        check_payload_size(len(content), settings.MAX_AUDIO_BYTES)
        with storage.transient(content, mime_type) as path:
            result = await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: transcriber.transcribe_file(path, mime_type),
            )
    except PayloadTooLarge as e:
        raise HTTPException(status_code=413, detail=e.client_message)
    except TranscriptionFailed as e:
        logger.warning("transcribe.failed mime=%s err=%s", mime_type, e)
        raise HTTPException(status_code=500, detail=str(e) or "Transcription failed")

    return TranscribeResponse(text=result.text, lang=result.lang, duration=result.duration)


@router.get("/sessions")
def list_sessions(
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
):
    return repo.list_sessions(user["uid"])


@router.post("/sessions", status_code=201)
def save_session(
        payload: SessionCreate,
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
):
    if not payload.entries:
        raise HTTPException(status_code=400, detail="No entries to save")
    session = build_session(payload, user["uid"])
    repo.save_session(session)
    logger.info("session.saved uid=%s sid=%s entries=%d", user["uid"], session["id"], len(session["entries"]))
    return session


@router.delete("/sessions/{session_id}")
def delete_session(
        session_id: str,
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
):
    if not repo.delete_session(user["uid"], session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True}


@router.get("/sessions/{session_id}/download", response_class=PlainTextResponse)
def download_session(
        session_id: str,
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
):
    session = repo.get_session(user["uid"], session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    filename = download_filename(session.get("title", ""))
    return PlainTextResponse(
        format_transcript_text(session),
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/search")
def search(
        q: str = "",
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
):
    if not q:
        return []
    return repo.search(user["uid"], q)


@router.post("/summarize")
async def summarize(
        payload: SummarizeRequest,
        user: Dict[str, Any] = Depends(current_user),
        repo: SessionRepository = Depends(get_repository),
        summarizer: Optional[Summarizer] = Depends(get_summarizer),
):
    if not payload.sessionId:
        raise HTTPException(status_code=400, detail="Session ID required")
    session = repo.get_session(user["uid"], payload.sessionId)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if summarizer is None:
        raise HTTPException(status_code=503, detail="Summarization requires OPENAI_API_KEY")

    try:
        summary = await asyncio.get_event_loop().run_in_executor(None, lambda: summarizer.summarize(session))
    except SummaryFailed as e:
        raise HTTPException(status_code=500, detail=e.client_message)
    return {"summary": summary}
