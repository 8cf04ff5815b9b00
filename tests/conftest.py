import os
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from metri.api.deps import (
    current_user,
    get_chunk_storage,
    get_connection_store,
    get_pipeline,
    get_repository,
    get_summarizer,
    get_transcriber,
)
from metri.main import app
from metri.services.chunk_storage import ChunkStorage
from metri.services.connection_store import ConnectionStore
from metri.services.pipeline import ChunkPipeline
from metri.services.session_repository import SessionRepository
from metri.services.transcriber import DemoTranscriber, Transcriber, TranscriptionResult

MAX_BYTES = 25 * 1024 * 1024


class ScriptedTranscriber(Transcriber):
    """Plays back a list of outcomes: a TranscriptionResult is returned, an exception is raised."""

    name = "scripted"

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []

    def transcribe_file(self, file_path, mime_type):
        self.calls.append({"path": file_path, "mime": mime_type, "existed": os.path.exists(file_path)})
        outcome = self.outcomes.pop(0) if self.outcomes else TranscriptionResult("", "en")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class InMemoryRepository(SessionRepository):
    def __init__(self):
        self.sessions: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def save_session(self, session):
        self.sessions.setdefault(session["user_id"], {})[session["id"]] = session
        return session

    def list_sessions(self, uid) -> List[Dict[str, Any]]:
        items = list(self.sessions.get(uid, {}).values())
        return sorted(items, key=lambda s: s.get("date") or "", reverse=True)

    def get_session(self, uid, session_id) -> Optional[Dict[str, Any]]:
        return self.sessions.get(uid, {}).get(session_id)

    def delete_session(self, uid, session_id) -> bool:
        return self.sessions.get(uid, {}).pop(session_id, None) is not None


class FakeSummarizer:
    def __init__(self, summary="- Agreed on the Q3 plan"):
        self.summary = summary
        self.seen = []

    def summarize(self, session):
        self.seen.append(session)
        return self.summary


@pytest.fixture
def storage(tmp_path):
    return ChunkStorage(str(tmp_path / "chunks"))


@pytest.fixture
def transcriber():
    return DemoTranscriber()


@pytest.fixture
def store():
    return ConnectionStore(default_mime_type="audio/webm")


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def client(transcriber, storage, store, repository, summarizer):
    pipeline = ChunkPipeline(transcriber, storage, MAX_BYTES)
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    app.dependency_overrides[get_chunk_storage] = lambda: storage
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_connection_store] = lambda: store
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_summarizer] = lambda: summarizer
    app.dependency_overrides[current_user] = lambda: {"uid": "user-1"}
    yield TestClient(app)
    app.dependency_overrides.clear()
