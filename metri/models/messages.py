from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# Client → Server control messages (text frames on /ws)

class AudioStart(BaseModel):
    type: Literal["audio_start"] = "audio_start"
    mimeType: Optional[str] = None  # "audio/webm" | "audio/ogg" | "audio/mp4" | ...


class ChunkMeta(BaseModel):
    # Advisory; whatever the recorder knows about the next binary frame
    model_config = ConfigDict(extra="allow")

    type: Literal["chunk_meta"] = "chunk_meta"


class AudioEnd(BaseModel):
    type: Literal["audio_end"] = "audio_end"


# REST payloads

class TranscriptEntry(BaseModel):
    id: Optional[str] = None
    text: str
    lang: str = "en"
    time: int = Field(..., description="Arrival time, epoch milliseconds")


class SessionCreate(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = None
    duration: int = 0
    entries: List[TranscriptEntry] = Field(default_factory=list)


class SummarizeRequest(BaseModel):
    sessionId: Optional[str] = None


class TranscribeResponse(BaseModel):
    text: str
    lang: str
    duration: float


class HealthResponse(BaseModel):
    status: str
    whisperConfigured: bool
    backend: str
    connections: int
    timestamp: str
