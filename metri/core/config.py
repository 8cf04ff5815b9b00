from pathlib import Path
from typing import Tuple

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3001)
    FRONTEND_URL: str = Field(default="http://localhost:5173")
    LOG_LEVEL: str = Field(default="INFO")

    # Transcription ("auto" picks openai when a key is present, demo otherwise)
    OPENAI_API_KEY: str = Field(default="", description="Hosted Whisper credentials")
    TRANSCRIPTION_BACKEND: str = Field(default="auto", description="auto | openai | local | demo")
    WHISPER_MODEL: str = Field(default="whisper-1")
    # Local Whisper model name ("tiny", "base", "small", "medium", "large")
    LOCAL_WHISPER_MODEL: str = Field(default="base")
    SUMMARY_MODEL: str = Field(default="gpt-4o")

    # Hosted Whisper rejects uploads above 25 MB
    MAX_AUDIO_BYTES: int = Field(default=25 * 1024 * 1024)
    # Browser MediaRecorder default
    DEFAULT_MIME_TYPE: str = Field(default="audio/webm")

    # Storage for transient audio chunks
    TEMP_DIR: str = Field(default="/tmp/metri_chunks")

    # Firebase (auth + saved sessions)
    FIREBASE_CREDENTIALS_FILE: str = Field(
        default="secrets/firebase-adminsdk.json",
        description="Path to Firebase Admin SDK service account JSON",
    )
    FIREBASE_DATABASE_URL: str = Field(
        default="",
        description="Firebase Realtime Database URL",
    )

    class Config:
        env_file = ".env"

    @property
    def whisper_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    @property
    def cors_origin_regex(self) -> str:
        # localhost for development, plus preview hosts
        return r"https?://(localhost|127\.0\.0\.1)(:\d+)?|https://[\w-]+\.(netlify\.app|onrender\.com)"

    @property
    def ws_max_size(self) -> int:
        # Above MAX_AUDIO_BYTES so oversized chunks still reach the size check
        return self.MAX_AUDIO_BYTES + WS_FRAME_HEADROOM


# Substring of the declared mime type -> file suffix the transcription backend can decode
AUDIO_EXTENSIONS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("webm",), ".webm"),
    (("ogg",), ".ogg"),
    (("mp4", "m4a"), ".mp4"),
    (("wav",), ".wav"),
    (("mpeg", "mp3"), ".mp3"),
)
DEFAULT_AUDIO_EXTENSION = ".webm"

WS_FRAME_HEADROOM = 8 * 1024 * 1024


settings = Settings()

# Ensure temp directory exists
Path(settings.TEMP_DIR).mkdir(parents=True, exist_ok=True)
