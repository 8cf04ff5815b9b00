import re
from dataclasses import dataclass
from threading import Lock
from typing import Callable, List, Optional, Tuple

import openai

from metri.core.config import Settings
from metri.core.errors import PayloadTooLarge, TranscriptionFailed, TransientStorageFailure
from metri.core.log import get_logger

logger = get_logger("transcriber")

KHMER_CHARS = re.compile(r"[\u1780-\u17FF]")


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    lang: str
    duration: float = 0.0


# Ordered language rules: the first rule that matches wins.
# Character evidence comes first because the backend's own tag is unreliable on short clips.
LanguageRule = Tuple[str, Callable[[str, str], bool]]

LANGUAGE_RULES: List[LanguageRule] = [
    ("km", lambda reported, text: bool(KHMER_CHARS.search(text))),
    ("km", lambda reported, text: "khmer" in reported or reported == "km"),
]
FALLBACK_LANGUAGE = "en"


def normalize_language(reported: Optional[str], text: str) -> str:
    """Map the backend's language name ("english", "khmer", "km", ...) to "en" / "km"."""
    reported = (reported or "").strip().lower()
    for code, matches in LANGUAGE_RULES:
        if matches(reported, text):
            return code
    return FALLBACK_LANGUAGE


class Transcriber:
    """
    Request/response contract with a speech-to-text capability:
    audio file + declared mime type -> text, language code, duration.
    """

    name = "base"
    configured = True

    def transcribe_file(self, file_path: str, mime_type: str) -> TranscriptionResult:
        raise NotImplementedError


class OpenAIWhisperTranscriber(Transcriber):
    """Hosted Whisper. No language hint is sent, so English vs Khmer is auto-detected."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "whisper-1"):
        if not api_key:
            raise ValueError("OpenAI API key is required for hosted Whisper")
        self._client = openai.OpenAI(api_key=api_key, max_retries=0)
        self._model = model

    def transcribe_file(self, file_path: str, mime_type: str) -> TranscriptionResult:
        try:
            with open(file_path, "rb") as f:
                # verbose_json carries the detected language and duration
                response = self._client.audio.transcriptions.create(
                    model=self._model,
                    file=f,
                    response_format="verbose_json",
                )
        except OSError as e:
            raise TransientStorageFailure(f"Cannot read audio chunk {file_path}: {e}") from e
        except openai.OpenAIError as e:
            logger.error("whisper.failed model=%s mime=%s err=%s", self._model, mime_type, e)
            raise TranscriptionFailed(str(e)) from e

        text = (response.text or "").strip()
        reported = getattr(response, "language", None) or "en"
        duration = getattr(response, "duration", None) or 0.0
        return TranscriptionResult(text=text, lang=normalize_language(reported, text), duration=float(duration))


class LocalWhisperTranscriber(Transcriber):
    """
    In-process Whisper. Prefers faster-whisper, falls back to openai-whisper.
    Both require ffmpeg installed in the environment.
    """

    name = "local"

    def __init__(self, model_name: str = "base"):
        self._backend = None
        self._model_name = model_name
        self._init_backend()

    def _init_backend(self):
        try:
            from faster_whisper import WhisperModel  # type: ignore
            # CPU default; adjust compute_type to "int8" or "float32" as needed
            self._backend = ("faster", WhisperModel(self._model_name, device="cpu", compute_type="int8"))
        except ImportError:
            try:
                import whisper  # type: ignore
                self._backend = ("openai", whisper.load_model(self._model_name))
            except ImportError as e:
                raise RuntimeError(
                    "No Whisper backend available. Install 'faster-whisper' or 'openai-whisper' and ensure ffmpeg is present."
                ) from e

    def transcribe_file(self, file_path: str, mime_type: str) -> TranscriptionResult:
        kind, model = self._backend
        try:
            if kind == "faster":
                segments, info = model.transcribe(file_path, vad_filter=True)
                text = "".join(seg.text for seg in segments).strip()
                return TranscriptionResult(
                    text=text,
                    lang=normalize_language(info.language, text),
                    duration=float(info.duration or 0.0),
                )

            result = model.transcribe(file_path, fp16=False, verbose=False)
        except Exception as e:
            logger.error("whisper.local.failed kind=%s mime=%s err=%s", kind, mime_type, e)
            raise TranscriptionFailed(str(e)) from e

        text = result.get("text", "").strip()
        segments = result.get("segments") or []
        duration = segments[-1].get("end", 0.0) if segments else 0.0
        return TranscriptionResult(text=text, lang=normalize_language(result.get("language"), text), duration=duration)


DEMO_PHRASES: List[TranscriptionResult] = [
    TranscriptionResult("Good morning everyone, let's begin today's agenda.", "en"),
    TranscriptionResult("សួស្តីទាំងអស់គ្នា! ខ្ញុំរីករាយដែលបានចូលរួម។", "km"),
    TranscriptionResult("Can you share the Q3 report on screen please?", "en"),
    TranscriptionResult("យើងត្រូវពិភាក្សាអំពីផែនការអភិវឌ្ឍន៍។", "km"),
    TranscriptionResult("The marketing team exceeded their targets this quarter.", "en"),
    TranscriptionResult("ខ្ញុំយល់ព្រមជាមួយការស្នើឡើងរបស់អ្នក។", "km"),
]


class DemoTranscriber(Transcriber):
    """
    Stand-in used when no transcription capability is configured.
    Returns DEMO_PHRASES round-robin; the counter is shared by every connection
    and lives as long as the process.
    """

    name = "demo"
    configured = False

    def __init__(self, phrases: Optional[List[TranscriptionResult]] = None):
        self._phrases = list(phrases or DEMO_PHRASES)
        self._counter = 0
        self._lock = Lock()

    def next_phrase(self) -> TranscriptionResult:
        with self._lock:
            phrase = self._phrases[self._counter % len(self._phrases)]
            self._counter += 1
        return phrase

    def reset(self):
        with self._lock:
            self._counter = 0

    def transcribe_file(self, file_path: str, mime_type: str) -> TranscriptionResult:
        return self.next_phrase()


def check_payload_size(size: int, limit: int):
    if size > limit:
        raise PayloadTooLarge(size, limit)


def build_transcriber(settings: Settings) -> Transcriber:
    """Pick the transcription backend once at startup."""
    backend = settings.TRANSCRIPTION_BACKEND.lower()
    if backend == "auto":
        backend = "openai" if settings.whisper_configured else "demo"

    if backend == "openai":
        return OpenAIWhisperTranscriber(api_key=settings.OPENAI_API_KEY, model=settings.WHISPER_MODEL)
    if backend == "local":
        return LocalWhisperTranscriber(model_name=settings.LOCAL_WHISPER_MODEL)
    if backend == "demo":
        return DemoTranscriber()
    raise ValueError(f"Unknown TRANSCRIPTION_BACKEND: {settings.TRANSCRIPTION_BACKEND}")
