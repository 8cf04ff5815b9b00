from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from metri.core.config import Settings
from metri.core.errors import PayloadTooLarge, TranscriptionFailed
from metri.services.transcriber import (
    DEMO_PHRASES,
    LANGUAGE_RULES,
    DemoTranscriber,
    OpenAIWhisperTranscriber,
    build_transcriber,
    check_payload_size,
    normalize_language,
)


@pytest.mark.parametrize("reported", ["english", "en", "", None, "french"])
def test_khmer_characters_win_over_reported_language(reported):
    assert normalize_language(reported, "សួស្តី everyone") == "km"


@pytest.mark.parametrize("reported", ["khmer", "Khmer", "KHMER (Cambodia)", "km"])
def test_reported_khmer_without_khmer_text(reported):
    assert normalize_language(reported, "hello") == "km"


@pytest.mark.parametrize("reported", ["english", "French", None])
def test_everything_else_is_english(reported):
    assert normalize_language(reported, "good morning") == "en"


def test_character_rule_is_checked_first():
    assert LANGUAGE_RULES[0][1]("english", "ខ") is True
    assert LANGUAGE_RULES[1][1]("english", "ខ") is False


def test_demo_cycles_round_robin():
    demo = DemoTranscriber()
    got = [demo.transcribe_file("ignored.webm", "audio/webm") for _ in range(len(DEMO_PHRASES) * 2 + 1)]
    expected = [DEMO_PHRASES[i % len(DEMO_PHRASES)] for i in range(len(got))]
    assert got == expected
    assert [p.lang for p in got[:4]] == ["en", "km", "en", "km"]


def test_demo_reset_restarts_counter():
    demo = DemoTranscriber()
    demo.next_phrase()
    demo.next_phrase()
    demo.reset()
    assert demo.next_phrase() == DEMO_PHRASES[0]
    assert demo.configured is False


def test_payload_size_limit():
    check_payload_size(10, 10)
    with pytest.raises(PayloadTooLarge) as exc:
        check_payload_size(11, 10)
    assert isinstance(exc.value, TranscriptionFailed)


def test_build_transcriber_auto_without_key_is_demo():
    t = build_transcriber(Settings(OPENAI_API_KEY="", TRANSCRIPTION_BACKEND="auto"))
    assert isinstance(t, DemoTranscriber)


def test_build_transcriber_auto_with_key_is_openai():
    with patch("metri.services.transcriber.openai.OpenAI"):
        t = build_transcriber(Settings(OPENAI_API_KEY="sk-test", TRANSCRIPTION_BACKEND="auto"))
    assert isinstance(t, OpenAIWhisperTranscriber)
    assert t.configured is True


def test_build_transcriber_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_transcriber(Settings(TRANSCRIPTION_BACKEND="nope"))


def _openai_transcriber(response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.audio.transcriptions.create.side_effect = error
    else:
        client.audio.transcriptions.create.return_value = response
    with patch("metri.services.transcriber.openai.OpenAI", return_value=client):
        return OpenAIWhisperTranscriber(api_key="sk-test"), client


def test_openai_transcriber_normalizes_output(tmp_path):
    audio = tmp_path / "chunk.webm"
    audio.write_bytes(b"\x1a\x45\xdf\xa3")
    t, client = _openai_transcriber(SimpleNamespace(text="  សួស្តី  ", language="english", duration=4.2))

    result = t.transcribe_file(str(audio), "audio/webm")

    assert result.text == "សួស្តី"
    assert result.lang == "km"
    assert result.duration == 4.2
    kwargs = client.audio.transcriptions.create.call_args.kwargs
    assert kwargs["model"] == "whisper-1"
    assert kwargs["response_format"] == "verbose_json"
    assert "language" not in kwargs


def test_openai_transcriber_empty_text(tmp_path):
    audio = tmp_path / "chunk.webm"
    audio.write_bytes(b"x")
    t, _ = _openai_transcriber(SimpleNamespace(text=None, language=None, duration=None))
    result = t.transcribe_file(str(audio), "audio/webm")
    assert (result.text, result.lang, result.duration) == ("", "en", 0.0)


def test_openai_transcriber_wraps_api_errors(tmp_path):
    audio = tmp_path / "chunk.webm"
    audio.write_bytes(b"x")
    t, _ = _openai_transcriber(error=openai.OpenAIError("invalid api key"))
    with pytest.raises(TranscriptionFailed):
        t.transcribe_file(str(audio), "audio/webm")


def test_openai_transcriber_sends_one_request_per_failed_chunk(tmp_path):
    audio = tmp_path / "chunk.webm"
    audio.write_bytes(b"x")
    requests = []

    def handler(request):
        requests.append(request.url.path)
        return httpx.Response(500, json={"error": {"message": "upstream down"}})

    real_client = openai.OpenAI

    def client_factory(**kwargs):
        return real_client(http_client=httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)

    with patch("metri.services.transcriber.openai.OpenAI", side_effect=client_factory) as factory:
        t = OpenAIWhisperTranscriber(api_key="sk-test")
    assert factory.call_args.kwargs["max_retries"] == 0

    with pytest.raises(TranscriptionFailed):
        t.transcribe_file(str(audio), "audio/webm")
    assert requests == ["/v1/audio/transcriptions"]


def test_openai_transcriber_requires_key():
    with pytest.raises(ValueError):
        OpenAIWhisperTranscriber(api_key="")
