import datetime
import re
from typing import Any, Dict

import pytz

RULE = "═" * 44
LANGUAGE_LABELS = {"km": "ខ្មែរ", "en": "English"}


def _fmt_time(ms: int) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000, tz=pytz.UTC).strftime("%I:%M:%S %p")


def _fmt_duration(seconds: int) -> str:
    seconds = int(seconds or 0)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _fmt_date(value: str) -> str:
    try:
        d = datetime.datetime.fromisoformat((value or "").replace("Z", "+00:00"))
    except ValueError:
        return value or ""
    return f"{d:%A, %B} {d.day}, {d.year}"


def format_transcript_text(session: Dict[str, Any]) -> str:
    """Plain-text export of a saved session: header block followed by one paragraph per entry."""
    entries = session.get("entries") or []
    lines = [
        f"[{_fmt_time(e['time'])}] [{LANGUAGE_LABELS.get(e.get('lang'), 'English')}]\n{e['text']}\n"
        for e in entries
    ]
    return "\n".join([
        "METRI Meeting Assistant — Transcript",
        RULE,
        f"Title    : {session.get('title', '')}",
        f"Date     : {_fmt_date(session.get('date', ''))}",
        f"Duration : {_fmt_duration(session.get('duration', 0))}",
        f"Entries  : {len(entries)}",
        RULE,
        "",
        *lines,
    ])


def download_filename(title: str) -> str:
    stem = re.sub(r"[^\w\s]", "", title or "").strip()
    stem = re.sub(r"\s+", "_", stem)
    return f"{stem or 'transcript'}.txt"
