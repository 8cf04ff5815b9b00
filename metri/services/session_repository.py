import datetime
import uuid
from typing import Any, Dict, List, Optional

import pytz

from metri.core.firebase import db_ref
from metri.models.messages import SessionCreate


def _now() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def _entries_by_time(entries: Any) -> List[Dict[str, Any]]:
    # RTDB hands lists back as dicts when keys are sparse
    if isinstance(entries, dict):
        entries = list(entries.values())
    return sorted((e for e in entries or [] if e), key=lambda e: e.get("time") or 0)


def build_session(payload: SessionCreate, uid: str) -> Dict[str, Any]:
    """Turn a save request into the stored session document."""
    date = payload.date or _now()
    title = payload.title
    if not title:
        try:
            day = datetime.datetime.fromisoformat(date.replace("Z", "+00:00")).date()
        except ValueError:
            day = datetime.datetime.now(tz=pytz.UTC).date()
        title = f"Meeting — {day.month}/{day.day}/{day.year}"

    session_id = str(uuid.uuid4())
    return {
        "id": session_id,
        "user_id": uid,
        "title": title,
        "date": date,
        "duration": payload.duration or 0,
        "created_at": _now(),
        "entries": [
            {
                "id": e.id or uuid.uuid4().hex[:9],
                "session_id": session_id,
                "text": e.text,
                "lang": e.lang,
                "time": e.time,
            }
            for e in payload.entries
        ],
    }


def search_sessions(sessions: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Case-insensitive substring match over every entry, newest first."""
    needle = query.lower()
    results = []
    for s in sessions:
        for e in _entries_by_time(s.get("entries")):
            if needle not in (e.get("text") or "").lower():
                continue
            results.append({
                "session_id": s.get("id"),
                "title": s.get("title") or "",
                "text": e.get("text"),
                "lang": e.get("lang"),
                "time": e.get("time"),
            })
    return sorted(results, key=lambda r: r.get("time") or 0, reverse=True)


class SessionRepository:
    """
    Saved meeting transcripts in Firebase Realtime Database,
    one subtree per user: users/{uid}/sessions/{sessionId}.
    """

    def save_session(self, session: Dict[str, Any]) -> Dict[str, Any]:
        ref = db_ref(f"users/{session['user_id']}/sessions/{session['id']}")
        ref.set(session)
        return session

    def list_sessions(self, uid: str) -> List[Dict[str, Any]]:
        base = db_ref(f"users/{uid}/sessions").get() or {}
        items = []
        for sid, data in base.items():
            if not isinstance(data, dict):
                continue
            items.append({**data, "id": data.get("id") or sid, "entries": _entries_by_time(data.get("entries"))})
        # Newest meeting first
        return sorted(items, key=lambda x: x.get("date") or "", reverse=True)

    def get_session(self, uid: str, session_id: str) -> Optional[Dict[str, Any]]:
        data = db_ref(f"users/{uid}/sessions/{session_id}").get()
        if not isinstance(data, dict):
            return None
        return {**data, "id": data.get("id") or session_id, "entries": _entries_by_time(data.get("entries"))}

    def delete_session(self, uid: str, session_id: str) -> bool:
        ref = db_ref(f"users/{uid}/sessions/{session_id}")
        if ref.get() is None:
            return False
        ref.delete()
        return True

    def search(self, uid: str, query: str) -> List[Dict[str, Any]]:
        return search_sessions(self.list_sessions(uid), query)
