from pathlib import Path
from typing import Dict, Any

import firebase_admin
from firebase_admin import credentials, auth, db

from metri.core.config import settings


def init_firebase():
    """
    Initialize Firebase Admin on first use (single app instance).
    Deferred so the live pipeline runs without Firebase credentials.
    """
    if not firebase_admin._apps:
        cred_path = Path(settings.FIREBASE_CREDENTIALS_FILE)
        cred = credentials.Certificate(str(cred_path))
        firebase_admin.initialize_app(cred, {
            "databaseURL": settings.FIREBASE_DATABASE_URL
        })


def verify_firebase_token(id_token: str) -> Dict[str, Any]:
    """
    Verify Firebase ID token and return decoded claims.
    Raises if token invalid/expired.
    """
    init_firebase()
    decoded = auth.verify_id_token(id_token)
    return decoded


def db_ref(path: str):
    """Return a database reference for a given absolute path."""
    init_firebase()
    if not path.startswith("/"):
        path = f"/{path}"
    return db.reference(path)
