"""
Firebase initialization and helpers
"""

from __future__ import annotations

import base64
import json
import os
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth import exceptions as auth_exceptions

from barpanel.core.config import settings
from barpanel.services.errors import BackendUnavailable


def _load_credentials_info() -> dict[str, Any] | None:
    if settings.FIREBASE_CREDENTIALS_JSON:
        return json.loads(settings.FIREBASE_CREDENTIALS_JSON)
    if settings.FIREBASE_CREDENTIALS_B64:
        decoded = base64.b64decode(settings.FIREBASE_CREDENTIALS_B64).decode("utf-8")
        return json.loads(decoded)
    if settings.FIREBASE_CREDENTIALS_FILE and os.path.exists(settings.FIREBASE_CREDENTIALS_FILE):
        with open(settings.FIREBASE_CREDENTIALS_FILE, "r", encoding="utf-8") as f:
            return json.load(f)
    return None


@lru_cache(maxsize=1)
def get_firestore_client():
    """Initialize and return a cached Firestore client if Firebase is enabled.

    Expects credentials via one of: FIREBASE_CREDENTIALS_JSON, FIREBASE_CREDENTIALS_B64, FIREBASE_CREDENTIALS_FILE.
    Missing or unusable credentials raise BackendUnavailable.
    """
    if not settings.USE_FIREBASE:
        return None

    if not firebase_admin._apps:
        try:
            info = _load_credentials_info()
            if not info:
                raise BackendUnavailable("Firebase credentials not provided. Set FIREBASE_CREDENTIALS_FILE, FIREBASE_CREDENTIALS_JSON, or FIREBASE_CREDENTIALS_B64")
            firebase_admin.initialize_app(credentials.Certificate(info))
        except (ValueError, OSError, auth_exceptions.GoogleAuthError) as e:
            raise BackendUnavailable(f"Firebase credentials are unusable: {e}") from e

    return firestore.client()


def get_collection(name: str):
    """Collection reference for a grid's backing collection"""
    fs = get_firestore_client()
    if fs is None:
        raise BackendUnavailable("Firestore is disabled (USE_FIREBASE=false)")
    return fs.collection(name)
