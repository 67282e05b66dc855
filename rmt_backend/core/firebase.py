from __future__ import annotations

import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore_async, storage

from rmt_backend.config import Settings

logger = logging.getLogger(__name__)


def init_firebase(settings: Settings) -> tuple[Any, Any]:
    """Initialise the default Firebase app once; return (Firestore AsyncClient, storage Bucket)."""
    if not firebase_admin._apps:
        if settings.firebase_credentials:
            cred = credentials.Certificate(settings.firebase_credentials)
        else:
            logger.info("FIREBASE_CREDENTIALS not set, using application default credentials")
            cred = credentials.ApplicationDefault()
        options = {"storageBucket": settings.storage_bucket} if settings.storage_bucket else None
        firebase_admin.initialize_app(cred, options)

    return firestore_async.client(), storage.bucket()
