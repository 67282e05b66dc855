from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import quote

from google.cloud import firestore
from pydantic import ValidationError

from rmt_backend.config import DEFAULT_DOWNLOAD_BASE_URL
from rmt_backend.errors import ReportNotFound
from rmt_backend.schemas.report import StoredReport

logger = logging.getLogger(__name__)

CREATED_AT_FIELD = "createdAt"
DOWNLOAD_TOKEN_KEY = "firebaseStorageDownloadTokens"
PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class UploadResult:
    url: str
    object_key: str


def sanitize(value: Any) -> Any:
    """Recursively drop None: dict keys whose value is None, list elements that are None."""
    if isinstance(value, dict):
        return {k: sanitize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [sanitize(v) for v in value if v is not None]
    return value


def normalize_timestamp(value: Any) -> str | None:
    """
    ISO-8601 UTC with millisecond precision and a Z suffix.
    Anything that is not a resolved datetime (e.g. a pending server timestamp) is None.
    """
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def download_url(bucket_name: str, object_key: str, token: str, base_url: str = DEFAULT_DOWNLOAD_BASE_URL) -> str:
    encoded = quote(object_key, safe="")
    return f"{base_url}/{bucket_name}/o/{encoded}?alt=media&token={token}"


def to_stored_report(snapshot: Any) -> StoredReport:
    data = dict(snapshot.to_dict() or {})
    data[CREATED_AT_FIELD] = normalize_timestamp(data.get(CREATED_AT_FIELD))
    data["id"] = snapshot.id
    return StoredReport.model_validate(data)


class ReportStore:
    """
    PDF blobs in Firebase Storage, report metadata in Firestore under
    patients/{patientId}/reports.
    """

    def __init__(
        self,
        db: Any,
        bucket: Any,
        download_base_url: str = DEFAULT_DOWNLOAD_BASE_URL,
        token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._db = db
        self._bucket = bucket
        self._download_base_url = download_base_url
        self._token_factory = token_factory
        self._clock_ms = clock_ms

    def _reports(self, patient_id: str):
        return self._db.collection(f"patients/{patient_id}/reports")

    async def upload(self, patient_id: str, data: bytes) -> UploadResult:
        object_key = f"reports/{patient_id}/{self._clock_ms()}_{patient_id}.pdf"
        token = self._token_factory()

        blob = self._bucket.blob(object_key)
        blob.metadata = {DOWNLOAD_TOKEN_KEY: token}
        # upload_from_string blocks until the object is written or raises
        await asyncio.to_thread(blob.upload_from_string, data, content_type=PDF_CONTENT_TYPE)

        logger.info("Uploaded report %s (%d bytes)", object_key, len(data))
        return UploadResult(
            url=download_url(self._bucket.name, object_key, token, self._download_base_url),
            object_key=object_key,
        )

    async def save_metadata(self, patient_id: str, record: dict[str, Any]) -> StoredReport:
        """Write the sanitized record with a server timestamp, then read it back."""
        payload = sanitize(record)
        payload[CREATED_AT_FIELD] = firestore.SERVER_TIMESTAMP
        _, ref = await self._reports(patient_id).add(payload)
        snapshot = await ref.get()
        report = to_stored_report(snapshot)
        logger.info("Saved report %s for patient %s", report.id, patient_id)
        return report

    async def get_by_id(self, patient_id: str, report_id: str) -> StoredReport:
        snapshot = await self._reports(patient_id).document(report_id).get()
        if not snapshot.exists:
            raise ReportNotFound(patient_id, report_id)
        return to_stored_report(snapshot)

    async def list_by_patient(self, patient_id: str) -> list[StoredReport]:
        """Newest first. Records that no longer parse are logged and skipped."""
        query = self._reports(patient_id).order_by(CREATED_AT_FIELD, direction=firestore.Query.DESCENDING)
        reports = []
        for doc in await query.get():
            try:
                reports.append(to_stored_report(doc))
            except ValidationError as exc:
                logger.warning("Skipping malformed report %s for patient %s: %s", doc.id, patient_id, exc)
        return reports
