from __future__ import annotations

import asyncio
import logging

from rmt_backend.core.narrative import NarrativeComposer
from rmt_backend.core.pdf_renderer import ReportDocumentRenderer
from rmt_backend.core.report_store import ReportStore
from rmt_backend.core.sensor_reader import SensorSnapshotReader
from rmt_backend.errors import InvalidReportRequest, ReportGenerationError
from rmt_backend.schemas.report import REPORT_FORMAT_VERSION, REPORT_LANGUAGE, StoredReport

logger = logging.getLogger(__name__)


class ReportService:
    """
    Orchestrates report generation: snapshot -> narrative -> PDF -> upload -> metadata.
    Concurrent calls for the same patient are not serialized; each produces its own report.
    """

    def __init__(
        self,
        reader: SensorSnapshotReader,
        composer: NarrativeComposer,
        renderer: ReportDocumentRenderer,
        store: ReportStore,
    ) -> None:
        self._reader = reader
        self._composer = composer
        self._renderer = renderer
        self._store = store

    async def generate(self, patient_id: str | None, appointment_id: str | None = None) -> StoredReport:
        patient_id = (patient_id or "").strip()
        if not patient_id:
            raise InvalidReportRequest("patientId is required")
        appointment_id = (appointment_id or "").strip() or None

        try:
            snapshot = await self._reader.fetch_snapshot(patient_id)
            draft = await self._composer.compose(snapshot)
            pdf_bytes = await asyncio.to_thread(self._renderer.render, patient_id, appointment_id, draft)
            upload = await self._store.upload(patient_id, pdf_bytes)
            record = {
                "reportUrl": upload.url,
                "storagePath": upload.object_key,
                "appointmentId": appointment_id,
                "language": REPORT_LANGUAGE,
                "formatVersion": REPORT_FORMAT_VERSION,
                "generatedVia": draft.generated_via,
                "summary": draft.summary.model_dump(by_alias=True),
            }
            return await self._store.save_metadata(patient_id, record)
        except Exception as exc:
            logger.exception("Error generating report for patient %s", patient_id)
            raise ReportGenerationError("Failed to generate report") from exc

    async def get_by_id(self, patient_id: str, report_id: str) -> StoredReport:
        return await self._store.get_by_id(patient_id, report_id)

    async def list_by_patient(self, patient_id: str) -> list[StoredReport]:
        return await self._store.list_by_patient(patient_id)
