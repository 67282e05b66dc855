from __future__ import annotations

import asyncio
import logging
from typing import Any

from google.cloud import firestore

from rmt_backend.schemas.sensor_snapshot import MotionSummary, SensorSnapshot

logger = logging.getLogger(__name__)

# Sub-collections under patients/{patientId}
PPG_STREAM = "ppg_data"
MPU_STREAM = "mpu_data"
FLEX_STREAM = "flex_data"
FSR_STREAM = "fsr_data"

INGESTION_FIELD = "timestamp"


class SensorSnapshotReader:
    """Reads the most recent record of each sensor stream for one patient."""

    def __init__(self, db: Any) -> None:
        self._db = db

    async def _latest(self, patient_id: str, stream: str) -> dict[str, Any] | None:
        query = (
            self._db.collection(f"patients/{patient_id}/{stream}")
            .order_by(INGESTION_FIELD, direction=firestore.Query.DESCENDING)
            .limit(1)
        )
        docs = await query.get()
        if not docs:
            return None
        return docs[0].to_dict() or {}

    async def fetch_snapshot(self, patient_id: str) -> SensorSnapshot:
        """
        Fan out one latest-record query per stream and join the results.
        Empty streams become None; a failing query propagates.
        """
        ppg, mpu, flex, fsr = await asyncio.gather(
            self._latest(patient_id, PPG_STREAM),
            self._latest(patient_id, MPU_STREAM),
            self._latest(patient_id, FLEX_STREAM),
            self._latest(patient_id, FSR_STREAM),
        )

        motion = None
        if mpu is not None:
            motion = MotionSummary(
                state=mpu.get("state"),
                result=mpu.get("result"),
                raised=mpu.get("raised"),
                lowered=mpu.get("lowered"),
            )
            if motion.is_empty():
                motion = None

        snapshot = SensorSnapshot(
            heart_rate_bpm=ppg.get("bpm") if ppg else None,
            motion_summary=motion,
            flex_bent=flex.get("bent") if flex else None,
            pressure=fsr.get("pressure") if fsr else None,
        )
        logger.debug(
            "Snapshot for %s: %s",
            patient_id,
            sorted(snapshot.model_dump(exclude_none=True)),
        )
        return snapshot
