from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rmt_backend.schemas.sensor_snapshot import SensorSnapshot

REPORT_LANGUAGE = "en"
REPORT_FORMAT_VERSION = 1

GeneratedVia = Literal["model", "fallback"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReportDraft(_CamelModel):
    narrative_text: str
    summary: SensorSnapshot
    generated_via: GeneratedVia

    @field_validator("narrative_text")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("narrative_text must not be empty")
        return value


class StoredReport(_CamelModel):
    id: str
    report_url: str
    appointment_id: Optional[str] = None
    created_at: Optional[str] = None          # ISO-8601 UTC, None while pending
    language: str = REPORT_LANGUAGE
    format_version: int = REPORT_FORMAT_VERSION
    summary: SensorSnapshot = Field(default_factory=SensorSnapshot)
    generated_via: Optional[GeneratedVia] = None
    storage_path: Optional[str] = None


class GenerateReportRequest(_CamelModel):
    # Optional so a missing id is reported as 400 by the service, not 422.
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None

    @field_validator("patient_id", "appointment_id", mode="before")
    @classmethod
    def _numeric_ids_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class GenerateReportResponse(_CamelModel):
    id: str
    report_url: str
    appointment_id: Optional[str] = None
    language: str
    created_at: Optional[str] = None

    @classmethod
    def from_stored(cls, report: StoredReport) -> "GenerateReportResponse":
        return cls(
            id=report.id,
            report_url=report.report_url,
            appointment_id=report.appointment_id,
            language=report.language,
            created_at=report.created_at,
        )
