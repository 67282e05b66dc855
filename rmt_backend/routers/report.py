import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from rmt_backend.core.report_service import ReportService
from rmt_backend.errors import InvalidReportRequest, ReportGenerationError, ReportNotFound
from rmt_backend.schemas.report import GenerateReportRequest, GenerateReportResponse, StoredReport

logger = logging.getLogger(__name__)

router = APIRouter(tags=["report"])


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


@router.post("/generate_report", response_model=GenerateReportResponse)
async def generate_report(
    payload: Optional[GenerateReportRequest] = None,
    service: ReportService = Depends(get_report_service),
) -> GenerateReportResponse:
    """
    Fetch the latest sensor readings for the patient, write the narrative,
    render and upload the PDF, and return the stored report's metadata.
    """
    payload = payload or GenerateReportRequest()
    try:
        report = await service.generate(payload.patient_id, payload.appointment_id)
    except InvalidReportRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReportGenerationError:
        raise HTTPException(status_code=500, detail="Failed to generate report")
    return GenerateReportResponse.from_stored(report)


@router.get("/reports/{patient_id}/{report_id}", response_model=StoredReport)
async def get_report(
    patient_id: str,
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> StoredReport:
    try:
        return await service.get_by_id(patient_id, report_id)
    except ReportNotFound:
        raise HTTPException(status_code=404, detail="Report not found")
    except Exception:
        logger.exception("Error fetching report %s for patient %s", report_id, patient_id)
        raise HTTPException(status_code=500, detail="Failed to fetch report")


@router.get("/api/reports/patient/{patient_id}", response_model=list[StoredReport])
async def list_patient_reports(
    patient_id: str,
    service: ReportService = Depends(get_report_service),
) -> list[StoredReport]:
    """Newest first; an empty list when the patient has no reports."""
    try:
        return await service.list_by_patient(patient_id)
    except Exception:
        logger.exception("Error fetching reports for patient %s", patient_id)
        raise HTTPException(status_code=500, detail="Failed to fetch reports")
