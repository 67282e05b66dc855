class ReportError(Exception):
    """Base class for report pipeline errors."""


class InvalidReportRequest(ReportError):
    """Required input is missing. Mapped to 400, never retried."""


class ReportNotFound(ReportError):
    def __init__(self, patient_id: str, report_id: str):
        super().__init__(f"Report {report_id} not found for patient {patient_id}")
        self.patient_id = patient_id
        self.report_id = report_id


class ReportGenerationError(ReportError):
    """Opaque failure of the generate pipeline (fetch, render, upload or metadata)."""


class NarrativeUnavailable(ReportError):
    """The text-generation step produced nothing usable; compose falls back."""
