import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # load .env from the working directory before settings are read

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from rmt_backend.config import Settings
from rmt_backend.core.firebase import init_firebase
from rmt_backend.core.narrative import NarrativeComposer
from rmt_backend.core.pdf_renderer import ReportDocumentRenderer
from rmt_backend.core.report_service import ReportService
from rmt_backend.core.report_store import ReportStore
from rmt_backend.core.sensor_reader import SensorSnapshotReader
from rmt_backend.routers import report

logger = logging.getLogger(__name__)


def build_report_service(settings: Settings) -> ReportService:
    db, bucket = init_firebase(settings)

    if settings.llm_available:
        client = AsyncOpenAI(api_key=settings.openai_api_key)
        logger.info("[env] OPENAI_API_KEY loaded (narratives use %s)", settings.openai_model)
    else:
        client = None
        logger.warning("[env] OPENAI_API_KEY not set, reports will use the template narrative")

    return ReportService(
        reader=SensorSnapshotReader(db),
        composer=NarrativeComposer(
            client,
            model=settings.openai_model,
            max_tokens=settings.narrative_max_tokens,
            temperature=settings.narrative_temperature,
            timeout_seconds=settings.narrative_timeout_seconds,
        ),
        renderer=ReportDocumentRenderer(),
        store=ReportStore(db, bucket, download_base_url=settings.download_base_url),
    )


def create_app(
    report_service: Optional[ReportService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "report_service", None) is None:
            app.state.report_service = build_report_service(settings)
        yield

    app = FastAPI(title="Remote Monitoring Report API", version="0.1.0", lifespan=lifespan)
    app.state.report_service = report_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(report.router)

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
