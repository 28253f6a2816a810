import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import PipelineService, configure_pipeline_service
from backend.core.config import Settings
from backend.core.errors import PipelineError
from backend.infrastructure import InMemoryJobStore, UploadStorage
from backend.routes import pipeline, upload
from backend.workers.pipeline import (
    configure_pipeline_orchestrator,
    create_pipeline_orchestrator,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.uploads.ensure_root()
    logger.info("Upload directory: %s", app.state.uploads.root)
    yield
    await app.state.orchestrator.shutdown()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    _configure_logging(settings.log_level)

    store = InMemoryJobStore(max_jobs=settings.max_jobs, max_age=settings.retention_seconds)
    configure_pipeline_service(PipelineService(store))
    orchestrator = create_pipeline_orchestrator(store, settings)
    configure_pipeline_orchestrator(orchestrator)

    app = FastAPI(title="Test Case Copilot API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.uploads = UploadStorage(settings.upload_dir)
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": str(exc), "code": exc.code},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "invalid request", "code": "validation_error"},
        )

    app.include_router(upload.router, prefix="/api")
    app.include_router(pipeline.router, prefix="/api")
    app.include_router(upload.files_router)

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "ok": True,
                "message": "Test Case Copilot API",
                "docs": "/docs",
            }
        )

    return app


app = create_app()
