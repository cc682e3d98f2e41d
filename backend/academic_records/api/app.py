from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from academic_records import __version__
from academic_records.core.config import settings
from academic_records.core.database import init_db
from academic_records.core.exceptions import AcademicRecordsError
from academic_records.api.v1 import attendance, audit, evaluations, sessions

logger = logging.getLogger(__name__)


def create_app(initialize_database: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if initialize_database:
            init_db()
        yield

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Grade and attendance consistency engine",
        version=__version__,
        lifespan=lifespan
    )

    @app.exception_handler(AcademicRecordsError)
    async def academic_records_error_handler(request: Request, exc: AcademicRecordsError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, **exc.to_dict()}
        )

    app.include_router(sessions.router, prefix="/api/v1/classes", tags=["sessions"])
    app.include_router(attendance.router, prefix="/api/v1", tags=["attendance"])
    app.include_router(evaluations.router, prefix="/api/v1", tags=["grades"])
    app.include_router(audit.router, prefix="/api/v1/audit", tags=["audit"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": settings.APP_NAME}

    return app
