import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reviewflow import __version__
from reviewflow.core.config import get_settings
from reviewflow.core.logger import configure_logging
from reviewflow.core.review.errors import ErrorKind, ReviewError
from reviewflow.api.routers import deliverables, workflows, health
from reviewflow.api.middleware.request_context import RequestContextMiddleware
from reviewflow.api.schemas.common import ErrorResponse

settings = get_settings()

configure_logging(settings)
logger = logging.getLogger(__name__)

# HTTP status per error kind
ERROR_STATUS = {
    ErrorKind.DELIVERABLE_NOT_FOUND: 404,
    ErrorKind.WORKFLOW_NOT_FOUND: 404,
    ErrorKind.STEP_NOT_FOUND: 404,
    ErrorKind.ACTOR_NOT_ALLOWED: 403,
    ErrorKind.EMPTY_WORKFLOW: 422,
    ErrorKind.INVALID_STEP_TEMPLATE: 422,
    ErrorKind.MISSING_ARTIFACT: 422,
    ErrorKind.STEP_NOT_ACTIVE: 409,
    ErrorKind.SIGNATURE_REQUIRED: 409,
    ErrorKind.DUPLICATE_SIGNATURE: 409,
    ErrorKind.NO_REVISION_PENDING: 409,
    ErrorKind.WORKFLOW_ALREADY_TERMINAL: 409,
    ErrorKind.WORKFLOW_ALREADY_ACTIVE: 409,
}

app = FastAPI(
    title=settings.app_name,
    description="Multi-step deliverable review and sign-off engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestContextMiddleware)


@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError):
    status_code = ERROR_STATUS.get(exc.kind, 400)
    logger.info("%s %s rejected with %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
    body = ErrorResponse(
        error=exc.kind.value,
        detail=exc.message,
        workflow_id=exc.workflow_id,
        step_id=exc.step_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# Include routers
app.include_router(deliverables.router, prefix="/api")
app.include_router(workflows.router, prefix="/api")
app.include_router(health.router)
app.include_router(health.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
