# grading_progress/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from grading_progress.api.v1.endpoints import (
    errors,
    grading_items,
    health,
    progress,
    reports,
    submissions,
    uploads,
)
from grading_progress.core.config import settings
from grading_progress.core.errors import (
    GradingClientError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RequestTimeoutError,
)
from grading_progress.core.logging_config import setup_logging
from grading_progress.core.state import GradingState
from grading_progress.services.grading_client import GradingApiClient

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    setup_logging()
    app.state.grading = GradingState(GradingApiClient())


@app.on_event("shutdown")
async def on_shutdown():
    grading = getattr(app.state, "grading", None)
    if grading is not None:
        await grading.shutdown()


@app.exception_handler(GradingClientError)
async def grading_client_error_handler(request: Request, exc: GradingClientError):
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, PermissionDeniedError):
        status_code = 403
    elif isinstance(exc, NetworkError):
        status_code = 504 if isinstance(exc, RequestTimeoutError) else 502
    elif isinstance(exc, MalformedResponseError):
        status_code = 502
    elif exc.status_code is not None and 400 <= exc.status_code < 500:
        status_code = exc.status_code
    else:
        status_code = 502
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


prefix = settings.API_V1_PREFIX
app.include_router(health.router, prefix=f"{prefix}/health")
app.include_router(grading_items.router, prefix=prefix)
app.include_router(submissions.router, prefix=prefix)
app.include_router(progress.router, prefix=prefix)
app.include_router(uploads.router, prefix=prefix)
app.include_router(reports.router, prefix=prefix)
app.include_router(errors.router, prefix=prefix)
