import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import init_db
from .errors import (
    BorderDeskError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingRequirementError,
    NotFoundError,
    PermissionDeniedError,
    StorageFailureError,
    ValidationError,
)
from .routers import (
    addons_router,
    applications_router,
    audit_router,
    deliveries_router,
    payments_router,
    users_router,
    verifications_router,
)

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="BorderDesk Operations API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(applications_router)
app.include_router(verifications_router)
app.include_router(audit_router)
app.include_router(deliveries_router)
app.include_router(payments_router)
app.include_router(addons_router)
app.include_router(users_router)


# Most specific first; the first matching class wins.
ERROR_STATUS_CODES = (
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (MissingRequirementError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (StorageFailureError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
)


def status_code_for(exc: BorderDeskError) -> int:
    for error_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(BorderDeskError)
async def borderdesk_error_handler(request: Request, exc: BorderDeskError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} refused ({code}): {exc.message}")

    body = {"detail": exc.message}
    if isinstance(exc, MissingRequirementError):
        body["missing_requirements"] = exc.missing_requirements
    return JSONResponse(status_code=code, content=body)


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.get("/health")
def health_check():
    return {"status": "healthy"}
