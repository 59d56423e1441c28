from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mortgage.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    MortgageError,
    NotFoundError,
    PublishError,
)
from mortgage.routers import applications, meta, webhooks
from mortgage.settings import app_settings

app = FastAPI(title="Mortgage Platform", version=app_settings.version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", app_settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(applications.router)
app.include_router(webhooks.router)
app.include_router(meta.router)

STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    InvalidTransitionError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    PublishError: status.HTTP_502_BAD_GATEWAY,
}


@app.exception_handler(MortgageError)
async def mortgage_exception_handler(request: Request, exc: MortgageError) -> JSONResponse:
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse({"detail": str(exc)}, status_code=status_code)


@app.exception_handler(500)
async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"detail": "An unexpected error occurred"}, status_code=500)
