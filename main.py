import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import logging_config  # noqa: F401  configures the brify_sync loggers
from config import config, normalize_cors_origins
from routers import health, sync
from services.google_drive_real import DriveConfigurationError
from services.sync_service import SyncConfigurationError, SyncNotInitializedError

logger = logging.getLogger("brify_sync.main")

app = FastAPI(title="Brify Drive Sync")

origins = normalize_cors_origins(config.CORS_ORIGINS)
logger.info(f"CORS allowed origins: {origins}")

cors_params = {
    "allow_origins": origins,
    "allow_credentials": True,
    "allow_methods": ["GET", "POST", "OPTIONS"],
    "allow_headers": ["*"],
}

# Vercel preview deployments of the Brify frontend
if config.CORS_ORIGIN_REGEX:
    cors_params["allow_origin_regex"] = config.CORS_ORIGIN_REGEX
    logger.info(f"CORS origin regex enabled: {config.CORS_ORIGIN_REGEX}")

app.add_middleware(CORSMiddleware, **cors_params)


ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
}


def api_error(status_code: int, message: str, details=None) -> JSONResponse:
    """Error body shared by every /api response: {error, code, message[, details]}."""
    content = {
        "error": message,
        "code": ERROR_CODES.get(status_code, "http_error"),
        "message": message,
    }
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api")


@app.middleware("http")
async def ensure_api_json_error_response(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        if not _is_api(request):
            raise
        logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "An unexpected error occurred",
                "code": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )


@app.exception_handler(SyncConfigurationError)
@app.exception_handler(DriveConfigurationError)
async def sync_configuration_error_handler(request: Request, exc: Exception):
    logger.warning(f"Sync configuration error: {exc}")
    return api_error(400, str(exc))


@app.exception_handler(SyncNotInitializedError)
async def sync_not_initialized_handler(request: Request, exc: SyncNotInitializedError):
    return api_error(409, str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler_for_api(request: Request, exc: HTTPException):
    """Normalize HTTPException responses for /api routes while preserving defaults elsewhere."""
    if not _is_api(request):
        return await http_exception_handler(request, exc)

    detail = exc.detail
    if isinstance(detail, str):
        return api_error(exc.status_code, detail)
    message = str(detail.get("message")) if isinstance(detail, dict) and "message" in detail else "Request error"
    return api_error(exc.status_code, message, details=detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    if not _is_api(request):
        return await request_validation_exception_handler(request, exc)
    return api_error(422, "Validation error", details=exc.errors())


app.include_router(sync.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
def read_root():
    return {"message": "Brify Drive Sync Backend"}
