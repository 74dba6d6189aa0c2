from datetime import datetime
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings
from .core.errors import LinkifyError, StoreError, UpstreamError
from .core.logging import configure_logging
from .api.routes_auth import router as auth_router
from .api.routes_analysis import router as analysis_router
from .api.routes_companies import router as companies_router
from .api.routes_prospects import router as prospects_router
from .api.routes_users import router as users_router

configure_logging()
settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(title="Linkify API")

# CORS:
# - The browser extension and linkedin.com content scripts are always allowed.
# - In prod, FRONTEND_URL is required and we never fall back to "*".
# - In non-prod, wide-open CORS is only enabled if CORS_ALLOW_ALL_ORIGINS=True.
extension_origins = ["https://www.linkedin.com"]
if settings.EXTENSION_ID:
    extension_origins.append(f"chrome-extension://{settings.EXTENSION_ID}")

frontend_origins = [
    o.strip()
    for o in (settings.FRONTEND_URL or "").split(",")
    if o.strip()
]

if settings.ENV.lower() == "prod":
    if not frontend_origins:
        raise RuntimeError(
            "FRONTEND_URL must be set in production – refusing to start with wide-open CORS."
        )
    origins = frontend_origins + extension_origins
elif settings.CORS_ALLOW_ALL_ORIGINS:
    origins = ["*"]
else:
    origins = frontend_origins + extension_origins + ["http://localhost:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    # Credentials cannot be combined with a wildcard origin
    allow_credentials=origins != ["*"],
)


@app.exception_handler(LinkifyError)
async def linkify_error_handler(request: Request, exc: LinkifyError):
    """Client errors carry their message; server errors only the generic one."""
    if exc.status_code < 500:
        message = exc.message
    elif isinstance(exc, StoreError) and settings.ENV == "dev":
        message = exc.message
    else:
        message = exc.public_message

    content = {"error": message}
    if isinstance(exc, UpstreamError):
        logger.error(
            "Completion endpoint failure (retryable=%s): %s", exc.retryable, exc.message,
            extra={"step": request.url.path},
        )
        # Transport, timeout, 429 and 5xx failures are worth retrying; other 4xx are not
        content["retryable"] = exc.retryable
    elif exc.status_code >= 500:
        logger.error("%s: %s", exc.__class__.__name__, exc.message, extra={"step": request.url.path})

    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if exc.status_code != 404 or exc.detail != "Not Found" else "Route not found"
    return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"step": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.utcnow().isoformat() + "Z"}


app.include_router(auth_router)
app.include_router(analysis_router, prefix=settings.API_PREFIX)
app.include_router(companies_router, prefix=settings.API_PREFIX)
app.include_router(prospects_router, prefix=settings.API_PREFIX)
app.include_router(users_router, prefix=settings.API_PREFIX)
