import logging
import traceback
import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ourspace.core.cache import TTLCache
from ourspace.core.config import settings
from ourspace.core.logging_config import setup_logging
from ourspace.routers import health, media, tools

setup_logging(secrets=(
    settings.cloudinary_api_secret,
    settings.gold_api_key,
    settings.pitucode_api_key,
))
logger = logging.getLogger("ourspace.api")

app = FastAPI(title="OurSpace API", version="0.1.0")
# World gold quote cache shared by all requests of this process
app.state.gold_cache = TTLCache(ttl_seconds=settings.gold_cache_ttl_seconds)


@app.on_event("startup")
def startup_log_config():
    """Log config status at startup (no secrets)."""
    cfg = {
        "APP_ENV": settings.app_env,
        "CLOUDINARY_CLOUD_NAME": settings.cloudinary_cloud_name or "(empty)",
        "CLOUDINARY_API_KEY_set": bool(settings.cloudinary_api_key),
        "CLOUDINARY_API_SECRET_set": bool(settings.cloudinary_api_secret),
        "GOLD_API_KEY_set": bool(settings.gold_api_key),
        "PITUCODE_API_KEY_set": bool(settings.pitucode_api_key),
        "AI_MAX_ATTEMPTS": settings.ai_max_attempts,
        "CORS_ALLOW_ORIGINS": settings.cors_allow_origins[:80] + ("..." if len(settings.cors_allow_origins) > 80 else ""),
    }
    logger.info("OurSpace API startup config: %s", cfg)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request/response pair; the request id is echoed back as X-Request-ID."""
    rid = request.headers.get("x-request-id") or f"{id(request):x}"
    start = time.perf_counter()
    logger.info("[%s] -> %s %s", rid, request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception("[%s] ERROR %s %s after %.0fms: %s",
                         rid, request.method, request.url.path, (time.perf_counter() - start) * 1000, e)
        raise
    elapsed_ms = (time.perf_counter() - start) * 1000
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(level, "[%s] <- %s %s %d %.0fms", rid, request.method, request.url.path, response.status_code, elapsed_ms)
    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request body or query: 400 with the first problem spelled out."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    message = first.get("msg") or "Invalid request"
    logger.warning("Validation error %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=400,
        content={"error": f"{field}: {message}" if field else message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions, log full traceback, return 500."""
    logger.exception("Unhandled exception %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) or "Internal Server Error",
            "type": type(exc).__name__,
            "_traceback": traceback.format_exc() if settings.app_env != "production" else None,
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(media.router)
app.include_router(tools.router)
