import logging
from time import sleep

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .database import Base, engine
from .errors import AppError
from .jobs import OTPCleanupService
from .limiter import limiter
from .routers import auth, checkout
from .utils import error_response

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Phone OTP authentication and booking pricing",
)

cleanup_service = OTPCleanupService(settings.OTP_CLEANUP_INTERVAL_SECONDS)


def safe_init_db():
    max_retries = 30
    delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database ready")
            return
        except OperationalError:
            logger.warning("Database not ready (%s/%s)", attempt, max_retries)
            sleep(delay)

    raise RuntimeError("Could not connect to the database after several attempts.")


@app.on_event("startup")
async def on_startup():
    safe_init_db()
    cleanup_service.start()
    logger.info("%s started in %s mode", settings.APP_NAME, settings.APP_ENV)


@app.on_event("shutdown")
async def on_shutdown():
    await cleanup_service.stop()


app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------------------
# Errors -> {"success": false, "error": ...}
# -------------------------------------------------------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return error_response(message, 400)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return error_response("Too many authentication requests. Please try again later.", 429)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else str(exc)
    return error_response(message, 500)


app.include_router(auth.router)
app.include_router(checkout.router)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running",
    }


@app.get("/healthz")
def health_check():
    return {"ok": True, "status": "UP"}
