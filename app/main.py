import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.cache import cache
from app.config import settings
from app.database import dispose_engine
from app.exceptions import AuthError, ConduitError
from app.middleware import TimingMiddleware
from app.routers import articles, profiles, tags, users

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure the root logger from ``settings.LOG_LEVEL``."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # Engine echo is controlled by settings.DEBUG; keep the rest quiet.
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Cache unavailable, continuing without it: %s", exc)
    logger.info("Conduit API started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await cache.disconnect()
    await dispose_engine()
    logger.info("Conduit API stopped")


def _error_response(status_code: int, errors: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": errors}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Map the application error taxonomy onto status codes and one JSON envelope."""

    @app.exception_handler(ConduitError)
    async def conduit_error_handler(request: Request, exc: ConduitError):
        logger.info(
            "%s %s -> %d %s %s",
            request.method,
            request.url.path,
            exc.status_code,
            type(exc).__name__,
            exc.context,
        )
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return _error_response(exc.status_code, exc.errors, headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Routing errors (unknown path, wrong method) raised by the framework.
        return _error_response(exc.status_code, {"body": [str(exc.detail)]}, exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            loc = [part for part in err.get("loc", ()) if isinstance(part, str)]
            field = loc[-1] if loc else "body"
            errors.setdefault(field, []).append(err.get("msg", "is invalid"))
        return _error_response(422, errors)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return _error_response(500, {"body": ["Internal server error"]})


app = FastAPI(
    title="Conduit API",
    description="Blogging platform backend: users, articles, comments, tags, follows, favorites",
    version="1.0.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(articles.router)
app.include_router(tags.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
