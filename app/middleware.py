import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-request SQL statement counter
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Count every statement *engine* sends to the database into
    ``query_count_var``.

    The listener sits on ``before_cursor_execute``, so statements issued
    by eager-loading strategies (``selectinload``) are counted too, which
    is what makes a per-row lookup visible as a growing ``X-Query-Count``.

    Call once per engine: the application engine in ``database.py`` and
    the test engine in ``conftest.py``.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


# ---------------------------------------------------------------------------
# Middleware (pure ASGI; BaseHTTPMiddleware would isolate the ContextVar)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` to every HTTP
    response, and logs a warning for requests whose statement count
    exceeds ``settings.QUERY_COUNT_WARNING``.

    Runs the inner app in the same task, so counter increments made by
    the handler are visible when the response starts.
    """

    def __init__(self, app: ASGIApp, warn_above: int | None = None) -> None:
        self.app = app
        self.warn_above = settings.QUERY_COUNT_WARNING if warn_above is None else warn_above

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()

        async def send_with_diagnostics(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = query_count_var.get()
                if queries > self.warn_above:
                    logger.warning(
                        "%s %s issued %d SQL statements (%.2f ms)",
                        scope["method"], scope["path"], queries, elapsed_ms,
                    )
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(elapsed_ms).encode()))
                headers.append((b"x-query-count", str(queries).encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_diagnostics)
