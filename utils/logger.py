import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)s [%(name)s] rid=%(request_id)s %(message)s",
)

# Set per webhook call so pipeline logs (captcha, sheets, email) share the id
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def setup_logging() -> None:
    """Configure root logging and align the uvicorn loggers with LOG_LEVEL.

    Our stdout handler stamps each record with the current request id.
    Existing root handlers (e.g. installed by uvicorn) are kept as-is.
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(RequestIdFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    # requests/httpx would log every Sheets and siteverify call at INFO
    for name in ("httpx", "urllib3"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Binds a request id for the duration of the call and logs the outcome.

    The id comes from X-Request-ID when the form host sends one and is echoed
    back. Submission bodies are never logged: they carry personal data.
    """

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("backend.http")

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        client = request.client.host if request.client else ""
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "webhook %s %s failed client=%s time_ms=%s",
                request.method,
                request.url.path,
                client,
                int((time.perf_counter() - started) * 1000),
            )
            request_id_var.reset(token)
            raise
        response.headers["x-request-id"] = request_id
        self.logger.info(
            "webhook %s %s status=%s client=%s time_ms=%s",
            request.method,
            request.url.path,
            response.status_code,
            client,
            int((time.perf_counter() - started) * 1000),
        )
        request_id_var.reset(token)
        return response
