"""
Request logging middleware with correlation IDs for request tracing.

The request id and fusion session id are kept in context vars (read by
ContextualLogger) and bound into structlog's context, so every log line
emitted while the request is handled carries them.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable to store request ID across async calls
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
session_id_var: ContextVar[str] = ContextVar("session_id", default="")

log = structlog.get_logger(__name__)

SESSION_PATH_MARKER = "/fusion/sessions/"


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get()


def get_session_id() -> str:
    """Get the current fusion session ID from context."""
    return session_id_var.get()


def session_id_from_path(path: str) -> str:
    """Extract the fusion session id from a request path, or empty string."""
    if SESSION_PATH_MARKER not in path:
        return ""
    tail = path.split(SESSION_PATH_MARKER, 1)[1]
    return tail.split("/")[0]


def bind_request_context(request_id: str, session_id: str) -> None:
    """Replace the structlog context with this request's ids."""
    structlog.contextvars.clear_contextvars()
    if session_id:
        structlog.contextvars.bind_contextvars(request_id=request_id, fusion_session=session_id)
    else:
        structlog.contextvars.bind_contextvars(request_id=request_id)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Assigns a short request ID to each request (echoed as X-Request-ID)
    2. Binds it, plus the fusion session id from the path, into the log context
    3. Logs request start/end with timing
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        path = request.url.path
        session_id = session_id_from_path(path)
        session_id_var.set(session_id)
        bind_request_context(request_id, session_id)

        start_time = time.time()
        log.info("request_start", method=request.method, path=path)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log.error("request_error", error=str(e)[:100], duration_ms=round(duration_ms), exc_info=True)
            raise

        duration_ms = (time.time() - start_time) * 1000
        log.log(
            logging.INFO if response.status_code < 400 else logging.WARNING,
            "request_end",
            status_code=response.status_code,
            duration_ms=round(duration_ms),
        )
        response.headers["X-Request-ID"] = request_id
        return response


class ContextualLogger:
    """
    A logger wrapper that automatically includes request_id and session_id.
    Use this in your services for consistent logging.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _format_msg(self, msg: str) -> str:
        request_id = get_request_id()
        session_id = get_session_id()
        prefix = ""
        if request_id:
            prefix = f"[{request_id}]"
        if session_id:
            prefix += f"[sess:{session_id[:8]}]"
        return f"{prefix} {msg}" if prefix else msg

    def debug(self, msg: str, *args, **kwargs):
        self.logger.debug(self._format_msg(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.logger.info(self._format_msg(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.logger.warning(self._format_msg(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.logger.error(self._format_msg(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self.logger.exception(self._format_msg(msg), *args, **kwargs)


def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger that includes request/session IDs."""
    return ContextualLogger(name)
