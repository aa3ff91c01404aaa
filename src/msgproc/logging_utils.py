import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from pythonjsonlogger import jsonlogger
from starlette.middleware.base import BaseHTTPMiddleware

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LEVELS = {
    "local": logging.DEBUG,
    "dev": logging.DEBUG,
    "prod": logging.INFO,
}


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds an ISO-8601 ``ts``, the level name and the current request id."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        log_record["level"] = record.levelname
        if "request_id" not in log_record:
            req_id = request_id_ctx.get()
            if req_id:
                log_record["request_id"] = req_id


def setup_logging(env: str = "local") -> logging.Logger:
    level = LEVELS.get(env, logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    # aio-pika/aiormq are chatty at DEBUG
    logging.getLogger("aiormq").setLevel(max(level, logging.INFO))
    logging.getLogger("aio_pika").setLevel(max(level, logging.INFO))
    return logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns an ``X-Request-ID`` and logs one line per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logging.getLogger("msgproc.requests").info(
                "request completed",
                extra={"method": request.method, "path": request.url.path, "status": response.status_code},
            )
            return response
        finally:
            request_id_ctx.reset(token)
