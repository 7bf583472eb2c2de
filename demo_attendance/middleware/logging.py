import logging
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from jose import JWTError
from starlette.types import ASGIApp

from demo_attendance.config import settings
from demo_attendance.services.auth import decode_access_token

# Configure logging
def setup_logging():
    """Configure application logging."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # Create logs directory if it doesn't exist
    if settings.LOG_FILE:
        log_dir = Path(settings.LOG_FILE).parent
        os.makedirs(log_dir, exist_ok=True)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(settings.LOG_FILE) if settings.LOG_FILE else logging.NullHandler(),
        ]
    )

    # Set specific log levels for noisy libraries
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logger = logging.getLogger("demo_attendance")
    logger.setLevel(log_level)

    return logger


def describe_caller(request: Request) -> str:
    """Role and id from the bearer token, for log lines only."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return "anonymous"
    try:
        user = decode_access_token(token)
    except JWTError:
        return "invalid-token"
    if user is None:
        return "invalid-token"
    if user.role == "student":
        return f"student:{user.student_id}"
    return f"{user.role}:{user.assistant_id or user.id}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging request details."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("demo_attendance.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()

        # Route handlers read request.state.request_id
        request.state.request_id = request_id
        caller = describe_caller(request)

        self.logger.info(
            f"Request started: {request.method} {request.url.path} "
            f"[caller: {caller}] "
            f"[client: {request.client.host if request.client else 'unknown'}] "
            f"[request_id: {request_id}]"
        )

        try:
            response = await call_next(request)

            duration = time.time() - start_time

            self.logger.info(
                f"Request completed: {request.method} {request.url.path} "
                f"[caller: {caller}] "
                f"[status: {response.status_code}] [duration: {duration:.3f}s] "
                f"[request_id: {request_id}]"
            )

            response.headers["X-Request-ID"] = request_id

            return response

        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path} "
                f"[caller: {caller}] "
                f"[error: {str(e)}] [request_id: {request_id}]",
                exc_info=True
            )
            raise

def add_logging_middleware(app: FastAPI):
    """Add request logging middleware to the FastAPI app."""
    app.add_middleware(RequestLoggingMiddleware)
