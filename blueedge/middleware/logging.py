from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER_NAME = "blueedge.access"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one compact JSON access line per request."""

    def __init__(self, app, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger if logger is not None else logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(
                self._payload("http_request_error", request, request_id, 500, start),
                level=logging.ERROR,
            )
            raise

        response.headers.setdefault("x-request-id", request_id)
        payload = self._payload("http_request", request, request_id, response.status_code, start)
        document_id = getattr(request.state, "document_id", None)
        if document_id:
            payload["document_id"] = document_id

        self._log(payload)
        return response

    @staticmethod
    def _payload(event: str, request: Request, request_id: str, status: int, start: float) -> dict[str, object]:
        return {
            "event": event,
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }

    def _log(self, payload: dict[str, object], level: int = logging.INFO) -> None:
        self.logger.log(level, json.dumps(payload, separators=(",", ":")))
