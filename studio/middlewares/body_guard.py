from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("shen-studio.body-guard")

DEFAULT_MAX_BODY_BYTES = 20 * 1024 * 1024


class BodyGuardMiddleware(BaseHTTPMiddleware):
    """Reject API requests whose bodies exceed the configured size."""

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(self, app, *, max_bytes: int | None = None, **_: Any) -> None:  # type: ignore[override]
        self.max_body_bytes = self._normalise_limit(max_bytes, DEFAULT_MAX_BODY_BYTES)
        super().__init__(app)

    @staticmethod
    def _normalise_limit(candidate: int | None, fallback: int) -> int | None:
        if candidate is None:
            candidate = fallback
        if candidate <= 0:
            return None
        return candidate

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_body_bytes is None:
            return False
        if content_length and content_length > self.max_body_bytes:
            return True
        return body_len > self.max_body_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        if self._too_large(content_length, 0):
            return self._reject(rid, path, request.method, content_length or 0)

        body = await request.body()
        if self._too_large(None, len(body)):
            return self._reject(rid, path, request.method, len(body))

        logger.debug(
            "[guard] rid=%s path=%s method=%s cl=%s size=%s",
            rid,
            path,
            request.method,
            content_length_header,
            len(body),
        )

        response = await call_next(request)
        logger.info(
            "[guard] rid=%s path=%s done status=%s dur_ms=%s",
            rid,
            path,
            response.status_code,
            int((time.time() - start) * 1000),
        )
        return response

    def _reject(self, rid: str, path: str, method: str, size: int) -> JSONResponse:
        logger.warning(
            "[guard] rid=%s path=%s method=%s rejected size=%s limit=%s",
            rid,
            path,
            method,
            size,
            self.max_body_bytes,
        )
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": "REQUEST_BODY_TOO_LARGE",
                "size": size,
                "limit": self.max_body_bytes,
                "hint": "Reduce the number or size of reference images.",
            },
        )


__all__ = ["BodyGuardMiddleware"]
