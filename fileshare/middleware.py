# fileshare/middleware.py
import time
import uuid

import structlog
from fastapi import HTTPException, Request
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fileshare.core.errors import PayloadTooLarge
from fileshare.schemas.fileshare import ErrorResponse

logger = structlog.get_logger("fileshare.request")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bindt request context aan de logger en logt start/einde van elke request."""

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        client_ip = request.client.host if request.client else "unknown"

        bound_logger = logger.bind(
            request_id=request_id,
            ip=client_ip,
            endpoint=str(request.url.path),
            method=request.method,
        )

        bound_logger.info("request_started")
        try:
            response = await call_next(request)
        except Exception:
            latency_ms = round((time.time() - start) * 1000, 2)
            bound_logger.bind(latency_ms=latency_ms).exception("request_failed")
            raise

        latency_ms = round((time.time() - start) * 1000, 2)
        bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
            "request_finished"
        )
        response.headers["X-Request-ID"] = request_id
        return response


class NoContentCORSMiddleware(CORSMiddleware):
    """CORSMiddleware, maar preflights krijgen 204 zonder body."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            k: v
            for k, v in response.headers.items()
            if k.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


class UploadSizeLimitMiddleware:
    """
    Weigert te grote request bodies voordat de multipart-parser ze op schijf zet.

    Een te grote ``Content-Length`` krijgt direct 413. Bodies zonder lengte
    (chunked) worden geteld; zodra de grens overschreden wordt breekt het
    inlezen af met dezelfde 413.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_bytes:
            logger.warning(
                "request_too_large",
                content_length=int(declared),
                max_body_bytes=self.max_body_bytes,
                endpoint=scope.get("path"),
            )
            response = JSONResponse(ErrorResponse(error=PayloadTooLarge.default_message).model_dump(), status_code=413)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    logger.warning("request_too_large", received=received, max_body_bytes=self.max_body_bytes)
                    raise HTTPException(status_code=413, detail=PayloadTooLarge.default_message)
            return message

        await self.app(scope, limited_receive, send)
