"""Middleware for request context and idempotency."""

import json
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wa_mailbox.core.idempotency import IDEMPOTENCY_HEADER, build_cache_key, is_exempt_path
from wa_mailbox.core.tenant_context import clear_tenant_context, set_request_id
from wa_mailbox.infrastructure.redis import response_cache


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and resets the tenant logging context per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        set_request_id(request_id)
        clear_tenant_context()
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Replays cached responses for requests that carry an Idempotency-Key header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with idempotency check.

        Args:
            request: FastAPI request
            call_next: Next middleware/handler

        Returns:
            Response (cached if idempotent, or new)
        """
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return await call_next(request)

        path = str(request.url.path)
        client_key = request.headers.get(IDEMPOTENCY_HEADER)
        if not client_key or is_exempt_path(path) or not response_cache.enabled:
            return await call_next(request)

        cache_key = build_cache_key(
            request.method,
            path,
            client_key,
            request.headers.get("Authorization"),
        )

        cached_response = await response_cache.get_response(cache_key)
        if cached_response:
            return JSONResponse(
                content=cached_response["body"],
                status_code=cached_response["status_code"],
                headers={"Idempotent-Replay": "true"},
            )

        response = await call_next(request)

        # Cache successful JSON responses (2xx)
        if 200 <= response.status_code < 300 and response.headers.get("content-type", "").startswith(
            "application/json"
        ):
            response_body = b""
            async for chunk in response.body_iterator:
                response_body += chunk

            body = json.loads(response_body.decode()) if response_body else None
            await response_cache.store_response(cache_key, response.status_code, body)
            headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
            return Response(
                content=response_body,
                status_code=response.status_code,
                headers=headers,
                media_type=response.media_type,
            )

        return response
