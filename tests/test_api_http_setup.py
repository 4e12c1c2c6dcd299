from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from accessgate.api.http_setup import register_exception_handlers, register_http_middleware
from accessgate.core.config import AppConfig, SecurityConfig
from tests.support import build_app_config

LOGGER = logging.getLogger(__name__)


def _config(environment: str = "test") -> AppConfig:
    base = build_app_config(Path("runtime/test.db"))
    return AppConfig(
        environment=environment,
        auth=base.auth,
        storage=base.storage,
        delivery=base.delivery,
        mail=base.mail,
        logging=base.logging,
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=8,
        ),
    )


def _app(environment: str = "test") -> FastAPI:
    app = FastAPI()
    config = _config(environment)
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, config=config, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def test_http_setup_adds_security_headers_and_request_id() -> None:
    app = _app()
    dispatch = _dispatch_by_name(app, "request_logging_middleware")

    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_http_setup_rejects_large_request_before_handler() -> None:
    app = _app()
    dispatch = _dispatch_by_name(app, "request_size_limit_middleware")
    request = _request("/echo", method="POST", headers=[(b"content-length", b"20")])

    async def call_next(_request: Request) -> Response:
        raise AssertionError("handler must not run")

    response = asyncio.run(dispatch(request, call_next))
    assert response.status_code == 413
    assert b"REQUEST_TOO_LARGE" in response.body


def test_http_setup_serializes_http_exception_payload() -> None:
    app = _app()
    handler = app.exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/api/auth/login"),
            HTTPException(
                status_code=401,
                detail={"error_code": "AUTH_INVALID_CREDENTIALS", "message": "Invalid credentials"},
            ),
        )
    )
    assert response.status_code == 401
    assert b"AUTH_INVALID_CREDENTIALS" in response.body


def test_http_setup_includes_traceback_outside_production() -> None:
    handler = _app().exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("boom")))

    assert response.status_code == 500
    assert b"INTERNAL_SERVER_ERROR" in response.body
    assert b"RuntimeError: boom" in response.body


def test_http_setup_hides_internals_in_production() -> None:
    handler = _app("production").exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("boom")))

    assert response.status_code == 500
    assert b"Internal server error" in response.body
    assert b"boom" not in response.body


def test_http_setup_maps_validation_exception_to_400() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    response: Response = _resolve_response(
        handler(
            _request("/api/auth/signup", method="POST"),
            RequestValidationError(
                [{"loc": ("body", "email"), "msg": "Value error, Invalid email address", "type": "value_error"}]
            ),
        )
    )
    assert response.status_code == 400
    assert b"VALIDATION_ERROR" in response.body
    assert b"email: Invalid email address" in response.body
