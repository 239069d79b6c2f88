"""Request-id middleware, request logging, and exception handlers."""

from __future__ import annotations

from time import perf_counter
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.errors import CollaboratorUnavailableError, LifecycleError
from proposal_lifecycle.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.responses import Response

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
_HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})
_MAX_REQUEST_ID_LENGTH = 128


def _json_safe(value: object) -> object:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return str(value)


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if not isinstance(request_id, str) or not request_id:
        return None
    return request_id


def _error_payload(
    *,
    detail: object,
    request_id: str | None,
    code: str | None = None,
    retryable: bool | None = None,
) -> dict[str, object]:
    payload: dict[str, object] = {"detail": detail}
    if request_id is not None:
        payload["request_id"] = request_id
    if code is not None:
        payload["code"] = code
    if retryable is not None:
        payload["retryable"] = retryable
    return payload


def _json_response(
    request: Request,
    *,
    status_code: int,
    payload: dict[str, object],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    response_headers = dict(headers or {})
    request_id = _get_request_id(request)
    if request_id is not None:
        response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload),
        headers=response_headers,
    )


def _normalize_request_id(raw: str | None) -> str:
    if raw is not None:
        cleaned = raw.strip()
        if cleaned and len(cleaned) <= _MAX_REQUEST_ID_LENGTH:
            return cleaned
    return uuid4().hex


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> Response:
    if not isinstance(exc, RequestValidationError):
        raise TypeError("Expected RequestValidationError")
    return _json_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        payload=_error_payload(
            detail=_json_safe(exc.errors()),
            request_id=_get_request_id(request),
        ),
    )


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> Response:
    if not isinstance(exc, ResponseValidationError):
        raise TypeError("Expected ResponseValidationError")
    logger.error(
        "http.response.validation_failed",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _json_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        payload=_error_payload(
            detail="Internal Server Error",
            request_id=_get_request_id(request),
        ),
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        raise TypeError("Expected StarletteHTTPException")
    code = exc.code if isinstance(exc, LifecycleError) else None
    retryable = False if isinstance(exc, LifecycleError) else None
    return _json_response(
        request,
        status_code=exc.status_code,
        payload=_error_payload(
            detail=exc.detail,
            request_id=_get_request_id(request),
            code=code,
            retryable=retryable,
        ),
        headers=dict(exc.headers or {}),
    )


async def _datastore_unavailable_handler(request: Request, exc: Exception) -> Response:
    logger.error(
        "db.unavailable",
        extra={
            "path": request.url.path,
            "request_id": _get_request_id(request),
            "error_type": type(exc).__name__,
        },
    )
    return _json_response(
        request,
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        payload=_error_payload(
            detail="Datastore temporarily unavailable",
            request_id=_get_request_id(request),
            code="datastore_unavailable",
            retryable=True,
        ),
    )


async def _collaborator_unavailable_handler(request: Request, exc: Exception) -> Response:
    collaborator = exc.collaborator if isinstance(exc, CollaboratorUnavailableError) else "unknown"
    logger.warning(
        "collaborator.unavailable",
        extra={
            "path": request.url.path,
            "request_id": _get_request_id(request),
            "collaborator": collaborator,
        },
    )
    return _json_response(
        request,
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        payload=_error_payload(
            detail=str(exc),
            request_id=_get_request_id(request),
            code="collaborator_unavailable",
            retryable=True,
        ),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.exception(
        "http.unhandled_exception",
        extra={
            "path": request.url.path,
            "request_id": _get_request_id(request),
            "error_type": type(exc).__name__,
        },
    )
    return _json_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        payload=_error_payload(
            detail="Internal Server Error",
            request_id=_get_request_id(request),
        ),
    )


def _should_log_request(path: str) -> bool:
    return settings.request_log_include_health or path not in _HEALTH_PATHS


def install_error_handling(app: FastAPI) -> None:
    """Install request-id propagation, request logging, and error handlers."""

    @app.middleware("http")
    async def _request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started = perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        path = request.url.path
        if not _should_log_request(path):
            return response
        duration_ms = int((perf_counter() - started) * 1000)
        extra: dict[str, Any] = {
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
        }
        if settings.request_log_slow_ms and duration_ms >= settings.request_log_slow_ms:
            extra["slow_threshold_ms"] = settings.request_log_slow_ms
            logger.warning("http.request.slow", extra=extra)
        else:
            logger.info("http.request", extra=extra)
        return response

    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(OperationalError, _datastore_unavailable_handler)
    app.add_exception_handler(InterfaceError, _datastore_unavailable_handler)
    app.add_exception_handler(CollaboratorUnavailableError, _collaborator_unavailable_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
