from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking_wizard.errors import AppError, GatewayError, error_response

logger = logging.getLogger(__name__)


def _with_correlation_id(request: Request, details: Dict[str, Any]) -> Dict[str, Any]:
    cid = getattr(request.state, "correlation_id", None)
    if cid and "correlation_id" not in details:
        details["correlation_id"] = cid
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        details = exc.details.copy() if isinstance(exc.details, dict) else {}
        content = error_response(exc.code, exc.message, _with_correlation_id(request, details))
        if exc.retryable is not None:
            content["error"]["retryable"] = exc.retryable
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:  # type: ignore[override]
        # Channel-manager failures are surfaced verbatim with their own status
        details = _with_correlation_id(request, {"gateway": dict(exc.meta)})
        return JSONResponse(
            status_code=exc.http_status,
            content=jsonable_encoder(error_response(exc.code, exc.message, details)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        details: Dict[str, Any] = {"errors": jsonable_encoder(exc.errors())}
        return JSONResponse(
            status_code=422,
            content=error_response("validation_error", "Request validation failed", _with_correlation_id(request, details)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore[override]
        code = "not_found" if exc.status_code == 404 else "http_error"
        detail: Any = exc.detail
        if isinstance(detail, str):
            message = detail
            details: Dict[str, Any] = {}
        elif isinstance(detail, dict):
            message = detail.get("message", "HTTP error")
            details = dict(detail)
        else:
            message = "HTTP error"
            details = {}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message, _with_correlation_id(request, details)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "Unexpected server error", _with_correlation_id(request, {})),
        )
