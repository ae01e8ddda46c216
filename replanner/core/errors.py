from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from replanner.planning.errors import CollaboratorContractError, InvalidHeuristicError, PlanningError


logger = logging.getLogger(__name__)


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request Error"


def _error_payload(*, code: str, status_code: int, message: str, detail: Any) -> dict[str, Any]:
    return {
        "code": code,
        "status": status_code,
        "message": message,
        "detail": detail,
    }


def _planning_code(exc: PlanningError) -> str:
    if isinstance(exc, CollaboratorContractError):
        return "collaborator_contract_violation"
    if isinstance(exc, InvalidHeuristicError):
        return "invalid_heuristic"
    return "planning_error"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # noqa: ARG001
        detail = exc.detail
        if isinstance(detail, str):
            message = detail
        else:
            message = _status_phrase(exc.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(
                code="http_error",
                status_code=exc.status_code,
                message=message,
                detail=detail,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            status_code=422,
            content=_error_payload(
                code="validation_error",
                status_code=422,
                message="Request validation failed",
                detail=jsonable_errors(exc),
            ),
        )

    @app.exception_handler(PlanningError)
    async def handle_planning_exception(request: Request, exc: PlanningError) -> JSONResponse:
        logger.warning("Planning failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=422,
            content=_error_payload(
                code=_planning_code(exc),
                status_code=422,
                message=str(exc),
                detail=None,
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled server error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_payload(
                code="internal_error",
                status_code=500,
                message="Internal server error",
                detail=None,
            ),
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # pydantic may attach the raw exception under ``ctx``, which is not JSON-serializable.
    out = []
    for item in exc.errors():
        item = dict(item)
        ctx = item.get("ctx")
        if isinstance(ctx, dict):
            item["ctx"] = {k: str(v) for k, v in ctx.items()}
        out.append(item)
    return out
