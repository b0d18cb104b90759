import logging
import traceback
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .exceptions import BaseAPIException, InternalServerError

logger = logging.getLogger("starledger")


def _request_context(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    status_code = getattr(exc, "status_code", 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(f"[{exc.error_code}] {_request_context(request)} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.detail)  # type: ignore[arg-type]


async def handle_http_exception(request: Request, exc: HTTPException):
    error_msg = f"[HTTPException] {_request_context(request)} -> {exc.status_code}: {exc.detail}"

    if exc.status_code >= 500:
        tb_str = "".join(traceback.format_tb(exc.__traceback__))
        logger.error(f"{error_msg}\n\nStack Trace:\n{tb_str}")
    else:
        logger.warning(error_msg)

    # 이미 구조화된 detail이면 그대로, 아니면 공통 포맷으로 정규화
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail), {})
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.warning(f"[ValidationError] {_request_context(request)} -> 422: {exc.errors()}")
    content = _error_body(
        "VALIDATION_001", "Validation failed", {"errors": jsonable_errors(exc)}
    )
    return JSONResponse(status_code=422, content=content)


async def handle_database_unavailable(request: Request, exc: OperationalError):
    """DB 연결 실패 - 잔액을 추측하지 않고 503으로 응답"""
    logger.error(f"[DatabaseError] {_request_context(request)}: {exc.orig}")
    content = _error_body("DB_UNAVAILABLE", "Balance store is unavailable", {})
    return JSONResponse(status_code=503, content=content)


async def handle_unexpected_error(request: Request, exc: Exception):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"\n{'=' * 80}\n"
        f"[Unhandled Error] {_request_context(request)}\n"
        f"Exception Type: {type(exc).__name__}\n"
        f"Exception Message: {str(exc)}\n\n"
        f"Full Stack Trace:\n{tb_str}"
        f"{'=' * 80}"
    )

    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)  # type: ignore[arg-type]


def jsonable_errors(exc: RequestValidationError):
    # ctx에 예외 객체가 들어있는 경우가 있어 문자열로 변환
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(OperationalError, handle_database_unavailable)
    app.add_exception_handler(Exception, handle_unexpected_error)
