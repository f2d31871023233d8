from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi import status
from search_api.app.platform.logging import request_id_ctx
from search_api.app.platform import exceptions as domainex
import logging

def error_envelope(message, code="BAD_REQUEST", details=None, trace_id=None):
    return {
        "success": False,
        "error": {
            "code": code, "message": message, "details": details
        },
        "trace_id": trace_id
    }

async def http_exception_handler(request: Request, exc: HTTPException):
    # 4xx, 5xx 에러
    return JSONResponse(status_code=exc.status_code,
                        content=error_envelope(
                            exc.detail,
                            code=f"HTTP_{exc.status_code}",
                            trace_id=request_id_ctx.get()))

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # 422 Unprocessable Entity
    return JSONResponse(status_code=422,
                        content=error_envelope(
                            "Unprocessable Entity",
                            code="VALIDATION_ERROR",
                            details=jsonable_errors(exc),
                            trace_id=request_id_ctx.get()))

async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger(__name__).exception("Unhandled exception")
    # 500 Internal server error
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content=error_envelope(
                            "Internal server error",
                            code="INTERNAL_ERROR",
                            trace_id=request_id_ctx.get()))

# 도메인 예외 → (HTTP 상태, 에러 코드)
_DOMAIN_STATUS = [
    (domainex.ResourceNotFound, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (domainex.IndexingFailed, status.HTTP_502_BAD_GATEWAY, "INDEXING_FAILED"),
    (domainex.ServiceNotConfigured, status.HTTP_503_SERVICE_UNAVAILABLE, "NOT_CONFIGURED"),
]

async def domain_exception_handler(request: Request, exc: domainex.DomainError):
    """
    도메인/유즈케이스 예외를 HTTP로 매핑.
    매핑 표에 없는 DomainError는 400으로 내린다.
    """
    http_status, code = status.HTTP_400_BAD_REQUEST, "SERVICE_ERROR"
    for exc_type, mapped_status, mapped_code in _DOMAIN_STATUS:
        if isinstance(exc, exc_type):
            http_status, code = mapped_status, mapped_code
            break

    logging.getLogger(__name__).warning(
        "Domain error: %s (%s) path=%s", exc, code, str(request.url)
    )
    return JSONResponse(
        status_code=http_status,
        content=error_envelope(
            str(exc),
            code=code,
            trace_id=request_id_ctx.get())
    )

def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx 안에 예외 객체가 들어있으면 JSON 직렬화가 깨지므로 문자열로 바꾼다
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors
