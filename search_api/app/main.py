from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from search_api.app.api.routers import (
    health,
    search,
    index
)
from search_api.app.platform.config import settings
from search_api.app.platform.logging import setup_logging
from search_api.app.platform.opensearch_client import build_client, close_client
from search_api.app.platform.errors import (
    http_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
    domain_exception_handler
)
from search_api.app.platform import exceptions as domainex
from search_api.app.middlewares.request_context import RequestContextMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 로깅 등 공통 준비
    setup_logging(
        log_to_file=settings.LOG_TO_FILE,
        log_dir=settings.LOG_DIR,
        as_json=settings.LOG_AS_JSON,
        level=settings.LOG_LEVEL,
    )

    # OpenSearch 클라이언트를 한 번만 생성해서 공유(검색 비활성화 시 None)
    app.state.opensearch = build_client(settings)
    # 권한 오라클/레코드 저장소는 트래커 본체가 앱을 띄우며 채운다
    if not hasattr(app.state, "oracle"):
        app.state.oracle = None
    if not hasattr(app.state, "records"):
        app.state.records = None
    try:
        yield
    finally:
        close_client(app.state.opensearch)

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)
app.include_router(health.router)
app.include_router(search.router, prefix="/api")
app.include_router(index.router, prefix="/api")

# Global Exception Filter
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(domainex.DomainError, domain_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# 요청 컨텍스트/액세스 로그 미들웨어
app.add_middleware(RequestContextMiddleware)
