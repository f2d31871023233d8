from __future__ import annotations

from fastapi import Depends, Request
from opensearchpy import OpenSearch

from search_api.app.domain.models import Actor
from search_api.app.domain.ports import AuthorizationOracle, RecordRepository
from search_api.app.domain.services.index_service import IndexService, RetryPolicy
from search_api.app.adapters.indexers.opensearch_indexer import OpenSearchIndexer
from search_api.app.adapters.searchers.opensearch_searcher import HighlightSettings
from search_api.app.platform.config import settings
from search_api.app.platform.exceptions import ServiceNotConfigured


# ---- 클라이언트 ----
def get_opensearch(request: Request) -> OpenSearch | None:
    """
    앱 시작 시 main.py의 lifespan에서 만들어 넣어둔 OpenSearch 클라이언트를 꺼낸다.
    검색이 꺼져 있으면 None(이후 연산은 빈 값으로 degrade).
    """
    return getattr(request.app.state, "opensearch", None)


# ---- 트래커 본체가 주입하는 협력 객체 ----
def get_oracle(request: Request) -> AuthorizationOracle:
    oracle = getattr(request.app.state, "oracle", None)
    if oracle is None:
        raise ServiceNotConfigured("authorization oracle")
    return oracle


def get_records(request: Request) -> RecordRepository:
    records = getattr(request.app.state, "records", None)
    if records is None:
        raise ServiceNotConfigured("record repository")
    return records


def get_actor(request: Request) -> Actor:
    """
    인증 미들웨어(트래커 본체)가 request.state.actor에 넣어둔 사용자.
    없으면 익명 사용자.
    """
    return getattr(request.state, "actor", None) or Actor.anonymous()


def get_highlight() -> HighlightSettings:
    return HighlightSettings(
        enabled=settings.HIGHLIGHT_ENABLED,
        fragment_size=settings.HIGHLIGHT_FRAGMENT_SIZE,
        number_of_fragments=settings.HIGHLIGHT_NUMBER_OF_FRAGMENTS,
    )


# ---- 색인 ----
def get_indexer(os: OpenSearch | None = Depends(get_opensearch)) -> OpenSearchIndexer:
    return OpenSearchIndexer(os, settings.OPENSEARCH_INDEX)


def get_index_service(
    indexer: OpenSearchIndexer = Depends(get_indexer),
    records: RecordRepository = Depends(get_records)) -> IndexService:
    """
    FastAPI DI에서 indexer와 레코드 저장소를 받아 IndexService를 생성해 주입한다.
    """
    retry = RetryPolicy(
        max_attempts=settings.INDEX_JOB_MAX_ATTEMPTS,
        backoff_seconds=settings.INDEX_JOB_BACKOFF_SECONDS,
    )
    return IndexService(indexer, records, retry=retry)
