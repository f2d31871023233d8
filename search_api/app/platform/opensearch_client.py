"""
검색 엔진 클라이언트 생성/해제.

전역 싱글턴을 두지 않고, 앱 lifespan에서 한 번 만들어 각 컴포넌트 생성자에 주입한다.
"""

from __future__ import annotations

import logging

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from search_api.app.platform.config import Settings

logger = logging.getLogger(__name__)


def build_client(settings: Settings) -> OpenSearch | None:
    """
    설정으로 OpenSearch 클라이언트를 만든다.
    검색이 꺼져 있거나 호스트가 비어 있으면 None을 돌려주고,
    이후 모든 읽기/쓰기 연산은 빈 값으로 degrade 된다.
    """
    if settings.SEARCH_DISABLED:
        logger.warning("search engine disabled by SEARCH_DISABLED")
        return None
    if not settings.OPENSEARCH_HOST:
        logger.warning("OPENSEARCH_HOST is empty; search engine not configured")
        return None

    # URL 그대로 넘긴다(스킴/포트 생략, user:pass@ 인증 정보는 클라이언트가 해석)
    client = OpenSearch(
        hosts=[settings.OPENSEARCH_HOST],
        verify_certs=settings.OPENSEARCH_VERIFY_CERTS,
        timeout=settings.OPENSEARCH_TIMEOUT,
        max_retries=settings.OPENSEARCH_MAX_RETRIES,
        retry_on_timeout=True,
    )
    # 인증 정보는 로그에 남기지 않는다
    logger.info("OpenSearch client initialized for %s", [h.get("host") for h in client.transport.hosts])
    return client


def close_client(client: OpenSearch | None) -> None:
    if client is None:
        return
    try:
        client.close()
    except OpenSearchException as e:
        logger.warning("failed to close OpenSearch client: %s", e)


def is_available(client: OpenSearch | None) -> bool:
    """클라이언트가 있고 ping에 응답하는지 확인한다."""
    if client is None:
        return False
    try:
        return bool(client.ping())
    except OpenSearchException:
        return False
