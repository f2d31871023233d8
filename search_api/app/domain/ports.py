"""
도메인 포트(추상 인터페이스).

검색 코어는 아래 포트들(추상)에만 의존합니다.
권한 판단과 레코드 로딩은 트래커 본체가 구현해서 주입합니다.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from .models import (
    Actor,
    AdvancedSearchPage,
    Capability,
    EngineResult,
    IndexResult,
    RecordType,
    SearchableRecord,
    SearchQuery,
    SearchResult,
)


class AuthorizationOracle(Protocol):
    """(사용자, 권한, 프로젝트) 기준 권한 판단. 정책 자체는 트래커 본체가 소유한다."""

    def can_view(self, actor: Actor, record: SearchableRecord) -> bool:
        """
        레코드 자신의 가시성 규칙으로 조회 가능 여부를 판단한다.
        검색 결과 후처리(post-filter)에서 충분조건으로 쓰인다.
        """
        ...

    def projects_with_capability(self, actor: Actor, capability: Capability) -> set[int]:
        """
        Returns:
            set[int]: actor가 capability를 가진 프로젝트 id 집합
        """
        ...


class RecordRepository(Protocol):
    """색인된 (type, id)를 원본 레코드로 되돌린다."""

    def load(self, record_type: RecordType, record_id: int) -> SearchableRecord | None:
        """
        Returns:
            레코드. 이미 삭제되었으면 None
        """
        ...


class IndexPort(Protocol):
    """
    레코드를 인덱스에 적재/삭제.
    기본은 OpenSearch 단건 index / bulk 를 상정.
    """

    def index(self, record: SearchableRecord) -> EngineResult[str]:
        ...

    def delete(self, record_or_type: SearchableRecord | RecordType | str,
               record_id: int | None = None) -> EngineResult[str]:
        ...

    def bulk_index(self, records: Iterable[SearchableRecord]) -> EngineResult[IndexResult]:
        ...


class SearchPort(Protocol):
    """
    기본 검색을 수행합니다.
    """
    def search(self, question: str, limit: int = 25, offset: int = 0) -> list[SearchResult]:
        ...

    def count(self, question: str) -> int:
        ...

    def restricted_to(self, types: list[RecordType]) -> SearchPort:
        """같은 조건으로 검색 유형만 좁힌 searcher."""
        ...


class AdvancedSearchPort(Protocol):
    """고급 검색. 요청 전체를 SearchQuery 하나로 받는다."""

    def search(self, query: SearchQuery) -> AdvancedSearchPage:
        ...

    def count(self, query: SearchQuery) -> int:
        ...
