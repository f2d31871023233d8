"""
SearchAdapter
==============

화면(검색 결과 페이지) 쪽에서 쓰는 검색 계약:
    tokens / result_count / result_count_by_type / results(offset, limit)

뒤에 붙은 searcher가 기본(SearchPort)이든 고급(AdvancedSearchPort)이든
호출하는 쪽은 분기하지 않는다. 어느 쪽을 쓸지는 생성 시 한 번 정한다.

예시:
    adapter = SearchAdapter.basic("recipe bug", searcher, records)
    adapter.result_count           # 엔진 기준 건수
    adapter.results(0, 10)         # 원본 레코드 목록
"""

from __future__ import annotations

import logging
from typing import Dict, List

from search_api.app.domain.models import RecordType, SearchableRecord, SearchQuery, SearchResult
from search_api.app.domain.ports import AdvancedSearchPort, RecordRepository, SearchPort
from search_api.app.domain.utils import clamp_limit, clamp_offset, tokenize

logger = logging.getLogger(__name__)


class _BasicBackend:

    def __init__(self, searcher: SearchPort, types: List[RecordType]) -> None:
        self._searcher = searcher
        self.types = types

    def count(self, question: str) -> int:
        return self._searcher.count(question)

    def count_for(self, question: str, record_type: RecordType) -> int:
        return self._searcher.restricted_to([record_type]).count(question)

    def search(self, question: str, offset: int, limit: int) -> List[SearchResult]:
        return self._searcher.search(question, limit=limit, offset=offset)


class _AdvancedBackend:

    def __init__(self, searcher: AdvancedSearchPort, query: SearchQuery) -> None:
        self._searcher = searcher
        self._query = query
        self.types = list(query.types)

    def count(self, question: str) -> int:
        return self._searcher.count(self._query.model_copy(update={"question": question}))

    def count_for(self, question: str, record_type: RecordType) -> int:
        query = self._query.model_copy(update={"question": question, "types": [record_type]})
        return self._searcher.count(query)

    def search(self, question: str, offset: int, limit: int) -> List[SearchResult]:
        query = self._query.model_copy(update={"question": question, "offset": offset, "limit": limit})
        return self._searcher.search(query).results


class SearchAdapter:

    DEFAULT_LIMIT = 25
    MAX_LIMIT = 100

    def __init__(self, question: str | None, backend, records: RecordRepository) -> None:
        """
        Args:
            question: str | None          : 사용자 검색어(앞뒤 공백 제거)
            backend: _BasicBackend | _AdvancedBackend
            records: RecordRepository     : 결과를 원본 레코드로 되돌릴 때 사용
        """
        self.question = (question or "").strip()
        self.tokens: List[str] = tokenize(self.question)
        self._backend = backend
        self._records = records
        self._result_count: int | None = None
        self._result_count_by_type: Dict[str, int] | None = None

    @classmethod
    def basic(
        cls,
        question: str | None,
        searcher: SearchPort,
        records: RecordRepository,
        types: List[RecordType] | None = None) -> SearchAdapter:
        return cls(question, _BasicBackend(searcher, list(types or RecordType)), records)

    @classmethod
    def advanced(
        cls,
        question: str | None,
        searcher: AdvancedSearchPort,
        records: RecordRepository,
        query: SearchQuery | None = None) -> SearchAdapter:
        return cls(question, _AdvancedBackend(searcher, query or SearchQuery()), records)

    # ================= public API =================

    @property
    def result_count(self) -> int:
        if self._result_count is None:
            self._result_count = self._backend.count(self.question) if self.tokens else 0
        return self._result_count

    @property
    def result_count_by_type(self) -> Dict[str, int]:
        """유형마다 count를 한 번씩 호출한다(유형은 최대 7개)."""
        if self._result_count_by_type is None:
            if not self.tokens:
                self._result_count_by_type = {}
            else:
                self._result_count_by_type = {
                    t.value: self._backend.count_for(self.question, t) for t in self._backend.types
                }
        return self._result_count_by_type

    def results(self, offset: int = 0, limit: int = DEFAULT_LIMIT) -> List[SearchableRecord]:
        """
        검색 결과를 원본 레코드 목록으로 돌려주는 메서드.
        Args:
            offset: int : 건너뛸 결과 수
            limit: int  : 페이지 크기
        Returns:
            List[SearchableRecord]: 그 사이 삭제되어 로드할 수 없는 레코드는 빠진다
        """
        if not self.tokens:
            return []
        offset = clamp_offset(offset)
        limit = clamp_limit(limit, self.DEFAULT_LIMIT, self.MAX_LIMIT)

        found = self._backend.search(self.question, offset, limit)
        records = []
        for result in found:
            # searcher가 권한 재검증 때 로드해 둔 레코드가 있으면 다시 읽지 않는다
            record = result.record if result.record is not None else self._records.load(result.type, result.id)
            if record is not None:
                records.append(record)
        logger.debug("adapter.results: question=%s found=%d loaded=%d", self.question, len(found), len(records))
        return records
