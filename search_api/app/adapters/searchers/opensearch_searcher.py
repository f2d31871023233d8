"""
사용자 검색어를 받아 권한 필터를 적용해 검색하는 SearchPort 구현체.

흐름:
    tokenize → 쿼리 + 권한 필터 → OpenSearch 조회(overfetch)
    → 레코드별 권한 재검증(post-filter) → offset/limit 적용
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException
from pydantic import BaseModel

from search_api.app.adapters.searchers.permission_filter import JOURNAL_NOTES, PermissionFilter
from search_api.app.domain.models import (
    Actor, RecordType, SearchOptions, SearchResult,
)
from search_api.app.domain.ports import AuthorizationOracle, RecordRepository, SearchPort
from search_api.app.domain.utils import clamp_limit, clamp_offset, tokenize, truncate_text

logger = logging.getLogger(__name__)


class HighlightSettings(BaseModel):
    enabled: bool = True
    fragment_size: int = 150
    number_of_fragments: int = 3


def open_work_items_filter() -> Dict[str, Any]:
    """일감이 아닌 문서 전부 + 닫히지 않은 일감."""
    return {
        "bool": {
            "should": [
                {"bool": {"must_not": [{"term": {"type": RecordType.work_item.value}}]}},
                {"term": {"work_item_fields.status_is_closed": False}},
            ],
            "minimum_should_match": 1,
        }
    }


def journal_fragments(hit: Dict[str, Any]) -> List[str]:
    """inner_hits로 받은 저널 노트 하이라이트 조각(중복 제거, 순서 유지)."""
    fragments: List[str] = []
    for inner in (hit.get("inner_hits") or {}).values():
        for journal in (inner.get("hits") or {}).get("hits") or []:
            for fragment in (journal.get("highlight") or {}).get(JOURNAL_NOTES) or []:
                if fragment not in fragments:
                    fragments.append(fragment)
    return fragments


def hit_to_result(hit: Dict[str, Any], snippet: Callable[[Dict[str, Any], Dict[str, Any]], str | None]) -> SearchResult:
    source = hit.get("_source") or {}
    highlight = dict(hit.get("highlight") or {})
    fragments = journal_fragments(hit)
    if fragments:
        highlight[JOURNAL_NOTES] = fragments
    title = (highlight.get("title") or [source.get("title")])[0]
    return SearchResult(
        type=source["type"],
        id=source["id"],
        project_id=source.get("project_id"),
        title=title,
        content=snippet(highlight, source),
        score=hit.get("_score"),
        created_on=source.get("created_on"),
        updated_on=source.get("updated_on"),
        raw=source,
    )


def revalidate(
    results: Iterable[SearchResult],
    permissions: PermissionFilter,
    records: RecordRepository) -> List[SearchResult]:
    """
    엔진 필터를 통과한 결과를 레코드 자신의 가시성 규칙으로 다시 확인한다.
    색인 이후 삭제되어 로드할 수 없는 레코드는 조용히 뺀다.
    남은 결과에는 로드한 레코드를 붙이고, 읽을 수 없는 비공개 노트는 raw/레코드 양쪽에서 뺀다.
    """
    visible = []
    for result in results:
        record = records.load(result.type, result.id)
        if record is None:
            continue
        if permissions.oracle.can_view(permissions.actor, record):
            visible.append(result.model_copy(update={
                "raw": permissions.redact_source(result.raw),
                "record": permissions.redact_record(record),
            }))
    return visible


class OpenSearchSearcher(SearchPort):

    DEFAULT_LIMIT = 25
    MAX_LIMIT = 100
    # post-filter로 빠지는 결과를 감안해 더 가져온다
    OVERFETCH_RATIO = 2

    def __init__(
        self,
        client: OpenSearch | None,
        index_name: str,
        actor: Actor,
        oracle: AuthorizationOracle,
        records: RecordRepository,
        options: SearchOptions | None = None,
        highlight: HighlightSettings | None = None) -> None:
        self.client = client
        self.index_name = index_name
        self.actor = actor
        self.oracle = oracle
        self.records = records
        self.options = options or SearchOptions()
        self.highlight = highlight or HighlightSettings()

    def restricted_to(self, types: List[RecordType]) -> OpenSearchSearcher:
        """같은 사용자/조건으로 검색 유형만 바꾼 searcher."""
        return OpenSearchSearcher(
            self.client, self.index_name, self.actor, self.oracle, self.records,
            options=self.options.model_copy(update={"types": list(types)}),
            highlight=self.highlight,
        )

    # ================= public API =================

    def search(self, question: str, limit: int = DEFAULT_LIMIT, offset: int = 0) -> List[SearchResult]:
        """
        검색을 수행하는 메서드.

        엔진에는 항상 from=0, size=(limit + offset) × 2 로 요청하고,
        offset/limit은 권한 재검증을 마친 목록에 적용한다.

        Args:
            question: str   : 검색어
            limit: int      : 페이지 크기([1, 100], 0 이하면 25)
            offset: int     : 건너뛸 결과 수
        Returns:
            List[SearchResult]: 권한 재검증을 통과한 결과(최대 limit건)
        """
        if self.client is None or not tokenize(question):
            return []
        limit = clamp_limit(limit, self.DEFAULT_LIMIT, self.MAX_LIMIT)
        offset = clamp_offset(offset)

        # 요청 단위로 새로 만든다(캐시 공유 금지)
        permissions = PermissionFilter(self.actor, self.oracle)
        body = self.build_body(question, size=(limit + offset) * self.OVERFETCH_RATIO, permissions=permissions)
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            logger.error("searcher.search failed: %s", e, extra={"index": self.index_name})
            return []

        hits = (response.get("hits") or {}).get("hits") or []
        results = [hit_to_result(hit, self._snippet) for hit in hits]
        visible = revalidate(results, permissions, self.records)
        logger.info(
            "searcher.search: question=%s fetched=%d visible=%d",
            question, len(results), len(visible), extra={"actor_id": self.actor.id},
        )
        return visible[offset:offset + limit]

    def count(self, question: str) -> int:
        """
        엔진 기준 결과 건수(권한 필터 포함, post-filter 미적용).
        """
        if self.client is None or not tokenize(question):
            return 0
        body = {"query": self.build_query(question)}
        try:
            response = self.client.count(index=self.index_name, body=body)
        except OpenSearchException as e:
            logger.error("searcher.count failed: %s", e, extra={"index": self.index_name})
            return 0
        return int(response.get("count", 0))

    # ================= query =================

    def build_body(
        self,
        question: str,
        size: int,
        permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": self.build_query(question, permissions),
            "size": size,
            "from": 0,
            "_source": True,
        }
        if self.highlight.enabled:
            body["highlight"] = self._highlight_config()
        return body

    def build_query(self, question: str, permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        permissions = permissions or PermissionFilter(self.actor, self.oracle)
        return {
            "bool": {
                "must": self._text_query(question, permissions),
                "filter": self.build_filter(permissions),
            }
        }

    def _text_query(self, question: str, permissions: PermissionFilter) -> Dict[str, Any]:
        """
        다음 세 가지의 OR:
          (a) 제목/본문/첨부 구문 일치(boost)
          (b) 제목/본문/커스텀 필드/첨부 best_fields (all_words면 AND), 오타 허용
          (c) 읽을 수 있는 저널 노트 nested 일치(가장 잘 맞는 저널 점수)
        """
        operator = "and" if self.options.all_words else "or"
        phrase = {
            "bool": {
                "should": [
                    {"multi_match": {"query": question, "fields": ["title^3", "content"], "type": "phrase"}},
                    {"nested": {
                        "path": "attachments",
                        "query": {"multi_match": {
                            "query": question,
                            "fields": ["attachments.filename", "attachments.description",
                                       "attachments.fulltext_content"],
                            "type": "phrase",
                        }},
                    }},
                ],
                "minimum_should_match": 1,
                "boost": 2,
            }
        }
        terms = {
            "bool": {
                "should": [
                    {"multi_match": {
                        "query": question,
                        "fields": ["title^3", "content"],
                        "type": "best_fields",
                        "operator": operator,
                        "fuzziness": "AUTO",
                    }},
                    {"nested": {
                        "path": "custom_fields",
                        "query": {"match": {"custom_fields.value": {
                            "query": question, "operator": operator, "fuzziness": "AUTO"}}},
                    }},
                    {"nested": {
                        "path": "attachments",
                        "query": {"multi_match": {
                            "query": question,
                            "fields": ["attachments.filename", "attachments.fulltext_content"],
                            "type": "best_fields",
                            "operator": operator,
                            "fuzziness": "AUTO",
                        }},
                    }},
                ],
                "minimum_should_match": 1,
            }
        }
        journals = permissions.journal_query(
            {"match": {JOURNAL_NOTES: {"query": question, "operator": operator}}},
            highlight=self._journal_highlight() if self.highlight.enabled else None,
        )
        return {"bool": {"should": [phrase, terms, journals], "minimum_should_match": 1}}

    def build_filter(self, permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        filters: List[Dict[str, Any]] = []
        types = self.options.types

        if types:
            filters.append({"terms": {"type": [RecordType(t).value for t in types]}})

        if self.options.project_ids:
            filters.append({"terms": {"project_id": list(self.options.project_ids)}})

        permissions = permissions or PermissionFilter(self.actor, self.oracle)
        predicate = permissions.build(types)
        filters.append(predicate.to_clause())

        if self.options.open_issues:
            filters.append(open_work_items_filter())

        if self.options.titles_only:
            filters.append({"exists": {"field": "title"}})

        return {"bool": {"must": filters}}

    def _fragments(self) -> Dict[str, Any]:
        return {
            "fragment_size": self.highlight.fragment_size,
            "number_of_fragments": self.highlight.number_of_fragments,
        }

    def _highlight_config(self) -> Dict[str, Any]:
        return {
            "fields": {
                "title": {"number_of_fragments": 0},
                "content": self._fragments(),
            },
            "pre_tags": ['<span class="highlight">'],
            "post_tags": ["</span>"],
        }

    def _journal_highlight(self) -> Dict[str, Any]:
        """저널 노트는 nested라 inner_hits 쪽 하이라이트로 받는다."""
        return {
            "fields": {JOURNAL_NOTES: self._fragments()},
            "pre_tags": ['<span class="highlight">'],
            "post_tags": ["</span>"],
        }

    @staticmethod
    def _snippet(highlight: Dict[str, Any], source: Dict[str, Any]) -> str | None:
        if highlight.get("content"):
            return "...".join(highlight["content"])
        if highlight.get(JOURNAL_NOTES):
            return "...".join(highlight[JOURNAL_NOTES])
        return truncate_text(source.get("content"), 200)
