"""
고급 검색 페이지용 searcher.

기본 searcher와 달리:
- 검색 범위(제목/본문/전체)별 필드 조합
- 작성일 범위 필터, 닫힌 일감 포함 여부(기본 포함)
- 정렬 4종, 집계 3종(유형별/프로젝트별/월별)
- overfetch 없이 요청한 offset부터 limit건만 가져오고, 권한 재검증에서 빠진 만큼
  페이지가 limit보다 작아질 수 있다(응답 속도 우선).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from search_api.app.adapters.searchers.opensearch_searcher import (
    hit_to_result,
    open_work_items_filter,
    revalidate,
)
from search_api.app.adapters.searchers.permission_filter import JOURNAL_NOTES, PermissionFilter
from search_api.app.domain.models import (
    Actor,
    AdvancedSearchPage,
    AggregationBucket,
    Aggregations,
    RecordType,
    SearchIn,
    SearchQuery,
    SortBy,
)
from search_api.app.domain.ports import AuthorizationOracle, RecordRepository
from search_api.app.domain.utils import is_blank, truncate_text

logger = logging.getLogger(__name__)

TYPE_LABELS = {
    RecordType.work_item.value: "Work items",
    RecordType.wiki_page.value: "Wiki pages",
    RecordType.announcement.value: "Announcements",
    RecordType.forum_post.value: "Forum posts",
    RecordType.commit.value: "Commits",
    RecordType.file.value: "Files",
    RecordType.project.value: "Projects",
}

SORTS = {
    SortBy.date_desc: [{"created_on": {"order": "desc"}}, "_score"],
    SortBy.date_asc: [{"created_on": {"order": "asc"}}, "_score"],
    SortBy.updated_desc: [{"updated_on": {"order": "desc", "missing": "_last"}}, "_score"],
    SortBy.relevance: ["_score", {"created_on": {"order": "desc"}}],
}


class AdvancedSearcher:

    def __init__(
        self,
        client: OpenSearch | None,
        index_name: str,
        actor: Actor,
        oracle: AuthorizationOracle,
        records: RecordRepository) -> None:
        self.client = client
        self.index_name = index_name
        self.actor = actor
        self.oracle = oracle
        self.records = records

    # ================= public API =================

    def search(self, query: SearchQuery) -> AdvancedSearchPage:
        """
        고급 검색을 수행하는 메서드.
        Args:
            query: SearchQuery
        Returns:
            AdvancedSearchPage: 권한 재검증된 결과, 엔진 기준 전체 건수, 집계
        """
        if self.client is None or is_blank(query.question):
            return AdvancedSearchPage()

        permissions = PermissionFilter(self.actor, self.oracle)
        body = self.build_body(query, permissions)
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            logger.error("advanced_searcher.search failed: %s", e, extra={"index": self.index_name})
            return AdvancedSearchPage()

        hits_block = response.get("hits") or {}
        total = hits_block.get("total") or 0
        total_count = total.get("value", 0) if isinstance(total, dict) else int(total)

        results = [hit_to_result(hit, self._snippet) for hit in hits_block.get("hits") or []]
        return AdvancedSearchPage(
            results=revalidate(results, permissions, self.records),
            total_count=total_count,
            aggregations=self._process_aggregations(response.get("aggregations")),
        )

    def count(self, query: SearchQuery) -> int:
        if self.client is None or is_blank(query.question):
            return 0
        try:
            response = self.client.count(index=self.index_name, body={"query": self.build_query(query)})
        except OpenSearchException as e:
            logger.error("advanced_searcher.count failed: %s", e, extra={"index": self.index_name})
            return 0
        return int(response.get("count", 0))

    # ================= query =================

    def build_body(self, query: SearchQuery, permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        return {
            "query": self.build_query(query, permissions),
            "highlight": self._highlight_config(),
            "sort": SORTS[query.sort_by],
            "from": query.offset,
            "size": query.limit,
            "aggs": self._aggregations_config(),
            "track_total_hits": True,
        }

    def build_query(self, query: SearchQuery, permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        permissions = permissions or PermissionFilter(self.actor, self.oracle)
        return {
            "bool": {
                "must": self._text_query(query, permissions),
                "filter": self.build_filter(query, permissions),
            }
        }

    def _text_query(self, query: SearchQuery, permissions: PermissionFilter) -> Dict[str, Any]:
        question = query.question
        if query.search_in is SearchIn.title:
            return {"multi_match": {
                "query": question, "fields": ["title^3", "title.raw"],
                "type": "best_fields", "fuzziness": "AUTO",
            }}
        if query.search_in is SearchIn.content:
            return {"bool": {
                "should": [
                    {"multi_match": {"query": question, "fields": ["content"],
                                     "type": "best_fields", "fuzziness": "AUTO"}},
                    permissions.journal_query(
                        {"match": {JOURNAL_NOTES: {"query": question, "fuzziness": "AUTO"}}},
                        highlight=self._journal_highlight(),
                    ),
                    {"nested": {"path": "custom_fields",
                                "query": {"match": {"custom_fields.value": {"query": question, "fuzziness": "AUTO"}}}}},
                ],
                "minimum_should_match": 1,
            }}
        return {"bool": {
            "should": [
                {"multi_match": {"query": question, "fields": ["title^3"], "type": "phrase", "boost": 2}},
                {"multi_match": {"query": question, "fields": ["title^2", "content"],
                                 "type": "best_fields", "fuzziness": "AUTO"}},
                {"nested": {"path": "custom_fields",
                            "query": {"match": {"custom_fields.value": {"query": question, "fuzziness": "AUTO"}}}}},
                {"nested": {"path": "attachments",
                            "query": {"match": {"attachments.filename": {"query": question, "fuzziness": "AUTO"}}}}},
                permissions.journal_query({"match": {JOURNAL_NOTES: question}}, highlight=self._journal_highlight()),
            ],
            "minimum_should_match": 1,
        }}

    def build_filter(self, query: SearchQuery, permissions: PermissionFilter | None = None) -> Dict[str, Any]:
        filters: List[Dict[str, Any]] = []

        if query.types:
            filters.append({"terms": {"type": [t.value for t in query.types]}})

        if query.project_ids:
            filters.append({"terms": {"project_id": list(query.project_ids)}})

        if query.date_from or query.date_to:
            created_on: Dict[str, str] = {}
            if query.date_from:
                created_on["gte"] = query.date_from.isoformat()
            if query.date_to:
                created_on["lte"] = query.date_to.isoformat()
            filters.append({"range": {"created_on": created_on}})

        if not query.include_closed:
            filters.append(open_work_items_filter())

        permissions = permissions or PermissionFilter(self.actor, self.oracle)
        predicate = permissions.build(query.types)
        filters.append(predicate.to_clause())

        return {"bool": {"must": filters}}

    def _aggregations_config(self) -> Dict[str, Any]:
        return {
            "by_type": {"terms": {"field": "type", "size": 10}},
            "by_project": {"terms": {"field": "project_id", "size": 20}},
            "by_date": {
                "date_histogram": {
                    "field": "created_on",
                    "calendar_interval": "month",
                    "format": "yyyy-MM",
                    "min_doc_count": 1,
                }
            },
        }

    def _highlight_config(self) -> Dict[str, Any]:
        return {
            "fields": {
                "title": {"number_of_fragments": 0},
                "content": {"fragment_size": 200, "number_of_fragments": 3},
            },
            "pre_tags": ['<mark class="search-highlight">'],
            "post_tags": ["</mark>"],
        }

    @staticmethod
    def _journal_highlight() -> Dict[str, Any]:
        return {
            "fields": {JOURNAL_NOTES: {"fragment_size": 200, "number_of_fragments": 2}},
            "pre_tags": ['<mark class="search-highlight">'],
            "post_tags": ["</mark>"],
        }

    # ================= response =================

    def _process_aggregations(self, aggs: Dict[str, Any] | None) -> Aggregations:
        if not aggs:
            return Aggregations()

        def buckets(name: str) -> List[Dict[str, Any]]:
            # 건수 0인 버킷은 싣지 않는다
            return [b for b in (aggs.get(name) or {}).get("buckets") or [] if b.get("doc_count", 0) > 0]

        return Aggregations(
            by_type=[
                AggregationBucket(key=b["key"], count=b["doc_count"],
                                  label=TYPE_LABELS.get(b["key"], str(b["key"]).replace("_", " ").capitalize()))
                for b in buckets("by_type")
            ],
            by_project=[
                AggregationBucket(key=b["key"], count=b["doc_count"], label=self._project_label(b["key"]))
                for b in buckets("by_project")
            ],
            by_date=[
                AggregationBucket(key=b.get("key_as_string", b["key"]), count=b["doc_count"])
                for b in buckets("by_date")
            ],
        )

    def _project_label(self, project_id: Any) -> str:
        project = self.records.load(RecordType.project, int(project_id))
        return project.name if project is not None else f"Project #{project_id}"

    @staticmethod
    def _snippet(highlight: Dict[str, Any], source: Dict[str, Any]) -> str | None:
        if highlight.get("content"):
            return " ... ".join(highlight["content"])
        if highlight.get(JOURNAL_NOTES):
            return " ... ".join(highlight[JOURNAL_NOTES])
        return truncate_text(source.get("content"), 300)
