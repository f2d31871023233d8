from fastapi import APIRouter, Depends
from opensearchpy import OpenSearch
from search_api.app.api.deps import (
    get_actor, get_highlight, get_opensearch, get_oracle, get_records,
)
from search_api.app.adapters.builders.document_builder import DocumentBuilder
from search_api.app.adapters.searchers.advanced_searcher import AdvancedSearcher
from search_api.app.adapters.searchers.opensearch_searcher import HighlightSettings, OpenSearchSearcher
from search_api.app.domain.models import Actor, SearchQuery
from search_api.app.domain.ports import AuthorizationOracle, RecordRepository
from search_api.app.domain.services.search_adapter import SearchAdapter
from search_api.app.models.schemas import ApiResponse, FoundRecord, SearchData, SearchRequest
from search_api.app.platform.config import settings
from search_api.app.platform.response import ok
import logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    summary="기본 검색",
    description=(
        "검색어로 트래커 레코드를 검색합니다. 요청자의 권한으로 엔진 쪽 필터를 걸고, "
        "결과는 레코드별 조회 권한으로 한 번 더 걸러집니다. "
        "`limit`은 1~100으로 보정되고, 결과는 `offset`부터 최대 `limit`건입니다."
    ),
    operation_id="searchRecords",
    status_code=200,
    response_model=ApiResponse,
    responses={
        200: {
            "description": "검색 성공",
            "content": {
                "application/json": {
                    "examples": {
                        "basic": {
                            "summary": "기본 검색 예시",
                            "value": {
                                "success": True,
                                "message": "검색 성공",
                                "data": {
                                    "tokens": ["recipe", "bug"],
                                    "result_count": 2,
                                    "result_count_by_type": {"work_item": 1, "wiki_page": 1},
                                    "results": [
                                        {"type": "work_item", "id": 42, "record": {"id": 42, "subject": "Recipe bug"}},
                                        {"type": "wiki_page", "id": 7, "record": {"id": 7, "title": "Recipes"}},
                                    ],
                                },
                                "trace_id": "3f1c2a9e0b7d4c1e",
                            },
                        }
                    }
                }
            },
        },
        422: {"description": "잘못된 요청 값"},
        503: {"description": "권한 오라클/레코드 저장소 미구성"},
    },
)
def search(
    req: SearchRequest,
    os: OpenSearch | None = Depends(get_opensearch),
    actor: Actor = Depends(get_actor),
    oracle: AuthorizationOracle = Depends(get_oracle),
    records: RecordRepository = Depends(get_records),
    highlight: HighlightSettings = Depends(get_highlight)):
    logger.info("SearchRequest: question=%s types=%s", req.question, req.types, extra={"actor_id": actor.id})
    searcher = OpenSearchSearcher(
        os, settings.OPENSEARCH_INDEX, actor, oracle, records,
        options=req.to_options(), highlight=highlight,
    )
    adapter = SearchAdapter.basic(req.question, searcher, records, types=req.types)
    builder = DocumentBuilder()
    data = SearchData(
        tokens=adapter.tokens,
        result_count=adapter.result_count,
        result_count_by_type=adapter.result_count_by_type,
        results=[
            FoundRecord(type=builder.record_type(r), id=r.id, record=r.model_dump(mode="json"))
            for r in adapter.results(req.offset, req.limit)
        ],
    )
    return ok(data.model_dump(mode="json"), message="검색 성공")


@router.post(
    "/advanced",
    summary="고급 검색",
    description=(
        "검색 범위(title/content/all), 작성일 범위, 정렬, 닫힌 일감 포함 여부를 지정해 검색합니다. "
        "유형별/프로젝트별/월별 집계를 함께 돌려줍니다. "
        "요청한 `offset`부터 `limit`건만 엔진에서 가져온 뒤 권한으로 거르므로 "
        "페이지가 `limit`보다 작을 수 있습니다."
    ),
    operation_id="advancedSearchRecords",
    status_code=200,
    response_model=ApiResponse,
    responses={
        422: {"description": "잘못된 요청 값"},
        503: {"description": "권한 오라클/레코드 저장소 미구성"},
    },
)
def advanced_search(
    query: SearchQuery,
    os: OpenSearch | None = Depends(get_opensearch),
    actor: Actor = Depends(get_actor),
    oracle: AuthorizationOracle = Depends(get_oracle),
    records: RecordRepository = Depends(get_records)):
    logger.info("AdvancedSearchRequest: %s", query, extra={"actor_id": actor.id})
    searcher = AdvancedSearcher(os, settings.OPENSEARCH_INDEX, actor, oracle, records)
    page = searcher.search(query)
    return ok(page.model_dump(mode="json"), message="검색 성공")
