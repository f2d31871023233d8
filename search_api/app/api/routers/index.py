from fastapi import APIRouter, Depends, Query
from search_api.app.api.deps import get_indexer, get_index_service
from search_api.app.adapters.indexers.opensearch_indexer import OpenSearchIndexer
from search_api.app.domain.models import EngineResult, RecordType
from search_api.app.domain.services.index_service import IndexAction, IndexService
from search_api.app.models.schemas import ApiResponse
from search_api.app.platform.exceptions import IndexingFailed, ResourceNotFound
from search_api.app.platform.response import ok
from search_api.app.security.guards import require_api_key
import logging
logger = logging.getLogger(__name__)


router = APIRouter(prefix="/index", tags=["index"], dependencies=[Depends(require_api_key)])


def _unwrap(result: EngineResult, target: str):
    """실패한 엔진 결과는 502로 내린다."""
    if not result:
        raise IndexingFailed(target, result.failure.message)
    return result.value


@router.post(
    "/create",
    summary="인덱스 생성",
    description=(
        "스키마(resources/schema/search_index.json)로 인덱스를 생성합니다. "
        "이미 있으면 그대로 두고, `force=true`이면 지우고 다시 만듭니다."
    ),
    operation_id="createIndex",
    response_model=ApiResponse,
    responses={
        401: {"description": "API 키 오류"},
        502: {"description": "검색 엔진 오류"},
    },
)
def create_index(
    force: bool = Query(False, description="기존 인덱스 삭제 후 재생성"),
    indexer: OpenSearchIndexer = Depends(get_indexer)):
    logger.info("CreateIndexRequest: force=%s", force)
    name = _unwrap(indexer.create_index(force=force), indexer.index_name)
    return ok({"index_name": name}, message="인덱스 생성 성공")


@router.delete("", summary="인덱스 삭제", operation_id="deleteIndex", response_model=ApiResponse)
def delete_index(indexer: OpenSearchIndexer = Depends(get_indexer)):
    name = _unwrap(indexer.delete_index(), indexer.index_name)
    return ok({"index_name": name}, message="인덱스 삭제 성공")


@router.post("/refresh", summary="인덱스 refresh", operation_id="refreshIndex", response_model=ApiResponse)
def refresh_index(indexer: OpenSearchIndexer = Depends(get_indexer)):
    name = _unwrap(indexer.refresh(), indexer.index_name)
    return ok({"index_name": name}, message="refresh 성공")


@router.get("/stats", summary="인덱스 통계", operation_id="indexStats", response_model=ApiResponse)
def index_stats(indexer: OpenSearchIndexer = Depends(get_indexer)):
    stats = _unwrap(indexer.stats(), indexer.index_name)
    return ok(stats, message="조회 성공")


@router.put(
    "/documents/{record_type}/{record_id}",
    summary="레코드 1건 색인",
    description="레코드를 다시 읽어 색인합니다. 실패하면 설정된 횟수만큼 재시도합니다.",
    operation_id="indexRecord",
    response_model=ApiResponse,
    responses={
        404: {"description": "레코드 없음"},
        502: {"description": "재시도 후에도 색인 실패"},
    },
)
def index_record(
    record_type: RecordType,
    record_id: int,
    svc: IndexService = Depends(get_index_service)):
    result = svc.perform(record_type, record_id, IndexAction.index)
    if result is None:
        raise ResourceNotFound(f"{record_type.value} #{record_id}")
    return ok({"doc_id": result.value}, message="색인 성공")


@router.delete(
    "/documents/{record_type}/{record_id}",
    summary="문서 1건 삭제",
    operation_id="deleteRecordDocument",
    response_model=ApiResponse,
)
def delete_record(
    record_type: RecordType,
    record_id: int,
    svc: IndexService = Depends(get_index_service)):
    result = svc.perform(record_type, record_id, IndexAction.delete)
    return ok({"doc_id": result.value}, message="삭제 성공")
