from fastapi import APIRouter, Depends
from opensearchpy import OpenSearch

from search_api.app.api.deps import get_opensearch
from search_api.app.platform.opensearch_client import is_available

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health(os: OpenSearch | None = Depends(get_opensearch)):
    # 엔진이 내려가도 앱은 살아 있다(검색은 빈 결과로 degrade)
    return {"ok": True, "search_engine": is_available(os)}
