from fastapi import Header, HTTPException, status
from search_api.app.platform.config import settings


def require_api_key(x_api_key: str = Header(None, alias="X-API-Key")):
    """
    인덱스 관리 API 보호.
    API_KEY가 설정되지 않았으면 모든 요청을 거부한다.
    """
    if not settings.API_KEY or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key")
