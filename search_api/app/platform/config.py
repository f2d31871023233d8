from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
import os

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "tracker-search-api"
    DEBUG: bool = False

    # 검색 엔진
    OPENSEARCH_HOST: str = os.getenv('OPENSEARCH_HOST', 'http://opensearch:9200')
    OPENSEARCH_INDEX: str = os.getenv('OPENSEARCH_INDEX', 'tracker')
    OPENSEARCH_TIMEOUT: int = 30
    OPENSEARCH_MAX_RETRIES: int = 3
    # https 호스트의 인증서 검증(자체 서명 인증서 개발 환경에서만 끈다)
    OPENSEARCH_VERIFY_CERTS: bool = True
    SEARCH_DISABLED: bool = False

    # 하이라이트
    HIGHLIGHT_ENABLED: bool = True
    HIGHLIGHT_FRAGMENT_SIZE: int = 150
    HIGHLIGHT_NUMBER_OF_FRAGMENTS: int = 3

    # 백그라운드 색인 재시도
    INDEX_JOB_MAX_ATTEMPTS: int = 3
    INDEX_JOB_BACKOFF_SECONDS: float = 1.0

    # 색인 관리 API 보호용
    API_KEY: str | None = None

    LOG_LEVEL: str = "INFO"
    LOG_AS_JSON: bool = True
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "/var/log/app"

settings = Settings()
