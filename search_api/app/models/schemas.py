from pydantic import BaseModel, Field
from typing import List, Any, Dict

from search_api.app.domain.models import RecordType, SearchOptions


class ApiResponse(BaseModel):
    """
    공통 응답
    """
    success: bool = Field(..., description="성공 여부")
    message: str = Field(..., description="결과 메시지")
    data: Any = Field(None, description="결과 데이터. 내부 구조는 API마다 상이")
    trace_id: str | None = Field(None, description="요청 ID(X-Request-ID)")


class SearchRequest(BaseModel):
    """
    기본 검색 요청 바디
    """
    question: str = Field(..., description="검색어")
    types: List[RecordType] | None = Field(None, description="검색 대상 유형(생략 시 전체)")
    project_ids: List[int] = Field(default_factory=list, description="프로젝트 제한")
    all_words: bool = Field(False, description="모든 단어 포함(AND)")
    titles_only: bool = Field(False, description="제목이 있는 문서만")
    open_issues: bool = Field(False, description="열린 일감만")
    offset: int = Field(0, ge=0, description="건너뛸 결과 수")
    limit: int = Field(25, description="페이지 크기(1~100, 0 이하면 25)")

    def to_options(self) -> SearchOptions:
        return SearchOptions(
            types=self.types,
            project_ids=self.project_ids,
            all_words=self.all_words,
            titles_only=self.titles_only,
            open_issues=self.open_issues,
        )


class FoundRecord(BaseModel):
    type: RecordType
    id: int
    record: Dict[str, Any]


class SearchData(BaseModel):
    tokens: List[str]
    result_count: int
    result_count_by_type: Dict[str, int]
    results: List[FoundRecord]
