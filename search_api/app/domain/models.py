"""
도메인 모델 정의.

- Actor: 검색/색인을 요청한 사용자(익명 포함)
- 레코드(WorkItem, WikiPage, Announcement, ForumPost, Commit, FileDoc, Project):
  트래커 본체가 소유한 검색 대상 원본. 이 패키지에서는 읽기만 한다.
- SearchDocument: 인덱스에 적재되는 정규화된 문서(레코드 1건 ↔ 문서 1건)
- SearchResult / AdvancedSearchPage: 검색 결과
- SearchOptions / SearchQuery: 검색 요청(기본/고급)
- EngineResult / IndexResult: 엔진 연산 결과 요약

Pydantic v2 기반 모델이라 검증/직렬화가 용이합니다.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Annotated, Any, Generic, TypeVar, Union

from pydantic import (
    AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer,
)

from search_api.app.domain.utils import to_utc


JSONDict = dict[str, Any]
T = TypeVar("T")

# 색인 문서의 시각은 모두 UTC 오프셋이 붙은 ISO-8601 한 가지 형식으로 직렬화한다.
WireDatetime = Annotated[
    datetime | None,
    AfterValidator(to_utc),
    PlainSerializer(lambda dt: dt.isoformat() if dt else None, return_type=str | None),
]


class RecordType(str, Enum):
    """색인 문서의 type 태그."""
    work_item = "work_item"
    wiki_page = "wiki_page"
    announcement = "announcement"
    forum_post = "forum_post"
    commit = "commit"
    file = "file"
    project = "project"


class Capability(str, Enum):
    """권한 오라클에 묻는 조회 권한."""
    view_work_items = "view_work_items"
    view_private_work_items = "view_private_work_items"
    view_private_notes = "view_private_notes"
    view_wiki_pages = "view_wiki_pages"
    view_announcements = "view_announcements"
    view_forum_posts = "view_forum_posts"
    view_commits = "view_commits"
    view_files = "view_files"


class ProjectStatus(IntEnum):
    ACTIVE = 1
    CLOSED = 5
    ARCHIVED = 9
    SCHEDULED_FOR_DELETION = 10


class Actor(BaseModel):
    """검색 요청자. id가 None이면 익명 사용자."""
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    admin: bool = False
    member_project_ids: frozenset[int] = Field(default_factory=frozenset)

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    @classmethod
    def anonymous(cls) -> Actor:
        return cls()


# ================== 원본 레코드 ==================

class Attachment(BaseModel):
    id: int
    filename: str = ""
    description: str | None = None


class CustomFieldValue(BaseModel):
    custom_field_id: int
    name: str
    searchable: bool = False
    value: str | list[str] | None = None


class Journal(BaseModel):
    id: int
    notes: str | None = None
    private_notes: bool = False
    user_id: int | None = None
    created_on: datetime | None = None


class Project(BaseModel):
    id: int
    name: str
    identifier: str | None = None
    description: str | None = None
    is_public: bool = True
    status: ProjectStatus = ProjectStatus.ACTIVE
    custom_field_values: list[CustomFieldValue] = Field(default_factory=list)
    created_on: datetime | None = None
    updated_on: datetime | None = None


class WorkItem(BaseModel):
    id: int
    project: Project
    subject: str
    description: str | None = None
    is_private: bool = False
    author_id: int | None = None
    assigned_to_id: int | None = None
    tracker_id: int | None = None
    status_id: int | None = None
    status_is_closed: bool = False
    priority_id: int | None = None
    journals: list[Journal] = Field(default_factory=list)
    custom_field_values: list[CustomFieldValue] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    created_on: datetime | None = None
    updated_on: datetime | None = None


class WikiPage(BaseModel):
    id: int
    project: Project | None = None
    title: str
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    created_on: datetime | None = None
    updated_on: datetime | None = None


class Announcement(BaseModel):
    id: int
    project: Project | None = None
    title: str
    summary: str | None = None
    description: str | None = None
    author_id: int | None = None
    created_on: datetime | None = None


class ForumPost(BaseModel):
    id: int
    project: Project | None = None
    board_id: int | None = None
    parent_id: int | None = None
    subject: str
    content: str | None = None
    author_id: int | None = None
    created_on: datetime | None = None
    updated_on: datetime | None = None


class Commit(BaseModel):
    id: int
    project: Project | None = None
    repository_id: int | None = None
    revision: str
    comments: str | None = None
    user_id: int | None = None
    committed_on: datetime | None = None


class FileDoc(BaseModel):
    id: int
    project: Project | None = None
    category_id: int | None = None
    title: str
    description: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    created_on: datetime | None = None


SearchableRecord = Union[WorkItem, WikiPage, Announcement, ForumPost, Commit, FileDoc, Project]


# ================== 색인 문서 ==================

class JournalEntry(BaseModel):
    id: int
    notes: str
    is_private: bool = False
    user_id: int | None = None
    created_on: WireDatetime = None


class CustomFieldEntry(BaseModel):
    id: int
    name: str
    value: str


class AttachmentEntry(BaseModel):
    id: int
    filename: str
    description: str | None = None


class WorkItemFields(BaseModel):
    is_private: bool = False
    author_id: int | None = None
    assigned_to_id: int | None = None
    tracker_id: int | None = None
    status_id: int | None = None
    status_is_closed: bool = False
    priority_id: int | None = None
    journals: list[JournalEntry] = Field(default_factory=list)


class SearchDocument(BaseModel):
    """
    인덱싱 대상 문서 1건과 1:1로 매핑되는 모델.
    문서 식별자는 "{type}_{id}"이며 같은 식별자로 다시 쓰면 통째로 덮어쓴다.
    OpenSearch 매핑은 resources/schema/search_index.json 참고.
    """

    # ---- 식별/권한 메타 ----
    type: RecordType
    id: int
    project_id: int | None = None
    project_is_public: bool = False

    # ---- 내용 ----
    title: str | None = None
    content: str | None = None

    # ---- 시간/작성 ----
    created_on: WireDatetime = None
    updated_on: WireDatetime = None
    author_id: int | None = None

    # ---- 유형별 구조 ----
    work_item_fields: WorkItemFields | None = None
    custom_fields: list[CustomFieldEntry] = Field(default_factory=list)
    attachments: list[AttachmentEntry] = Field(default_factory=list)
    board_id: int | None = None
    parent_id: int | None = None
    repository_id: int | None = None
    category_id: int | None = None
    status: int | None = None

    @property
    def document_id(self) -> str:
        return f"{self.type.value}_{self.id}"

    def to_source(self) -> JSONDict:
        return self.model_dump(mode="json")


# ================== 권한 조건 ==================

class Allowed(BaseModel):
    """엔진 쪽에서 평가할 권한 조건(bool 쿼리 트리)."""
    model_config = ConfigDict(frozen=True)

    clause: JSONDict

    def to_clause(self) -> JSONDict:
        return self.clause


class Denied(BaseModel):
    """
    접근 불가. 필터에 그대로 넣어도 아무 문서와도 매칭되지 않는 절을 낸다.
    """
    model_config = ConfigDict(frozen=True)

    def to_clause(self) -> JSONDict:
        return {"bool": {"must_not": [{"match_all": {}}]}}


PermissionPredicate = Union[Allowed, Denied]
DENY_ALL = Denied()


# ================== 검색 요청 ==================

class SearchIn(str, Enum):
    all = "all"
    title = "title"
    content = "content"


class SortBy(str, Enum):
    relevance = "relevance"
    date_desc = "date_desc"
    date_asc = "date_asc"
    updated_desc = "updated_desc"


class SearchOptions(BaseModel):
    """기본 검색 옵션. types가 None이면 전체 유형."""
    model_config = ConfigDict(frozen=True)

    types: list[RecordType] | None = None
    project_ids: list[int] = Field(default_factory=list)
    all_words: bool = False
    titles_only: bool = False
    open_issues: bool = False


class SearchQuery(BaseModel):
    """고급 검색 요청. 요청 단위로 불변."""
    model_config = ConfigDict(frozen=True)

    question: str = ""
    search_in: SearchIn = SearchIn.all
    types: list[RecordType] = Field(default_factory=lambda: list(RecordType))
    project_ids: list[int] = Field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    sort_by: SortBy = SortBy.relevance
    include_closed: bool = True
    offset: int = Field(0, ge=0)
    limit: int = Field(25, ge=1, le=100)


# ================== 검색 결과 ==================

class SearchResult(BaseModel):
    type: RecordType
    id: int
    project_id: int | None = None
    title: str | None = None
    content: str | None = None
    score: float | None = None
    created_on: str | None = None
    updated_on: str | None = None
    raw: JSONDict = Field(default_factory=dict)
    # 권한 재검증 때 로드한 원본 레코드(응답에는 싣지 않는다)
    record: Any = Field(None, exclude=True, repr=False)


class AggregationBucket(BaseModel):
    key: str | int
    count: int = Field(..., ge=0)
    label: str | None = None


class Aggregations(BaseModel):
    by_type: list[AggregationBucket] = Field(default_factory=list)
    by_project: list[AggregationBucket] = Field(default_factory=list)
    by_date: list[AggregationBucket] = Field(default_factory=list)


class AdvancedSearchPage(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    total_count: int = 0
    aggregations: Aggregations = Field(default_factory=Aggregations)


# ================== 엔진 연산 결과 ==================

class FailureReason(str, Enum):
    unavailable = "unavailable"
    engine_error = "engine_error"
    partial_failure = "partial_failure"


class EngineFailure(BaseModel):
    reason: FailureReason
    message: str


class EngineResult(BaseModel, Generic[T]):
    """
    엔진 연산 결과. 예외 대신 성공/실패를 값으로 돌려준다.
    bool(result)는 ok와 같아서 `if indexer.index(record):` 처럼 쓸 수 있다.
    """
    ok: bool
    value: T | None = None
    failure: EngineFailure | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None) -> EngineResult:
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, reason: FailureReason, message: str, value: Any = None) -> EngineResult:
        return cls(ok=False, value=value, failure=EngineFailure(reason=reason, message=message))


class IndexErrorItem(BaseModel):
    """인덱싱 실패 항목 요약."""
    doc_id: str
    reason: str


class IndexResult(BaseModel):
    """인덱싱 실행 결과."""
    indexed: int = Field(..., ge=0)
    errors: list[IndexErrorItem] = Field(default_factory=list)
