"""
트래커 레코드를 색인 단위인 SearchDocument로 변환하는 빌더.

레코드 클래스 → (type 태그, 매핑 함수) 디스패치 표로 동작한다.
새 검색 대상을 추가할 때는 매핑 함수 하나를 @_maps 로 등록하면 된다.
"""

from __future__ import annotations

from typing import Callable, Iterable

from search_api.app.domain.models import (
    Announcement,
    Attachment,
    AttachmentEntry,
    Commit,
    CustomFieldEntry,
    CustomFieldValue,
    FileDoc,
    ForumPost,
    JournalEntry,
    Project,
    RecordType,
    SearchDocument,
    SearchableRecord,
    WikiPage,
    WorkItem,
    WorkItemFields,
)
from search_api.app.domain.utils import is_blank
from search_api.app.platform.exceptions import UnsupportedRecordType

_Mapper = Callable[[SearchableRecord], SearchDocument]
_REGISTRY: dict[type, tuple[RecordType, _Mapper]] = {}


def _maps(record_class: type, record_type: RecordType):
    def decorator(fn: _Mapper) -> _Mapper:
        _REGISTRY[record_class] = (record_type, fn)
        return fn
    return decorator


def make_document_id(record_type: RecordType | str, record_id: int) -> str:
    """문서 식별자 "{type}_{id}". 삭제된 레코드처럼 자기 자신을 설명할 수 없을 때 쓴다."""
    return f"{RecordType(record_type).value}_{record_id}"


class DocumentBuilder:

    def build(self, record: SearchableRecord) -> SearchDocument:
        """
        레코드를 SearchDocument로 변환하는 메서드.
        Args:
            record: 검색 대상 레코드(7종)
        Returns:
            SearchDocument
        Raises:
            UnsupportedRecordType: 등록되지 않은 레코드 클래스
        """
        _, mapper = self._lookup(record)
        return mapper(record)

    def document_id(self, record: SearchableRecord) -> str:
        record_type, _ = self._lookup(record)
        return make_document_id(record_type, record.id)

    def record_type(self, record: SearchableRecord) -> RecordType:
        record_type, _ = self._lookup(record)
        return record_type

    def _lookup(self, record: object) -> tuple[RecordType, _Mapper]:
        for cls in type(record).__mro__:
            if cls in _REGISTRY:
                return _REGISTRY[cls]
        raise UnsupportedRecordType(record)


# ================== 유형별 매핑 ==================

def _project_meta(project: Project | None) -> dict:
    return {
        "project_id": project.id if project else None,
        "project_is_public": bool(project and project.is_public),
    }


@_maps(WorkItem, RecordType.work_item)
def _build_work_item(item: WorkItem) -> SearchDocument:
    return SearchDocument(
        type=RecordType.work_item,
        id=item.id,
        **_project_meta(item.project),
        created_on=item.created_on,
        updated_on=item.updated_on,
        title=item.subject,
        content=item.description,
        work_item_fields=WorkItemFields(
            is_private=item.is_private,
            author_id=item.author_id,
            assigned_to_id=item.assigned_to_id,
            tracker_id=item.tracker_id,
            status_id=item.status_id,
            status_is_closed=item.status_is_closed,
            priority_id=item.priority_id,
            journals=_build_journals(item),
        ),
        custom_fields=_build_custom_fields(item.custom_field_values),
        attachments=_build_attachments(item.attachments),
    )


@_maps(WikiPage, RecordType.wiki_page)
def _build_wiki_page(page: WikiPage) -> SearchDocument:
    return SearchDocument(
        type=RecordType.wiki_page,
        id=page.id,
        **_project_meta(page.project),
        created_on=page.created_on,
        updated_on=page.updated_on,
        title=page.title,
        content=page.text,
        attachments=_build_attachments(page.attachments),
    )


@_maps(Announcement, RecordType.announcement)
def _build_announcement(news: Announcement) -> SearchDocument:
    return SearchDocument(
        type=RecordType.announcement,
        id=news.id,
        **_project_meta(news.project),
        created_on=news.created_on,
        updated_on=None,
        title=news.title,
        content=_join_text(news.summary, news.description),
        author_id=news.author_id,
    )


@_maps(ForumPost, RecordType.forum_post)
def _build_forum_post(post: ForumPost) -> SearchDocument:
    return SearchDocument(
        type=RecordType.forum_post,
        id=post.id,
        **_project_meta(post.project),
        created_on=post.created_on,
        updated_on=post.updated_on,
        title=post.subject,
        content=post.content,
        author_id=post.author_id,
        board_id=post.board_id,
        parent_id=post.parent_id,
    )


@_maps(Commit, RecordType.commit)
def _build_commit(commit: Commit) -> SearchDocument:
    return SearchDocument(
        type=RecordType.commit,
        id=commit.id,
        **_project_meta(commit.project),
        created_on=commit.committed_on,
        updated_on=None,
        title=commit.revision,
        content=commit.comments,
        author_id=commit.user_id,
        repository_id=commit.repository_id,
    )


@_maps(FileDoc, RecordType.file)
def _build_file(doc: FileDoc) -> SearchDocument:
    return SearchDocument(
        type=RecordType.file,
        id=doc.id,
        **_project_meta(doc.project),
        created_on=doc.created_on,
        updated_on=None,
        title=doc.title,
        content=doc.description,
        category_id=doc.category_id,
        attachments=_build_attachments(doc.attachments),
    )


@_maps(Project, RecordType.project)
def _build_project(project: Project) -> SearchDocument:
    # 프로젝트 문서의 project_id는 자기 자신
    return SearchDocument(
        type=RecordType.project,
        id=project.id,
        **_project_meta(project),
        created_on=project.created_on,
        updated_on=project.updated_on,
        title=project.name,
        content=_join_text(project.identifier, project.description),
        status=int(project.status),
        custom_fields=_build_custom_fields(project.custom_field_values),
    )


# ================== 중첩 필드 ==================

def _build_journals(item: WorkItem) -> list[JournalEntry]:
    """
    노트가 있는 저널만 싣는다.
    비공개 노트 여부/작성자를 같이 실어 두어야 후처리에서 선택적으로 숨길 수 있다.
    """
    return [
        JournalEntry(
            id=j.id,
            notes=j.notes,
            is_private=j.private_notes,
            user_id=j.user_id,
            created_on=j.created_on,
        )
        for j in item.journals
        if not is_blank(j.notes)
    ]


def _build_custom_fields(values: Iterable[CustomFieldValue]) -> list[CustomFieldEntry]:
    """검색 가능으로 표시되고 값이 있는 커스텀 필드만. 다중 값은 공백으로 이어 붙인다."""
    result = []
    for cfv in values:
        if not cfv.searchable or is_blank(cfv.value):
            continue
        if isinstance(cfv.value, list):
            value = " ".join(v for v in cfv.value if not is_blank(v))
        else:
            value = str(cfv.value)
        if is_blank(value):
            continue
        result.append(CustomFieldEntry(id=cfv.custom_field_id, name=cfv.name, value=value))
    return result


def _build_attachments(attachments: Iterable[Attachment]) -> list[AttachmentEntry]:
    # 본문 추출(fulltext_content)은 별도 워크플로가 채운다
    return [
        AttachmentEntry(id=a.id, filename=a.filename, description=a.description)
        for a in attachments
        if not is_blank(a.filename)
    ]


def _join_text(*parts: str | None) -> str:
    return "\n".join(p for p in parts if not is_blank(p))
