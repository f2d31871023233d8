"""
사용자 권한으로 검색 엔진 쪽 권한 필터(bool 쿼리 트리)를 만든다.

하이브리드 방식의 "거친" 절반이다. 여기서 만든 조건은 필요조건일 뿐이고,
레코드별 최종 판단은 검색 후처리에서 AuthorizationOracle.can_view로 한다.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from search_api.app.domain.models import (
    DENY_ALL,
    Actor,
    Allowed,
    Capability,
    PermissionPredicate,
    ProjectStatus,
    RecordType,
    WorkItem,
)
from search_api.app.domain.ports import AuthorizationOracle

JOURNAL_PATH = "work_item_fields.journals"
JOURNAL_NOTES = f"{JOURNAL_PATH}.notes"

# work_item / project 외 유형은 "type = T AND project_id ∈ 권한 프로젝트" 형태
_PROJECT_SCOPED = {
    RecordType.wiki_page: Capability.view_wiki_pages,
    RecordType.announcement: Capability.view_announcements,
    RecordType.forum_post: Capability.view_forum_posts,
    RecordType.commit: Capability.view_commits,
    RecordType.file: Capability.view_files,
}


def _term(field: str, value: Any) -> Dict[str, Any]:
    return {"term": {field: value}}


def _terms(field: str, values: Iterable[Any]) -> Dict[str, Any]:
    return {"terms": {field: sorted(values)}}


def _all_of(*clauses: Dict[str, Any]) -> Dict[str, Any]:
    return {"bool": {"must": list(clauses)}}


def _any_of(clauses: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"bool": {"should": clauses, "minimum_should_match": 1}}


def _nested_journals(query: Dict[str, Any], highlight: Dict[str, Any] | None, name: str) -> Dict[str, Any]:
    nested: Dict[str, Any] = {"path": JOURNAL_PATH, "query": query, "score_mode": "max"}
    if highlight is not None:
        # nested 필드는 최상위 highlight로 조각이 나오지 않는다
        nested["inner_hits"] = {"name": name, "_source": False, "highlight": highlight}
    return {"nested": nested}


class PermissionFilter:
    """
    요청(사용자) 단위로 만들어 쓰고 버린다.
    권한별 프로젝트 id 캐시는 인스턴스에만 있으므로 다른 사용자/요청과 공유하면 안 된다.
    """

    def __init__(self, actor: Actor, oracle: AuthorizationOracle) -> None:
        self.actor = actor
        self.oracle = oracle
        self._project_cache: dict[Capability, frozenset[int]] = {}

    def build(self, types: Iterable[RecordType | str] | None = None) -> PermissionPredicate:
        """
        요청한 유형별 하위 필터를 OR로 묶은 권한 조건을 만든다.
        Args:
            types: 검색 대상 유형(None이면 전체)
        Returns:
            Allowed(clause) 또는 모든 유형이 거부된 경우 Denied
        """
        requested = [RecordType(t) for t in types] if types else list(RecordType)
        clauses = []
        for record_type in requested:
            predicate = self.filter_for_type(record_type)
            if isinstance(predicate, Allowed):
                clauses.append(predicate.clause)
        if not clauses:
            return DENY_ALL
        return Allowed(clause=_any_of(clauses))

    def filter_for_type(self, record_type: RecordType) -> PermissionPredicate:
        if record_type is RecordType.work_item:
            return self._work_item_filter()
        if record_type is RecordType.project:
            return self._project_filter()
        return self._project_scoped_filter(record_type, _PROJECT_SCOPED[record_type])

    def projects_with_capability(self, capability: Capability) -> frozenset[int]:
        if capability not in self._project_cache:
            self._project_cache[capability] = frozenset(
                self.oracle.projects_with_capability(self.actor, capability)
            )
        return self._project_cache[capability]

    # ================== 비공개 노트 ==================

    def journal_query(self, match: Dict[str, Any], highlight: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """
        저널 노트 검색 절. 읽을 수 없는 비공개 노트로는 문서가 걸리지 않게 한다.
        Args:
            match: 저널 노트에 대한 match 쿼리
            highlight: inner_hits로 받을 노트 하이라이트 설정(None이면 생략)
        Returns:
            nested 절(비공개 노트 권한 프로젝트가 있으면 두 nested 절의 OR)
        """
        if self.actor.admin:
            return _nested_journals(match, highlight, "journals")

        readable = [_term(f"{JOURNAL_PATH}.is_private", False)]
        if not self.actor.is_anonymous:
            readable.append(_term(f"{JOURNAL_PATH}.user_id", self.actor.id))
        own = _nested_journals(_all_of(match, _any_of(readable)), highlight, "journals")

        granted = self.projects_with_capability(Capability.view_private_notes)
        if not granted:
            return own
        return _any_of([
            own,
            _all_of(_terms("project_id", granted), _nested_journals(match, highlight, "private_journals")),
        ])

    def can_read_note(self, project_id: int | None, is_private: bool, user_id: int | None) -> bool:
        if self.actor.admin or not is_private:
            return True
        if not self.actor.is_anonymous and user_id == self.actor.id:
            return True
        return project_id in self.projects_with_capability(Capability.view_private_notes)

    def redact_source(self, source: Dict[str, Any]) -> Dict[str, Any]:
        """색인 문서에서 읽을 수 없는 비공개 노트를 뺀 사본."""
        fields = source.get("work_item_fields")
        if not fields or not fields.get("journals"):
            return source
        project_id = source.get("project_id")
        journals = [
            j for j in fields["journals"]
            if self.can_read_note(project_id, j.get("is_private", False), j.get("user_id"))
        ]
        return {**source, "work_item_fields": {**fields, "journals": journals}}

    def redact_record(self, record: Any) -> Any:
        """일감 레코드에서 읽을 수 없는 비공개 노트를 뺀 사본. 다른 레코드는 그대로."""
        if not isinstance(record, WorkItem) or not record.journals:
            return record
        project_id = record.project.id if record.project else None
        journals = [
            j for j in record.journals
            if self.can_read_note(project_id, j.private_notes, j.user_id)
        ]
        return record.model_copy(update={"journals": journals})

    # ================== 유형별 필터 ==================

    def _work_item_filter(self) -> PermissionPredicate:
        kind = _term("type", RecordType.work_item.value)
        if self.actor.admin:
            return Allowed(clause=kind)

        project_ids = self.projects_with_capability(Capability.view_work_items)
        if not project_ids:
            return DENY_ALL

        is_private = "work_item_fields.is_private"
        branches = [
            # 권한 있는 프로젝트의 공개 일감
            _all_of(kind, _term(is_private, False), _terms("project_id", project_ids)),
        ]
        if not self.actor.is_anonymous:
            # 내가 작성했거나 담당인 비공개 일감
            branches.append(_all_of(kind, _term(is_private, True),
                                    _term("work_item_fields.author_id", self.actor.id)))
            branches.append(_all_of(kind, _term(is_private, True),
                                    _term("work_item_fields.assigned_to_id", self.actor.id)))

        private_ids = self.projects_with_capability(Capability.view_private_work_items)
        if private_ids:
            branches.append(_all_of(kind, _term(is_private, True), _terms("project_id", private_ids)))
        return Allowed(clause=_any_of(branches))

    def _project_scoped_filter(self, record_type: RecordType, capability: Capability) -> PermissionPredicate:
        kind = _term("type", record_type.value)
        if self.actor.admin:
            return Allowed(clause=kind)

        project_ids = self.projects_with_capability(capability)
        if not project_ids:
            return DENY_ALL

        member = _all_of(kind, _terms("project_id", project_ids))
        if record_type is RecordType.announcement:
            # 공개 프로젝트의 공지는 멤버가 아니어도 보인다
            public = _all_of(kind, _term("project_is_public", True))
            return Allowed(clause=_any_of([public, member]))
        return Allowed(clause=member)

    def _project_filter(self) -> PermissionPredicate:
        kind = _term("type", RecordType.project.value)
        active = _term("status", ProjectStatus.ACTIVE.value)
        branches = [_all_of(kind, _term("project_is_public", True), active)]
        if self.actor.member_project_ids:
            branches.append(_all_of(kind, _terms("project_id", self.actor.member_project_ids), active))
        if self.actor.admin:
            branches.append(kind)
        return Allowed(clause=_any_of(branches))
