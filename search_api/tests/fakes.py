# search_api/tests/fakes.py
"""
테스트용 in-memory 협력 객체.

- FakeOpenSearch: opensearch-py 클라이언트 중 이 프로젝트가 쓰는 부분만 흉내 낸다.
  bool/term/terms/range/exists/match_all/multi_match/match/nested 쿼리,
  정렬, terms/date_histogram 집계를 단순 토큰 일치로 평가한다(오타 허용/분석기 없음).
- FakeOracle: 권한 오라클. 엔진 필터용 권한(grants)과 레코드별 판단용 권한(effective)을
  따로 줄 수 있어서 "엔진 필터는 통과했지만 후처리에서 빠지는" 상황을 만들 수 있다.
- FakeRecords: (type, id) → 레코드 저장소.
"""

from __future__ import annotations

import copy
import functools
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from opensearchpy.exceptions import NotFoundError

from search_api.app.adapters.builders.document_builder import DocumentBuilder
from search_api.app.domain.models import (
    Actor, Announcement, Capability, Project, ProjectStatus, RecordType, WorkItem,
)

_WORD = re.compile(r"\w+")


def _tokens(text: Any) -> List[str]:
    return _WORD.findall(str(text).lower()) if text is not None else []


def _values(doc: Any, path: str) -> List[Any]:
    """점 경로의 값을 모두 모은다(배열은 펼친다). "title.raw" 는 title 원문."""
    if path.endswith(".raw"):
        path = path[: -len(".raw")]
    current = [doc]
    for part in path.split("."):
        nxt = []
        for node in current:
            if isinstance(node, list):
                node_items = node
            else:
                node_items = [node]
            for item in node_items:
                if isinstance(item, dict) and part in item:
                    value = item[part]
                    nxt.extend(value if isinstance(value, list) else [value])
        current = nxt
    return [v for v in current if v is not None]


def _parse_date(value: Any) -> datetime:
    dt = datetime.fromisoformat(str(value))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _field_boost(field: str) -> tuple[str, float]:
    if "^" in field:
        name, boost = field.split("^", 1)
        return name, float(boost)
    return field, 1.0


def _match_text(values: List[Any], query: str, operator: str, phrase: bool, keyword: bool) -> float:
    q_tokens = _tokens(query)
    if not q_tokens:
        return 0.0
    best = 0.0
    for value in values:
        if keyword:
            if str(value).lower() == query.lower():
                best = max(best, float(len(q_tokens)))
            continue
        v_tokens = _tokens(value)
        if phrase:
            n = len(q_tokens)
            if any(v_tokens[i:i + n] == q_tokens for i in range(len(v_tokens) - n + 1)):
                best = max(best, float(n))
            continue
        hit = [t for t in q_tokens if t in v_tokens]
        if operator == "and" and len(hit) != len(q_tokens):
            continue
        best = max(best, float(len(hit)))
    return best


def evaluate(query: Dict[str, Any] | None, doc: Dict[str, Any]) -> float | None:
    """문서가 쿼리에 맞으면 점수, 아니면 None."""
    if not query:
        return 1.0
    (kind, params), = query.items()

    if kind == "match_all":
        return 1.0

    if kind == "bool":
        boost = float(params.get("boost", 1.0))
        score = 0.0

        def as_list(key: str) -> List[Dict[str, Any]]:
            clauses = params.get(key) or []
            return clauses if isinstance(clauses, list) else [clauses]

        for clause in as_list("must"):
            s = evaluate(clause, doc)
            if s is None:
                return None
            score += s
        for clause in as_list("filter"):
            if evaluate(clause, doc) is None:
                return None
        for clause in as_list("must_not"):
            if evaluate(clause, doc) is not None:
                return None
        should = as_list("should")
        if should:
            default_msm = 0 if (params.get("must") or params.get("filter")) else 1
            msm = int(params.get("minimum_should_match", default_msm))
            matched = [s for s in (evaluate(c, doc) for c in should) if s is not None]
            if len(matched) < msm:
                return None
            score += sum(matched)
        return score * boost

    if kind == "term":
        (field, value), = params.items()
        if isinstance(value, dict):
            value = value["value"]
        return 1.0 if any(v == value and type(v) is type(value) for v in _values(doc, field)) else None

    if kind == "terms":
        (field, wanted), = params.items()
        wanted = list(wanted)
        return 1.0 if any(v in wanted for v in _values(doc, field)) else None

    if kind == "range":
        (field, bounds), = params.items()
        for value in _values(doc, field):
            dt = _parse_date(value)
            if "gte" in bounds and dt < _parse_date(bounds["gte"]):
                continue
            if "gt" in bounds and dt <= _parse_date(bounds["gt"]):
                continue
            if "lte" in bounds and dt > _parse_date(bounds["lte"]):
                continue
            if "lt" in bounds and dt >= _parse_date(bounds["lt"]):
                continue
            return 1.0
        return None

    if kind == "exists":
        values = [v for v in _values(doc, params["field"]) if v != ""]
        return 1.0 if values else None

    if kind == "multi_match":
        phrase = params.get("type") == "phrase"
        operator = params.get("operator", "or")
        best = 0.0
        for field in params["fields"]:
            name, field_boost = _field_boost(field)
            s = _match_text(_values(doc, name), params["query"], operator, phrase, name.endswith(".raw"))
            best = max(best, s * field_boost)
        return best * float(params.get("boost", 1.0)) if best > 0 else None

    if kind == "match":
        (field, value), = params.items()
        if not isinstance(value, dict):
            value = {"query": value}
        s = _match_text(_values(doc, field), value["query"], value.get("operator", "or"), False, False)
        return s if s > 0 else None

    if kind == "nested":
        path = params["path"]
        best = None
        for item in _values(doc, path):
            scoped = _with_single(doc, path, item)
            s = evaluate(params["query"], scoped)
            if s is not None and (best is None or s > best):
                best = s
        return best

    raise NotImplementedError(f"fake engine does not support '{kind}'")


def _with_single(doc: Dict[str, Any], path: str, item: Any) -> Dict[str, Any]:
    """nested 평가용: path 배열을 원소 하나로 바꾼 사본."""
    scoped = copy.deepcopy(doc)
    node = scoped
    parts = path.split(".")
    for part in parts[:-1]:
        node = node[part]
    node[parts[-1]] = [item]
    return scoped


def _compare(sorts: List[Any], a: Dict[str, Any], b: Dict[str, Any]) -> int:
    for sort in sorts:
        if sort == "_score":
            field, order = "_score", "desc"
        else:
            (field, opts), = sort.items()
            order = opts.get("order", "asc") if isinstance(opts, dict) else opts
        va = a["_score"] if field == "_score" else (_values(a["_source"], field) or [None])[0]
        vb = b["_score"] if field == "_score" else (_values(b["_source"], field) or [None])[0]
        if va is None and vb is None:
            continue
        # 값이 없는 문서는 정렬 방향과 관계없이 뒤로
        if va is None:
            return 1
        if vb is None:
            return -1
        if va != vb:
            result = -1 if va < vb else 1
            return -result if order == "desc" else result
    return 0


class FakeIndices:

    def __init__(self, engine: FakeOpenSearch) -> None:
        self._engine = engine

    def exists(self, index: str) -> bool:
        self._engine._check("indices.exists")
        return index in self._engine.indices_created

    def create(self, index: str, body: Dict[str, Any] | None = None) -> Dict[str, Any]:
        self._engine._check("indices.create")
        self._engine.indices_created[index] = body or {}
        self._engine.docs.setdefault(index, {})
        return {"acknowledged": True, "index": index}

    def delete(self, index: str) -> Dict[str, Any]:
        self._engine._check("indices.delete")
        if index not in self._engine.indices_created:
            raise NotFoundError(404, "index_not_found_exception", {"index": index})
        del self._engine.indices_created[index]
        self._engine.docs.pop(index, None)
        return {"acknowledged": True}

    def refresh(self, index: str) -> Dict[str, Any]:
        self._engine._check("indices.refresh")
        self._engine.refresh_count += 1
        return {"_shards": {"failed": 0}}

    def stats(self, index: str) -> Dict[str, Any]:
        self._engine._check("indices.stats")
        count = len(self._engine.docs.get(index, {}))
        return {"indices": {index: {"primaries": {"docs": {"count": count}}}}}


class FakeOpenSearch:

    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.indices_created: Dict[str, Dict[str, Any]] = {}
        self.indices = FakeIndices(self)
        self.requests: List[tuple[str, Dict[str, Any]]] = []
        self.failing_doc_ids: set[str] = set()
        self.refresh_count = 0
        self._error: Exception | None = None

    # ---- 오류 주입 ----
    def fail_with(self, error: Exception | None) -> None:
        """이후 모든 호출이 error를 던진다(None이면 해제)."""
        self._error = error

    def _check(self, op: str) -> None:
        if self._error is not None:
            raise self._error

    # ---- 문서 ----
    def index(self, index: str, id: str, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        self._check("index")
        self.docs.setdefault(index, {})[id] = copy.deepcopy(body)
        return {"_id": id, "result": "created"}

    def delete(self, index: str, id: str, **kwargs: Any) -> Dict[str, Any]:
        self._check("delete")
        if id not in self.docs.get(index, {}):
            raise NotFoundError(404, "not_found", {"_id": id})
        del self.docs[index][id]
        return {"_id": id, "result": "deleted"}

    def bulk(self, body: List[Dict[str, Any]], **kwargs: Any) -> Dict[str, Any]:
        self._check("bulk")
        items = []
        for action, source in zip(body[::2], body[1::2]):
            meta = action["index"]
            doc_id = meta["_id"]
            if doc_id in self.failing_doc_ids:
                items.append({"index": {"_id": doc_id, "status": 400,
                                        "error": {"type": "mapper_parsing_exception", "reason": "bad"}}})
                continue
            self.docs.setdefault(meta["_index"], {})[doc_id] = copy.deepcopy(source)
            items.append({"index": {"_id": doc_id, "status": 201}})
        return {"errors": any("error" in i["index"] for i in items), "items": items}

    def source(self, index: str, doc_id: str) -> Dict[str, Any] | None:
        return self.docs.get(index, {}).get(doc_id)

    # ---- 조회 ----
    def ping(self) -> bool:
        self._check("ping")
        return True

    def count(self, index: str, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        self._check("count")
        self.requests.append(("count", body))
        return {"count": len(self._matching(index, body.get("query")))}

    def search(self, index: str, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        self._check("search")
        self.requests.append(("search", body))
        hits = self._matching(index, body.get("query"))
        sorts = body.get("sort") or ["_score"]
        hits.sort(key=functools.cmp_to_key(lambda a, b: _compare(sorts, a, b)))

        start = body.get("from", 0)
        size = body.get("size", 10)
        response: Dict[str, Any] = {
            "hits": {
                "total": {"value": len(hits), "relation": "eq"},
                "hits": hits[start:start + size],
            }
        }
        if body.get("aggs"):
            response["aggregations"] = {
                name: self._aggregate(agg, hits) for name, agg in body["aggs"].items()
            }
        return response

    def _matching(self, index: str, query: Dict[str, Any] | None) -> List[Dict[str, Any]]:
        hits = []
        for doc_id, source in self.docs.get(index, {}).items():
            score = evaluate(query, source)
            if score is not None:
                hits.append({"_id": doc_id, "_score": score, "_source": copy.deepcopy(source)})
        return hits

    def _aggregate(self, agg: Dict[str, Any], hits: List[Dict[str, Any]]) -> Dict[str, Any]:
        if "terms" in agg:
            counts: Dict[Any, int] = {}
            for hit in hits:
                for value in set(_values(hit["_source"], agg["terms"]["field"])):
                    counts[value] = counts.get(value, 0) + 1
            ordered = sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
            size = agg["terms"].get("size", 10)
            return {"buckets": [{"key": k, "doc_count": c} for k, c in ordered[:size]]}

        if "date_histogram" in agg:
            params = agg["date_histogram"]
            months: Dict[str, int] = {}
            for hit in hits:
                for value in _values(hit["_source"], params["field"]):
                    key = _parse_date(value).strftime("%Y-%m")
                    months[key] = months.get(key, 0) + 1
            if months and params.get("min_doc_count", 0) == 0:
                for key in _month_range(min(months), max(months)):
                    months.setdefault(key, 0)
            buckets = []
            for key in sorted(months):
                if months[key] < params.get("min_doc_count", 0):
                    continue
                epoch = int(datetime.strptime(key, "%Y-%m").replace(tzinfo=timezone.utc).timestamp() * 1000)
                buckets.append({"key_as_string": key, "key": epoch, "doc_count": months[key]})
            return {"buckets": buckets}

        raise NotImplementedError(f"fake engine does not support aggregation {agg}")


def _month_range(first: str, last: str) -> Iterable[str]:
    year, month = map(int, first.split("-"))
    while f"{year:04d}-{month:02d}" <= last:
        yield f"{year:04d}-{month:02d}"
        month += 1
        if month > 12:
            year, month = year + 1, 1


# ---------------------------
# 권한 오라클 / 레코드 저장소
# ---------------------------
_CAPABILITY_BY_TYPE = {
    RecordType.wiki_page: Capability.view_wiki_pages,
    RecordType.announcement: Capability.view_announcements,
    RecordType.forum_post: Capability.view_forum_posts,
    RecordType.commit: Capability.view_commits,
    RecordType.file: Capability.view_files,
}


class FakeOracle:
    """
    grants[actor_id][capability] = 프로젝트 id 집합 (엔진 필터용, None 키는 익명)
    effective: can_view 판단용 권한. 생략하면 grants와 같다.
    """

    def __init__(
        self,
        grants: Dict[int | None, Dict[Capability, Iterable[int]]] | None = None,
        effective: Dict[int | None, Dict[Capability, Iterable[int]]] | None = None) -> None:
        self.grants = {k: {c: set(v) for c, v in caps.items()} for k, caps in (grants or {}).items()}
        self.effective = (
            {k: {c: set(v) for c, v in caps.items()} for k, caps in effective.items()}
            if effective is not None else self.grants
        )
        self.capability_calls: List[tuple[int | None, Capability]] = []
        self.builder = DocumentBuilder()

    def projects_with_capability(self, actor: Actor, capability: Capability) -> set[int]:
        self.capability_calls.append((actor.id, capability))
        return set(self.grants.get(actor.id, {}).get(capability, set()))

    def can_view(self, actor: Actor, record: Any) -> bool:
        if actor.admin:
            return True
        caps = self.effective.get(actor.id, {})

        if isinstance(record, Project):
            if record.status != ProjectStatus.ACTIVE:
                return False
            return record.is_public or record.id in actor.member_project_ids

        project_id = record.project.id if record.project else None
        if isinstance(record, WorkItem):
            if project_id not in caps.get(Capability.view_work_items, set()):
                return False
            if not record.is_private:
                return True
            if actor.id is not None and actor.id in (record.author_id, record.assigned_to_id):
                return True
            return project_id in caps.get(Capability.view_private_work_items, set())

        if isinstance(record, Announcement) and record.project and record.project.is_public:
            return True
        capability = _CAPABILITY_BY_TYPE[self.builder.record_type(record)]
        return project_id in caps.get(capability, set())


class FakeRecords:

    def __init__(self, *records: Any) -> None:
        self.builder = DocumentBuilder()
        self._store: Dict[tuple[RecordType, int], Any] = {}
        self.add(*records)

    def add(self, *records: Any) -> None:
        for record in records:
            self._store[(self.builder.record_type(record), record.id)] = record

    def remove(self, record: Any) -> None:
        self._store.pop((self.builder.record_type(record), record.id), None)

    def all(self) -> List[Any]:
        return list(self._store.values())

    def load(self, record_type: RecordType | str, record_id: int) -> Any:
        return self._store.get((RecordType(record_type), int(record_id)))
