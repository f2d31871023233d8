"""
트래커 레코드를 OpenSearch에 색인/삭제하는 IndexPort 구현체.

모든 연산은 예외를 밖으로 던지지 않고 EngineResult(성공/실패)로 돌려준다.
단, 레코드 매핑 오류(UnsupportedRecordType)는 프로그래밍 오류이므로 그대로 전파한다.
"""

from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List

from opensearchpy import OpenSearch
from opensearchpy.exceptions import NotFoundError, OpenSearchException

from search_api.app.adapters.builders.document_builder import DocumentBuilder, make_document_id
from search_api.app.domain.ports import IndexPort
from search_api.app.domain.models import (
    EngineResult, FailureReason, IndexErrorItem, IndexResult, RecordType, SearchableRecord,
)

logger = logging.getLogger(__name__)


class OpenSearchIndexer(IndexPort):

    def __init__(
        self,
        client: OpenSearch | None,
        index_name: str,
        builder: DocumentBuilder | None = None) -> None:
        self.client = client
        self.index_name = index_name
        self.builder = builder or DocumentBuilder()
        self._load_index_schema()

    def _load_index_schema(self) -> None:
        """
            인덱스 스키마(매핑 + 분석기 설정)를 JSON 파일에서 로드한다.
        """
        root_dir = Path(os.path.dirname(__file__)).resolve().parents[2]
        schema_path = root_dir / "resources/schema/search_index.json"
        with open(schema_path, 'r', encoding='utf-8') as f:
            self.index_schema = json.load(f)

    # ================== 문서 ==================

    def index(self, record: SearchableRecord) -> EngineResult[str]:
        """
            레코드 1건을 문서로 변환해 "{type}_{id}" 위치에 덮어쓴다.
            같은 레코드를 여러 번 색인해도 문서는 하나(재시도 안전).

            Args:
                record: 검색 대상 레코드
            Returns:
                EngineResult: 성공 시 value에 문서 id
        """
        document = self.builder.build(record)
        doc_id = document.document_id
        if self.client is None:
            return self._unavailable("index", doc_id)

        try:
            self.client.index(index=self.index_name, id=doc_id, body=document.to_source())
        except OpenSearchException as e:
            return self._engine_error("index", e, doc_id=doc_id, record_type=document.type.value)
        logger.debug("indexer.index: doc_id=%s", doc_id)
        return EngineResult.success(doc_id)

    def delete(
        self,
        record_or_type: SearchableRecord | RecordType | str,
        record_id: int | None = None) -> EngineResult[str]:
        """
            문서를 삭제한다. 이미 없는 문서는 성공으로 본다.

            Args:
                record_or_type: 레코드, 또는 삭제된 레코드의 type 태그
                record_id: type 태그로 호출할 때의 레코드 id
            Returns:
                EngineResult: 성공 시 value에 문서 id
        """
        if isinstance(record_or_type, str):
            if record_id is None:
                raise ValueError("record_id is required when deleting by type")
            doc_id = make_document_id(record_or_type, record_id)
        else:
            doc_id = self.builder.document_id(record_or_type)
        if self.client is None:
            return self._unavailable("delete", doc_id)

        try:
            self.client.delete(index=self.index_name, id=doc_id)
        except NotFoundError:
            logger.debug("indexer.delete: doc_id=%s already absent", doc_id)
        except OpenSearchException as e:
            return self._engine_error("delete", e, doc_id=doc_id)
        return EngineResult.success(doc_id)

    def bulk_index(self, records: Iterable[SearchableRecord]) -> EngineResult[IndexResult]:
        """
            레코드 여러 건을 bulk API로 한 번에 색인한다.

            - 액션/문서가 번갈아 나오는 body를 만든다.
            - 항목별 응답을 확인해 실패 항목을 하나씩 로그로 남긴다.
            - 실패 항목이 하나라도 있으면 전체 결과는 실패(이미 들어간 항목은 롤백하지 않음).

            Args:
                records: 레코드 목록
            Returns:
                EngineResult: value에 색인 결과(성공 건수, 실패 상세)
        """
        body: List[Dict[str, Any]] = []
        for record in records:
            document = self.builder.build(record)
            body.append({"index": {"_index": self.index_name, "_id": document.document_id}})
            body.append(document.to_source())
        if not body:
            return EngineResult.success(IndexResult(indexed=0))
        if self.client is None:
            return self._unavailable("bulk_index", f"{len(body) // 2} documents")

        try:
            response = self.client.bulk(body=body)
        except OpenSearchException as e:
            return self._engine_error("bulk_index", e)

        items = response.get("items") or []
        err_items: list[IndexErrorItem] = []
        for item in items:
            action = item.get("index") or {}
            if not action.get("error"):
                continue
            err = IndexErrorItem(doc_id=str(action.get("_id", "")), reason=json.dumps(action["error"]))
            logger.error(
                "indexer.bulk_index item failed: doc_id=%s error=%s", err.doc_id, err.reason,
                extra={"index": self.index_name, "doc_id": err.doc_id},
            )
            err_items.append(err)

        result = IndexResult(indexed=len(items) - len(err_items), errors=err_items)
        if response.get("errors") or err_items:
            return EngineResult.fail(
                FailureReason.partial_failure,
                f"{len(err_items)} of {len(items)} documents failed",
                value=result,
            )
        return EngineResult.success(result)

    # ================== 인덱스 ==================

    def create_index(self, force: bool = False) -> EngineResult[str]:
        """
            로드된 스키마로 인덱스를 생성한다.
            이미 있으면 force=False일 때 그대로 성공, force=True이면 지우고 다시 만든다.
        """
        if self.client is None:
            return self._unavailable("create_index", self.index_name)

        try:
            if self.client.indices.exists(index=self.index_name):
                if not force:
                    logger.info("Index '%s' already exists.", self.index_name)
                    return EngineResult.success(self.index_name)
                deleted = self.delete_index()
                if not deleted:
                    return deleted
            self.client.indices.create(index=self.index_name, body=self.index_schema)
        except OpenSearchException as e:
            return self._engine_error("create_index", e)
        logger.info("Index '%s' created successfully.", self.index_name)
        return EngineResult.success(self.index_name)

    def delete_index(self) -> EngineResult[str]:
        if self.client is None:
            return self._unavailable("delete_index", self.index_name)
        try:
            self.client.indices.delete(index=self.index_name)
        except NotFoundError:
            pass
        except OpenSearchException as e:
            return self._engine_error("delete_index", e)
        return EngineResult.success(self.index_name)

    def index_exists(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.indices.exists(index=self.index_name))
        except OpenSearchException:
            return False

    def refresh(self) -> EngineResult[str]:
        """최근 변경을 검색에 반영한다."""
        if self.client is None:
            return self._unavailable("refresh", self.index_name)
        try:
            self.client.indices.refresh(index=self.index_name)
        except OpenSearchException as e:
            return self._engine_error("refresh", e)
        return EngineResult.success(self.index_name)

    def stats(self) -> EngineResult[Dict[str, Any]]:
        if self.client is None:
            return self._unavailable("stats", self.index_name)
        try:
            return EngineResult.success(self.client.indices.stats(index=self.index_name))
        except OpenSearchException as e:
            return self._engine_error("stats", e)

    # ================== internal helpers ==================

    def _unavailable(self, op: str, target: str) -> EngineResult:
        logger.warning("indexer.%s skipped: search engine not configured (%s)", op, target)
        return EngineResult.fail(FailureReason.unavailable, "search engine not configured")

    def _engine_error(self, op: str, e: Exception, **extra: Any) -> EngineResult:
        logger.error(
            "indexer.%s failed: %s %s", op, extra.get("doc_id", self.index_name), e,
            extra={"index": self.index_name, **extra},
        )
        return EngineResult.fail(FailureReason.engine_error, str(e))
