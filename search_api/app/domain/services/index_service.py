"""
IndexService
==============

레코드 변경을 인덱스에 반영하는 유스케이스 서비스.

Flow:
    레코드 저장/삭제 → RecordChangeListener → (외부 큐) → IndexService.perform → Indexer

- 큐 스케줄링은 트래커 본체 소관이고, 여기서는 "색인/삭제를 시도하고 실패하면 예외" 까지만 책임진다.
- perform은 실패 시 RetryPolicy만큼 재시도(지수 backoff)한 뒤 IndexingFailed를 다시 던져
  큐의 dead-letter 정책이 적용되게 한다.

예시:
    svc = IndexService(indexer, records)
    svc.perform(RecordType.work_item, 42, IndexAction.index)
    svc.rebuild(all_records, batch_size=500)
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from itertools import islice
from typing import Any, Callable, Iterable, Iterator, List

from pydantic import BaseModel, Field

from search_api.app.adapters.builders.document_builder import DocumentBuilder
from search_api.app.domain.models import (
    EngineResult, IndexErrorItem, IndexResult, RecordType, SearchableRecord,
)
from search_api.app.domain.ports import RecordRepository
from search_api.app.platform.exceptions import IndexingFailed

logger = logging.getLogger(__name__)


class IndexAction(str, Enum):
    index = "index"
    delete = "delete"


class RetryPolicy(BaseModel):
    """
    Attributes:
        max_attempts: 첫 시도를 포함한 최대 시도 횟수
        backoff_seconds: 재시도 대기 기준값(base × 2^(attempt-1))
    """
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))


class IndexService:

    def __init__(
        self,
        indexer,
        records: RecordRepository,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Any] = time.sleep) -> None:
        """
        인덱스 서비스 초기화.
        Args:
            indexer: OpenSearchIndexer    : 문서 색인/삭제, 인덱스 관리
            records: RecordRepository     : (type, id)로 원본 레코드 로드
            retry: RetryPolicy            : 재시도 횟수/대기
            sleep: Callable               : 재시도 대기 함수(테스트에서 교체)
        """
        self._indexer = indexer
        self._records = records
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    # ================= public API =================

    def perform(
        self,
        record_type: RecordType | str,
        record_id: int,
        action: IndexAction | str = IndexAction.index) -> EngineResult | None:
        """
        백그라운드 색인 작업 본문.

        Args:
            record_type: 레코드 type 태그
            record_id: 레코드 id
            action: index | delete
        Returns:
            EngineResult: 마지막 시도의 결과. 색인할 레코드가 이미 없으면 None
        Raises:
            IndexingFailed: 모든 시도가 실패한 경우
        """
        record_type = RecordType(record_type)
        action = IndexAction(action)

        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                return self._perform_once(record_type, record_id, action)
            except IndexingFailed as e:
                logger.warning(
                    "index job attempt %d/%d failed: %s",
                    attempt, self._retry.max_attempts, e,
                    extra={"doc_id": e.doc_id, "record_type": record_type.value},
                )
                if attempt >= self._retry.max_attempts:
                    logger.error("index job gave up: %s", e, extra={"doc_id": e.doc_id})
                    raise
                self._sleep(self._retry.delay(attempt))
        return None

    def reindex(self, record: SearchableRecord) -> EngineResult:
        """큐를 거치지 않고 즉시 색인한다."""
        return self._indexer.index(record)

    def rebuild(self, records: Iterable[SearchableRecord], batch_size: int = 500) -> IndexResult:
        """
        인덱스를 새로 만들고 전체 레코드를 batch 단위로 bulk 색인하는 메서드.
        Args:
            records: 전체 레코드
            batch_size: bulk 한 번에 보낼 건수
        Returns:
            IndexResult: 전체 batch 합산 결과
        Raises:
            IndexingFailed: 인덱스 생성 자체가 실패한 경우
        """
        created = self._indexer.create_index(force=True)
        if not created:
            raise IndexingFailed(self._indexer.index_name, created.failure.message)

        indexed = 0
        errors: List[IndexErrorItem] = []
        for batch in _batched(records, batch_size):
            result = self._indexer.bulk_index(batch)
            if result.value is not None:
                indexed += result.value.indexed
                errors.extend(result.value.errors)
            elif not result:
                # 요청 자체가 실패한 batch는 전부 실패로 센다
                errors.extend(
                    IndexErrorItem(doc_id=DocumentBuilder().document_id(r), reason=result.failure.message)
                    for r in batch
                )
        self._indexer.refresh()
        logger.info("index rebuild done: indexed=%d errors=%d", indexed, len(errors))
        return IndexResult(indexed=indexed, errors=errors)

    # ================= internal helpers =================

    def _perform_once(self, record_type: RecordType, record_id: int, action: IndexAction) -> EngineResult | None:
        doc_id = f"{record_type.value}_{record_id}"
        if action is IndexAction.delete:
            result = self._indexer.delete(record_type, record_id)
        else:
            record = self._records.load(record_type, record_id)
            if record is None:
                logger.debug("index job: %s no longer exists", doc_id)
                return None
            result = self._indexer.index(record)

        if not result:
            raise IndexingFailed(doc_id, result.failure.message if result.failure else "unknown")
        logger.debug("index job: %s %s", action.value, doc_id)
        return result


class RecordChangeListener:
    """
    레코드 저장/삭제 알림을 색인 작업 enqueue로 바꾼다.
    enqueue는 (type, id, action)을 받는 callable(큐 구현은 외부).
    """

    def __init__(
        self,
        enqueue: Callable[[str, int, str], Any],
        builder: DocumentBuilder | None = None,
        disabled: bool = False) -> None:
        self._enqueue = enqueue
        self._builder = builder or DocumentBuilder()
        self._disabled = disabled

    def on_saved(self, record: SearchableRecord) -> bool:
        return self._notify(record, IndexAction.index)

    def on_destroyed(self, record: SearchableRecord) -> bool:
        return self._notify(record, IndexAction.delete)

    def _notify(self, record: SearchableRecord, action: IndexAction) -> bool:
        if self._disabled:
            return False
        record_type = self._builder.record_type(record)
        self._enqueue(record_type.value, record.id, action.value)
        return True


def _batched(items: Iterable[Any], size: int) -> Iterator[List[Any]]:
    if size < 1:
        raise ValueError("batch_size must be >= 1")
    it = iter(items)
    while batch := list(islice(it, size)):
        yield batch
