class DomainError(Exception):
    """도메인/유즈케이스 공통 베이스 예외"""
    pass

class ResourceNotFound(DomainError):
    def __init__(self, resource: str, detail: str | None = None):
        super().__init__(detail or f"{resource} not found")
        self.resource = resource

class UnsupportedRecordType(DomainError):
    """
    색인 문서로 매핑할 수 없는 레코드.
    호출 측에서 잡지 않는다.
    """
    def __init__(self, record: object):
        super().__init__(f"Unsupported record type: {type(record).__name__}")
        self.record_class = type(record)

class IndexingFailed(DomainError):
    def __init__(self, doc_id: str, reason: str):
        super().__init__(f"Indexing failed for {doc_id}: {reason}")
        self.doc_id = doc_id
        self.reason = reason

class ServiceNotConfigured(DomainError):
    def __init__(self, component: str):
        super().__init__(f"{component} is not configured")
        self.component = component
