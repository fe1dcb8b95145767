from services.audit_service.db.models import (
    Base,
    Audit,
    AuditMode,
    AuditStatus,
    Page,
    PageArtifact,
    PageType,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    CollectionStatus,
    TestingStatus,
)

from services.audit_service.db.session import (
    get_sessionmaker,
    session_scope,
    get_db,
    init_db,
)

__all__ = [
    "Base",
    "Audit",
    "AuditMode",
    "AuditStatus",
    "Page",
    "PageArtifact",
    "PageType",
    "CheckDefinition",
    "CheckResult",
    "CheckStatus",
    "CollectionStatus",
    "TestingStatus",
    "get_sessionmaker",
    "session_scope",
    "get_db",
    "init_db",
]
