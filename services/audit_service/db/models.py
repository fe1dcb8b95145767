import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class AuditMode(str, enum.Enum):
    SINGLE_PAGE = "single_page"
    FULL_CRAWL = "full_crawl"


class AuditStatus(str, enum.Enum):
    PENDING = "pending"
    CRAWLING = "crawling"
    PRIORITIZING = "prioritizing"
    COLLECTING = "collecting"
    TESTING = "testing"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    FAILED = "failed"


class CollectionStatus(str, enum.Enum):
    PENDING = "pending"
    COLLECTING = "collecting"
    COMPLETE = "complete"
    FAILED = "failed"


class TestingStatus(str, enum.Enum):
    __test__ = False

    PENDING = "pending"
    TESTING = "testing"
    COMPLETE = "complete"
    FAILED = "failed"


class CheckStatus(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    NOT_APPLICABLE = "not_applicable"


class PageType(str, enum.Enum):
    HOMEPAGE = "homepage"
    PRICING = "pricing"
    PRODUCT = "product"
    CHECKOUT = "checkout"
    CONTACT = "contact"
    ABOUT = "about"
    BLOG = "blog"
    LANDING = "landing"
    OTHER = "other"


class Audit(Base):
    __tablename__ = "audits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    mode: Mapped[str] = mapped_column(String(32), nullable=False, default=AuditMode.SINGLE_PAGE.value)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=AuditStatus.PENDING.value)
    current_phase: Mapped[Optional[str]] = mapped_column(String(32))

    selected_check_ids: Mapped[Optional[list]] = mapped_column(JSONType)
    ai_config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    overall_score: Mapped[Optional[int]] = mapped_column(Integer)
    category_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    discovered_pages_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority_pages_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    pages: Mapped[list["Page"]] = relationship(
        back_populates="audit", cascade="all, delete-orphan", order_by="Page.created_at"
    )

    __table_args__ = (
        Index("idx_audits_status", "status"),
    )

    @property
    def is_single_page(self) -> bool:
        return self.mode == AuditMode.SINGLE_PAGE.value


class Page(Base):
    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    audit_id: Mapped[str] = mapped_column(ForeignKey("audits.id", ondelete="CASCADE"), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    page_type: Mapped[Optional[str]] = mapped_column(String(32))
    priority_score: Mapped[Optional[float]] = mapped_column(Float)
    is_priority: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    crawl_metadata: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    data_collection_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CollectionStatus.PENDING.value
    )
    testing_status: Mapped[str] = mapped_column(String(32), nullable=False, default=TestingStatus.PENDING.value)
    expected_check_count: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    audit: Mapped[Audit] = relationship(back_populates="pages")
    artifact: Mapped[Optional["PageArtifact"]] = relationship(
        back_populates="page", uselist=False, cascade="all, delete-orphan"
    )
    results: Mapped[list["CheckResult"]] = relationship(back_populates="page", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("audit_id", "url", name="uq_pages_audit_url"),
        Index("idx_pages_audit_priority", "audit_id", "is_priority"),
    )


class PageArtifact(Base):
    __tablename__ = "page_artifacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    page_id: Mapped[str] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    html_content: Mapped[Optional[str]] = mapped_column(Text)
    page_content: Mapped[Optional[str]] = mapped_column(Text)
    headings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    fonts: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    colors: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    scripts: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    stylesheets: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    links: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    meta_title: Mapped[Optional[str]] = mapped_column(String(1024))
    meta_description: Mapped[Optional[str]] = mapped_column(Text)
    meta_tags: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    structured_data: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    performance_metrics: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    asset_distribution: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    total_page_weight_bytes: Mapped[Optional[int]] = mapped_column(Integer)
    screenshots: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    page_metadata: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    page: Mapped[Page] = relationship(back_populates="artifact")


class CheckDefinition(Base):
    __tablename__ = "check_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="general")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ordering: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    instructions: Mapped[Optional[str]] = mapped_column(Text)
    data_sources: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_check_definitions_active", "active", "ordering"),
    )


class CheckResult(Base):
    __tablename__ = "check_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    page_id: Mapped[str] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False)
    audit_id: Mapped[str] = mapped_column(ForeignKey("audits.id", ondelete="CASCADE"), nullable=False)
    check_key: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="general")
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    score: Mapped[Optional[int]] = mapped_column(Integer)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[Optional[dict]] = mapped_column(JSONType)

    ai_prompt: Mapped[Optional[str]] = mapped_column(Text)
    ai_response: Mapped[Optional[str]] = mapped_column(Text)
    data_context: Mapped[Optional[dict]] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    page: Mapped[Page] = relationship(back_populates="results")

    __table_args__ = (
        UniqueConstraint("page_id", "check_key", name="uq_check_results_page_check"),
        Index("idx_check_results_audit_status", "audit_id", "status"),
    )
