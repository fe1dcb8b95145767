from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.audit_service.db.models import AuditMode


def normalize_url(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("url must not be empty")
    if "://" not in value:
        value = f"http://{value}"
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"invalid url: {value}")
    return urlunparse(parsed._replace(path=parsed.path or "/"))


class AIConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")


class AuditCreate(BaseModel):
    url: str
    mode: AuditMode = AuditMode.SINGLE_PAGE
    selected_check_ids: Optional[List[int]] = None
    ai_config: AIConfig = Field(default_factory=AIConfig)

    @field_validator("url")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_url(value)


class AuditCreatedResponse(BaseModel):
    audit_id: str
    status: str


class PageProgress(BaseModel):
    page_id: str
    url: str
    is_priority: bool
    page_type: Optional[str] = None
    data_collection_status: str
    testing_status: str
    expected_checks: Optional[int] = None
    completed_checks: int = 0


class AuditStatusResponse(BaseModel):
    audit_id: str
    url: str
    mode: str
    status: str
    current_phase: Optional[str] = None
    overall_score: Optional[int] = None
    category_scores: Dict[str, Optional[int]] = Field(default_factory=dict)
    category_counts: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    ai_summary: Optional[str] = None
    error_message: Optional[str] = None
    pages: List[PageProgress] = Field(default_factory=list)
    created_at: datetime
    completed_at: Optional[datetime] = None


class CheckResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    page_id: str
    check_key: str
    category: str
    status: str
    score: Optional[int] = None
    summary: str
    details: Optional[Dict[str, Any]] = None


class CheckDefinitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    name: str
    category: str
    description: Optional[str] = None
    active: bool
    data_sources: List[str] = Field(default_factory=list)
