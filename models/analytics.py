from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow
from .user import new_id


class AnalyticsSession(SQLModel, table=True):
    __tablename__ = "analytics_session"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_key: str = Field(unique=True, index=True)
    user_id: Optional[str] = Field(default=None, index=True)
    user_agent: Optional[str] = Field(default=None)
    ip_address: Optional[str] = Field(default=None)
    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    ended_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class AnalyticsEvent(SQLModel, table=True):
    __tablename__ = "analytics_event"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: Optional[str] = Field(default=None, foreign_key="analytics_session.id", ondelete="SET NULL")
    user_id: Optional[str] = Field(default=None, index=True)
    type: str = Field(index=True)
    target_type: Optional[str] = Field(default=None)
    target_id: Optional[str] = Field(default=None)
    value: Optional[float] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None)
    event_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=Column(JSON)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class RequestMetric(SQLModel, table=True):
    __tablename__ = "request_metric"

    id: Optional[int] = Field(default=None, primary_key=True)
    route: Optional[str] = Field(default=None)
    method: Optional[str] = Field(default=None)
    status_code: int
    duration_ms: int
    request_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)
    occurred_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


# Ingestion payloads accept camelCase keys from web clients as well as field names

class AnalyticsEventInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    duration_ms: Optional[int] = None
    value: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def type_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("event type must not be blank")
        return value.strip()


class IngestAnalyticsEvents(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_key: Optional[str] = None
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    events: List[AnalyticsEventInput] = []


class IngestResult(BaseModel):
    count: int
    session_id: Optional[str] = None
