from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String, Text
from sqlmodel import Column, Field, SQLModel


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncJobLog(SQLModel, table=True):
    """One row per vendor sync job run."""

    __tablename__ = "sync_job_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_type: str = Field(index=True)
    job_id: str = Field(index=True)
    tournament_code: Optional[str] = Field(default=None, index=True)
    event_code: Optional[str] = None
    status: SyncJobStatus = Field(default=SyncJobStatus.PENDING, sa_column=Column(String, nullable=False))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_stack: Optional[str] = Field(default=None, sa_column=Column(Text))
    job_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    result: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    processing_time_ms: Optional[int] = None
    items_processed: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
