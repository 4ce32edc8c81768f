"""
Session log records
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from ingest_manager.base import CamelModel


class SessionEvent(CamelModel):
    """One append-only line of a session's audit trail"""
    type: str
    message: str
    timestamp: datetime


class LogEntry(CamelModel):
    """Extended record for a significant engine action"""
    session_id: str
    timestamp: datetime
    level: str
    rule_id: str
    status: str
    message: str
    execution_time_ms: Optional[int] = None
    rows_processed: Optional[int] = None
    columns_processed: Optional[int] = None
    file_size_bytes: Optional[int] = None
    source_type: Optional[str] = None
    source_identifier: Optional[str] = None
    error_code: Optional[str] = None
    error_type: Optional[str] = None
    retry_attempt: Optional[int] = None
    destination_id: Optional[str] = None
    destination_tab: Optional[str] = None
    processing_mode: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Session(CamelModel):
    session_id: str
    timestamp: datetime
    events: List[SessionEvent] = Field(default_factory=list)
    entries: List[LogEntry] = Field(default_factory=list)
