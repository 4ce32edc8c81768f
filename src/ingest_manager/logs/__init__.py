"""
Session logging package for the Data Ingest Manager
"""
from .classification import ErrorClassification, classify_error
from .models import LogEntry, Session, SessionEvent
from .reporting import (
    derive_status,
    export_session_to_sheet,
    format_duration,
    get_session_summaries,
    summarize_session,
)
from .session_logger import SESSION_RULE_ID, SessionAggregate, SessionLogger

__all__ = [
    'ErrorClassification',
    'LogEntry',
    'SESSION_RULE_ID',
    'Session',
    'SessionAggregate',
    'SessionEvent',
    'SessionLogger',
    'classify_error',
    'derive_status',
    'export_session_to_sheet',
    'format_duration',
    'get_session_summaries',
    'summarize_session',
]
