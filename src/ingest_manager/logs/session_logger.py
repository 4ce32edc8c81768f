"""
Session logger: leveled, session-correlated audit records persisted through the repository
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from ingest_manager.config import EngineConfig
from ingest_manager.logs.classification import classify_error
from ingest_manager.logs.models import LogEntry, Session, SessionEvent
from ingest_manager.ports import Repository

logger = logging.getLogger(__name__)

SESSION_RULE_ID = 'SESSION'

LEVELS = {'DEBUG': 10, 'INFO': 20, 'WARNING': 30, 'ERROR': 40}

# Recorded whatever the configured minimum level is
ALWAYS_RECORDED = frozenset({'START', 'SUCCESS', 'ERROR', 'SKIPPED', 'CANCELLED', 'PARTIAL'})

_SESSION_EVENT_TYPES = {
    'START': 'START',
    'SUCCESS': 'COMPLETE',
    'ERROR': 'ERROR',
    'PARTIAL': 'WARNING',
    'CANCELLED': 'WARNING',
}
_RULE_EVENT_TYPES = {
    'START': 'PROCESSING',
    'SUCCESS': 'SUCCESS',
    'ERROR': 'ERROR',
    'RETRY': 'WARNING',
    'CANCELLED': 'WARNING',
    'SKIPPED': 'INFO',
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class SessionAggregate:
    """Per-session totals folded from the flat entry stream"""
    session_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str = 'IN PROGRESS'
    description: Optional[str] = None
    rule_ids: Set[str] = field(default_factory=set)
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    @property
    def rule_count(self) -> int:
        return len(self.rule_ids)


class SessionLogger:
    """Appends events and extended log entries to the session they belong to"""

    def __init__(self, repository: Repository, min_level: str = 'INFO', max_sessions: int = 100,
                 max_age_days: int = 30, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.min_level = min_level.upper()
        self.max_sessions = max_sessions
        self.max_age_days = max_age_days
        self.clock = clock

    @classmethod
    def from_config(cls, repository: Repository, config: EngineConfig, **kwargs) -> 'SessionLogger':
        return cls(
            repository,
            min_level=config.log_level,
            max_sessions=config.log_max_sessions,
            max_age_days=config.log_max_age_days,
            **kwargs,
        )

    def new_session_id(self) -> str:
        return f"{self.clock():%Y%m%d%H%M%S%f}-{uuid.uuid4().hex[:6]}"

    def start_session(self, description: str) -> str:
        session_id = self.new_session_id()
        self.log_entry(session_id, SESSION_RULE_ID, 'INFO', 'START', description)
        return session_id

    def should_record(self, level: str, status: str) -> bool:
        if status in ALWAYS_RECORDED:
            return True
        return LEVELS.get(level, LEVELS['INFO']) >= LEVELS.get(self.min_level, LEVELS['INFO'])

    def log_event(self, session_id: str, event_type: str, message: str) -> bool:
        event = SessionEvent(type=event_type, message=message, timestamp=self.clock())
        return self._append(session_id, event=event)

    def log_entry(self, session_id: str, rule_id: str, level: str, status: str, message: str,
                  stats: Optional[Mapping[str, Any]] = None, error: Optional[BaseException] = None,
                  stack: Optional[str] = None) -> Optional[LogEntry]:
        """Record an extended entry plus the matching session event.

        ``stats`` holds any of the LogEntry numeric/context fields by their
        attribute name. When ``error`` is given it is classified into the
        error taxonomy. Returns None when the level filter drops the entry.
        """
        level = level.upper()
        if not self.should_record(level, status):
            return None

        fields = dict(stats or {})
        metadata = dict(fields.pop('metadata', None) or {})
        if error is not None:
            classification = classify_error(error, stack)
            fields.setdefault('error_code', classification.code)
            fields.setdefault('error_type', classification.type)
            metadata.setdefault('exceptionType', type(error).__name__)
            metadata['retryable'] = classification.retryable

        entry = LogEntry(
            session_id=session_id,
            timestamp=self.clock(),
            level=level,
            rule_id=rule_id,
            status=status,
            message=message,
            metadata=metadata,
            **fields,
        )
        if rule_id == SESSION_RULE_ID:
            event_type = _SESSION_EVENT_TYPES.get(status, level)
            event_message = message
        else:
            event_type = _RULE_EVENT_TYPES.get(status, level)
            event_message = f"[{rule_id}] {message}"
        event = SessionEvent(type=event_type, message=event_message, timestamp=entry.timestamp)
        self._append(session_id, event=event, entry=entry)
        return entry

    def _append(self, session_id: str, event: Optional[SessionEvent] = None,
                entry: Optional[LogEntry] = None) -> bool:
        try:
            timestamp = event.timestamp if event is not None else entry.timestamp
            self.repository.append_session_records(session_id, timestamp, event=event, entry=entry)
            return True
        except Exception as e:
            # The log store is unreachable, keep the record on the console
            logger.error(f"Could not persist log for session {session_id}: {e}")
            if event is not None:
                logger.info(f"[{session_id}] {event.type}: {event.message}")
            return False

    def get_session(self, session_id: str) -> Optional[Session]:
        return next((s for s in self.repository.load_sessions() if s.session_id == session_id), None)

    def apply_retention(self) -> int:
        """Drop sessions older than max_age_days, then the oldest beyond max_sessions"""
        try:
            sessions = self.repository.load_sessions()
            cutoff = as_utc(self.clock()) - timedelta(days=self.max_age_days)
            kept = sorted(
                (s for s in sessions if as_utc(s.timestamp) >= cutoff),
                key=lambda s: as_utc(s.timestamp),
            )
            if len(kept) > self.max_sessions:
                kept = kept[-self.max_sessions:]
            kept_ids = {s.session_id for s in kept}
            removed = self.repository.delete_sessions(
                s.session_id for s in sessions if s.session_id not in kept_ids
            )
            if removed:
                logger.info(f"Log retention removed {removed} session(s)")
            return removed
        except Exception as e:
            logger.error(f"Log retention failed: {e}")
            return 0

    def get_recent_sessions(self, limit: int = 10) -> List[SessionAggregate]:
        """Fold the flat entry stream into per-session aggregates, newest first"""
        entries = sorted(
            (entry for session in self.repository.load_sessions() for entry in session.entries),
            key=lambda e: as_utc(e.timestamp),
        )
        aggregates: Dict[str, SessionAggregate] = {}
        for entry in entries:
            aggregate = aggregates.get(entry.session_id)
            if aggregate is None:
                aggregate = SessionAggregate(session_id=entry.session_id, start_time=entry.timestamp)
                aggregates[entry.session_id] = aggregate

            if entry.rule_id == SESSION_RULE_ID:
                if entry.status == 'START':
                    aggregate.start_time = entry.timestamp
                    aggregate.description = entry.message
                else:
                    aggregate.end_time = entry.timestamp
                    aggregate.status = entry.status
                continue

            aggregate.rule_ids.add(entry.rule_id)
            if entry.status == 'SUCCESS':
                aggregate.success_count += 1
            elif entry.status == 'ERROR':
                aggregate.error_count += 1
            elif entry.status == 'SKIPPED':
                aggregate.skipped_count += 1

        ordered = sorted(aggregates.values(), key=lambda a: as_utc(a.start_time), reverse=True)
        return ordered[:limit]
