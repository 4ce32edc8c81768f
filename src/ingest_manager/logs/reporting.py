"""
Session summaries and session export to a worksheet
"""
from dataclasses import dataclass, field
from datetime import datetime
import logging
import re
from typing import Dict, List, Optional, Sequence

from ingest_manager.exceptions import IngestError
from ingest_manager.logs.models import Session, SessionEvent
from ingest_manager.ports import Repository, Workbook

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = 'Session started'


@dataclass
class SessionSummary:
    session_id: str
    timestamp: datetime
    description: str
    status: str
    duration_ms: int
    counts: Dict[str, int]
    events: List[SessionEvent] = field(default_factory=list)


def count_event_types(events: Sequence[SessionEvent]) -> Dict[str, int]:
    """Bucket events into SUCCESS / ERROR / WARNING / INFO"""
    counts = {'SUCCESS': 0, 'ERROR': 0, 'WARNING': 0, 'INFO': 0}
    for event in events:
        if event.type == 'COMPLETE':
            counts['SUCCESS'] += 1
        elif event.type in counts:
            counts[event.type] += 1
        else:
            counts['INFO'] += 1
    return counts


def derive_status(events: Sequence[SessionEvent]) -> str:
    counts = count_event_types(events)
    if counts['ERROR'] > 0:
        status = 'ERROR'
    elif counts['WARNING'] > 0:
        status = 'COMPLETE WITH WARNINGS'
    else:
        status = 'COMPLETE'
    if events and events[-1].type == 'PROCESSING':
        status = 'IN PROGRESS'
    return status


def session_duration_ms(events: Sequence[SessionEvent]) -> int:
    if len(events) < 2:
        return 0
    return int((events[-1].timestamp - events[0].timestamp).total_seconds() * 1000)


def session_description(session: Session, default: str = DEFAULT_DESCRIPTION) -> str:
    start = next((e for e in session.events if e.type == 'START'), None)
    return start.message if start is not None else default


def summarize_session(session: Session) -> SessionSummary:
    return SessionSummary(
        session_id=session.session_id,
        timestamp=session.timestamp,
        description=session_description(session),
        status=derive_status(session.events),
        duration_ms=session_duration_ms(session.events),
        counts=count_event_types(session.events),
        events=list(session.events),
    )


def get_session_summaries(repository: Repository) -> List[SessionSummary]:
    try:
        return [summarize_session(s) for s in repository.load_sessions()]
    except IngestError as e:
        logger.error(f"Error getting log session summaries: {e}")
        return []


def format_duration(duration_ms: int) -> str:
    """Format milliseconds as ``12s``, ``3m 4s`` or ``1h 2m 3s``"""
    seconds = int(duration_ms // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {seconds}s"


def _unique_tab_name(workbook: Workbook, base: str) -> str:
    name = base
    index = 0
    while workbook.tab(name) is not None:
        index += 1
        name = f"{base} ({index})"
    return name


def build_session_report(session: Session) -> List[List[object]]:
    """Rows of the exported report: overview, event counts, then every event"""
    description = session_description(session, 'Log Session')
    rows: List[List[object]] = [
        ['Session Overview', description],
        ['Session ID', session.session_id],
        ['Start Time', session.timestamp.strftime('%Y-%m-%d %H:%M:%S')],
    ]
    if len(session.events) > 1:
        rows.append(['Duration', format_duration(session_duration_ms(session.events))])
    rows.append([])

    counts: Dict[str, int] = {}
    for event in session.events:
        counts[event.type] = counts.get(event.type, 0) + 1
    rows.append(['Event Summary', ''])
    if counts:
        rows.append(['Event Type', 'Count'])
        rows.extend([event_type, count] for event_type, count in counts.items())
    rows.append([])

    rows.append(['Detailed Events', '', ''])
    rows.append(['Timestamp', 'Event Type', 'Message'])
    for event in sorted(session.events, key=lambda e: e.timestamp):
        rows.append([event.timestamp.strftime('%Y-%m-%d %H:%M:%S'), event.type, event.message])
    return rows


def export_session_to_sheet(repository: Repository, workbook: Workbook,
                            session_id: Optional[str]) -> Dict[str, object]:
    """Write a session report into a new tab of ``workbook``.

    Failures are reported in the returned dict, never raised.
    """
    if not session_id:
        return {'success': False, 'message': 'No session ID provided'}
    try:
        session = next((s for s in repository.load_sessions() if s.session_id == session_id), None)
        if session is None:
            return {'success': False, 'message': 'Session not found'}

        description = session_description(session, 'Log Session')
        safe_description = re.sub(r'[^a-zA-Z0-9 ]', '', description[:20])
        base_name = f"Log {session.timestamp.strftime('%m-%d-%Y')} {safe_description}".strip()
        sheet_name = _unique_tab_name(workbook, base_name)

        tab = workbook.create_tab(sheet_name)
        tab.write_rows(1, build_session_report(session))
        tab.auto_resize_columns(3)
        return {
            'success': True,
            'message': 'Log session exported to sheet',
            'sheetId': tab.tab_id,
            'sheetName': sheet_name,
        }
    except Exception as e:
        logger.error(f"Error exporting log session {session_id}: {e}")
        return {'success': False, 'message': f"Error exporting log session: {e}"}
