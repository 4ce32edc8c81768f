"""
Session summary notifications
"""
import logging
from string import Template
from typing import Iterable, List, Mapping, Sequence

from ingest_manager.logs.reporting import format_duration
from ingest_manager.ports import NotificationSender

logger = logging.getLogger(__name__)

SUBJECT_TEMPLATE = 'Data ingest $status: $success_count succeeded, $error_count failed'

BODY_TEMPLATE = """Data ingest session $session_id finished with status $status.

Succeeded: $success_count
Failed: $error_count
Skipped: $skipped_count
Cancelled: $cancelled_count
Rows written: $total_rows
Elapsed: $elapsed
"""


def render_template(template: str, values: Mapping[str, object]) -> str:
    return Template(template).safe_substitute(values)


def collect_recipients(rules: Iterable) -> List[str]:
    """Union of the recipients of all active rules, first spelling wins"""
    seen = set()
    recipients = []
    for rule in rules:
        if not rule.active:
            continue
        for address in rule.recipients():
            key = address.lower()
            if key not in seen:
                seen.add(key)
                recipients.append(address)
    return recipients


class SessionNotifier:
    """Sends the end-of-session summary; delivery failures are only logged"""

    def __init__(self, sender: NotificationSender, notify_on: str = 'always',
                 subject_template: str = SUBJECT_TEMPLATE, body_template: str = BODY_TEMPLATE):
        self.sender = sender
        self.notify_on = notify_on
        self.subject_template = subject_template
        self.body_template = body_template

    def should_notify(self, result) -> bool:
        if self.notify_on == 'never':
            return False
        if self.notify_on == 'errors':
            return result.error_count > 0
        return True

    def notify(self, recipients: Sequence[str], result) -> bool:
        if not recipients:
            logger.debug("No notification recipients configured")
            return False
        if not self.should_notify(result):
            return False

        values = {
            'session_id': result.session_id,
            'status': result.status,
            'success_count': result.success_count,
            'error_count': result.error_count,
            'skipped_count': result.skipped_count,
            'cancelled_count': result.cancelled_count,
            'total_rows': result.total_rows,
            'elapsed': format_duration(result.elapsed_ms),
        }
        try:
            self.sender.send(
                list(recipients),
                render_template(self.subject_template, values),
                render_template(self.body_template, values),
            )
        except Exception as e:
            logger.error(f"Failed to send session notification: {e}")
            return False
        logger.info(f"Session notification sent to {len(recipients)} recipient(s)")
        return True
