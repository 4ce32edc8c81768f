"""
Collaborator interfaces consumed by the rule execution engine.

The engine and the method strategies only talk to these protocols, so the
Google adapters in ``gmail`` and ``sheets`` can be swapped for in-memory
fakes in tests or other backends in production.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence

Row = List[Any]


@dataclass
class Attachment:
    """A single email attachment with its decoded payload"""
    name: str
    size_bytes: int
    content: bytes


class MailMessage(Protocol):
    id: str
    subject: str

    def attachments(self) -> List[Attachment]:
        ...


class MailStore(Protocol):
    def search(self, query: str) -> Iterable[MailMessage]:
        """Matching messages, newest first; may be fetched lazily"""
        ...


class Tab(Protocol):
    name: str
    tab_id: Any

    def clear(self) -> None:
        ...

    def delete(self) -> None:
        ...

    def rename(self, name: str) -> None:
        ...

    def write_rows(self, start_row: int, rows: Sequence[Row]) -> None:
        ...

    def read_all_rows(self) -> List[Row]:
        ...

    def last_row(self) -> int:
        ...

    def copy_into(self, workbook: 'Workbook') -> 'Tab':
        ...

    def auto_resize_columns(self, column_count: int) -> None:
        ...


class Workbook(Protocol):
    id: str

    def tab(self, name: str) -> Optional[Tab]:
        ...

    def create_tab(self, name: str) -> Tab:
        ...


class SheetStore(Protocol):
    def open(self, id_or_url: str) -> Workbook:
        ...


class NotificationSender(Protocol):
    def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        ...


class Repository(Protocol):
    """Persistence contract for the rule table and the session log"""

    # Stored rules the last load_rules call could not parse
    invalid_rules: list

    def load_rules(self) -> list:
        ...

    def save_rules(self, rules: list) -> None:
        ...

    def update_rule_status(self, rule_id: str, status: Any) -> bool:
        ...

    def load_sessions(self) -> list:
        ...

    def save_sessions(self, sessions: list) -> None:
        ...

    def append_session_records(self, session_id: str, timestamp: Any,
                               event: Any = None, entry: Any = None) -> None:
        ...

    def delete_sessions(self, session_ids: Iterable[str]) -> int:
        ...
