"""
Repositories holding the rule table and the session log as JSON documents
"""
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ingest_manager.exceptions import RepositoryError
from ingest_manager.logs.models import LogEntry, Session, SessionEvent
from ingest_manager.rules.schema import Rule, RuleStatus

from .connection import create_db_engine, get_db_session, get_session_factory, init_db
from .models import RULES_KEY, SESSIONS_KEY, Document

logger = logging.getLogger(__name__)


@dataclass
class InvalidItem:
    """A stored item that no longer fits its model, kept as stored"""
    item_id: Optional[str]
    message: str
    active: bool = True


def describe_validation_error(error: ValidationError) -> str:
    return '; '.join(
        f"{'.'.join(str(part) for part in detail['loc']) or 'item'}: {detail['msg']}"
        for detail in error.errors()
    )


def _parse(items: list, model: Type[BaseModel], label: str, id_key: str,
           invalid: Optional[List[InvalidItem]] = None) -> list:
    """Validate stored dicts, skipping the ones that no longer fit the model.

    Skipped items stay in the stored document; only the returned list omits
    them.
    """
    valid = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            item_id = item.get(id_key) if isinstance(item, dict) else None
            message = describe_validation_error(e)
            logger.warning(f"Skipping invalid {label} {item_id or '(no id)'}: {message}")
            if invalid is not None:
                invalid.append(InvalidItem(
                    item_id if isinstance(item_id, str) else None,
                    message,
                    item.get('active') is not False if isinstance(item, dict) else True,
                ))
    return valid


def _dump(items: list) -> list:
    return [item.model_dump(mode='json', by_alias=True) for item in items]


class DocumentRepository:
    """Read-modify-write access to the ``rules`` and ``sessions`` documents.

    ``save_rules`` and ``save_sessions`` replace a whole document. The
    engine and the session logger use the narrower updates below, which
    only touch the item they change and keep everything else as stored,
    including items that fail validation.
    """

    # Rules skipped by the last load_rules call
    invalid_rules: List[InvalidItem] = []

    def load_rules(self) -> List[Rule]:
        invalid: List[InvalidItem] = []
        rules = _parse(self._read(RULES_KEY), Rule, 'rule', 'id', invalid)
        self.invalid_rules = invalid
        return rules

    def save_rules(self, rules: List[Rule]) -> None:
        self._write(RULES_KEY, _dump(rules))

    def update_rule_status(self, rule_id: str, status: RuleStatus) -> bool:
        """Replace the status of the stored rule ``rule_id``; False when absent"""
        items = self._read(RULES_KEY)
        found = False
        for item in items:
            if isinstance(item, dict) and item.get('id') == rule_id:
                item['status'] = status.model_dump(mode='json', by_alias=True)
                found = True
        if found:
            self._write(RULES_KEY, items)
        return found

    def load_sessions(self) -> List[Session]:
        return _parse(self._read(SESSIONS_KEY), Session, 'session', 'sessionId')

    def save_sessions(self, sessions: List[Session]) -> None:
        self._write(SESSIONS_KEY, _dump(sessions))

    def append_session_records(self, session_id: str, timestamp: datetime,
                               event: Optional[SessionEvent] = None,
                               entry: Optional[LogEntry] = None) -> None:
        """Append an event and/or entry to a session, creating the session if needed"""
        items = self._read(SESSIONS_KEY)
        session = next(
            (item for item in items if isinstance(item, dict) and item.get('sessionId') == session_id),
            None,
        )
        if session is None:
            session = Session(session_id=session_id, timestamp=timestamp).model_dump(mode='json', by_alias=True)
            items.append(session)
        if event is not None:
            session.setdefault('events', []).append(event.model_dump(mode='json', by_alias=True))
        if entry is not None:
            session.setdefault('entries', []).append(entry.model_dump(mode='json', by_alias=True))
        self._write(SESSIONS_KEY, items)

    def delete_sessions(self, session_ids: Iterable[str]) -> int:
        """Remove the given sessions and return how many were removed"""
        doomed = set(session_ids)
        if not doomed:
            return 0
        items = self._read(SESSIONS_KEY)
        kept = [
            item for item in items
            if not (isinstance(item, dict) and item.get('sessionId') in doomed)
        ]
        removed = len(items) - len(kept)
        if removed:
            self._write(SESSIONS_KEY, kept)
        return removed

    def _read(self, key: str) -> list:
        raise NotImplementedError

    def _write(self, key: str, data: list) -> None:
        raise NotImplementedError


class SqlAlchemyRepository(DocumentRepository):
    """Documents stored in a single SQL table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> 'SqlAlchemyRepository':
        engine = create_db_engine(database_url)
        init_db(engine)
        return cls(get_session_factory(engine))

    def _read(self, key: str) -> list:
        try:
            with get_db_session(self.session_factory) as db:
                document = db.query(Document).filter(Document.key == key).first()
                return json.loads(document.payload) if document else []
        except (SQLAlchemyError, json.JSONDecodeError) as e:
            raise RepositoryError(f"Could not read {key}: {e}", e)

    def _write(self, key: str, data: list) -> None:
        try:
            with get_db_session(self.session_factory) as db:
                document = db.query(Document).filter(Document.key == key).first()
                if document is None:
                    document = Document(key=key)
                    db.add(document)
                document.payload = json.dumps(data)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Could not write {key}: {e}", e)


class JsonFileRepository(DocumentRepository):
    """Documents stored as ``rules.json`` and ``sessions.json`` in a directory"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> list:
        path = self._path(key)
        if not path.exists():
            return []
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise RepositoryError(f"Error loading {path}: {e}", e)

    def _write(self, key: str, data: list) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix('.json.tmp')
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except IOError as e:
            raise RepositoryError(f"Error saving {path}: {e}", e)
