"""
Method strategies: locate the source rows of a rule and write them to its destination
"""
import csv
from dataclasses import dataclass
import io
import logging
import re
import time
from typing import Dict, List, Optional, Sequence, Tuple

from ingest_manager.config import EngineConfig
from ingest_manager.exceptions import (
    AmbiguousSourceError,
    DataLimitExceededError,
    EmptySourceError,
    IngestError,
    ParseError,
    SourceNotFoundError,
)
from ingest_manager.ports import Attachment, MailMessage, MailStore, Row, SheetStore, Tab, Workbook
from ingest_manager.rules.resources import resolve_resource_id
from ingest_manager.rules.schema import HandlingMode, Method, Rule
from ingest_manager.rules.sheet_modes import SheetModeResolver, resolve_mode

logger = logging.getLogger(__name__)


@dataclass
class StrategyResult:
    """What a strategy wrote, captured for the session log"""
    rows_written: int
    columns_written: int
    duration_ms: int
    file_size_bytes: Optional[int] = None
    source_identifier: Optional[str] = None
    destination_id: Optional[str] = None


def decode_csv(content: bytes, delimiter: str = ',') -> List[Row]:
    """Decode CSV attachment bytes into rows of fields, dropping blank lines"""
    try:
        text = content.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise ParseError(f"Attachment is not valid UTF-8 text: {e}", e)
    try:
        return [row for row in csv.reader(io.StringIO(text, newline=''), delimiter=delimiter) if row]
    except csv.Error as e:
        raise ParseError(f"Could not parse CSV attachment: {e}", e)


def column_count(rows: Sequence[Row]) -> int:
    return max((len(row) for row in rows), default=0)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class MethodStrategy:
    """Shared destination handling for all methods"""

    source_type = None

    def __init__(self, sheet_store: SheetStore, config: EngineConfig,
                 resolver: Optional[SheetModeResolver] = None):
        self.sheet_store = sheet_store
        self.config = config
        self.resolver = resolver or SheetModeResolver()

    def execute(self, rule: Rule, session_id: str) -> StrategyResult:
        raise NotImplementedError

    def open_destination(self, rule: Rule) -> Workbook:
        return self.sheet_store.open(resolve_resource_id(rule.destination.sheet_id_or_url))

    def check_limits(self, rows: Sequence[Row]) -> None:
        if not rows:
            raise EmptySourceError("Source contains no rows")
        if self.config.max_rows is not None and len(rows) > self.config.max_rows:
            raise DataLimitExceededError(
                f"Source has {len(rows)} rows, limit is {self.config.max_rows}"
            )
        columns = column_count(rows)
        if self.config.max_columns is not None and columns > self.config.max_columns:
            raise DataLimitExceededError(
                f"Source has {columns} columns, limit is {self.config.max_columns}"
            )

    def write(self, workbook: Workbook, tab_name: str, rows: Sequence[Row],
              mode: HandlingMode) -> Tuple[int, int, Tab]:
        """Prepare the destination tab for ``mode`` and write ``rows`` into it.

        Appending to a tab that already holds data skips the incoming header
        row and starts after the last existing row. Appending to an empty tab
        writes everything, header included.
        """
        prepared = self.resolver.prepare(workbook, tab_name, mode)
        if mode == HandlingMode.APPEND and prepared.existing_rows > 0:
            data = list(rows[1:])
            start_row = prepared.existing_rows + 1
        else:
            data = list(rows)
            start_row = 1

        if data:
            prepared.tab.write_rows(start_row, data)
        columns = column_count(rows)
        self.auto_resize(prepared.tab, columns)
        return len(data), columns, prepared.tab

    def auto_resize(self, tab: Tab, columns: int) -> None:
        if not self.config.auto_resize_columns or columns == 0:
            return
        try:
            tab.auto_resize_columns(columns)
        except IngestError as e:
            logger.warning(f"Could not resize columns of '{tab.name}': {e}")


class EmailStrategy(MethodStrategy):
    """Imports the single CSV attachment matching the rule's pattern"""

    source_type = 'email'

    def __init__(self, sheet_store: SheetStore, mail_store: MailStore, config: EngineConfig,
                 resolver: Optional[SheetModeResolver] = None):
        super().__init__(sheet_store, config, resolver)
        self.mail_store = mail_store

    def find_attachment(self, rule: Rule) -> Tuple[MailMessage, Attachment]:
        """Return the first message holding exactly one matching attachment.

        Messages without a match are skipped. A message with several matches
        is an error, there is no way to tell which one was meant.
        """
        pattern = re.compile(rule.source.attachment_pattern)
        searched = 0
        for message in self.mail_store.search(rule.source.search_query):
            searched += 1
            matches = [a for a in message.attachments() if pattern.search(a.name)]
            if not matches:
                continue
            if len(matches) > 1:
                names = ', '.join(a.name for a in matches)
                raise AmbiguousSourceError(
                    f"Message '{message.subject}' has {len(matches)} attachments matching "
                    f"'{pattern.pattern}': {names}"
                )
            logger.debug(f"Matched '{matches[0].name}' in message {searched} of the search")
            return message, matches[0]

        raise SourceNotFoundError(
            f"No attachment matching '{pattern.pattern}' found in {searched} "
            f"message(s) for query '{rule.source.search_query}'"
        )

    def execute(self, rule: Rule, session_id: str) -> StrategyResult:
        started = time.monotonic()
        message, attachment = self.find_attachment(rule)
        logger.info(f"[{session_id}] Rule {rule.id}: using attachment '{attachment.name}' from message {message.id}")

        limit = self.config.max_attachment_bytes
        if limit is not None and attachment.size_bytes > limit:
            raise DataLimitExceededError(
                f"Attachment '{attachment.name}' is {attachment.size_bytes} bytes, limit is {limit}"
            )

        rows = decode_csv(attachment.content, self.config.csv_delimiter)
        self.check_limits(rows)

        mode = resolve_mode(rule.handling_mode).mode
        if mode == HandlingMode.COPY_FORMAT:
            # Attachments carry no formatting to copy
            mode = HandlingMode.CLEAR_AND_REUSE

        workbook = self.open_destination(rule)
        written, columns, _ = self.write(workbook, rule.destination.tab_name, rows, mode)
        return StrategyResult(
            rows_written=written,
            columns_written=columns,
            duration_ms=_elapsed_ms(started),
            file_size_bytes=attachment.size_bytes,
            source_identifier=f"{message.id}/{attachment.name}",
            destination_id=workbook.id,
        )


class SheetImportStrategy(MethodStrategy):
    """Copies a tab of another spreadsheet into the destination"""

    source_type = 'gSheet'

    def source_reference(self, rule: Rule) -> Tuple[str, str]:
        return resolve_resource_id(rule.source.sheet_id_or_url), rule.source.tab_name

    def execute(self, rule: Rule, session_id: str) -> StrategyResult:
        started = time.monotonic()
        source_id, source_tab_name = self.source_reference(rule)
        source_tab = self.sheet_store.open(source_id).tab(source_tab_name)
        if source_tab is None:
            raise SourceNotFoundError(f"Tab '{source_tab_name}' not found in spreadsheet {source_id}")

        mode = resolve_mode(rule.handling_mode).mode
        workbook = self.open_destination(rule)
        rows = source_tab.read_all_rows()
        self.check_limits(rows)

        if mode == HandlingMode.COPY_FORMAT:
            written, columns = self.copy_with_format(source_tab, workbook, rule.destination.tab_name, rows)
        else:
            written, columns, _ = self.write(workbook, rule.destination.tab_name, rows, mode)
        logger.info(f"[{session_id}] Rule {rule.id}: wrote {written} rows from {source_id}/{source_tab_name}")

        return StrategyResult(
            rows_written=written,
            columns_written=columns,
            duration_ms=_elapsed_ms(started),
            source_identifier=f"{source_id}/{source_tab_name}",
            destination_id=workbook.id,
        )

    def copy_with_format(self, source_tab: Tab, workbook: Workbook, tab_name: str,
                         rows: Sequence[Row]) -> Tuple[int, int]:
        """Duplicate ``source_tab`` into ``workbook`` and give it ``tab_name``,
        replacing any tab already holding that name."""
        copied = source_tab.copy_into(workbook)
        existing = workbook.tab(tab_name)
        if existing is not None and existing.tab_id != copied.tab_id:
            existing.delete()
        copied.rename(tab_name)
        columns = column_count(rows)
        self.auto_resize(copied, columns)
        return len(rows), columns


class PushStrategy(SheetImportStrategy):
    """Pushes a tab of the active spreadsheet to the destination"""

    source_type = 'push'

    def source_reference(self, rule: Rule) -> Tuple[str, str]:
        # validate_rule guarantees an active spreadsheet for push rules
        return resolve_resource_id(self.config.active_spreadsheet), rule.source.source_tab_name


def build_strategies(sheet_store: SheetStore, mail_store: MailStore, config: EngineConfig,
                     resolver: Optional[SheetModeResolver] = None) -> Dict[Method, MethodStrategy]:
    """Strategy table used by the engine to dispatch on a rule's method"""
    resolver = resolver or SheetModeResolver()
    return {
        Method.EMAIL: EmailStrategy(sheet_store, mail_store, config, resolver),
        Method.SHEET: SheetImportStrategy(sheet_store, config, resolver),
        Method.PUSH: PushStrategy(sheet_store, config, resolver),
    }
