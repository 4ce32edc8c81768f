"""
JSON schema for ingest rules
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ingest_manager.base import CamelModel


class Method(str, Enum):
    """Source acquisition strategy"""
    EMAIL = 'email'
    SHEET = 'gSheet'
    PUSH = 'push'


class HandlingMode(str, Enum):
    """How an existing destination tab is prepared before writing"""
    CLEAR_AND_REUSE = 'clearAndReuse'
    APPEND = 'append'
    RECREATE = 'recreate'
    COPY_FORMAT = 'copyFormat'


class RuleResult(str, Enum):
    NEW = 'NEW'
    SUCCESS = 'SUCCESS'
    ERROR = 'ERROR'
    SKIPPED = 'SKIPPED'
    CANCELLED = 'CANCELLED'


class RuleSource(CamelModel):
    """Method specific source fields; which ones are required depends on the method"""
    search_query: Optional[str] = None  # email
    attachment_pattern: Optional[str] = None  # email
    sheet_id_or_url: Optional[str] = None  # gSheet
    tab_name: Optional[str] = None  # gSheet
    source_tab_name: Optional[str] = None  # push


class RuleDestination(CamelModel):
    sheet_id_or_url: Optional[str] = None
    tab_name: Optional[str] = None


class RuleStatus(CamelModel):
    last_run_timestamp: Optional[datetime] = None
    result: RuleResult = RuleResult.NEW
    message: str = ''


class Rule(CamelModel):
    """Schema for a single rule.

    ``method`` and ``handling_mode`` are stored as plain strings so that a rule
    with a typo still loads; the engine rejects unknown methods when it
    validates the rule and falls back to clearAndReuse for unknown modes.
    """
    id: str
    name: Optional[str] = None
    active: bool = True
    method: Optional[str] = None
    source: RuleSource = Field(default_factory=RuleSource)
    destination: RuleDestination = Field(default_factory=RuleDestination)
    handling_mode: Optional[str] = None
    email_recipients: Optional[str] = None
    status: RuleStatus = Field(default_factory=RuleStatus)

    def is_populated(self) -> bool:
        """A rule row counts as populated once it has a method or a destination"""
        return bool(
            (self.method or '').strip()
            or (self.destination.sheet_id_or_url or '').strip()
            or (self.destination.tab_name or '').strip()
        )

    def recipients(self) -> List[str]:
        if not self.email_recipients:
            return []
        return [r.strip() for r in self.email_recipients.split(',') if r.strip()]


class RulesConfig(BaseModel):
    """Schema for a rules file"""
    rules: List[Rule]
