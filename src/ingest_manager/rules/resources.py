"""
Resolve spreadsheet identifiers from raw ids or shareable URLs
"""
import re

from ingest_manager.exceptions import RuleValidationError

_URL_PATTERNS = (
    re.compile(r'/spreadsheets/d/([a-zA-Z0-9_-]+)'),
    re.compile(r'/file/d/([a-zA-Z0-9_-]+)'),
    re.compile(r'[?&]id=([a-zA-Z0-9_-]+)'),
)
_RAW_ID = re.compile(r'^[a-zA-Z0-9_-]+$')


def resolve_resource_id(id_or_url: str) -> str:
    """Return the spreadsheet id contained in ``id_or_url``.

    Accepts a bare id (``1AbC...``) or any Google Sheets / Drive URL such as
    ``https://docs.google.com/spreadsheets/d/<id>/edit#gid=0``.
    """
    value = (id_or_url or '').strip()
    if not value:
        raise RuleValidationError("Spreadsheet ID or URL is required")

    if '/' in value or '?' in value:
        for pattern in _URL_PATTERNS:
            match = pattern.search(value)
            if match:
                return match.group(1)
        raise RuleValidationError(f"Could not extract a spreadsheet ID from '{value}'")

    if not _RAW_ID.match(value):
        raise RuleValidationError(f"Invalid spreadsheet ID '{value}'")
    return value
