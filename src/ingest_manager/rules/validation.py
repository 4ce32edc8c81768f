"""
Required field checks run before any I/O for a rule
"""
import re

from ingest_manager.config import EngineConfig
from ingest_manager.exceptions import RuleValidationError
from ingest_manager.rules.resources import resolve_resource_id
from ingest_manager.rules.schema import Method, Rule


def parse_method(raw) -> Method:
    value = (raw or '').strip()
    if not value:
        raise RuleValidationError("Method is required")
    for method in Method:
        if method.value == value:
            return method
    raise RuleValidationError(
        f"Unknown method '{value}'; expected one of {', '.join(m.value for m in Method)}"
    )


def _require(value, label):
    if not (value or '').strip():
        raise RuleValidationError(f"{label} is required")


def validate_rule(rule: Rule, config: EngineConfig) -> Method:
    """Validate ``rule`` for its method and return the parsed method.

    Push rules read from the configured active spreadsheet, so one must be set.
    """
    method = parse_method(rule.method)

    _require(rule.destination.sheet_id_or_url, "Destination sheet ID or URL")
    _require(rule.destination.tab_name, "Destination tab name")
    resolve_resource_id(rule.destination.sheet_id_or_url)

    source = rule.source
    if method == Method.EMAIL:
        _require(source.search_query, "Email search query")
        _require(source.attachment_pattern, "Attachment pattern")
        try:
            re.compile(source.attachment_pattern)
        except re.error as e:
            raise RuleValidationError(
                f"Invalid attachment pattern '{source.attachment_pattern}': {e}", e
            )
    elif method == Method.SHEET:
        _require(source.sheet_id_or_url, "Source sheet ID or URL")
        _require(source.tab_name, "Source tab name")
        resolve_resource_id(source.sheet_id_or_url)
    elif method == Method.PUSH:
        _require(source.source_tab_name, "Source tab name")
        if not (config.active_spreadsheet or '').strip():
            raise RuleValidationError("No active spreadsheet configured for push rules")
        resolve_resource_id(config.active_spreadsheet)

    return method
