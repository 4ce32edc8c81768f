"""
Error taxonomy used for operator triage.

Errors raised by our own code are IngestError subclasses and carry their
classification directly. Anything else (library exceptions, bugs) goes
through an ordered rule list: first by exception type, then by keywords in
the message and traceback text. The first matching rule wins.
"""
import csv
from dataclasses import dataclass
import logging
from typing import Optional

from ingest_manager.exceptions import IngestError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorClassification:
    code: str
    type: str
    retryable: bool = False


UNKNOWN = ErrorClassification('SYSTEM_UNKNOWN_ERROR', 'SYSTEM', False)

TYPE_RULES = (
    (TimeoutError, ErrorClassification('SYSTEM_TIMEOUT', 'SYSTEM', True)),
    (MemoryError, ErrorClassification('SYSTEM_MEMORY_ERROR', 'SYSTEM', False)),
    (PermissionError, ErrorClassification('PERMISSION_DENIED', 'PERMISSION', False)),
    (UnicodeDecodeError, ErrorClassification('PROCESSING_PARSE_ERROR', 'PROCESSING', False)),
    (csv.Error, ErrorClassification('PROCESSING_PARSE_ERROR', 'PROCESSING', False)),
)

# Order matters: rate limit messages from Google mention "quota" too
KEYWORD_RULES = (
    (('timed out', 'timeout', 'exceeded maximum execution time', 'deadline exceeded'),
     ErrorClassification('SYSTEM_TIMEOUT', 'SYSTEM', True)),
    (('rate limit', 'ratelimitexceeded', 'too many requests', 'service invoked too many times'),
     ErrorClassification('SYSTEM_RATE_LIMIT', 'SYSTEM', True)),
    (('quota', 'dailylimitexceeded'),
     ErrorClassification('SYSTEM_QUOTA_EXCEEDED', 'SYSTEM', False)),
    (('out of memory', 'memory limit'),
     ErrorClassification('SYSTEM_MEMORY_ERROR', 'SYSTEM', False)),
    (('temporarily unavailable', 'service unavailable', 'backend error', 'try again later'),
     ErrorClassification('SOURCE_ACCESS_ERROR', 'SOURCE', True)),
    (('permission', 'access denied', 'forbidden', 'not authorized', 'unauthorized'),
     ErrorClassification('PERMISSION_DENIED', 'PERMISSION', False)),
    (('ambiguous', 'multiple matching'),
     ErrorClassification('PROCESSING_AMBIGUOUS_MATCH', 'PROCESSING', False)),
    (('not found', 'no such', 'does not exist'),
     ErrorClassification('SOURCE_NOT_FOUND', 'SOURCE', False)),
    (('parse', 'malformed', 'decode', 'invalid csv'),
     ErrorClassification('PROCESSING_PARSE_ERROR', 'PROCESSING', False)),
    (('too large', 'too many rows', 'too many columns', 'exceeds the limit'),
     ErrorClassification('PROCESSING_LIMIT_EXCEEDED', 'PROCESSING', False)),
    (('destination', 'cannot write', 'could not create'),
     ErrorClassification('DESTINATION_ERROR', 'DESTINATION', False)),
    (('required', 'missing', 'invalid'),
     ErrorClassification('VALIDATION_ERROR', 'VALIDATION', False)),
)


def _describe(error: BaseException, stack: Optional[str]) -> str:
    return f"{error}\n{stack or ''}".lower()


def classify_error(error: BaseException, stack: Optional[str] = None) -> ErrorClassification:
    """Assign an error code and type from the taxonomy to ``error``"""
    try:
        if isinstance(error, IngestError):
            return ErrorClassification(error.error_code, error.error_type, error.retryable)

        for error_class, classification in TYPE_RULES:
            if isinstance(error, error_class):
                return classification

        text = _describe(error, stack)
        for keywords, classification in KEYWORD_RULES:
            if any(keyword in text for keyword in keywords):
                return classification
    except Exception as e:
        logger.error(f"Error classification failed: {e}")
    return UNKNOWN
