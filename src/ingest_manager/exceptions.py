"""
Exception hierarchy for the Data Ingest Manager.

Every error raised by a method strategy or an adapter is an IngestError
subclass that carries its own classification (error_code, error_type and
whether a retry can help), so the session logger never has to guess from
message text when the error was raised by our own code.
"""


class IngestError(Exception):
    """Base exception for Data Ingest Manager errors."""

    error_code = 'SYSTEM_UNKNOWN_ERROR'
    error_type = 'SYSTEM'
    retryable = False

    def __init__(self, message, original_exception=None):
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class RuleValidationError(IngestError):
    """A rule is missing required fields or has malformed values."""

    error_code = 'VALIDATION_ERROR'
    error_type = 'VALIDATION'


class SourceError(IngestError):
    """The rule's source could not be read."""

    error_code = 'SOURCE_ERROR'
    error_type = 'SOURCE'


class SourceNotFoundError(SourceError):
    """No email, spreadsheet or tab matched the rule's source."""

    error_code = 'SOURCE_NOT_FOUND'


class SourceAccessError(SourceError):
    """Transient failure while reading the source (backend unavailable)."""

    error_code = 'SOURCE_ACCESS_ERROR'
    retryable = True


class ProcessingError(IngestError):
    """The source was found but its content cannot be used."""

    error_code = 'PROCESSING_ERROR'
    error_type = 'PROCESSING'


class AmbiguousSourceError(ProcessingError):
    """More than one attachment in a single message matched the pattern."""

    error_code = 'PROCESSING_AMBIGUOUS_MATCH'


class EmptySourceError(ProcessingError):
    """The source contains no rows."""

    error_code = 'PROCESSING_EMPTY_SOURCE'


class DataLimitExceededError(ProcessingError):
    """The source exceeds a configured row, column or size limit."""

    error_code = 'PROCESSING_LIMIT_EXCEEDED'


class ParseError(ProcessingError):
    """Attachment content could not be decoded into rows."""

    error_code = 'PROCESSING_PARSE_ERROR'


class DestinationError(IngestError):
    """The destination tab could not be created or written."""

    error_code = 'DESTINATION_ERROR'
    error_type = 'DESTINATION'


class DestinationAccessError(DestinationError):
    """Transient failure while writing the destination."""

    error_code = 'DESTINATION_ACCESS_ERROR'
    retryable = True


class PermissionDeniedError(IngestError):
    """Access to a source or destination was explicitly refused."""

    error_code = 'PERMISSION_DENIED'
    error_type = 'PERMISSION'


class OperationTimeoutError(IngestError):
    error_code = 'SYSTEM_TIMEOUT'
    retryable = True


class RateLimitError(IngestError):
    error_code = 'SYSTEM_RATE_LIMIT'
    retryable = True


class QuotaExceededError(IngestError):
    error_code = 'SYSTEM_QUOTA_EXCEEDED'


class RepositoryError(IngestError):
    """Indicates an error reading or writing the config/log store."""

    error_code = 'SYSTEM_STORAGE_ERROR'


def translate_http_error(exc, side='source'):
    """Convert a googleapiclient HttpError into a typed IngestError.

    ``side`` is either ``'source'`` or ``'destination'`` and decides which
    family not-found and transient errors belong to.
    """
    status = getattr(getattr(exc, 'resp', None), 'status', None)
    try:
        status = int(status)
    except (TypeError, ValueError):
        status = None

    content = getattr(exc, 'content', b'') or b''
    if isinstance(content, bytes):
        content = content.decode('utf-8', errors='replace')
    message = f"Google API error {status}: {exc}"

    if status == 429 or 'rateLimitExceeded' in content:
        return RateLimitError(message, exc)
    if status == 403 and ('quotaExceeded' in content or 'dailyLimitExceeded' in content):
        return QuotaExceededError(message, exc)
    if status in (401, 403):
        return PermissionDeniedError(message, exc)
    if status in (408, 504):
        return OperationTimeoutError(message, exc)
    if status == 404:
        if side == 'destination':
            return DestinationError(message, exc)
        return SourceNotFoundError(message, exc)
    if status is not None and status >= 500:
        if side == 'destination':
            return DestinationAccessError(message, exc)
        return SourceAccessError(message, exc)
    if side == 'destination':
        return DestinationError(message, exc)
    return SourceError(message, exc)
