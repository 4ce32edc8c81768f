"""
Engine configuration for the Data Ingest Manager
"""
import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DATABASE_URL = 'sqlite:///ingest_manager.db'
DEFAULT_RULES_FILE = 'config/rules.json'


class EngineConfig(BaseModel):
    """Immutable settings handed to the engine, strategies and session logger"""
    model_config = ConfigDict(frozen=True)

    retry_attempts: int = Field(default=3, ge=1)
    retry_base_seconds: float = Field(default=1.0, ge=0)
    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR'] = 'INFO'
    log_max_sessions: int = Field(default=100, ge=1)
    log_max_age_days: int = Field(default=30, ge=1)
    max_rows: Optional[int] = None
    max_columns: Optional[int] = None
    max_attachment_bytes: Optional[int] = None
    active_spreadsheet: Optional[str] = None  # Workbook used by push rules
    notify_on: Literal['always', 'errors', 'never'] = 'always'
    csv_delimiter: str = ','
    auto_resize_columns: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'EngineConfig':
        """Build a config from INGEST_* environment variables"""
        env = os.environ if environ is None else environ
        mapping = {
            'retry_attempts': 'INGEST_RETRY_ATTEMPTS',
            'retry_base_seconds': 'INGEST_RETRY_BASE_SECONDS',
            'log_level': 'INGEST_LOG_LEVEL',
            'log_max_sessions': 'INGEST_LOG_MAX_SESSIONS',
            'log_max_age_days': 'INGEST_LOG_MAX_AGE_DAYS',
            'max_rows': 'INGEST_MAX_ROWS',
            'max_columns': 'INGEST_MAX_COLUMNS',
            'max_attachment_bytes': 'INGEST_MAX_ATTACHMENT_BYTES',
            'active_spreadsheet': 'INGEST_ACTIVE_SPREADSHEET',
            'notify_on': 'INGEST_NOTIFY_ON',
            'csv_delimiter': 'INGEST_CSV_DELIMITER',
            'auto_resize_columns': 'INGEST_AUTO_RESIZE_COLUMNS',
        }
        values = {}
        for field_name, env_name in mapping.items():
            raw = env.get(env_name)
            if raw is None or raw == '':
                continue
            if field_name == 'log_level':
                raw = raw.upper()
            values[field_name] = raw
        # pydantic coerces the raw strings to the declared types
        return cls(**values)
