"""
Database package for the Data Ingest Manager
"""
from .connection import create_db_engine, get_db_session, get_session_factory, init_db
from .models import Base, Document
from .repository import DocumentRepository, JsonFileRepository, SqlAlchemyRepository

__all__ = [
    'Base',
    'Document',
    'DocumentRepository',
    'JsonFileRepository',
    'SqlAlchemyRepository',
    'create_db_engine',
    'get_db_session',
    'get_session_factory',
    'init_db',
]
