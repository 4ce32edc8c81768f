"""
Database connection management for the Data Ingest Manager
"""
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ingest_manager.config import DEFAULT_DATABASE_URL

from .models import Base


def create_db_engine(database_url: str = DEFAULT_DATABASE_URL) -> Engine:
    return create_engine(database_url)


def init_db(engine: Engine) -> None:
    """Initialize the database, creating all tables"""
    Base.metadata.create_all(bind=engine)


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a session that is committed on success and rolled back on error"""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
