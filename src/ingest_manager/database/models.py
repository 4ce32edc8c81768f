"""
Database models for the Data Ingest Manager
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

RULES_KEY = 'rules'
SESSIONS_KEY = 'sessions'


class Document(Base):
    """A JSON document stored under a key: the rule table or the session log"""
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    key = Column(String(100), unique=True, nullable=False)
    payload = Column(Text, nullable=False, default='[]')
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
