"""
Gmail API integration package
"""
from .auth import get_credentials, get_gmail_service, get_sheets_service
from .client import GmailClient, GmailMessage

__all__ = [
    'GmailClient',
    'GmailMessage',
    'get_credentials',
    'get_gmail_service',
    'get_sheets_service',
]
