"""
Google API authentication module
"""
import logging
import os
import pickle

from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

# If modifying these scopes, delete the token file.
SCOPES = [
    'https://www.googleapis.com/auth/gmail.readonly',  # Search messages, download attachments
    'https://www.googleapis.com/auth/gmail.send',  # Session notifications
    'https://www.googleapis.com/auth/spreadsheets',  # Read sources, write destinations
]


def get_client_config():
    """Get OAuth client configuration from environment variables"""
    return {
        "installed": {
            "client_id": os.getenv("GMAIL_CLIENT_ID"),
            "project_id": os.getenv("GMAIL_PROJECT_ID"),
            "auth_uri": os.getenv("GMAIL_AUTH_URI", "https://accounts.google.com/o/oauth2/auth"),
            "token_uri": os.getenv("GMAIL_TOKEN_URI", "https://oauth2.googleapis.com/token"),
            "auth_provider_x509_cert_url": os.getenv("GMAIL_AUTH_PROVIDER_CERT_URL"),
            "client_secret": os.getenv("GMAIL_CLIENT_SECRET"),
            "redirect_uris": ["http://localhost"]
        }
    }


def get_credentials():
    """Load stored OAuth credentials, refreshing or running the consent flow when needed"""
    creds = None
    token_file = os.getenv('GOOGLE_TOKEN_FILE', '.secrets/token.pickle')

    token_dir = os.path.dirname(token_file)
    if token_dir and not os.path.exists(token_dir):
        os.makedirs(token_dir)

    if os.path.exists(token_file):
        with open(token_file, 'rb') as token:
            creds = pickle.load(token)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            flow = InstalledAppFlow.from_client_config(get_client_config(), SCOPES)
            creds = flow.run_local_server(port=0)

        # Save the credentials for the next run
        with open(token_file, 'wb') as token:
            pickle.dump(creds, token)

    return creds


def get_gmail_service(creds=None):
    """Get an authorized Gmail API service instance."""
    return build('gmail', 'v1', credentials=creds or get_credentials(), cache_discovery=False)


def get_sheets_service(creds=None):
    """Get an authorized Sheets API service instance."""
    return build('sheets', 'v4', credentials=creds or get_credentials(), cache_discovery=False)
