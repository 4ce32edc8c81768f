"""
Gmail API client: message search, attachment download and notification mail
"""
import base64
from email.mime.text import MIMEText
import logging
from typing import Dict, Iterator, List, Optional, Sequence

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from ingest_manager.exceptions import translate_http_error
from ingest_manager.ports import Attachment

logger = logging.getLogger(__name__)


def _decode_data(data: str) -> bytes:
    """Decode Gmail's base64url payloads, which may arrive without padding"""
    return base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))


class GmailMessage:
    """A Gmail message whose attachments are downloaded on first access"""

    def __init__(self, client: 'GmailClient', message: Dict):
        self._client = client
        self.id = message['id']
        self._payload = message.get('payload', {})
        headers = {h['name']: h['value'] for h in self._payload.get('headers', [])}
        self.subject = headers.get('Subject', '')
        self._attachments = None

    def attachment_parts(self) -> List[Dict]:
        """All MIME parts carrying a filename, depth first"""
        parts = []
        stack = [self._payload]
        while stack:
            part = stack.pop(0)
            if part.get('filename'):
                parts.append(part)
            stack[0:0] = part.get('parts', [])
        return parts

    def attachments(self) -> List[Attachment]:
        if self._attachments is None:
            self._attachments = [
                self._client.download_attachment(self.id, part) for part in self.attachment_parts()
            ]
        return self._attachments


class GmailClient:
    """Gmail API client for the email method and session notifications"""

    def __init__(self, service: Resource, user_id: str = 'me'):
        self.service = service
        self.user_id = user_id

    def list_messages(self, query: str = None, max_results: int = None, page_token: str = None) -> Dict:
        """List messages in the user's mailbox"""
        try:
            response = self.service.users().messages().list(
                userId=self.user_id,
                q=query,
                maxResults=max_results,
                pageToken=page_token
            ).execute()
        except HttpError as e:
            logger.error(f"Error listing messages: {e}")
            raise translate_http_error(e, 'source')
        return {
            'messages': response.get('messages', []),
            'nextPageToken': response.get('nextPageToken')
        }

    def iter_messages(self, query: str = None, max_total: int = None) -> Iterator[Dict]:
        """Yield message stubs page by page, fetching the next page only when needed"""
        yielded = 0
        page_token = None

        while True:
            remaining = max_total - yielded if max_total else None
            if remaining is not None and remaining <= 0:
                return

            response = self.list_messages(
                query=query,
                max_results=remaining,
                page_token=page_token
            )

            for stub in response['messages']:
                yield stub
                yielded += 1
                if max_total and yielded >= max_total:
                    return

            page_token = response.get('nextPageToken')
            logger.debug(f"Fetched {yielded} messages so far...")

            if not page_token:
                return

    def get_message(self, msg_id: str) -> Dict:
        """Get a specific message by ID"""
        try:
            return self.service.users().messages().get(
                userId=self.user_id,
                id=msg_id,
                format='full'
            ).execute()
        except HttpError as e:
            logger.error(f"Error getting message {msg_id}: {e}")
            raise translate_http_error(e, 'source')

    def search(self, query: str, max_results: Optional[int] = None) -> Iterator[GmailMessage]:
        """Messages matching a Gmail search query, newest first.

        Each full message is fetched as the caller reaches it, so a caller that
        stops early never downloads the rest.
        """
        for stub in self.iter_messages(query=query, max_total=max_results):
            yield GmailMessage(self, self.get_message(stub['id']))

    def download_attachment(self, msg_id: str, part: Dict) -> Attachment:
        body = part.get('body', {})
        data = body.get('data')
        if data is None and body.get('attachmentId'):
            try:
                response = self.service.users().messages().attachments().get(
                    userId=self.user_id,
                    messageId=msg_id,
                    id=body['attachmentId']
                ).execute()
            except HttpError as e:
                logger.error(f"Error downloading attachment {part.get('filename')} of {msg_id}: {e}")
                raise translate_http_error(e, 'source')
            data = response.get('data', '')
        content = _decode_data(data or '')
        return Attachment(name=part['filename'], size_bytes=body.get('size', len(content)), content=content)

    def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        """Send a plain text message from the authenticated account"""
        message = MIMEText(body)
        message['to'] = ', '.join(recipients)
        message['subject'] = subject
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode('ascii')
        try:
            self.service.users().messages().send(userId=self.user_id, body={'raw': raw}).execute()
        except HttpError as e:
            logger.error(f"Error sending message to {recipients}: {e}")
            raise translate_http_error(e, 'destination')
