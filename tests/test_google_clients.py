"""
Tests for the Gmail and Sheets adapters against mocked API services
"""

import base64
import unittest
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

import httplib2
from googleapiclient.errors import HttpError

from ingest_manager.config import EngineConfig
from ingest_manager.exceptions import (
    DestinationAccessError,
    DestinationError,
    PermissionDeniedError,
    QuotaExceededError,
    RateLimitError,
    SourceAccessError,
    SourceNotFoundError,
    translate_http_error,
)
from ingest_manager.gmail import GmailClient
from ingest_manager.rules import Rule
from ingest_manager.rules.strategies import EmailStrategy
from ingest_manager.sheets import GoogleSheetStore
from ingest_manager.sheets.client import quote_title


def http_error(status, content=b'{}'):
    return HttpError(httplib2.Response({'status': str(status)}), content)


def b64(data):
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


class TestTranslateHttpError(unittest.TestCase):
    def test_status_mapping(self):
        self.assertIsInstance(translate_http_error(http_error(429)), RateLimitError)
        self.assertIsInstance(
            translate_http_error(http_error(403, b'{"error": {"errors": [{"reason": "dailyLimitExceeded"}]}}')),
            QuotaExceededError,
        )
        self.assertIsInstance(translate_http_error(http_error(403)), PermissionDeniedError)
        self.assertIsInstance(translate_http_error(http_error(404)), SourceNotFoundError)
        self.assertIsInstance(translate_http_error(http_error(404), 'destination'), DestinationError)
        self.assertIsInstance(translate_http_error(http_error(503)), SourceAccessError)
        self.assertIsInstance(translate_http_error(http_error(500), 'destination'), DestinationAccessError)

    def test_original_exception_is_kept(self):
        error = http_error(500)
        self.assertIs(translate_http_error(error).original_exception, error)


class TestGmailClient(unittest.TestCase):
    def setUp(self):
        self.service = MagicMock()
        self.messages = self.service.users.return_value.messages.return_value
        self.client = GmailClient(self.service)

    def test_search_follows_pagination(self):
        self.messages.list.return_value.execute.side_effect = [
            {'messages': [{'id': 'm1'}], 'nextPageToken': 'p2'},
            {'messages': [{'id': 'm2'}]},
        ]
        self.messages.get.return_value.execute.side_effect = [
            {'id': 'm1', 'payload': {'headers': [{'name': 'Subject', 'value': 'First'}]}},
            {'id': 'm2', 'payload': {'headers': [{'name': 'Subject', 'value': 'Second'}]}},
        ]

        found = list(self.client.search('from:reports@example.com'))

        self.assertEqual([m.id for m in found], ['m1', 'm2'])
        self.assertEqual(found[1].subject, 'Second')
        self.assertEqual(self.messages.list.call_args_list[1].kwargs['pageToken'], 'p2')

    def test_search_fetches_messages_only_as_they_are_reached(self):
        """The email method stops at its first match without fetching later messages"""
        self.messages.list.return_value.execute.return_value = {
            'messages': [{'id': f"m{n}"} for n in range(1, 51)],
            'nextPageToken': 'more',
        }
        self.messages.get.return_value.execute.return_value = {
            'id': 'm1',
            'payload': {'parts': [{'filename': 'daily_1.csv', 'body': {'data': b64(b'a,b\n1,2')}}]},
        }
        strategy = EmailStrategy(MagicMock(), self.client, EngineConfig())
        rule = Rule.model_validate({
            'id': 'mail',
            'method': 'email',
            'source': {'searchQuery': 'q', 'attachmentPattern': r'^daily_.*\.csv$'},
            'destination': {'sheetIdOrUrl': 'dest-book', 'tabName': 'Daily'},
        })

        message, attachment = strategy.find_attachment(rule)

        self.assertEqual((message.id, attachment.name), ('m1', 'daily_1.csv'))
        self.assertEqual(self.messages.get.call_count, 1)
        self.assertEqual(self.messages.list.call_count, 1)

    def test_search_respects_max_results(self):
        self.messages.list.return_value.execute.return_value = {
            'messages': [{'id': 'm1'}, {'id': 'm2'}],
            'nextPageToken': 'more',
        }
        self.messages.get.return_value.execute.return_value = {'id': 'm1', 'payload': {}}

        found = list(self.client.search('q', max_results=3))

        self.assertEqual(len(found), 3)
        self.assertEqual(
            [c.kwargs['maxResults'] for c in self.messages.list.call_args_list], [3, 1]
        )

    def test_attachments_are_collected_from_nested_parts(self):
        self.messages.list.return_value.execute.return_value = {'messages': [{'id': 'm1'}]}
        self.messages.get.return_value.execute.return_value = {
            'id': 'm1',
            'payload': {
                'parts': [
                    {'filename': '', 'body': {'data': b64(b'hello')}},
                    {'filename': 'inline.csv', 'body': {'data': b64(b'a,b\n1,2'), 'size': 7}},
                    {'filename': '', 'parts': [
                        {'filename': 'remote.csv', 'body': {'attachmentId': 'att-1', 'size': 3}},
                    ]},
                ],
            },
        }
        self.messages.attachments.return_value.get.return_value.execute.return_value = {'data': b64(b'x,y')}

        message = next(self.client.search('q'))
        attachments = message.attachments()

        self.assertEqual([a.name for a in attachments], ['inline.csv', 'remote.csv'])
        self.assertEqual(attachments[0].content, b'a,b\n1,2')
        self.assertEqual(attachments[1].content, b'x,y')
        self.assertEqual(attachments[1].size_bytes, 3)
        message.attachments()
        self.messages.attachments.return_value.get.assert_called_once_with(userId='me', messageId='m1', id='att-1')

    def test_search_errors_are_translated(self):
        self.messages.list.return_value.execute.side_effect = http_error(429)

        with self.assertRaises(RateLimitError):
            list(self.client.search('q'))

    def test_send_builds_raw_message(self):
        self.client.send(['a@example.com', 'b@example.com'], 'Subject line', 'Body text')

        body = self.messages.send.call_args.kwargs['body']
        raw = base64.urlsafe_b64decode(body['raw']).decode('utf-8')
        self.assertIn('to: a@example.com, b@example.com', raw)
        self.assertIn('subject: Subject line', raw)

    def test_send_failure_is_a_destination_error(self):
        self.messages.send.return_value.execute.side_effect = http_error(500)

        with self.assertRaises(DestinationAccessError):
            self.client.send(['a@example.com'], 's', 'b')


class TestGoogleSheets(unittest.TestCase):
    def setUp(self):
        self.service = MagicMock()
        self.spreadsheets = self.service.spreadsheets.return_value
        self.spreadsheets.get.return_value.execute.return_value = {
            'sheets': [
                {'properties': {'sheetId': 0, 'title': 'Data'}},
                {'properties': {'sheetId': 7, 'title': "Bob's tab"}},
            ]
        }
        self.workbook = GoogleSheetStore(self.service).open('https://docs.google.com/spreadsheets/d/book-1/edit')

    def test_quote_title(self):
        self.assertEqual(quote_title("Bob's tab"), "'Bob''s tab'")

    def test_open_resolves_url(self):
        self.assertEqual(self.workbook.id, 'book-1')

    def test_tab_lookup(self):
        tab = self.workbook.tab("Bob's tab")
        self.assertEqual(tab.tab_id, 7)
        self.assertIsNone(self.workbook.tab('Missing'))

    def test_write_rows_uses_a1_range(self):
        self.workbook.tab("Bob's tab").write_rows(5, [['a', 'b']])

        kwargs = self.spreadsheets.values.return_value.update.call_args.kwargs
        self.assertEqual(kwargs['range'], "'Bob''s tab'!A5")
        self.assertEqual(kwargs['valueInputOption'], 'RAW')
        self.assertEqual(kwargs['body']['values'], [['a', 'b']])

    def test_create_tab_reads_reply(self):
        self.spreadsheets.batchUpdate.return_value.execute.return_value = {
            'replies': [{'addSheet': {'properties': {'sheetId': 42, 'title': 'New'}}}]
        }

        tab = self.workbook.create_tab('New')

        self.assertEqual((tab.tab_id, tab.name), (42, 'New'))

    def test_create_tab_with_unexpected_reply(self):
        self.spreadsheets.batchUpdate.return_value.execute.return_value = {'replies': []}

        with self.assertRaises(DestinationError):
            self.workbook.create_tab('New')

    def test_read_errors_are_source_errors(self):
        self.spreadsheets.values.return_value.get.return_value.execute.side_effect = http_error(404)

        with self.assertRaises(SourceNotFoundError):
            self.workbook.tab('Data').read_all_rows()

    def test_write_errors_are_destination_errors(self):
        self.spreadsheets.values.return_value.clear.return_value.execute.side_effect = http_error(503)

        with self.assertRaises(DestinationAccessError):
            self.workbook.tab('Data').clear()


if __name__ == '__main__':
    unittest.main()
