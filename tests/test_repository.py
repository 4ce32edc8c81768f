"""
Tests for the SQL and JSON file repositories
"""

import json
import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from fakes import make_repository

from ingest_manager.database import JsonFileRepository
from ingest_manager.database.models import RULES_KEY, SESSIONS_KEY
from ingest_manager.exceptions import RepositoryError
from ingest_manager.logs import LogEntry, Session, SessionEvent
from ingest_manager.rules import Rule, RuleResult, RuleStatus


def sample_rule():
    return Rule.model_validate({
        'id': 'r1',
        'name': 'Daily sales',
        'method': 'email',
        'source': {'searchQuery': 'subject:sales', 'attachmentPattern': r'sales.*\.csv'},
        'destination': {'sheetIdOrUrl': 'dest-book', 'tabName': 'Sales'},
        'handlingMode': 'append',
        'emailRecipients': 'ops@example.com',
        'status': {'lastRunTimestamp': '2024-03-01T09:00:00+00:00', 'result': 'SUCCESS', 'message': 'ok'},
    })


class RepositoryContract:
    """Behaviour shared by every repository implementation"""

    def test_empty_store(self):
        self.assertEqual(self.repository.load_rules(), [])
        self.assertEqual(self.repository.load_sessions(), [])

    def test_rules_survive_a_save(self):
        self.repository.save_rules([sample_rule()])

        loaded = self.repository.load_rules()

        self.assertEqual(loaded, [sample_rule()])
        self.assertEqual(loaded[0].status.result, RuleResult.SUCCESS)

    def test_save_replaces_previous_document(self):
        self.repository.save_rules([sample_rule()])
        self.repository.save_rules([Rule(id='r2')])

        self.assertEqual([r.id for r in self.repository.load_rules()], ['r2'])

    def test_sessions_survive_a_save(self):
        stamp = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        session = Session(
            session_id='s1',
            timestamp=stamp,
            events=[SessionEvent(type='START', message='go', timestamp=stamp)],
            entries=[LogEntry(session_id='s1', timestamp=stamp, level='INFO', rule_id='r1',
                              status='SUCCESS', message='done', rows_processed=3)],
        )
        self.repository.save_sessions([session])

        loaded = self.repository.load_sessions()

        self.assertEqual(loaded, [session])

    def test_status_update_keeps_rules_that_fail_validation(self):
        broken = {'id': 'typo', 'active': 'maybe', 'customField': 'kept'}
        self.repository._write(RULES_KEY, [sample_rule().model_dump(mode='json', by_alias=True), broken])
        self.assertEqual([r.id for r in self.repository.load_rules()], ['r1'])
        self.assertEqual([i.item_id for i in self.repository.invalid_rules], ['typo'])
        self.assertIn('active', self.repository.invalid_rules[0].message)

        status = RuleStatus(last_run_timestamp=datetime(2024, 3, 2, tzinfo=timezone.utc),
                            result=RuleResult.ERROR, message='bad')
        self.assertTrue(self.repository.update_rule_status('typo', status))
        self.assertFalse(self.repository.update_rule_status('absent', status))

        stored = self.repository._read(RULES_KEY)
        self.assertEqual([item['id'] for item in stored], ['r1', 'typo'])
        self.assertEqual(stored[1]['active'], 'maybe')
        self.assertEqual(stored[1]['customField'], 'kept')
        self.assertEqual(stored[1]['status']['result'], 'ERROR')
        self.assertEqual(stored[0]['status']['result'], 'SUCCESS')

    def test_session_records_are_appended_in_place(self):
        stamp = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        self.repository._write(SESSIONS_KEY, [{'sessionId': 'old', 'timestamp': 'not a date'}])
        event = SessionEvent(type='START', message='go', timestamp=stamp)
        entry = LogEntry(session_id='s1', timestamp=stamp, level='INFO', rule_id='r1',
                         status='START', message='go')

        self.repository.append_session_records('s1', stamp, event=event)
        self.repository.append_session_records('s1', stamp, entry=entry)

        stored = self.repository._read(SESSIONS_KEY)
        self.assertEqual([item['sessionId'] for item in stored], ['old', 's1'])
        self.assertEqual(stored[0]['timestamp'], 'not a date')
        loaded = self.repository.load_sessions()
        self.assertEqual(loaded[0].events, [event])
        self.assertEqual(loaded[0].entries, [entry])

    def test_delete_sessions(self):
        stamp = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        self.repository.save_sessions([Session(session_id=s, timestamp=stamp) for s in ('a', 'b', 'c')])

        self.assertEqual(self.repository.delete_sessions(['a', 'c', 'missing']), 2)
        self.assertEqual(self.repository.delete_sessions([]), 0)

        self.assertEqual([s.session_id for s in self.repository.load_sessions()], ['b'])


class TestSqlAlchemyRepository(RepositoryContract, unittest.TestCase):
    def setUp(self):
        self.repository = make_repository()


class TestJsonFileRepository(RepositoryContract, unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.repository = JsonFileRepository(Path(self.directory) / 'store')

    def tearDown(self):
        shutil.rmtree(self.directory)

    def test_documents_use_camel_case_keys(self):
        self.repository.save_rules([sample_rule()])

        with open(Path(self.directory) / 'store' / 'rules.json') as f:
            stored = json.load(f)

        self.assertEqual(stored[0]['handlingMode'], 'append')
        self.assertTrue(stored[0]['status']['lastRunTimestamp'].startswith('2024-03-01T09:00:00'))
        self.assertFalse((Path(self.directory) / 'store' / 'rules.json.tmp').exists())

    def test_invalid_stored_rule_is_skipped(self):
        store = Path(self.directory) / 'store'
        store.mkdir()
        with open(store / 'rules.json', 'w') as f:
            json.dump([{'name': 'no id'}, {'id': 'ok'}], f)

        self.assertEqual([r.id for r in self.repository.load_rules()], ['ok'])

    def test_corrupt_document_is_a_repository_error(self):
        store = Path(self.directory) / 'store'
        store.mkdir()
        (store / 'sessions.json').write_text('{not json')

        with self.assertRaises(RepositoryError):
            self.repository.load_sessions()


if __name__ == '__main__':
    unittest.main()
