#!/usr/bin/env python3
"""
Data Ingest Manager - Main entry point
"""
import argparse
import json
import logging
import os
import signal
import sys

import structlog
from dateutil import parser as date_parser
from dateutil import tz
from dotenv import load_dotenv
from pydantic import ValidationError

from ingest_manager.config import DEFAULT_DATABASE_URL, DEFAULT_RULES_FILE, EngineConfig
from ingest_manager.database import JsonFileRepository, SqlAlchemyRepository
from ingest_manager.exceptions import IngestError
from ingest_manager.gmail import GmailClient, get_credentials, get_gmail_service, get_sheets_service
from ingest_manager.logs import SessionLogger, export_session_to_sheet, format_duration
from ingest_manager.logs.session_logger import as_utc
from ingest_manager.notifications import SessionNotifier
from ingest_manager.rules import CancellationToken, RulesConfig, RulesEngine, build_strategies
from ingest_manager.sheets import GoogleSheetStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = structlog.get_logger()

# Disable debug logging for specific modules
logging.getLogger('googleapiclient.discovery').setLevel(logging.WARNING)
logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.ERROR)


def get_repository():
    """JSON files when INGEST_STORE_DIR is set, otherwise the SQL database"""
    store_dir = os.getenv('INGEST_STORE_DIR')
    if store_dir:
        return JsonFileRepository(store_dir)
    return SqlAlchemyRepository.from_url(os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL))


def load_rules(repository, rules_file=None) -> RulesConfig:
    """Load rules from a configuration file into the repository.

    Rules that already exist keep their last-run status unless the file
    provides one.
    """
    rules_file = rules_file or os.getenv('RULES_FILE', DEFAULT_RULES_FILE)
    with open(rules_file, 'r') as f:
        rules_data = json.load(f)

    rules_config = RulesConfig(**rules_data)
    previous = {rule.id: rule.status for rule in repository.load_rules()}
    for rule in rules_config.rules:
        if rule.id in previous and 'status' not in rule.model_fields_set:
            rule.status = previous[rule.id]

    repository.save_rules(rules_config.rules)
    logger.info("Rules synced to repository", count=len(rules_config.rules), file=rules_file)
    return rules_config


def build_engine(config: EngineConfig, repository, cancellation=None) -> RulesEngine:
    """Wire the Google adapters, session logger and notifier into an engine"""
    creds = get_credentials()
    gmail_client = GmailClient(get_gmail_service(creds))
    sheet_store = GoogleSheetStore(get_sheets_service(creds))
    return RulesEngine(
        repository,
        SessionLogger.from_config(repository, config),
        build_strategies(sheet_store, gmail_client, config),
        config,
        notifier=SessionNotifier(gmail_client, config.notify_on),
        cancellation=cancellation,
    )


def cmd_run(args, config, repository) -> int:
    cancellation = CancellationToken()
    # Finish the rule in flight, then stop
    signal.signal(signal.SIGTERM, lambda signum, frame: cancellation.cancel())

    engine = build_engine(config, repository, cancellation)
    result = engine.run(args.rule or None)
    logger.info(
        "Run finished",
        session_id=result.session_id,
        status=result.status,
        succeeded=result.success_count,
        failed=result.error_count,
        skipped=result.skipped_count,
        cancelled=result.cancelled_count,
        rows=result.total_rows,
        elapsed=format_duration(result.elapsed_ms),
    )
    return 1 if result.error_count else 0


def cmd_import_rules(args, config, repository) -> int:
    load_rules(repository, args.path)
    return 0


def cmd_rules(args, config, repository) -> int:
    for rule in repository.load_rules():
        last_run = rule.status.last_run_timestamp.isoformat() if rule.status.last_run_timestamp else '-'
        state = 'active' if rule.active else 'inactive'
        print(f"{rule.id}\t{state}\t{rule.method or '-'}\t{rule.status.result.value}\t{last_run}\t{rule.status.message}")
    return 0


def cmd_sessions(args, config, repository) -> int:
    session_logger = SessionLogger.from_config(repository, config)
    since = None
    if args.since:
        since = date_parser.parse(args.since)
        if since.tzinfo is None:
            since = since.replace(tzinfo=tz.tzlocal())
    for aggregate in session_logger.get_recent_sessions(args.limit):
        if since is not None and as_utc(aggregate.start_time) < since:
            continue
        print(
            f"{aggregate.session_id}\t{aggregate.status}\t{aggregate.start_time.isoformat()}\t"
            f"rules={aggregate.rule_count} ok={aggregate.success_count} "
            f"failed={aggregate.error_count} skipped={aggregate.skipped_count}"
        )
    return 0


def cmd_export_session(args, config, repository) -> int:
    spreadsheet = args.spreadsheet or config.active_spreadsheet
    if not spreadsheet:
        logger.error("No spreadsheet given and INGEST_ACTIVE_SPREADSHEET is not set")
        return 1
    workbook = GoogleSheetStore(get_sheets_service()).open(spreadsheet)
    result = export_session_to_sheet(repository, workbook, args.session_id)
    if not result['success']:
        logger.error("Export failed", message=result['message'])
        return 1
    logger.info("Session exported", sheet=result['sheetName'])
    return 0


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Data Ingest Manager')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run active rules, or the given rules')
    run_parser.add_argument('--rule', action='append', help='Rule ID to run (repeatable)')
    run_parser.set_defaults(handler=cmd_run)

    import_parser = subparsers.add_parser('import-rules', help='Load a rules JSON file')
    import_parser.add_argument('path', nargs='?', help='Rules file (defaults to RULES_FILE)')
    import_parser.set_defaults(handler=cmd_import_rules)

    rules_parser = subparsers.add_parser('rules', help='List rules with their last status')
    rules_parser.set_defaults(handler=cmd_rules)

    sessions_parser = subparsers.add_parser('sessions', help='List recent sessions')
    sessions_parser.add_argument('--limit', type=int, default=10)
    sessions_parser.add_argument('--since', help='Only sessions started after this date/time')
    sessions_parser.set_defaults(handler=cmd_sessions)

    export_parser = subparsers.add_parser('export-session', help='Export a session log to a new tab')
    export_parser.add_argument('session_id')
    export_parser.add_argument('--spreadsheet', help='Target spreadsheet ID or URL')
    export_parser.set_defaults(handler=cmd_export_session)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point for the Data Ingest Manager"""
    args = parse_args(argv)
    load_dotenv()

    try:
        config = EngineConfig.from_env()
        repository = get_repository()
        return args.handler(args, config, repository)
    except (IngestError, ValidationError) as e:
        logger.error("Data ingest failed", command=args.command, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
