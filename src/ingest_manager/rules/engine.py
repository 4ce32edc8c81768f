"""
Rule execution engine: runs the selected rules once, in sequence, per session
"""
from dataclasses import dataclass
from datetime import datetime
import logging
import threading
import time
from typing import Callable, Iterable, List, Mapping, Optional

from ingest_manager.config import EngineConfig
from ingest_manager.exceptions import IngestError, RuleValidationError
from ingest_manager.logs.classification import classify_error
from ingest_manager.logs.reporting import format_duration
from ingest_manager.logs.session_logger import SESSION_RULE_ID, SessionLogger, utcnow
from ingest_manager.notifications import SessionNotifier, collect_recipients
from ingest_manager.ports import Repository
from ingest_manager.rules.schema import Method, Rule, RuleResult, RuleStatus
from ingest_manager.rules.sheet_modes import resolve_mode
from ingest_manager.rules.strategies import MethodStrategy
from ingest_manager.rules.validation import validate_rule

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag, polled between rules and between retries"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunResult:
    session_id: str
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    cancelled_count: int = 0
    total_rows: int = 0
    elapsed_ms: int = 0

    @property
    def status(self) -> str:
        if self.error_count == 0 and self.cancelled_count == 0:
            return 'SUCCESS'
        if self.success_count == 0 and self.error_count > 0:
            return 'ERROR'
        return 'PARTIAL'


@dataclass
class RuleOutcome:
    result: RuleResult
    message: str
    rows: int = 0


_SESSION_LEVELS = {'SUCCESS': 'INFO', 'PARTIAL': 'WARNING', 'ERROR': 'ERROR'}


class RulesEngine:
    """Engine executing ingest rules through their method strategy"""

    def __init__(self, repository: Repository, session_logger: SessionLogger,
                 strategies: Mapping[Method, MethodStrategy], config: EngineConfig,
                 notifier: Optional[SessionNotifier] = None,
                 cancellation: Optional[CancellationToken] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.session_logger = session_logger
        self.strategies = dict(strategies)
        self.config = config
        self.notifier = notifier
        self.cancellation = cancellation or CancellationToken()
        self.sleep = sleep
        self.clock = clock

    def run(self, rule_ids: Optional[Iterable[str]] = None) -> RunResult:
        """Run all active rules, or exactly the rules named in ``rule_ids``"""
        started = time.monotonic()
        rules = self.repository.load_rules()
        invalid = list(self.repository.invalid_rules)
        wanted = set(rule_ids) if rule_ids is not None else None
        if wanted is None:
            selected = [rule for rule in rules if rule.active]
            broken = [item for item in invalid if item.active]
        else:
            selected = [rule for rule in rules if rule.id in wanted]
            broken = [item for item in invalid if item.item_id in wanted]
        rule_count = len(selected) + len(broken)

        session_id = self.session_logger.start_session(f"Processing {rule_count} rule(s)")
        result = RunResult(session_id=session_id)
        logger.info(f"Session {session_id}: processing {rule_count} rule(s)")

        for item in broken:
            self._report_invalid(session_id, item)
            result.error_count += 1

        if wanted is not None:
            known = {rule.id for rule in rules} | {item.item_id for item in invalid}
            for missing in sorted(wanted - known):
                self.session_logger.log_entry(
                    session_id, missing, 'WARNING', 'WARNING', f"Rule {missing} not found"
                )

        for rule in selected:
            if self.cancellation.cancelled:
                outcome = self._cancel(session_id, rule, "Run cancelled before the rule started")
            else:
                outcome = self.process_rule(rule, session_id)
            self._save_status(session_id, rule.id, outcome)

            if outcome.result == RuleResult.SUCCESS:
                result.success_count += 1
                result.total_rows += outcome.rows
            elif outcome.result == RuleResult.ERROR:
                result.error_count += 1
            elif outcome.result == RuleResult.SKIPPED:
                result.skipped_count += 1
            elif outcome.result == RuleResult.CANCELLED:
                result.cancelled_count += 1

        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        self._finish_session(result, rules, rule_count)
        return result

    def process_rule(self, rule: Rule, session_id: str) -> RuleOutcome:
        """Validate and execute a single rule; never raises"""
        if not rule.active or not rule.is_populated():
            reason = "Rule is inactive" if not rule.active else "Rule is empty"
            self.session_logger.log_entry(session_id, rule.id, 'INFO', 'SKIPPED', reason)
            return RuleOutcome(RuleResult.SKIPPED, reason)

        mode = resolve_mode(rule.handling_mode)
        context = {
            'source_type': rule.method,
            'destination_id': rule.destination.sheet_id_or_url,
            'destination_tab': rule.destination.tab_name,
            'processing_mode': mode.mode.value,
        }
        self.session_logger.log_entry(
            session_id, rule.id, 'INFO', 'START', f"Processing rule {rule.name or rule.id}", stats=context
        )

        try:
            method = validate_rule(rule, self.config)
            strategy = self.strategies.get(method)
            if strategy is None:
                raise RuleValidationError(f"No strategy registered for method '{method.value}'")
        except RuleValidationError as e:
            logger.error(f"Rule {rule.id} failed validation: {e}")
            self.session_logger.log_entry(
                session_id, rule.id, 'ERROR', 'ERROR', str(e), stats=context, error=e
            )
            return RuleOutcome(RuleResult.ERROR, str(e))

        if mode.warning:
            logger.warning(f"Rule {rule.id}: {mode.warning}")
            self.session_logger.log_entry(session_id, rule.id, 'WARNING', 'WARNING', mode.warning, stats=context)

        return self._execute_with_retry(strategy, rule, session_id, context)

    def backoff_delay(self, attempt: int) -> float:
        return self.config.retry_base_seconds * (2 ** (attempt - 1))

    def _execute_with_retry(self, strategy: MethodStrategy, rule: Rule, session_id: str,
                            context: dict) -> RuleOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                stats = strategy.execute(rule, session_id)
            except Exception as e:
                classification = classify_error(e)
                if classification.retryable and attempt < self.config.retry_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.warning(f"Rule {rule.id} attempt {attempt} failed, retrying in {delay:g}s: {e}")
                    self.session_logger.log_entry(
                        session_id, rule.id, 'WARNING', 'RETRY',
                        f"Attempt {attempt} failed, retrying in {delay:g}s: {e}",
                        stats={**context, 'retry_attempt': attempt}, error=e,
                    )
                    if not self.cancellation.cancelled:
                        self.sleep(delay)
                    if self.cancellation.cancelled:
                        return self._cancel(
                            session_id, rule, f"Run cancelled after attempt {attempt}: {e}", attempt
                        )
                    continue

                logger.error(f"Rule {rule.id} failed after {attempt} attempt(s): {e}")
                self.session_logger.log_entry(
                    session_id, rule.id, 'ERROR', 'ERROR', str(e),
                    stats={**context, 'retry_attempt': attempt}, error=e,
                )
                return RuleOutcome(RuleResult.ERROR, str(e))

            message = (
                f"Wrote {stats.rows_written} rows x {stats.columns_written} columns "
                f"in {stats.duration_ms} ms"
            )
            logger.info(f"Rule {rule.id}: {message}")
            self.session_logger.log_entry(
                session_id, rule.id, 'INFO', 'SUCCESS', message,
                stats={
                    **context,
                    'retry_attempt': attempt,
                    'execution_time_ms': stats.duration_ms,
                    'rows_processed': stats.rows_written,
                    'columns_processed': stats.columns_written,
                    'file_size_bytes': stats.file_size_bytes,
                    'source_identifier': stats.source_identifier,
                    'destination_id': stats.destination_id or context['destination_id'],
                },
            )
            return RuleOutcome(RuleResult.SUCCESS, message, stats.rows_written)

    def _cancel(self, session_id: str, rule: Rule, message: str,
                attempt: Optional[int] = None) -> RuleOutcome:
        logger.info(f"Rule {rule.id}: {message}")
        self.session_logger.log_entry(
            session_id, rule.id, 'WARNING', 'CANCELLED', message, stats={'retry_attempt': attempt}
        )
        return RuleOutcome(RuleResult.CANCELLED, message)

    def _report_invalid(self, session_id: str, item) -> None:
        """Record a stored rule that cannot be parsed as a failed rule"""
        rule_id = item.item_id or '(no id)'
        message = f"Invalid rule definition: {item.message}"
        logger.error(f"Rule {rule_id}: {message}")
        self.session_logger.log_entry(session_id, rule_id, 'ERROR', 'ERROR', message)
        if item.item_id:
            self._save_status(session_id, item.item_id, RuleOutcome(RuleResult.ERROR, message))

    def _save_status(self, session_id: str, rule_id: str, outcome: RuleOutcome) -> None:
        """Persist the rule's last-run status, leaving every other stored field as it is"""
        status = RuleStatus(last_run_timestamp=self.clock(), result=outcome.result, message=outcome.message)
        try:
            self.repository.update_rule_status(rule_id, status)
        except IngestError as e:
            logger.error(f"Could not save status of rule {rule_id}: {e}")
            self.session_logger.log_entry(
                session_id, rule_id, 'ERROR', 'WARNING', f"Could not save rule status: {e}", error=e
            )

    def _finish_session(self, result: RunResult, rules: List[Rule], rule_count: int) -> None:
        status = result.status
        message = (
            f"Processed {rule_count} rule(s): {result.success_count} succeeded, "
            f"{result.error_count} failed, {result.skipped_count} skipped, "
            f"{result.cancelled_count} cancelled; {result.total_rows} rows in "
            f"{format_duration(result.elapsed_ms)}"
        )
        logger.info(f"Session {result.session_id} {status}: {message}")
        self.session_logger.log_entry(
            result.session_id, SESSION_RULE_ID, _SESSION_LEVELS[status], status, message,
            stats={
                'rows_processed': result.total_rows,
                'execution_time_ms': result.elapsed_ms,
                'metadata': {
                    'successCount': result.success_count,
                    'errorCount': result.error_count,
                    'skippedCount': result.skipped_count,
                    'cancelledCount': result.cancelled_count,
                },
            },
        )

        if self.notifier is not None:
            self.notifier.notify(collect_recipients(rules), result)
        self.session_logger.apply_retention()
