#!/usr/bin/env python3
"""
DocShift Verifier
=================

Post-migration checks, in order:

1. row-count parity: each target table holds exactly as many rows as the
   source has migratable entries (valid, de-duplicated, with resolvable
   parents)
2. aggregate-sum parity: SUM(user_activities.total_time_ms) equals the
   summed totalTime of the valid source principals, within
   sum_tolerance_ms (0 means exact)
3. referential completeness: no child row points at a missing parent

Expected values are derived from the legacy document with the same
validators the transformers use. The counts therefore assume the target
only holds rows written from this source (a fresh store, or earlier runs
of the same document).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List

from core.errors import VerificationFailure
from core.transaction_manager import TransactionManager
from core.validators import (
    iter_forum_messages,
    iter_reset_records,
    validate_activity_event,
    validate_afk_entry,
    validate_forum_message,
    validate_reset_entry,
    validate_role_entry,
    validate_user_entry,
    validate_voice_mapping,
)

logger = logging.getLogger(__name__)

ORPHAN_QUERIES = {
    'user_activities.user_id': (
        "SELECT COUNT(*) AS count FROM user_activities c "
        "LEFT JOIN users p ON p.id = c.user_id WHERE p.id IS NULL"
    ),
    'afk_status.user_id': (
        "SELECT COUNT(*) AS count FROM afk_status c "
        "LEFT JOIN users p ON p.id = c.user_id WHERE p.id IS NULL"
    ),
    'activity_events.user_id': (
        "SELECT COUNT(*) AS count FROM activity_events c "
        "LEFT JOIN users p ON p.id = c.user_id WHERE p.id IS NULL"
    ),
    'role_reset_history.role_id': (
        "SELECT COUNT(*) AS count FROM role_reset_history c "
        "LEFT JOIN roles p ON p.id = c.role_id WHERE p.id IS NULL"
    ),
}


@dataclass
class CheckResult:
    check: str
    entity: str
    expected: Any
    actual: Any
    passed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VerificationReport:
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> List[CheckResult]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'passed': self.passed,
            'checks': [check.to_dict() for check in self.checks],
        }


def _mapping(document: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = document.get(name)
    return value if isinstance(value, dict) else {}


def expected_state(document: Dict[str, Any]) -> Dict[str, Any]:
    """Row counts and totals the target must hold after migrating document"""
    users = {}
    for key, record in _mapping(document, 'user_activity').items():
        result = validate_user_entry(key, record)
        if result.ok:
            users.setdefault(result.value['id'], result.value)

    roles = {}
    resets = set()
    for key, record in _mapping(document, 'role_config').items():
        result = validate_role_entry(key, record)
        if result.ok and result.value['name'] not in roles:
            roles[result.value['name']] = result.value
            if result.value['reset_time'] is not None:
                resets.add((result.value['name'], result.value['reset_time']))

    for _label, key, record in iter_reset_records(_mapping(document, 'reset_history')):
        result = validate_reset_entry(key, record)
        if result.ok and result.value['role_name'] in roles:
            resets.add((result.value['role_name'], result.value['reset_timestamp']))

    events = set()
    logs = document.get('activity_logs')
    for record in logs if isinstance(logs, list) else []:
        result = validate_activity_event(record)
        if result.ok and result.value['user_id'] in users:
            events.add(result.value['event_key'])

    afk = set()
    for key, record in _mapping(document, 'afk_status').items():
        result = validate_afk_entry(key, record)
        if result.ok and result.value['user_id'] in users:
            afk.add((result.value['user_id'], result.value['afk_start']))

    messages = set()
    for _label, thread_id, message_type, message_id in iter_forum_messages(_mapping(document, 'forum_messages')):
        result = validate_forum_message(thread_id, message_type, message_id)
        if result.ok:
            messages.add((result.value['thread_id'], result.value['message_id']))

    mappings = set()
    for key, record in _mapping(document, 'voice_channel_mappings').items():
        result = validate_voice_mapping(key, record)
        if result.ok:
            mappings.add(result.value['voice_channel_id'])

    return {
        'row_counts': {
            'users': len(users),
            'user_activities': len(users),
            'roles': len(roles),
            'role_reset_history': len(resets),
            'activity_events': len(events),
            'afk_status': len(afk),
            'forum_messages': len(messages),
            'voice_channel_mappings': len(mappings),
        },
        'total_time_ms': sum(user['total_time_ms'] for user in users.values()),
    }


class Verifier:
    """Compare the migrated store against its legacy source"""

    def __init__(self, tx_manager: TransactionManager, sum_tolerance_ms: float = 0, max_workers: int = 1):
        if sum_tolerance_ms < 0:
            raise ValueError("sum_tolerance_ms must be >= 0")
        self.tx = tx_manager
        self.sum_tolerance_ms = sum_tolerance_ms
        self.max_workers = max_workers

    def _count(self, sql: str) -> int:
        return int(self.tx.query_value(sql, default=0) or 0)

    def _count_all(self, queries: Dict[str, str]) -> Dict[str, int]:
        # SQLite shares one connection, so only pooled stores fan out
        if self.max_workers > 1 and self.tx.dialect != 'sqlite':
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {name: pool.submit(self._count, sql) for name, sql in queries.items()}
                return {name: future.result() for name, future in futures.items()}
        return {name: self._count(sql) for name, sql in queries.items()}

    def run_checks(self, document: Dict[str, Any]) -> VerificationReport:
        expected = expected_state(document)
        report = VerificationReport()

        count_queries = {
            table: f"SELECT COUNT(*) AS count FROM {table}"
            for table in expected['row_counts']
        }
        actual_counts = self._count_all(count_queries)
        for table, expected_count in expected['row_counts'].items():
            report.checks.append(CheckResult(
                check='row_count',
                entity=table,
                expected=expected_count,
                actual=actual_counts[table],
                passed=actual_counts[table] == expected_count,
            ))

        actual_total = int(self.tx.query_value(
            "SELECT COALESCE(SUM(total_time_ms), 0) AS total FROM user_activities", default=0) or 0)
        report.checks.append(CheckResult(
            check='sum',
            entity='user_activities.total_time_ms',
            expected=expected['total_time_ms'],
            actual=actual_total,
            passed=abs(actual_total - expected['total_time_ms']) <= self.sum_tolerance_ms,
        ))

        orphans = self._count_all(ORPHAN_QUERIES)
        for reference, count in orphans.items():
            report.checks.append(CheckResult(
                check='orphans',
                entity=reference,
                expected=0,
                actual=count,
                passed=count == 0,
            ))

        for failure in report.failures:
            logger.error(f"Verification failed: {failure.check} {failure.entity} "
                         f"expected={failure.expected} actual={failure.actual}")
        if report.passed:
            logger.info(f"Verification passed ({len(report.checks)} checks)")
        return report

    def verify(self, document: Dict[str, Any]) -> VerificationReport:
        """Run all checks; raise VerificationFailure if any fails"""
        report = self.run_checks(document)
        if not report.passed:
            summary = ", ".join(
                f"{failure.check}:{failure.entity} expected {failure.expected} got {failure.actual}"
                for failure in report.failures
            )
            raise VerificationFailure(f"Verification failed: {summary}",
                                      failures=[failure.to_dict() for failure in report.failures])
        return report
