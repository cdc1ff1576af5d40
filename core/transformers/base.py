#!/usr/bin/env python3
"""
DocShift Entity Transformer base

Every entity group runs the same per-entry loop:

1. validate the entry key and fields (core.validators); on failure record
   {key, reason} and move on
2. skip entries whose identity was already written in this run
3. resolve foreign keys and upsert the derived rows inside one transaction
   per entry; a ForeignKeyResolutionError or TransactionError rolls back
   that entry only and is recorded
4. count the entry as processed

One bad entry never aborts the batch. A collection with the wrong container
shape raises MigrationError before any entry is touched.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Tuple

from core.errors import ForeignKeyResolutionError, MigrationError, TransactionError, ValidationError
from core.transaction_manager import TransactionHandle, TransactionManager
from core.validators import ValidationResult

logger = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransformResult:
    """Outcome of one entity group"""
    group: str
    processed: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def add_error(self, key: Any, reason: str) -> None:
        self.errors.append({'key': str(key), 'reason': reason})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'group': self.group,
            'processed': self.processed,
            'skipped': self.skipped,
            'errors': list(self.errors),
        }


class EntityTransformer:
    """Base class; subclasses define entries/validate/identity/write"""

    group: str = ""
    source_key: str = ""
    container: type = dict

    def __init__(self, tx_manager: TransactionManager, clock: Optional[Callable[[], datetime]] = None):
        self.tx = tx_manager
        self.clock = clock or utc_now
        self._seen = set()

    def entries(self, collection) -> Iterator[Tuple[str, Any]]:
        for key, record in collection.items():
            yield key, (key, record)

    def validate(self, label: str, payload: Any) -> ValidationResult:
        raise NotImplementedError

    def identity(self, record: Dict[str, Any]) -> Hashable:
        raise NotImplementedError

    def write(self, handle: TransactionHandle, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def check_shape(self, collection) -> Any:
        if collection is None:
            return self.container()
        if not isinstance(collection, self.container):
            raise MigrationError(
                f"Collection '{self.source_key}' must be {self.container.__name__}, "
                f"got {type(collection).__name__}",
                group=self.group,
            )
        return collection

    def transform(self, collection) -> TransformResult:
        collection = self.check_shape(collection)
        result = TransformResult(group=self.group)
        logger.info(f"Migrating group '{self.group}' ({len(collection)} source entries)")

        for label, payload in self.entries(collection):
            try:
                record = self.validate(label, payload).unwrap(label)
            except ValidationError as e:
                result.add_error(label, e.message)
                logger.warning(f"[{self.group}] rejected {label}: {e.message}")
                continue

            identity = self.identity(record)
            if identity in self._seen:
                result.skipped += 1
                logger.debug(f"[{self.group}] skipped duplicate {label}")
                continue

            try:
                self.tx.with_transaction(lambda handle: self.write(handle, record))
            except (ForeignKeyResolutionError, TransactionError) as e:
                result.add_error(label, e.message)
                logger.warning(f"[{self.group}] failed {label}: {e.message}")
                continue

            self._seen.add(identity)
            result.processed += 1
            if result.processed % PROGRESS_LOG_INTERVAL == 0:
                logger.info(f"[{self.group}] {result.processed} entries migrated")

        logger.info(f"Group '{self.group}' done: processed={result.processed} "
                    f"skipped={result.skipped} errors={len(result.errors)}")
        return result

    def simulate(self, collection) -> TransformResult:
        """Validation and de-duplication only; nothing is written"""
        collection = self.check_shape(collection)
        result = TransformResult(group=self.group)
        seen = set()
        for label, payload in self.entries(collection):
            validation = self.validate(label, payload)
            if not validation.ok:
                result.add_error(label, validation.reason)
                continue
            identity = self.identity(validation.value)
            if identity in seen:
                result.skipped += 1
                continue
            seen.add(identity)
            result.processed += 1
        return result


def require_principal(handle: TransactionHandle, user_id: str) -> None:
    """Raise ForeignKeyResolutionError unless the principal row exists"""
    if handle.fetch_one("SELECT id FROM users WHERE id = %s", (user_id,)) is None:
        raise ForeignKeyResolutionError(f"principal not found: {user_id}", table='users', reference=user_id)


def resolve_role_id(handle: TransactionHandle, role_name: str) -> int:
    role_id = handle.fetch_value("SELECT id FROM roles WHERE name = %s", (role_name,))
    if role_id is None:
        raise ForeignKeyResolutionError(f"role not found: {role_name}", table='roles', reference=role_name)
    return role_id
