#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DocShift Core Package Initialization
Exports the pipeline building blocks for clean imports.
The orchestrator lives in core.migration (it depends on config).

Version: 1.0.0
"""

from .errors import (
    DocShiftError,
    ErrorCode,
    ConfigurationError,
    SourceError,
    ValidationError,
    ForeignKeyResolutionError,
    TransactionError,
    ConnectionError,
    SchemaError,
    BackupError,
    VerificationFailure,
    MigrationError,
)
from .validators import ValidationResult
from .statement_scheduler import StatementScheduler, StatementKind, ClassificationRule, schedule_script
from .transaction_manager import TransactionManager, TransactionHandle
from .legacy_source import LegacySource, load_source
from .backup_manager import BackupManager
from .checkpoint import CheckpointStore
from .verifier import Verifier, VerificationReport, expected_state

# Export everything
__all__ = [
    # Components
    'StatementScheduler',
    'StatementKind',
    'ClassificationRule',
    'schedule_script',
    'TransactionManager',
    'TransactionHandle',
    'LegacySource',
    'load_source',
    'BackupManager',
    'CheckpointStore',
    'Verifier',
    'VerificationReport',
    'expected_state',
    'ValidationResult',

    # Errors
    'DocShiftError',
    'ErrorCode',
    'ConfigurationError',
    'SourceError',
    'ValidationError',
    'ForeignKeyResolutionError',
    'TransactionError',
    'ConnectionError',
    'SchemaError',
    'BackupError',
    'VerificationFailure',
    'MigrationError',
]

# Version info
__version__ = '1.0.0'
__description__ = 'DocShift - legacy document store to relational database migration'
