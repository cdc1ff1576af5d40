#!/usr/bin/env python3
"""
DocShift Error Hierarchy
Canonical exception classes for the migration engine.

Entry-level problems (ValidationError, ForeignKeyResolutionError and
TransactionError raised inside a single entry's unit of work) are caught by
the transformers and recorded in the run report. Everything else moves the
orchestrator to the Failed state.
"""

from enum import Enum


class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SOURCE_ERROR = "SOURCE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FOREIGN_KEY_ERROR = "FOREIGN_KEY_RESOLUTION_ERROR"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    BACKUP_ERROR = "BACKUP_ERROR"
    VERIFICATION_FAILURE = "VERIFICATION_FAILURE"
    MIGRATION_ERROR = "MIGRATION_ERROR"


class DocShiftError(Exception):
    """Base class for all DocShift exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            'code': self.code.value,
            'message': self.message,
            'details': self.details,
        }


class ConfigurationError(DocShiftError):
    """Raised when configuration values are missing or inconsistent"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class SourceError(DocShiftError):
    """Raised when the legacy document cannot be read or has the wrong shape"""
    def __init__(self, message: str, path: str = None):
        super().__init__(message, ErrorCode.SOURCE_ERROR, {'path': path})


class ValidationError(DocShiftError):
    """Raised when an entry key or required field is malformed"""
    def __init__(self, message: str, key: str = None, field: str = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, {'key': key, 'field': field})


class ForeignKeyResolutionError(DocShiftError):
    """Raised when a referenced parent row has not been migrated"""
    def __init__(self, message: str, table: str = None, reference: str = None):
        super().__init__(message, ErrorCode.FOREIGN_KEY_ERROR, {'table': table, 'reference': reference})


class TransactionError(DocShiftError):
    """Raised when the store rejects a write inside a unit of work"""
    def __init__(self, message: str, statement: str = None):
        super().__init__(message, ErrorCode.TRANSACTION_ERROR, {'statement': statement})


class ConnectionError(DocShiftError):
    """Raised when the target store cannot be reached at all"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.CONNECTION_ERROR, details)


class SchemaError(DocShiftError):
    """Raised when the target schema cannot be applied or confirmed"""
    def __init__(self, message: str, statement: str = None):
        super().__init__(message, ErrorCode.SCHEMA_ERROR, {'statement': statement})


class BackupError(DocShiftError):
    """Raised when a snapshot or restore operation fails"""
    def __init__(self, message: str, path: str = None):
        super().__init__(message, ErrorCode.BACKUP_ERROR, {'path': path})


class VerificationFailure(DocShiftError):
    """Raised when post-migration checks do not hold"""
    def __init__(self, message: str, failures: list = None):
        super().__init__(message, ErrorCode.VERIFICATION_FAILURE, {'failures': failures or []})
        self.failures = failures or []


class MigrationError(DocShiftError):
    """Raised when an entity group cannot start or the pipeline aborts"""
    def __init__(self, message: str, group: str = None, step: str = None):
        super().__init__(message, ErrorCode.MIGRATION_ERROR, {'group': group, 'step': step})
