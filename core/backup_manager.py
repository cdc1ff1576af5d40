#!/usr/bin/env python3
"""
DocShift Backup Manager
=======================

Snapshots taken before any mutation, and the matching restores:

- snapshot(source_path): byte-for-byte copy of the legacy document
- snapshot_target(adapter): full copy of the relational store when it
  already holds tables (pg_dump for PostgreSQL, the online backup API for
  SQLite)
- restore(backup_path, target): put either one back

Every snapshot gets a JSON sidecar (<backup>.meta.json) with its kind,
creation time, checksum and, for stores, per-table row counts. Backups are
never deleted or overwritten by this module.

Usage:
    manager = BackupManager("backups")
    source_backup = manager.snapshot("data/legacy.json")
    target_backup = manager.snapshot_target(adapter)
    ...
    manager.restore(target_backup, adapter)
"""

import json
import logging
import os
import shutil
import sqlite3
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.errors import BackupError
from core.legacy_source import file_checksum

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".meta.json"


class BackupManager:
    """Create, list and restore pre-migration snapshots"""

    def __init__(self, backup_dir: Union[str, Path] = "backups"):
        self.backup_dir = Path(backup_dir)

    @staticmethod
    def _stamp() -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

    def _unique_path(self, base_name: str, suffix: str) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        candidate = self.backup_dir / f"{base_name}{suffix}"
        counter = 1
        while candidate.exists():
            candidate = self.backup_dir / f"{base_name}-{counter}{suffix}"
            counter += 1
        return candidate

    def _write_metadata(self, backup_path: Path, metadata: Dict[str, Any]) -> None:
        metadata = {
            'backup': backup_path.name,
            'created_at': datetime.now(timezone.utc).isoformat(),
            **metadata,
        }
        sidecar = backup_path.with_name(backup_path.name + METADATA_SUFFIX)
        with open(sidecar, 'w', encoding='utf-8') as f:
            json.dump(metadata, f, indent=2)

    def read_metadata(self, backup_path: Union[str, Path]) -> Optional[Dict[str, Any]]:
        sidecar = Path(str(backup_path) + METADATA_SUFFIX)
        if not sidecar.exists():
            return None
        with open(sidecar, 'r', encoding='utf-8') as f:
            return json.load(f)

    # ------------------------------------------------------------------
    # Legacy document
    # ------------------------------------------------------------------

    def snapshot(self, source_path: Union[str, Path]) -> Path:
        """Copy the legacy document to a timestamped path"""
        source = Path(source_path)
        if not source.is_file():
            raise BackupError(f"Cannot snapshot missing file: {source}", path=str(source))

        destination = self._unique_path(f"{source.stem}-backup-{self._stamp()}", source.suffix or ".json")
        try:
            shutil.copy2(source, destination)
        except OSError as e:
            raise BackupError(f"Failed to copy {source} to {destination}: {e}", path=str(destination)) from e

        checksum = file_checksum(destination)
        if checksum != file_checksum(source):
            raise BackupError(f"Backup checksum mismatch for {destination}", path=str(destination))

        self._write_metadata(destination, {
            'kind': 'source',
            'source': str(source.resolve()),
            'checksum': checksum,
            'size_bytes': destination.stat().st_size,
        })
        logger.info(f"Legacy source backed up to {destination}")
        return destination

    # ------------------------------------------------------------------
    # Target store
    # ------------------------------------------------------------------

    def snapshot_target(self, adapter) -> Optional[Path]:
        """Preserve the relational store; None when it holds no tables yet"""
        tables = adapter.get_tables()
        if not tables:
            logger.info("Target store has no tables; no target snapshot needed")
            return None

        row_counts = {table: adapter.count_rows(table) for table in tables}
        stamp = self._stamp()

        if adapter.dialect == 'sqlite':
            destination = self._unique_path(f"target-backup-{stamp}", ".sqlite3")
            self._dump_sqlite(adapter, destination)
        elif adapter.dialect == 'postgresql':
            destination = self._unique_path(f"target-backup-{stamp}", ".sql")
            self._dump_postgresql(adapter, destination)
        else:
            raise BackupError(f"Unsupported target dialect for backup: {adapter.dialect}")

        self._write_metadata(destination, {
            'kind': 'target',
            'dialect': adapter.dialect,
            'target': adapter.describe(),
            'checksum': file_checksum(destination),
            'table_row_counts': row_counts,
        })
        logger.info(f"Target store backed up to {destination} ({sum(row_counts.values())} rows)")
        return destination

    def _dump_sqlite(self, adapter, destination: Path) -> None:
        target = sqlite3.connect(str(destination))
        try:
            with adapter.get_connection() as (connection, _):
                connection.backup(target)
        except sqlite3.Error as e:
            raise BackupError(f"SQLite backup failed: {e}", path=str(destination)) from e
        finally:
            target.close()

    def _run_client(self, command: List[str], adapter, path: Path) -> None:
        env = {**os.environ, **adapter.config.to_environment()}
        try:
            subprocess.run(command, env=env, check=True, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise BackupError(f"{command[0]} not found on PATH", path=str(path)) from e
        except subprocess.CalledProcessError as e:
            raise BackupError(f"{command[0]} failed: {(e.stderr or '').strip()}", path=str(path)) from e

    def _dump_postgresql(self, adapter, destination: Path) -> None:
        self._run_client(
            ['pg_dump', '--clean', '--if-exists', '--format=plain', '--no-owner', '--file', str(destination)],
            adapter, destination,
        )

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, backup_path: Union[str, Path], target) -> Optional[Path]:
        """
        Restore a snapshot.

        target is either a file path (legacy document) or a store adapter.
        For a file target the current file is kept as
        <name>.rollback-<stamp>.bak and that path is returned.
        """
        backup = Path(backup_path)
        if not backup.is_file():
            raise BackupError(f"Backup not found: {backup}", path=str(backup))

        if isinstance(target, (str, Path)):
            return self._restore_file(backup, Path(target))

        if target.dialect == 'sqlite':
            self._restore_sqlite(backup, target)
        elif target.dialect == 'postgresql':
            self._run_client(
                ['psql', '--quiet', '--set', 'ON_ERROR_STOP=1', '--single-transaction', '--file', str(backup)],
                target, backup,
            )
        else:
            raise BackupError(f"Unsupported target dialect for restore: {target.dialect}")

        logger.info(f"Target store restored from {backup}")
        return None

    def _restore_file(self, backup: Path, destination: Path) -> Optional[Path]:
        preserved = None
        try:
            if destination.exists():
                preserved = destination.with_name(f"{destination.name}.rollback-{self._stamp()}.bak")
                shutil.copy2(destination, preserved)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(backup, destination)
        except OSError as e:
            raise BackupError(f"Failed to restore {destination}: {e}", path=str(backup)) from e

        logger.info(f"Restored {destination} from {backup}")
        return preserved

    def _restore_sqlite(self, backup: Path, adapter) -> None:
        source = sqlite3.connect(str(backup))
        try:
            with adapter.get_connection() as (connection, _):
                source.backup(connection)
        except sqlite3.Error as e:
            raise BackupError(f"SQLite restore failed: {e}", path=str(backup)) from e
        finally:
            source.close()

    def list_backups(self) -> List[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(
            path for path in self.backup_dir.iterdir()
            if path.is_file() and not path.name.endswith(METADATA_SUFFIX)
        )
