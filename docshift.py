#!/usr/bin/env python3
"""
DocShift - Production Entry Point
This is the canonical way to use DocShift programmatically

Also supports command-line usage:
    python docshift.py run --source data/legacy.json --target sqlite:///activity.db
    python docshift.py --help
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from config.migration_config import MigrationConfig, load_config, mask_url
from core.migration import (
    MigrationOrchestrator,
    MigrationReport,
    ProgressSink,
    dry_run,
    migrate,
)
from core.verifier import VerificationReport
from extensions.plugins import create_adapter

logger = logging.getLogger(__name__)

DOCSHIFT_VERSION = "1.0.0"

__all__ = ['DocShift', 'connect', 'migrate', 'dry_run', 'DOCSHIFT_VERSION']


class DocShift:
    """
    Blessed API for DocShift

    Holds one open target store and runs migrations, verification and
    restores against it.

    Example:
        >>> from docshift import DocShift
        >>>
        >>> with DocShift("sqlite:///activity.db") as shift:
        ...     report = shift.migrate("data/legacy.json")
        ...     print(report.stats['processed_per_group'])
    """

    def __init__(self, target: Optional[str] = None, config: Optional[MigrationConfig] = None,
                 env_file: Optional[Union[str, Path]] = None, progress: Optional[ProgressSink] = None):
        self.config = config or load_config(env_file=env_file)
        self.target = target or self.config.get_db_url(include_password=True)
        self.progress = progress
        self.adapter = create_adapter(self.target, **self.config.adapter_options(self.target))
        logger.info(f"DocShift connected to {mask_url(self.target)}")

    def migrate(self, source_path: Union[str, Path], resume: bool = True) -> MigrationReport:
        orchestrator = MigrationOrchestrator(self.config, self.adapter, progress=self.progress)
        return orchestrator.migrate(source_path, resume=resume)

    def dry_run(self, source_path: Union[str, Path]) -> MigrationReport:
        return dry_run(source_path)

    def verify(self, source_path: Union[str, Path]) -> VerificationReport:
        return MigrationOrchestrator(self.config, self.adapter).verify_only(source_path)

    def restore(self, backup_path: Union[str, Path]) -> None:
        """Put the target store back to a snapshot taken by migrate()"""
        MigrationOrchestrator(self.config, self.adapter).restore_target(backup_path)

    def close(self):
        if self.adapter is not None:
            self.adapter.close()
            self.adapter = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def connect(target: Optional[str] = None, **kwargs) -> DocShift:
    """Open a DocShift session against target (default: DOCSHIFT_* settings)"""
    return DocShift(target, **kwargs)


def main():
    from tools.docshift_migrator import main as cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
