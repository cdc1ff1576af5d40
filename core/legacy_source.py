#!/usr/bin/env python3
"""
Legacy document loader

The legacy store is a single JSON document of named collections. It is read
once, fully, into memory; the checksum ties checkpoints and backups to the
exact bytes that were migrated.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from core.errors import SourceError

logger = logging.getLogger(__name__)

REQUIRED_COLLECTIONS = ('user_activity',)


@dataclass
class LegacySource:
    path: Path
    document: Dict[str, Any]
    checksum: str
    size_bytes: int

    def collection(self, name: str, default=None) -> Any:
        return self.document.get(name, default)


def file_checksum(path: Union[str, Path]) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as handle:
        for chunk in iter(lambda: handle.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


def load_source(path: Union[str, Path]) -> LegacySource:
    """Read and structurally check the legacy document"""
    source_path = Path(path)
    if not source_path.is_file():
        raise SourceError(f"Legacy source not found: {source_path}", path=str(source_path))

    try:
        raw = source_path.read_bytes()
    except OSError as e:
        raise SourceError(f"Cannot read legacy source: {e}", path=str(source_path)) from e

    try:
        document = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SourceError(f"Legacy source is not valid JSON: {e}", path=str(source_path)) from e

    if not isinstance(document, dict):
        raise SourceError("Legacy source must be a JSON object of collections", path=str(source_path))

    missing = [name for name in REQUIRED_COLLECTIONS if name not in document]
    if missing:
        raise SourceError(f"Legacy source is missing required collections: {', '.join(missing)}",
                          path=str(source_path))

    logger.info(f"Loaded legacy source {source_path} ({len(raw)} bytes, "
                f"collections: {', '.join(sorted(document))})")
    return LegacySource(
        path=source_path,
        document=document,
        checksum=hashlib.sha256(raw).hexdigest(),
        size_bytes=len(raw),
    )
