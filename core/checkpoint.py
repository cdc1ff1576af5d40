#!/usr/bin/env python3
"""
Migration checkpoint

A small JSON file recording which entity groups of a run have committed.
A rerun with the same source checksum and target skips those groups;
anything else starts over. A completed run, a failed verification or a
store restore removes the file.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


def _fresh_state() -> Dict[str, Any]:
    return {
        "run_id": None,
        "source_checksum": None,
        "target": None,
        "completed_groups": [],
        "phase": None,
        "updated_at": None,
    }


class CheckpointStore:
    """Persisted progress of one migration"""

    def __init__(self, path: Union[str, Path], enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled
        self.state = _fresh_state()

    def _load_state(self) -> Dict[str, Any]:
        """Load migration state from checkpoint file"""
        if self.enabled and self.path.exists():
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    state = json.load(f)
                if isinstance(state, dict):
                    return {**_fresh_state(), **state}
                logger.warning(f"Ignoring malformed checkpoint file {self.path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load checkpoint file: {e}. Starting fresh.")
        return _fresh_state()

    def _save_state(self) -> None:
        """Save migration state to checkpoint file"""
        if not self.enabled:
            return
        self.state['updated_at'] = datetime.now(timezone.utc).isoformat()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(self.state, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to save checkpoint: {e}")

    def begin(self, run_id: str, source_checksum: str, target: Optional[str] = None) -> List[str]:
        """
        Start or resume a run.

        Returns the groups already completed for this exact source and
        target; an empty list when starting fresh.
        """
        previous = self._load_state()
        if (previous['source_checksum'] == source_checksum
                and previous['target'] == target
                and previous['completed_groups']):
            self.state = previous
            logger.info(f"Resuming run {previous['run_id']}: "
                        f"groups already complete: {', '.join(previous['completed_groups'])}")
            return list(previous['completed_groups'])

        if previous['source_checksum'] and previous['source_checksum'] != source_checksum:
            logger.info("Checkpoint belongs to a different source; starting fresh")

        self.state = _fresh_state()
        self.state['run_id'] = run_id
        self.state['source_checksum'] = source_checksum
        self.state['target'] = target
        self._save_state()
        return []

    @property
    def run_id(self) -> Optional[str]:
        return self.state.get('run_id')

    @property
    def completed_groups(self) -> List[str]:
        return list(self.state['completed_groups'])

    def mark_phase(self, phase: str) -> None:
        self.state['phase'] = phase
        self._save_state()

    def mark_group_complete(self, group: str) -> None:
        if group not in self.state['completed_groups']:
            self.state['completed_groups'].append(group)
        self._save_state()

    def clear(self) -> None:
        self.state = _fresh_state()
        if self.enabled and self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed checkpoint {self.path}")
