"""
Archive of finished workflow runs.

Runs are evicted from memory some time after they finish; an archive keeps
their final snapshot so status queries still answer afterwards.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from workflow_models import Run

logger = logging.getLogger(__name__)


class RunArchive(Protocol):
    """
    Abstract interface for run storage.
    """

    def save(self, run: Run) -> None:
        """Persist the terminal snapshot of a run."""
        ...

    def load(self, run_id: str) -> Optional[Run]:
        """Return the archived run, or None."""
        ...


class JSONRunArchive:
    """
    JSON-based implementation of RunArchive.

    One JSON file per run plus an append-only JSONL summary log.
    """

    def __init__(self, output_dir: str = "output/runs"):
        """
        Initialize the archive.

        Args:
            output_dir: Directory for archived runs
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.summary_log_file = self.output_dir / "runs.jsonl"

    def _run_file(self, run_id: str) -> Path:
        safe_id = run_id.replace("/", "_").replace("..", "_")
        return self.output_dir / f"{safe_id}.json"

    def save(self, run: Run) -> None:
        data = run.to_json_dict()
        with open(self._run_file(run.id), 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

        summary = {
            'id': run.id,
            'status': data['status'],
            'startTime': run.start_time,
            'endTime': run.end_time,
            'completedNodes': len(run.completed_nodes),
            'error': run.error,
        }
        with open(self.summary_log_file, 'a', encoding='utf-8') as f:
            f.write(json.dumps(summary, ensure_ascii=False) + '\n')

    def load(self, run_id: str) -> Optional[Run]:
        path = self._run_file(run_id)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return Run.model_validate(json.load(f))
        except Exception as e:
            logger.warning(f"Could not load archived run {run_id}: {e}")
            return None
