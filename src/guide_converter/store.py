from __future__ import annotations

import json
import threading
from pathlib import Path

from .config import AppConfig
from .errors import SUPPORT_MESSAGE, RunNotFoundError
from .logging import RunLogger, error_to_dict, get_logger
from .models import ProgressUpdate, RunRecord, RunStatus, utc_now
from .utils import RunPaths, atomic_write_json, generate_run_id, run_paths, safe_join, upload_paths

# Running runs never report 100; that value is reserved for completion.
MAX_IN_FLIGHT_PROGRESS = 99


class RunStore:
    """File-backed run state, one ``state.json`` per run directory."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._root = config.runtime.runs_dir
        self._lock = threading.Lock()
        self._root.mkdir(parents=True, exist_ok=True)

    def paths(self, run_id: str) -> RunPaths:
        return run_paths(self._config, run_id)

    def log_path(self, run_id: str) -> Path:
        return self.paths(run_id).log_file

    def logger(self, run_id: str, scope: str, **fields: object) -> RunLogger:
        """Logger bound to *run_id*, mirrored to the run log when enabled."""

        log_file = self.log_path(run_id) if self._config.runtime.run_logs_to_file else None
        return get_logger(scope, log_file, run_id=run_id, **fields)

    def output_dir(self, record: RunRecord) -> Path | None:
        try:
            return safe_join(upload_paths(self._config, record.upload_id).output_root, record.run_id)
        except ValueError:
            return None

    def create(self, upload_id: str) -> RunRecord:
        now = utc_now()
        record = RunRecord(
            run_id=generate_run_id("run"),
            upload_id=upload_id,
            status=RunStatus.QUEUED,
            progress=0,
            message="Queued",
            created_at=now,
            updated_at=now,
        )
        self.write(record)
        return record

    def write(self, record: RunRecord) -> None:
        atomic_write_json(self.paths(record.run_id).state_file, record.to_payload())

    def get(self, run_id: str) -> RunRecord | None:
        try:
            path = self.paths(run_id).state_file
        except ValueError:
            return None
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return RunRecord.from_dict(data)

    def read(self, run_id: str) -> RunRecord:
        record = self.get(run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return record

    def list_run_ids(self) -> list[str]:
        """Run ids in creation order; ids carry an epoch-ms prefix so name order suffices."""

        if not self._root.exists():
            return []
        return sorted(entry.name for entry in self._root.iterdir() if entry.is_dir())

    def mark_running(self, run_id: str) -> RunRecord | None:
        with self._lock:
            record = self.read(run_id)
            if record.status is not RunStatus.QUEUED:
                return None
            record.status = RunStatus.RUNNING
            record.progress = max(0, record.progress)
            record.message = "Starting..."
            record.updated_at = utc_now()
            self.write(record)
            return record

    def update_progress(self, run_id: str, update: ProgressUpdate) -> RunRecord | None:
        with self._lock:
            record = self.read(run_id)
            if record.status is not RunStatus.RUNNING:
                return None
            value = max(0, min(int(update.progress), MAX_IN_FLIGHT_PROGRESS))
            record.progress = max(record.progress, value)
            if update.message is not None:
                record.message = update.message
            current = update.current_item()
            if current is not None:
                record.current = current
            record.updated_at = utc_now()
            self.write(record)
            return record

    def mark_completed(self, run_id: str, download_path: Path) -> RunRecord:
        with self._lock:
            record = self.read(run_id)
            now = utc_now()
            record.status = RunStatus.COMPLETED
            record.progress = 100
            record.message = "Complete"
            record.download_path = str(download_path)
            record.updated_at = now
            record.completed_at = now
            record.error = None
            record.debug_error = None
            self.write(record)
            return record

    def mark_failed(self, run_id: str, exc: BaseException) -> RunRecord:
        with self._lock:
            record = self.read(run_id)
            now = utc_now()
            record.status = RunStatus.FAILED
            record.progress = min(record.progress, MAX_IN_FLIGHT_PROGRESS)
            record.message = None
            record.error = SUPPORT_MESSAGE
            record.debug_error = error_to_dict(exc)
            record.updated_at = now
            record.failed_at = now
            self.write(record)
            return record


__all__ = ["MAX_IN_FLIGHT_PROGRESS", "RunStore"]
