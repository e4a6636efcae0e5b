"""Domain models for guide conversion runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

Stage = Literal["reading", "converting", "writing", "zipping"]
RecordStatus = Literal["ok", "error"]

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.COMPLETED, RunStatus.FAILED}


@dataclass(slots=True)
class CurrentItem:
    """The file a running run is working on."""

    file: str | None = None
    index: int | None = None
    total: int | None = None
    stage: Stage | None = None

    def to_payload(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: object) -> "CurrentItem | None":
        if not isinstance(data, dict):
            return None
        return cls(
            file=str(data["file"]) if data.get("file") is not None else None,
            index=int(data["index"]) if data.get("index") is not None else None,
            total=int(data["total"]) if data.get("total") is not None else None,
            stage=data.get("stage"),  # type: ignore[arg-type]
        )


@dataclass(slots=True)
class ProgressUpdate:
    """One progress event emitted by the pipeline."""

    progress: int
    message: str | None = None
    current_file: str | None = None
    current_index: int | None = None
    total_files: int | None = None
    stage: Stage | None = None

    def current_item(self) -> CurrentItem | None:
        if not (self.current_file or self.current_index or self.total_files or self.stage):
            return None
        return CurrentItem(
            file=self.current_file,
            index=self.current_index,
            total=self.total_files,
            stage=self.stage,
        )


@dataclass(slots=True)
class RunRecord:
    run_id: str
    upload_id: str
    status: RunStatus
    progress: int = 0
    message: str | None = None
    current: CurrentItem | None = None
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None
    failed_at: str | None = None
    download_path: str | None = None
    error: str | None = None
    debug_error: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["current"] = self.current.to_payload() if self.current else None
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunRecord":
        debug_error = data.get("debug_error")
        return cls(
            run_id=str(data["run_id"]),
            upload_id=str(data["upload_id"]),
            status=RunStatus(str(data.get("status", RunStatus.QUEUED.value))),
            progress=int(data.get("progress", 0) or 0),
            message=str(data["message"]) if data.get("message") is not None else None,
            current=CurrentItem.from_dict(data.get("current")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            completed_at=data.get("completed_at"),
            failed_at=data.get("failed_at"),
            download_path=data.get("download_path"),
            error=data.get("error"),
            debug_error=debug_error if isinstance(debug_error, dict) else None,
        )


@dataclass(slots=True)
class ConversionRecord:
    """Manifest entry describing the outcome for one source file."""

    source_path: str
    output_file: str
    title: str
    status: RecordStatus
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "source_path": self.source_path,
            "output_file": self.output_file,
            "title": self.title,
            "status": self.status,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversionRecord":
        status = "error" if data.get("status") == "error" else "ok"
        return cls(
            source_path=str(data.get("source_path", "")),
            output_file=str(data.get("output_file", "")),
            title=str(data.get("title", "")),
            status=status,
            error=str(data["error"]) if data.get("error") is not None else None,
        )


@dataclass(slots=True)
class Manifest:
    run_id: str
    upload_id: str
    guides: list[ConversionRecord] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "upload_id": self.upload_id,
            "guides": [record.to_payload() for record in self.guides],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Manifest":
        guides = data.get("guides")
        return cls(
            run_id=str(data.get("run_id", "")),
            upload_id=str(data.get("upload_id", "")),
            guides=[ConversionRecord.from_dict(item) for item in guides if isinstance(item, dict)]
            if isinstance(guides, list)
            else [],
        )


__all__ = [
    "ConversionRecord",
    "CurrentItem",
    "Manifest",
    "ProgressUpdate",
    "RunRecord",
    "RunStatus",
    "Stage",
    "utc_now",
]
