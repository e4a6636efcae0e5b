from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .config import AppConfig
from .errors import ConversionError, UploadNotFoundError
from .logging import get_logger
from .utils import UploadPaths, generate_run_id, list_relative_files, safe_join, size_within_limit, upload_paths


@dataclass(slots=True)
class SavedFile:
    name: str
    relative_path: str
    size: int

    def to_payload(self) -> dict[str, object]:
        return {"name": self.name, "relative_path": self.relative_path, "size": self.size}


@dataclass(slots=True)
class UploadResult:
    upload_id: str
    files: list[SavedFile] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {"upload_id": self.upload_id, "files": [item.to_payload() for item in self.files]}


class UploadStore:
    """Writes uploaded files under ``uploads/<upload_id>/input``."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._logger = get_logger("uploads")

    def paths(self, upload_id: str) -> UploadPaths:
        return upload_paths(self._config, upload_id)

    def exists(self, upload_id: str) -> bool:
        try:
            return self.paths(upload_id).input_dir.is_dir()
        except ValueError:
            return False

    def require(self, upload_id: str) -> UploadPaths:
        if not self.exists(upload_id):
            raise UploadNotFoundError(upload_id)
        return self.paths(upload_id)

    def save(self, files: Iterable[tuple[str, bytes]]) -> UploadResult:
        items = list(files)
        if not items:
            raise ConversionError("EMPTY_UPLOAD", "No files received")
        limit = self._config.runtime.max_file_size_mb
        for relative, payload in items:
            if not size_within_limit(len(payload), limit):
                raise ConversionError("SIZE_LIMIT", f"File exceeds configured limit: {relative}")

        result = UploadResult(upload_id=generate_run_id("upload"))
        input_dir = self.paths(result.upload_id).input_dir
        input_dir.mkdir(parents=True, exist_ok=True)
        for relative, payload in items:
            relative = relative or "file"
            try:
                target = safe_join(input_dir, relative)
            except ValueError as exc:
                raise ConversionError("INVALID_PATH", f"Invalid upload path: {relative}") from exc
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)
            result.files.append(
                SavedFile(name=PurePosixPath(relative.replace("\\", "/")).name, relative_path=relative, size=len(payload))
            )
        self._logger.info(
            "upload complete",
            upload_id=result.upload_id,
            files=[{"relative_path": item.relative_path, "size": item.size} for item in result.files],
        )
        return result

    def save_folder(self, folder: Path) -> UploadResult:
        """Copy every file under *folder*, keeping relative paths."""

        return self.save(
            (relative, (folder / relative).read_bytes()) for relative in list_relative_files(folder)
        )


__all__ = ["SavedFile", "UploadResult", "UploadStore"]
