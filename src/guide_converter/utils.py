from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import AppConfig


@dataclass(slots=True)
class RunPaths:
    run_id: str
    base_dir: Path
    state_file: Path
    log_file: Path


@dataclass(slots=True)
class UploadPaths:
    upload_id: str
    base_dir: Path
    input_dir: Path
    output_root: Path


@dataclass(slots=True)
class OutputPaths:
    run_id: str
    base_dir: Path
    guides_dir: Path
    manifest_file: Path
    archive_file: Path


def generate_run_id(prefix: str = "run") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def run_paths(config: AppConfig, run_id: str) -> RunPaths:
    base = safe_join(config.runtime.runs_dir, run_id)
    return RunPaths(
        run_id=run_id,
        base_dir=base,
        state_file=base / config.runtime.state_file,
        log_file=base / config.runtime.log_file,
    )


def upload_paths(config: AppConfig, upload_id: str) -> UploadPaths:
    base = safe_join(config.runtime.uploads_dir, upload_id)
    return UploadPaths(
        upload_id=upload_id,
        base_dir=base,
        input_dir=base / "input",
        output_root=base / "output",
    )


def ensure_output_paths(config: AppConfig, upload_id: str, run_id: str) -> OutputPaths:
    base = safe_join(upload_paths(config, upload_id).output_root, run_id)
    guides = base / "guides"
    guides.mkdir(parents=True, exist_ok=True)
    return OutputPaths(
        run_id=run_id,
        base_dir=base,
        guides_dir=guides,
        manifest_file=base / "manifest.json",
        archive_file=base / "guides.zip",
    )


def safe_join(base_dir: Path, unsafe_relative: str) -> Path:
    """Join *unsafe_relative* onto *base_dir*, refusing paths that escape it."""

    normalized = unsafe_relative.replace("\\", "/").lstrip("/")
    if "\0" in normalized:
        raise ValueError("Invalid path")
    resolved_base = base_dir.resolve()
    candidate = (resolved_base / normalized).resolve()
    if candidate == resolved_base or resolved_base not in candidate.parents:
        raise ValueError("Invalid path")
    return candidate


def atomic_write(path: Path, data: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding=encoding) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


def atomic_write_json(path: Path, payload: Any) -> None:
    atomic_write(path, json.dumps(payload, indent=2, ensure_ascii=False))


def list_relative_files(root: Path) -> list[str]:
    """Return every file under *root* as a posix relative path, depth-first and sorted."""

    files: list[str] = []

    def _walk(directory: Path, prefix: str) -> None:
        for entry in sorted(directory.iterdir(), key=lambda item: item.name):
            relative = f"{prefix}{entry.name}"
            if entry.is_dir():
                _walk(entry, f"{relative}/")
            elif entry.is_file():
                files.append(relative)

    if root.is_dir():
        _walk(root, "")
    return files


def is_safe_file_name(name: str) -> bool:
    if not name:
        return False
    return not any(token in name for token in ("/", "\\", "\0")) and name not in {".", ".."}


def size_within_limit(size_bytes: int, max_mb: int) -> bool:
    return size_bytes <= max_mb * 1024 * 1024

