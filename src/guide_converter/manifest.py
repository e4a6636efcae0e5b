from __future__ import annotations

import html
import json
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from .models import Manifest
from .utils import atomic_write, atomic_write_json


class OutputNameAllocator:
    """Hands out unique ``.html`` names in discovery order: ``x.html``, ``x (2).html``, ..."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._taken: set[str] = set()

    @staticmethod
    def base_name(relative_path: str) -> str:
        return Path(relative_path).stem.strip() or "file"

    def desired(self, relative_path: str) -> str:
        return f"{self.base_name(relative_path)}.html"

    def allocate(self, relative_path: str) -> str:
        base = self.base_name(relative_path)
        key = f"{base}.html"
        count = self._counts.get(key, 0)
        candidate = key if count == 0 else f"{base} ({count + 1}).html"
        while candidate in self._taken:
            count += 1
            candidate = f"{base} ({count + 1}).html"
        self._counts[key] = count + 1
        self._taken.add(candidate)
        return candidate


def error_placeholder_html(source_path: str, message: str) -> str:
    return (
        "<h2>Conversion failed</h2>\n"
        f"<p><strong>File:</strong> {html.escape(source_path)}</p>\n"
        f"<p><strong>Error:</strong> {html.escape(message)}</p>"
    )


def write_guide(guides_dir: Path, output_file: str, html: str) -> Path:
    target = guides_dir / output_file
    atomic_write(target, html)
    return target


def write_manifest(path: Path, manifest: Manifest) -> None:
    atomic_write_json(path, manifest.to_payload())


def read_manifest(path: Path) -> Manifest:
    return Manifest.from_dict(json.loads(path.read_text(encoding="utf-8")))


def create_archive(guides_dir: Path, archive_path: Path) -> Path:
    """Zip the generated guides flat, without folders or the manifest."""

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(archive_path, "w", compression=ZIP_DEFLATED) as archive:
        for file_path in sorted(guides_dir.iterdir(), key=lambda item: item.name):
            if file_path.is_file():
                archive.write(file_path, file_path.name)
    return archive_path


__all__ = [
    "OutputNameAllocator",
    "create_archive",
    "error_placeholder_html",
    "read_manifest",
    "write_guide",
    "write_manifest",
]
