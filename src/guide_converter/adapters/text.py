from __future__ import annotations

from pathlib import Path

from .base import decode_bytes
from ..detection import DocumentType


class TextAdapter:
    document_type = DocumentType.TEXT

    def extract(self, source: Path) -> str:
        return decode_bytes(source.read_bytes())
