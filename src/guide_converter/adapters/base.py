from __future__ import annotations

from pathlib import Path
from typing import Protocol

from ..detection import DocumentType


class AdapterError(RuntimeError):
    """Raised when a local extractor cannot produce usable text."""


class Adapter(Protocol):
    document_type: DocumentType

    def extract(self, source: Path) -> str:  # pragma: no cover - interface
        ...


def decode_bytes(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace")


class BaseMarkitdownAdapter:
    document_type: DocumentType

    def __init__(self) -> None:
        try:
            from markitdown import MarkItDown
        except ModuleNotFoundError as exc:  # pragma: no cover - import guard
            raise RuntimeError("markitdown dependency is required for PDF/DOCX adapters") from exc

        self._converter = MarkItDown()

    def extract(self, source: Path) -> str:
        result = self._converter.convert(str(source))
        if isinstance(result, str):
            text = result
        elif hasattr(result, "text_content"):
            text = str(result.text_content or "")
        else:
            raise AdapterError("Unsupported markitdown return type")
        text = text.strip()
        if not text:
            raise AdapterError(f"{self.document_type.value} extractor returned empty text")
        return text
