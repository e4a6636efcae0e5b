from __future__ import annotations

from enum import Enum
from pathlib import Path


class DocumentType(str, Enum):
    TEXT = "text"
    JSON = "json"
    PDF = "pdf"
    DOCX = "docx"
    HTML = "html"
    OTHER = "other"


EXTENSION_MAP: dict[str, DocumentType] = {
    ".md": DocumentType.TEXT,
    ".markdown": DocumentType.TEXT,
    ".txt": DocumentType.TEXT,
    ".log": DocumentType.TEXT,
    ".csv": DocumentType.TEXT,
    ".tsv": DocumentType.TEXT,
    ".json": DocumentType.JSON,
    ".pdf": DocumentType.PDF,
    ".docx": DocumentType.DOCX,
    ".html": DocumentType.HTML,
    ".htm": DocumentType.HTML,
}


def detect_document_type(path: Path) -> DocumentType:
    return EXTENSION_MAP.get(path.suffix.lower(), DocumentType.OTHER)
