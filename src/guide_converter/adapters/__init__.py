from __future__ import annotations

from functools import lru_cache
from typing import Dict, Type

from .base import Adapter, AdapterError, BaseMarkitdownAdapter, decode_bytes
from .docx import DOCXAdapter
from .html import HTMLAdapter, html_to_text
from .pdf import PDFAdapter
from .structured import JSONAdapter
from .text import TextAdapter
from ..detection import DocumentType

_ADAPTER_CLASSES: Dict[DocumentType, Type[Adapter]] = {
    DocumentType.TEXT: TextAdapter,
    DocumentType.JSON: JSONAdapter,
    DocumentType.PDF: PDFAdapter,
    DocumentType.DOCX: DOCXAdapter,
    DocumentType.HTML: HTMLAdapter,
}


@lru_cache(maxsize=len(_ADAPTER_CLASSES))
def get_adapter(document_type: DocumentType) -> Adapter:
    adapter_cls = _ADAPTER_CLASSES.get(document_type)
    if not adapter_cls:
        raise KeyError(f"No adapter registered for {document_type}")
    return adapter_cls()  # type: ignore[return-value]


__all__ = [
    "Adapter",
    "AdapterError",
    "BaseMarkitdownAdapter",
    "decode_bytes",
    "get_adapter",
    "html_to_text",
]
