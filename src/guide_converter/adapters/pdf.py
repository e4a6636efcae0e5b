from __future__ import annotations

from .base import BaseMarkitdownAdapter
from ..detection import DocumentType


class PDFAdapter(BaseMarkitdownAdapter):
    document_type = DocumentType.PDF
