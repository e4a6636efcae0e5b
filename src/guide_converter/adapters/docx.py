from __future__ import annotations

from .base import BaseMarkitdownAdapter
from ..detection import DocumentType


class DOCXAdapter(BaseMarkitdownAdapter):
    document_type = DocumentType.DOCX
