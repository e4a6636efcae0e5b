from __future__ import annotations

import json
from pathlib import Path

from .base import decode_bytes
from ..detection import DocumentType


class JSONAdapter:
    document_type = DocumentType.JSON

    def extract(self, source: Path) -> str:
        raw = decode_bytes(source.read_bytes())
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return raw
        return "```json\n" + json.dumps(parsed, indent=2, ensure_ascii=False) + "\n```"
