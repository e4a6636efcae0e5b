from __future__ import annotations

from pathlib import Path

from .adapters import AdapterError, decode_bytes, get_adapter
from .detection import DocumentType, detect_document_type
from .executors import run_sync
from .ingestion import IngestionClient
from .logging import RunLogger, error_to_dict, get_logger


class ExtractionChain:
    """Turns any input file into Markdown text.

    The remote ingestion capability is tried first when it is configured.
    Its exhaustion is never fatal: local per-format adapters take over, and
    any adapter failure degrades to a raw UTF-8 decode.
    """

    def __init__(self, ingestion: IngestionClient | None = None) -> None:
        self._ingestion = ingestion

    async def to_markdown(self, path: Path, logger: RunLogger | None = None) -> str:
        log = logger or get_logger("extraction")
        if self._ingestion is None or not self._ingestion.configured:
            log.info("extraction: ingestion not configured; using local conversion")
            return await run_sync(self.local_to_markdown, path, log)
        try:
            return await self._ingestion.to_markdown(path, log)
        except Exception as exc:
            log.warn("extraction: ingestion failed; using local conversion fallback", error=error_to_dict(exc))
        return await run_sync(self.local_to_markdown, path, log)

    def local_to_markdown(self, path: Path, logger: RunLogger | None = None) -> str:
        log = logger or get_logger("extraction")
        document_type = detect_document_type(path)
        if document_type is DocumentType.OTHER:
            return decode_bytes(path.read_bytes())
        try:
            text = get_adapter(document_type).extract(path)
            if not text.strip():
                raise AdapterError(f"{document_type.value} extractor returned empty text")
            return text
        except Exception as exc:
            log.warn(
                "extraction: local extractor failed; falling back to utf8 decode",
                file_name=path.name,
                document_type=document_type.value,
                error=error_to_dict(exc),
            )
        return decode_bytes(path.read_bytes())


__all__ = ["ExtractionChain"]
