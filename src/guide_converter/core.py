"""Per-run conversion pipeline: extraction, rewrite, packaging."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from .config import AppConfig
from .errors import CriticalConversionError, NoInputFilesError
from .executors import run_sync
from .extraction import ExtractionChain
from .ingestion import IngestionClient
from .logging import RunLogger, error_to_dict, get_logger
from .manifest import OutputNameAllocator, create_archive, error_placeholder_html, write_guide, write_manifest
from .models import ConversionRecord, Manifest, ProgressUpdate, RunRecord
from .providers import build_providers
from .retry import SleepFn
from .rewrite import ProviderPreference, RewriteChain
from .utils import OutputPaths, ensure_output_paths, list_relative_files, safe_join, upload_paths

ProgressCallback = Callable[[ProgressUpdate], Awaitable[None]]

HEAD_PROGRESS = 5
BODY_PROGRESS = 80
ZIP_PROGRESS = 90


async def _ignore_progress(_: ProgressUpdate) -> None:
    return None


@dataclass(slots=True)
class _RunContext:
    record: RunRecord
    input_dir: Path
    output: OutputPaths
    files: list[str]
    preference: ProviderPreference
    names: OutputNameAllocator
    notify: ProgressCallback
    logger: RunLogger

    @property
    def total(self) -> int:
        return len(self.files)

    def progress_at(self, finished: int) -> int:
        return round(HEAD_PROGRESS + BODY_PROGRESS / self.total * finished)


class ConversionPipeline:
    def __init__(
        self,
        config: AppConfig,
        *,
        extractor: ExtractionChain | None = None,
        rewriter: RewriteChain | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        self._extractor = extractor or ExtractionChain(
            IngestionClient(
                config.ingestion,
                client=client,
                sleep=sleep,
                expose_errors=config.runtime.expose_provider_errors,
            )
        )
        self._rewriter = rewriter or RewriteChain(
            config.rewrite,
            build_providers(config, client=client),
            sleep=sleep,
        )

    async def run(
        self,
        record: RunRecord,
        on_progress: ProgressCallback | None = None,
        *,
        logger: RunLogger | None = None,
    ) -> Path:
        """Convert every uploaded file of *record* and return the archive path."""

        log = (logger or get_logger("pipeline", run_id=record.run_id)).bind(
            "pipeline", upload_id=record.upload_id
        )
        upload = upload_paths(self._config, record.upload_id)
        files = await run_sync(list_relative_files, upload.input_dir)
        if not files:
            raise NoInputFilesError(record.upload_id)
        output = await run_sync(ensure_output_paths, self._config, record.upload_id, record.run_id)
        log.info("pipeline: discovered input files", count=len(files), files=files)

        context = _RunContext(
            record=record,
            input_dir=upload.input_dir,
            output=output,
            files=files,
            preference=self._rewriter.new_preference(),
            names=OutputNameAllocator(),
            notify=on_progress or _ignore_progress,
            logger=log,
        )
        await context.notify(
            ProgressUpdate(
                progress=HEAD_PROGRESS,
                message="Reading files...",
                stage="reading",
                current_index=0,
                total_files=context.total,
            )
        )

        manifest = Manifest(run_id=record.run_id, upload_id=record.upload_id)
        for index, relative in enumerate(files, start=1):
            manifest.guides.append(await self._convert_one(context, index, relative))

        await context.notify(
            ProgressUpdate(
                progress=ZIP_PROGRESS,
                message="Creating zip...",
                stage="zipping",
                current_index=context.total,
                total_files=context.total,
            )
        )
        await run_sync(write_manifest, output.manifest_file, manifest)
        archive = await run_sync(create_archive, output.guides_dir, output.archive_file)
        log.info(
            "pipeline: archive created",
            archive=archive,
            outputs=[entry.output_file for entry in manifest.guides],
            errors=sum(1 for entry in manifest.guides if entry.status == "error"),
        )
        await context.notify(ProgressUpdate(progress=100, message="Done"))
        return archive

    async def _convert_one(self, context: _RunContext, index: int, relative: str) -> ConversionRecord:
        title = Path(relative).name
        output_file = context.names.allocate(relative)
        log = context.logger.bind("pipeline.file", source_path=relative, output_file=output_file)
        desired = context.names.desired(relative)
        if output_file != desired:
            log.warn("output name collision; applied suffix", desired=desired, output_file=output_file)

        await context.notify(
            ProgressUpdate(
                progress=context.progress_at(index - 1),
                message=f"Converting {title}",
                stage="converting",
                current_file=title,
                current_index=index,
                total_files=context.total,
            )
        )
        try:
            source = safe_join(context.input_dir, relative)
            markdown = await self._extractor.to_markdown(source, log)
            log.info("file: markdown ready", markdown_chars=len(markdown))
            html = await self._rewriter.to_html(
                title,
                markdown,
                context.preference,
                source=relative,
                logger=log,
            )
            await run_sync(write_guide, context.output.guides_dir, output_file, html)
            log.info("file: wrote output", html_chars=len(html))
            entry = ConversionRecord(source_path=relative, output_file=output_file, title=title, status="ok")
        except CriticalConversionError:
            log.error("pipeline: rewrite providers exhausted; failing run", file=relative)
            raise
        except Exception as exc:
            message = str(exc) or "Conversion failed"
            log.error("file: conversion failed; writing placeholder", error=error_to_dict(exc))
            await run_sync(
                write_guide,
                context.output.guides_dir,
                output_file,
                error_placeholder_html(relative, message),
            )
            entry = ConversionRecord(
                source_path=relative,
                output_file=output_file,
                title=title,
                status="error",
                error=message,
            )

        await context.notify(
            ProgressUpdate(
                progress=context.progress_at(index),
                message=f"Processed {title}",
                stage="writing",
                current_file=title,
                current_index=index,
                total_files=context.total,
            )
        )
        return entry


__all__ = ["ConversionPipeline", "ProgressCallback"]
