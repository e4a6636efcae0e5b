from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse

from guide_converter.config import AppConfig
from guide_converter.executors import run_sync
from guide_converter.jobs import RunScheduler, download_url
from guide_converter.logging import get_logger, pretty_json_lines, tail_lines
from guide_converter.manifest import read_manifest
from guide_converter.models import RunRecord, RunStatus
from guide_converter.store import RunStore
from guide_converter.uploads import UploadStore
from guide_converter.utils import is_safe_file_name, safe_join

from ..dependencies import get_config, get_run_store, get_scheduler, get_upload_store
from ..schemas import CreateRunRequest

router = APIRouter(prefix="/api/runs", tags=["runs"])

_NO_STORE = {"cache-control": "no-store"}
MAX_LOG_TAIL = 2000

logger = get_logger("api.runs")


def _is_preview_name(name: str) -> bool:
    return is_safe_file_name(name) and name.lower().endswith(".html")


def _serialize_status(record: RunRecord, config: AppConfig) -> dict[str, Any]:
    current = record.current.to_payload() if record.current else None
    if record.status is RunStatus.COMPLETED:
        return {
            "run_id": record.run_id,
            "status": record.status.value,
            "progress": 100,
            "download_url": download_url(record.run_id),
            "current": current,
        }
    if record.status is RunStatus.FAILED:
        payload: dict[str, Any] = {
            "run_id": record.run_id,
            "status": record.status.value,
            "progress": record.progress,
            "error": record.error,
            "current": current,
        }
        if config.runtime.expose_debug_errors:
            payload["debug_error"] = record.debug_error
        return payload
    return {
        "run_id": record.run_id,
        "status": record.status.value,
        "progress": record.progress,
        "message": record.message,
        "current": current,
    }


async def _require_record(store: RunStore, run_id: str) -> RunRecord:
    record = await run_sync(store.get, run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return record


async def _ndjson(events: AsyncIterator[dict[str, Any]]) -> AsyncIterator[bytes]:
    async for event in events:
        yield (json.dumps(event, ensure_ascii=False) + "\n").encode("utf-8")


@router.post("", summary="Create a conversion run")
async def create_run(
    body: CreateRunRequest | None = Body(None),
    config: AppConfig = Depends(get_config),
    store: RunStore = Depends(get_run_store),
    uploads: UploadStore = Depends(get_upload_store),
    scheduler: RunScheduler = Depends(get_scheduler),
) -> Response:
    upload_id = body.upload_id if body else None
    if not upload_id:
        raise HTTPException(status_code=400, detail="upload_id is required")
    if not await run_sync(uploads.exists, upload_id):
        logger.warn("upload not found", upload_id=upload_id)
        raise HTTPException(status_code=404, detail="Upload not found")
    record = await run_sync(store.create, upload_id)
    logger.info("run queued", run_id=record.run_id, upload_id=upload_id)
    if config.runtime.inline_runs:
        return StreamingResponse(
            _ndjson(scheduler.stream_run(record.run_id)),
            media_type="application/x-ndjson",
            headers=_NO_STORE,
        )
    scheduler.ensure_started()
    return JSONResponse({"run_id": record.run_id})


@router.get("/{run_id}", summary="Retrieve run status")
async def get_run(
    run_id: str,
    config: AppConfig = Depends(get_config),
    store: RunStore = Depends(get_run_store),
) -> JSONResponse:
    record = await run_sync(store.get, run_id)
    if record is None:
        return JSONResponse(
            {"run_id": run_id, "status": RunStatus.FAILED.value, "progress": 0, "error": "Run not found"},
            status_code=404,
        )
    return JSONResponse(_serialize_status(record, config), headers=_NO_STORE)


@router.get("/{run_id}/download", summary="Download the guides archive")
async def download_run(run_id: str, store: RunStore = Depends(get_run_store)) -> FileResponse:
    record = await _require_record(store, run_id)
    if record.status is not RunStatus.COMPLETED or not record.download_path:
        raise HTTPException(status_code=400, detail="Run not completed")
    output = store.output_dir(record)
    if output is None or not (output / "guides.zip").is_file():
        raise HTTPException(status_code=404, detail="Archive not found")
    return FileResponse(
        output / "guides.zip",
        media_type="application/zip",
        filename=f"guides-{run_id}.zip",
        headers=_NO_STORE,
    )


@router.get("/{run_id}/preview", summary="List or fetch generated guides")
async def preview_run(
    run_id: str,
    file: str = Query("", description="Output file name from the manifest"),
    download: str = Query("", description="Set to 1 to download the fragment"),
    store: RunStore = Depends(get_run_store),
) -> Response:
    record = await _require_record(store, run_id)
    if record.status is not RunStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Run not completed")
    output = store.output_dir(record)
    if output is None:
        raise HTTPException(status_code=404, detail="Manifest not found")
    try:
        manifest = await run_sync(read_manifest, output / "manifest.json")
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Manifest not found") from exc
    guides = [entry for entry in manifest.guides if _is_preview_name(entry.output_file)]

    file = file.strip()
    if not file:
        return JSONResponse(
            {
                "run_id": run_id,
                "upload_id": manifest.upload_id,
                "guides": [entry.to_payload() for entry in guides],
            },
            headers=_NO_STORE,
        )
    if not _is_preview_name(file):
        raise HTTPException(status_code=400, detail="Invalid file")
    if file not in {entry.output_file for entry in guides}:
        raise HTTPException(status_code=404, detail="File not found")
    html = await run_sync(safe_join(output / "guides", file).read_text, "utf-8")
    headers = dict(_NO_STORE)
    if download.strip() == "1":
        headers["content-disposition"] = f'attachment; filename="{file}"'
    return Response(html, media_type="text/html; charset=utf-8", headers=headers)


@router.get("/{run_id}/log", summary="Tail the run log")
async def run_log(
    run_id: str,
    tail: int = Query(300, ge=0, le=MAX_LOG_TAIL),
    format: Literal["json", "text", "pretty"] = Query("json"),
    store: RunStore = Depends(get_run_store),
) -> Response:
    try:
        path = store.log_path(run_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid run id") from exc
    try:
        raw = await run_sync(path.read_text, "utf-8")
    except FileNotFoundError:
        raw = ""
    sliced = tail_lines(raw, tail) if tail else raw
    if format == "pretty":
        return PlainTextResponse(pretty_json_lines(sliced), headers=_NO_STORE)
    if format == "text":
        return PlainTextResponse(sliced, headers=_NO_STORE)
    return JSONResponse({"run_id": run_id, "tail": tail, "log": sliced}, headers=_NO_STORE)


__all__ = ["router"]
