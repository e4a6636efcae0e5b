from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from guide_converter.errors import ConversionError
from guide_converter.executors import run_sync
from guide_converter.uploads import UploadStore

from ..dependencies import get_upload_store
from ..schemas import UploadResponse

router = APIRouter(prefix="/api", tags=["uploads"])

_STATUS_BY_CODE = {"SIZE_LIMIT": 413}


@router.post("/uploads", summary="Upload input files", response_model=UploadResponse)
async def create_upload(
    files: list[UploadFile] | None = File(None),
    store: UploadStore = Depends(get_upload_store),
) -> dict[str, Any]:
    if not files:
        raise HTTPException(status_code=400, detail="No files received")
    items = [(item.filename or "file", await item.read()) for item in files]
    try:
        result = await run_sync(store.save, items)
    except ConversionError as exc:
        raise HTTPException(status_code=_STATUS_BY_CODE.get(exc.code, 400), detail=str(exc)) from exc
    return result.to_payload()


__all__ = ["router"]
