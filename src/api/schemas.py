from __future__ import annotations

from pydantic import BaseModel


class CreateRunRequest(BaseModel):
    upload_id: str | None = None


class SavedFileInfo(BaseModel):
    name: str
    relative_path: str
    size: int


class UploadResponse(BaseModel):
    upload_id: str
    files: list[SavedFileInfo]


class ProviderCheckResult(BaseModel):
    provider: str
    configured: bool
    ok: bool
    model: str | None = None
    error: str | None = None
