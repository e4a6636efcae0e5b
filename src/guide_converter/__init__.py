"""Folder-to-guide HTML conversion pipeline."""

from .config import AppConfig, load_config
from .core import ConversionPipeline
from .jobs import RunScheduler
from .models import Manifest, RunRecord, RunStatus
from .store import RunStore
from .uploads import UploadStore

__all__ = [
    "AppConfig",
    "ConversionPipeline",
    "Manifest",
    "RunRecord",
    "RunScheduler",
    "RunStatus",
    "RunStore",
    "UploadStore",
    "load_config",
]
