from __future__ import annotations

import re
from typing import Protocol

from ..config import ProviderName
from ..logging import RunLogger

SYSTEM_PROMPT = (
    "You rewrite internal guides into clean, modern HTML for non-technical users. "
    "Output only an HTML fragment (no <html>, no <head>, no <body>). "
    "Use short sections, clear headings, and simple lists. "
    "Do not include code fences. Do not include markdown."
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_BODY_RE = re.compile(r"<body[^>]*>(.*?)</body>", re.IGNORECASE | re.DOTALL)
_HTML_RE = re.compile(r"<html[^>]*>(.*?)</html>", re.IGNORECASE | re.DOTALL)


class RewriteProvider(Protocol):
    name: ProviderName

    @property
    def configured(self) -> bool:  # pragma: no cover - interface
        ...

    @property
    def max_attempts(self) -> int:  # pragma: no cover - interface
        ...

    async def rewrite(self, title: str, markdown: str, logger: RunLogger) -> str:  # pragma: no cover - interface
        ...


def build_prompt(title: str, markdown: str) -> str:
    return (
        f"Title: {title}\n\n"
        "Convert the content below into polished HTML that follows a consistent guide template.\n\n"
        "Content:\n"
        f"{markdown}"
    )


def normalize_html_fragment(text: str) -> str:
    """Reduce model output to a bare fragment; an empty result means unusable output."""

    trimmed = text.strip()
    if not trimmed:
        return ""
    fenced = _FENCE_RE.match(trimmed)
    if fenced:
        trimmed = fenced.group(1).strip()
    body = _BODY_RE.search(trimmed)
    if body and body.group(1).strip():
        return body.group(1).strip()
    document = _HTML_RE.search(trimmed)
    if document and document.group(1).strip():
        return document.group(1).strip()
    if body or document:
        return ""
    return trimmed


__all__ = ["SYSTEM_PROMPT", "RewriteProvider", "build_prompt", "normalize_html_fragment"]
