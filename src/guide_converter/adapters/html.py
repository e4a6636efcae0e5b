from __future__ import annotations

import re
from pathlib import Path

from bs4 import BeautifulSoup

from .base import decode_bytes
from ..detection import DocumentType

_BLOCK_TAGS = ("p", "div", "li", "h1", "h2", "h3", "h4", "h5", "h6", "tr")


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all(["br", "hr"]):
        tag.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append("\n")
    text = soup.get_text().replace("\r\n", "\n").replace("\xa0", " ")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


class HTMLAdapter:
    document_type = DocumentType.HTML

    def extract(self, source: Path) -> str:
        html = decode_bytes(source.read_bytes())
        return html_to_text(html) or html
