from __future__ import annotations

import html

import markdown as markdown_lib


class LocalRenderer:
    """Deterministic Markdown to HTML rendering; never fails."""

    extensions = ("extra", "sane_lists")

    def render(self, title: str, markdown: str) -> str:
        body = markdown_lib.markdown(markdown or "", extensions=list(self.extensions))
        return (
            '<article data-generator="local-fallback">\n'
            f"<h1>{html.escape(title)}</h1>\n"
            f"{body}\n"
            "</article>"
        )


__all__ = ["LocalRenderer"]
