"""
Markdown assembly for one target language.

A document is assembled from an optional cover letter followed by the
ordered sections. Page-break requests are expressed as ``<!-- pagebreak -->``
comment lines and turned into a sentinel token just before conversion,
because pandoc drops HTML comments when writing Typst.
"""

from __future__ import annotations

import re
from typing import List

from typst_pdf.app.schemas.request import DocumentRequest, Language


PAGE_BREAK_MARKER = "<!-- pagebreak -->"
PAGE_BREAK_SENTINEL = "PDFTYPSTPAGEBREAK"

DIAGRAM_PATH = "/api/diagrams/"

_FRONTMATTER_RE = re.compile(r"^---\n.*?\n---\n?(.*)$", re.DOTALL)
_PAGE_BREAK_LINE_RE = re.compile(r"^\s*<!--\s*pagebreak\s*-->\s*$", re.MULTILINE)
_MARKDOWN_IMAGE_RE = re.compile(
    r"!\[([^\]]*)\]\(" + re.escape(DIAGRAM_PATH) + r"([^)]+)\)"
)
_HTML_IMAGE_SRC_RE = re.compile(
    r"src=[\"']" + re.escape(DIAGRAM_PATH) + r"([^\"']+)[\"']"
)


# ----------------------------------------------------------------------
# Frontmatter
# ----------------------------------------------------------------------

def strip_frontmatter(markdown: str) -> str:
    """Remove a leading ``---`` delimited frontmatter block, if present."""
    if not markdown.startswith("---"):
        return markdown
    match = _FRONTMATTER_RE.match(markdown)
    return match.group(1) if match else markdown


# ----------------------------------------------------------------------
# Assembly
# ----------------------------------------------------------------------

def assemble_markdown(request: DocumentRequest, language: Language) -> str:
    """
    Merge the cover letter and sections for ``language`` into one document.

    Blocks keep their original order and are separated by a blank line.
    A section without content in either language emits nothing of its
    own, but its ``pageBreakBefore`` marker is still emitted.
    """
    parts: List[str] = []

    cover_letter = request.cover_letter_for(language)
    if cover_letter:
        parts.append(strip_frontmatter(cover_letter))
        parts.append(PAGE_BREAK_MARKER)

    for section in request.sections:
        if section.page_break_before:
            parts.append(PAGE_BREAK_MARKER)
        content = section.content_for(language)
        if content:
            parts.append(strip_frontmatter(content))

    return "\n\n".join(parts)


def mark_page_breaks(markdown: str) -> str:
    """Replace page-break comment lines with a sentinel that survives pandoc."""
    return _PAGE_BREAK_LINE_RE.sub(PAGE_BREAK_SENTINEL, markdown)


# ----------------------------------------------------------------------
# Image references
# ----------------------------------------------------------------------

def _diagram_filename(diagram_id: str) -> str:
    return diagram_id if diagram_id.endswith(".svg") else f"{diagram_id}.svg"


def rewrite_image_references(markdown: str) -> str:
    """
    Point diagram references at the local files in the working directory.

    ``![alt](/api/diagrams/<id>)`` and ``<img src="/api/diagrams/<id>">``
    both resolve to ``<id>.svg``.
    """
    result = _MARKDOWN_IMAGE_RE.sub(
        lambda m: f"![{m.group(1)}]({_diagram_filename(m.group(2))})",
        markdown,
    )
    return _HTML_IMAGE_SRC_RE.sub(
        lambda m: f'src="{_diagram_filename(m.group(1))}"',
        result,
    )
