"""
Page-count estimation.

Scans the PDF bytes as Latin-1 text for page object markers. This is a
heuristic: markers hidden in compressed object streams are not seen. The
count is reported to callers and never drives control flow.
"""

import re

# /Type /Page, but not /Type /Pages
_PAGE_MARKER_RE = re.compile(r"/Type\s*/Page(?![A-Za-z])")


def count_pdf_pages(pdf_bytes: bytes) -> int:
    """Estimate the number of pages; returns 1 when no marker is found."""
    matches = _PAGE_MARKER_RE.findall(pdf_bytes.decode("latin-1"))
    return len(matches) or 1
