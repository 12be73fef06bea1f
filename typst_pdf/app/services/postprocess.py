"""
Post-processing of pandoc's Typst output.

The transforms are applied in a fixed order:

1. Table headers repeat across page breaks.
2. Percentage column widths become equal ``1fr`` shares, on
   ``columns:`` lines only so body text is never touched.
3. Embedded images are constrained to 85% of the text width, whether
   pandoc wraps them in ``#box`` (inline) or ``#figure`` (captioned).
   Calls that already carry arguments besides the path are left alone.
4. The page-break sentinel becomes ``#pagebreak()``.
5. The compatibility preamble is prepended, exactly once.

Input that matches none of the patterns comes back unchanged apart from
the preamble.
"""

from __future__ import annotations

import re

from typst_pdf.app.services.markdown import PAGE_BREAK_SENTINEL


IMAGE_WIDTH = "85%"

# pandoc emits #horizontalrule for markdown thematic breaks.
COMPAT_PREAMBLE = """\
// Pandoc compatibility
#let horizontalrule = {
  v(0.4em)
  line(length: 100%, stroke: 0.5pt + rgb("#CCCCCC"))
  v(0.4em)
}

"""

_TABLE_HEADER_RE = re.compile(r"table\.header\((?!repeat: true, )")
_COLUMNS_LINE_RE = re.compile(r"^.*columns:.*$", re.MULTILINE)
_PERCENT_RE = re.compile(r"[\d.]*\d%")
_IMAGE_RE = re.compile(r'(?<![\w.-])image\("([^"]+)"\)')


def _proportional_columns(match: re.Match) -> str:
    return _PERCENT_RE.sub("1fr", match.group(0))


def post_process(source: str) -> str:
    """Apply every Typst post-processing transform to ``source``."""
    result = _TABLE_HEADER_RE.sub("table.header(repeat: true, ", source)
    result = _COLUMNS_LINE_RE.sub(_proportional_columns, result)
    result = _IMAGE_RE.sub(rf'image("\1", width: {IMAGE_WIDTH})', result)
    result = result.replace(PAGE_BREAK_SENTINEL, "#pagebreak()")
    return COMPAT_PREAMBLE + result
