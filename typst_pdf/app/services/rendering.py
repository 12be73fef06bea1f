"""
Typst template rendering.

Processed content is written to ``content.typ`` and a Jinja2 template is
rendered to ``main.typ``, which includes it. Two templates exist:

- ``template.typ.jinja``: single-language page chrome.
- ``template-bilingual.typ.jinja``: cover page, two scoped tables of
  contents, and both language blocks separated by boundary markers.

Design guarantees:
- Deterministic rendering (Jinja2 + StrictUndefined).
- Delimiters chosen so they never collide with Typst syntax.
- User-supplied text reaches the template only through ``typst_str``,
  which emits a fully escaped Typst string literal. Text in a string
  literal is displayed verbatim, so markup characters are inert.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from typst_pdf.app.config import Settings
from typst_pdf.app.schemas.request import DocumentRequest, Language

logger = logging.getLogger("typst_pdf.rendering")

SINGLE_TEMPLATE = "template.typ.jinja"
BILINGUAL_TEMPLATE = "template-bilingual.typ.jinja"

MAIN_NAME = "main.typ"
CONTENT_NAME = "content.typ"

FIRST_BOUNDARY = "first-start"
SECOND_BOUNDARY = "second-start"

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


# ----------------------------------------------------------------------
# Escaping
# ----------------------------------------------------------------------

def escape_typst_string(value: str) -> str:
    """
    Escape ``value`` for use inside a double-quoted Typst string literal.

    Covers backslash, quote, the named whitespace escapes and every other
    control character (emitted as ``\\u{..}``).
    """
    out = []
    for ch in value:
        if ch in _STRING_ESCAPES:
            out.append(_STRING_ESCAPES[ch])
        elif ord(ch) < 0x20 or 0x7F <= ord(ch) < 0xA0 or ch in "\u2028\u2029":
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return "".join(out)


def typst_str(value: Optional[str]) -> str:
    """Jinja filter: render ``value`` as a quoted Typst string literal."""
    return '"' + escape_typst_string(value or "") + '"'


def language_directive(language: Language) -> str:
    return f'#set text(lang: "{language}")\n'


# ----------------------------------------------------------------------
# Environment
# ----------------------------------------------------------------------

@lru_cache(maxsize=8)
def _environment(template_dir: Path) -> Environment:
    env = Environment(
        loader=FileSystemLoader(template_dir),
        block_start_string="<%",
        block_end_string="%>",
        variable_start_string="<<",
        variable_end_string=">>",
        comment_start_string="<#",
        comment_end_string="#>",
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["typst_str"] = typst_str
    return env


def _render(workdir: Path, template_name: str, context: Dict[str, Any], settings: Settings) -> Path:
    template = _environment(settings.template_dir).get_template(template_name)
    main_path = workdir / MAIN_NAME
    main_path.write_text(template.render(context), encoding="utf-8")
    logger.debug("template_rendered", extra={"template": template_name})
    return main_path


# ----------------------------------------------------------------------
# Single-language
# ----------------------------------------------------------------------

def render_single(
    workdir: Path,
    request: DocumentRequest,
    content: str,
    settings: Settings,
) -> Path:
    """Write ``content.typ`` and the single-language ``main.typ``."""
    (workdir / CONTENT_NAME).write_text(content, encoding="utf-8")
    return _render(
        workdir,
        SINGLE_TEMPLATE,
        {
            "title": request.title,
            "default_language": settings.default_language,
            "content_name": CONTENT_NAME,
        },
        settings,
    )


# ----------------------------------------------------------------------
# Bilingual
# ----------------------------------------------------------------------

def compose_bilingual_content(
    first_language: Language,
    first: str,
    second_language: Language,
    second: str,
) -> str:
    """
    Join both language blocks behind zero-width boundary markers.

    The first-position block is always preceded by ``<first-start>`` and
    the second by ``<second-start>``, whichever languages they hold.
    """
    return "\n".join(
        [
            f"#metadata(none) <{FIRST_BOUNDARY}>",
            language_directive(first_language),
            first,
            "#pagebreak()",
            f"#metadata(none) <{SECOND_BOUNDARY}>",
            language_directive(second_language),
            second,
        ]
    )


def client_display(request: DocumentRequest) -> tuple[str, str]:
    """Return the English and Japanese ``contact, client`` display lines."""
    english = ", ".join(
        part for part in (request.contact_name, request.client_name) if part
    )
    japanese = ", ".join(
        part
        for part in (
            request.contact_name_ja or request.contact_name,
            request.client_name_ja or request.client_name,
        )
        if part
    )
    return english, japanese


def render_bilingual(
    workdir: Path,
    request: DocumentRequest,
    first_content: str,
    second_content: str,
    settings: Settings,
) -> Path:
    """Write the combined ``content.typ`` and the bilingual ``main.typ``."""
    first_language = request.first_language
    second_language = request.second_language

    content = compose_bilingual_content(
        first_language, first_content, second_language, second_content
    )
    (workdir / CONTENT_NAME).write_text(content, encoding="utf-8")

    display_en, display_ja = client_display(request)

    return _render(
        workdir,
        BILINGUAL_TEMPLATE,
        {
            "title": request.title,
            "title_ja": request.title_ja or request.title,
            "client_display": display_en,
            "client_display_ja": display_ja,
            "date_en": request.date_en,
            "date_ja": request.date_ja or request.date_en,
            "first_language": first_language,
            "second_language": second_language,
            "first_label": f"<{FIRST_BOUNDARY}>",
            "second_label": f"<{SECOND_BOUNDARY}>",
            "content_name": CONTENT_NAME,
        },
        settings,
    )
