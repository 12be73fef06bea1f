"""
Optional Mermaid diagram rendering.

Fenced ``mermaid`` blocks are rendered to PNG with mermaid-cli inside the
working directory and replaced by an image reference. PNG avoids SVG
foreign-object issues in Typst.

A diagram that fails to render is kept as a plain code block. A broken
diagram should not cost the whole document, so failures here are logged
and never raised.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List

import anyio

from typst_pdf.app.config import Settings

logger = logging.getLogger("typst_pdf.mermaid")

_FENCE_OPEN_RE = re.compile(r"^```\s*mermaid\s*$")
_FENCE_CLOSE_RE = re.compile(r"^```\s*$")


async def _render_diagram(source: str, stem: str, workdir: Path, settings: Settings) -> bool:
    source_path = workdir / f"{stem}.mmd"
    output_path = workdir / f"{stem}.png"
    source_path.write_text(source, encoding="utf-8")

    command = [
        settings.mmdc_bin,
        "-i", source_path.name,
        "-o", output_path.name,
        "-b", "transparent",
        "-s", "3",
        "--quiet",
    ]

    try:
        with anyio.fail_after(settings.mermaid_timeout):
            process = await anyio.run_process(command, cwd=workdir, check=False)
    except TimeoutError:
        logger.warning("mermaid_render_timeout", extra={"diagram": stem})
        return False
    except OSError as exc:
        logger.warning(
            "mermaid_render_unavailable",
            extra={"diagram": stem, "error": str(exc)},
        )
        return False

    if process.returncode != 0 or not output_path.exists():
        logger.warning(
            "mermaid_render_failed",
            extra={
                "diagram": stem,
                "returncode": process.returncode,
                "stderr": process.stderr.decode("utf-8", errors="ignore"),
            },
        )
        return False

    return True


async def render_mermaid_blocks(
    markdown: str,
    workdir: Path,
    settings: Settings,
    prefix: str = "mermaid",
) -> str:
    """
    Replace every fenced mermaid block with a rendered PNG reference.

    Diagrams are written as ``<prefix>-<n>.png``. Callers converting more
    than one document into the same working directory must pass distinct
    prefixes.
    """
    output: List[str] = []
    block: List[str] = []
    in_block = False
    count = 0

    for line in markdown.split("\n"):
        if not in_block and _FENCE_OPEN_RE.match(line):
            in_block = True
            block = []
            count += 1
            continue

        if in_block and _FENCE_CLOSE_RE.match(line):
            in_block = False
            stem = f"{prefix}-{count}"
            if await _render_diagram("\n".join(block), stem, workdir, settings):
                output.append(f"![]({stem}.png)")
            else:
                output.append("```")
                output.extend(block)
                output.append("```")
            continue

        if in_block:
            block.append(line)
        else:
            output.append(line)

    # Unterminated fence: keep the text as written.
    if in_block:
        output.append("```mermaid")
        output.extend(block)

    return "\n".join(output)
