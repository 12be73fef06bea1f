"""
Markdown to Typst conversion through pandoc.

pandoc is invoked as an argv list (no shell) inside the working directory
with a hard timeout. Any failure is fatal for the artifact being built:
there is no partial output and no retry.

Input size is not bounded at this stage.
"""

from __future__ import annotations

import logging
from pathlib import Path

import anyio

from typst_pdf.app.config import Settings
from typst_pdf.app.services.errors import ConverterError

logger = logging.getLogger("typst_pdf.pandoc")

MARKDOWN_DIALECT = "markdown+pipe_tables+backtick_code_blocks+fenced_code_blocks"

INPUT_NAME = "input.md"
OUTPUT_NAME = "pandoc-output.typ"


async def markdown_to_typst(markdown: str, workdir: Path, settings: Settings) -> str:
    """
    Convert extended markdown to Typst source.

    Raises:
        ConverterError:
            If pandoc is missing, exits non-zero, times out, or produces
            no output file.
    """
    input_path = workdir / INPUT_NAME
    output_path = workdir / OUTPUT_NAME
    input_path.write_text(markdown, encoding="utf-8")
    output_path.unlink(missing_ok=True)

    command = [
        settings.pandoc_bin,
        "-f", MARKDOWN_DIALECT,
        "-t", "typst",
        "--wrap=none",
        INPUT_NAME,
        "-o", OUTPUT_NAME,
    ]

    try:
        with anyio.fail_after(settings.pandoc_timeout):
            process = await anyio.run_process(command, cwd=workdir, check=False)
    except TimeoutError as exc:
        raise ConverterError(
            "pandoc",
            f"conversion exceeded {settings.pandoc_timeout:g}s timeout",
        ) from exc
    except OSError as exc:
        raise ConverterError("pandoc", f"failed to invoke pandoc: {exc}") from exc

    stdout = process.stdout.decode("utf-8", errors="ignore")
    stderr = process.stderr.decode("utf-8", errors="ignore")

    if process.returncode != 0:
        raise ConverterError(
            "pandoc",
            f"conversion failed with exit code {process.returncode}",
            diagnostics=f"STDOUT:\n{stdout}\n\nSTDERR:\n{stderr}",
        )

    if not output_path.exists():
        raise ConverterError(
            "pandoc",
            "reported success, but no Typst output was produced",
            diagnostics=stderr,
        )

    if stderr.strip():
        logger.info("pandoc_warnings", extra={"stderr": stderr})

    return output_path.read_text(encoding="utf-8")
