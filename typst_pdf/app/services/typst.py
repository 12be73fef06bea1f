"""
Typst compilation service.

Compiles the rendered ``main.typ`` inside a working directory into PDF
bytes.

Design guarantees:
- Arguments are passed as an argv list; no shell is involved, so
  watermark text cannot alter the command.
- The compiler's filesystem root is the working directory.
- Compilation is bounded by a hard timeout. A cancelled or timed-out
  compile kills the compiler process.
- On failure a CompilerError carries the compiler's diagnostics.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import anyio

from typst_pdf.app.config import Settings
from typst_pdf.app.schemas.request import Watermark
from typst_pdf.app.services.errors import CompilerError
from typst_pdf.app.services.rendering import MAIN_NAME

logger = logging.getLogger("typst_pdf.typst")

OUTPUT_NAME = "output.pdf"


def build_compile_command(
    workdir: Path,
    entrypoint: str,
    watermark: Optional[Watermark],
    settings: Settings,
) -> list[str]:
    watermark_text = watermark.text if watermark else ""
    show_watermark = "true" if watermark and watermark.enabled else "false"

    command = [settings.typst_bin, "compile", "--root", str(workdir)]
    if settings.font_dir is not None:
        command += ["--font-path", str(settings.font_dir)]
    command += [
        "--input", f"watermark={watermark_text}",
        "--input", f"show-watermark={show_watermark}",
        str(workdir / entrypoint),
        str(workdir / OUTPUT_NAME),
    ]
    return command


async def compile_typst(
    workdir: Path,
    watermark: Optional[Watermark],
    settings: Settings,
    entrypoint: str = MAIN_NAME,
) -> bytes:
    """
    Compile ``entrypoint`` in ``workdir`` and return the PDF bytes.

    Raises:
        CompilerError:
            If typst is missing, exits non-zero, times out, or reports
            success without writing a PDF.
    """
    command = build_compile_command(workdir, entrypoint, watermark, settings)
    output_path = workdir / OUTPUT_NAME

    try:
        with anyio.fail_after(settings.typst_timeout):
            process = await anyio.run_process(command, cwd=workdir, check=False)
    except TimeoutError as exc:
        raise CompilerError(
            "typst",
            f"compilation exceeded {settings.typst_timeout:g}s timeout",
        ) from exc
    except OSError as exc:
        raise CompilerError("typst", f"failed to invoke typst: {exc}") from exc

    stderr = process.stderr.decode("utf-8", errors="ignore")

    if process.returncode != 0:
        raise CompilerError(
            "typst",
            f"compilation failed with exit code {process.returncode}",
            diagnostics=stderr,
        )

    if not output_path.exists():
        raise CompilerError(
            "typst",
            "reported success, but no PDF output was produced",
            diagnostics=stderr,
        )

    if stderr.strip():
        # typst reports warnings (e.g. missing fonts) on stderr
        logger.info("typst_warnings", extra={"stderr": stderr})

    return output_path.read_bytes()
