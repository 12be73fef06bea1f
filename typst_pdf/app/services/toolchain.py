"""
External toolchain discovery.

Used by the health endpoint and at startup to report which pandoc and
typst builds the service is driving. Probes never raise: an unavailable
tool is reported as ``"unknown"``.
"""

from __future__ import annotations

import logging
import shutil
from typing import Dict, List

import anyio

from typst_pdf.app.config import Settings

logger = logging.getLogger("typst_pdf.toolchain")

UNKNOWN = "unknown"

PROBE_TIMEOUT_SECONDS = 10


async def _first_line(command: List[str]) -> str:
    try:
        with anyio.fail_after(PROBE_TIMEOUT_SECONDS):
            process = await anyio.run_process(command, check=False)
    except (OSError, TimeoutError) as exc:
        logger.warning(
            "tool_version_probe_failed",
            extra={"command": command[0], "error": str(exc)},
        )
        return UNKNOWN

    if process.returncode != 0:
        return UNKNOWN

    lines = process.stdout.decode("utf-8", errors="ignore").strip().splitlines()
    return lines[0].strip() if lines else UNKNOWN


async def tool_versions(settings: Settings) -> Dict[str, str]:
    """Return the first line of ``--version`` for pandoc and typst."""
    return {
        "pandoc": await _first_line([settings.pandoc_bin, "--version"]),
        "typst": await _first_line([settings.typst_bin, "--version"]),
    }


def missing_tools(settings: Settings) -> List[str]:
    """Names of required executables that cannot be found on PATH."""
    required = [settings.pandoc_bin, settings.typst_bin]
    if settings.enable_mermaid:
        required.append(settings.mmdc_bin)
    return [tool for tool in required if shutil.which(tool) is None]
