"""Shared builders for the typst-pdf test suite."""

import stat
from pathlib import Path
from typing import Any, Dict

from typst_pdf.app.config import Settings
from typst_pdf.app.schemas.request import DocumentRequest


def make_settings(**overrides: Any) -> Settings:
    """Settings with packaged templates/assets and no environment surprises."""
    values: Dict[str, Any] = {
        "pandoc_bin": "pandoc",
        "typst_bin": "typst",
        "mmdc_bin": "mmdc",
        "enable_mermaid": False,
        "parallel_bilingual": True,
        "default_language": "en",
        "font_dir": None,
    }
    values.update(overrides)
    return Settings(**values)


def make_request(**overrides: Any) -> DocumentRequest:
    """A minimal valid single-mode request, patched with camelCase overrides."""
    payload: Dict[str, Any] = {
        "mode": "single",
        "title": "Report",
        "sections": [{"label": "Intro", "contentEn": "# Hello\n\nWorld"}],
    }
    payload.update(overrides)
    return DocumentRequest.model_validate(payload)


def write_fake_tool(directory: Path, name: str, body: str) -> Path:
    """Write an executable POSIX shell script standing in for a real tool."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
