"""Response payloads for ``POST /pdf``. PDFs are carried as base64 strings."""

from __future__ import annotations

import base64

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SinglePageInfo(_CamelModel):
    total_pages: int


class BilingualPageInfo(_CamelModel):
    cover_pages: int
    english_pages: int
    japanese_pages: int
    total_pages: int


class SingleResponse(_CamelModel):
    combined: str
    page_info: SinglePageInfo


class BilingualResponse(_CamelModel):
    combined: str
    english: str
    japanese: str
    page_info: BilingualPageInfo


def encode_pdf(pdf_bytes: bytes) -> str:
    return base64.b64encode(pdf_bytes).decode("ascii")
