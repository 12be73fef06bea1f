"""
Document request schema.

Mirrors the JSON body accepted by ``POST /pdf``. Wire names are camelCase;
attributes are snake_case. The request is validated exactly once, at the
API boundary, before any working directory or subprocess exists.

Images arrive base64 encoded and are decoded here, so every stage
downstream handles raw bytes only.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from typst_pdf.app.services.errors import DocumentValidationError


Language = Literal["en", "ja"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Section(_CamelModel):
    """One ordered content section, in up to two languages."""

    label: str = ""
    label_ja: Optional[str] = None
    content_en: Optional[str] = None
    content_ja: Optional[str] = None
    page_break_before: bool = False

    def content_for(self, language: Language) -> Optional[str]:
        """
        Resolve the section body for ``language``.

        Falls back to the other language when the requested one is empty,
        so a section written in one language appears in both assemblies.
        """
        if language == "ja":
            return self.content_ja or self.content_en
        return self.content_en or self.content_ja


class Watermark(_CamelModel):
    text: str = ""
    enabled: bool = False


class DocumentRequest(_CamelModel):
    """
    A complete document generation request.

    ``first_language`` orders the bilingual combined artifact;
    ``primary_language`` selects the language of a single-mode artifact.
    """

    mode: Literal["single", "bilingual"]

    # ------------------------------------------------------------------
    # Document identity
    # ------------------------------------------------------------------
    title: str = Field(..., min_length=1)
    title_ja: Optional[str] = None
    client_name: Optional[str] = None
    client_name_ja: Optional[str] = None
    contact_name: Optional[str] = None
    contact_name_ja: Optional[str] = None
    date_en: str = ""
    date_ja: Optional[str] = None

    # ------------------------------------------------------------------
    # Language selection
    # ------------------------------------------------------------------
    first_language: Language = "en"
    primary_language: Language = "en"

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    sections: List[Section]
    cover_letter_en: Optional[str] = None
    cover_letter_ja: Optional[str] = None
    images: Dict[str, bytes] = Field(default_factory=dict)
    watermark: Optional[Watermark] = None

    @field_validator("images", mode="before")
    @classmethod
    def decode_images(cls, v: Any) -> Dict[str, bytes]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("images must be an object of filename to base64")

        decoded: Dict[str, bytes] = {}
        for filename, payload in v.items():
            if not isinstance(filename, str) or not _is_plain_filename(filename):
                raise ValueError(f"Invalid image filename: {filename!r}")
            if isinstance(payload, bytes):
                decoded[filename] = payload
                continue
            if not isinstance(payload, str):
                raise ValueError(f"Image '{filename}' must be a base64 string")
            try:
                decoded[filename] = base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError(
                    f"Image '{filename}' is not valid base64"
                ) from exc
        return decoded

    def cover_letter_for(self, language: Language) -> Optional[str]:
        return self.cover_letter_ja if language == "ja" else self.cover_letter_en

    @property
    def second_language(self) -> Language:
        return "ja" if self.first_language == "en" else "en"


def _is_plain_filename(name: str) -> bool:
    if not name or name in {".", ".."} or name.startswith("."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name


def validate_request(payload: Dict[str, Any]) -> DocumentRequest:
    """
    Validate a raw JSON payload into a DocumentRequest.

    Raises DocumentValidationError with pydantic's message on failure.
    """
    try:
        return DocumentRequest.model_validate(payload)
    except ValidationError as exc:
        raise DocumentValidationError(str(exc)) from exc
