"""
Centralized configuration for the typst-pdf service.

Pydantic v2 settings management: values are parsed from the environment
once, validated strictly, and frozen for the lifetime of the process.

The settings object is passed explicitly into the pipeline constructor.
Tool paths, asset directories and timeouts are never read from module
globals, so tests can substitute fixture directories and fake binaries.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_ROOT = Path(__file__).resolve().parent


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

Executable = Annotated[
    str,
    Field(min_length=1, description="Executable name or absolute path"),
]

TimeoutSeconds = Annotated[
    float,
    Field(gt=0, le=600, description="Hard wall-clock limit for one invocation"),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if a configured directory does not exist.
    """

    # ---------------------------------------------------------------------
    # External toolchain
    # ---------------------------------------------------------------------

    pandoc_bin: Executable = "pandoc"
    typst_bin: Executable = "typst"
    mmdc_bin: Executable = "mmdc"

    pandoc_timeout: TimeoutSeconds = 30.0
    typst_timeout: TimeoutSeconds = 60.0
    mermaid_timeout: TimeoutSeconds = 30.0

    # ---------------------------------------------------------------------
    # Templates, assets and fonts
    # ---------------------------------------------------------------------

    template_dir: Path = Field(
        default=PACKAGE_ROOT / "templates",
        description="Directory holding the Jinja2-rendered Typst templates",
    )

    assets_dir: Path = Field(
        default=PACKAGE_ROOT / "assets",
        description=(
            "Directory whose regular files are copied into every "
            "working directory (logo, static images)"
        ),
    )

    font_dir: Optional[Path] = Field(
        default=None,
        description="Extra font directory handed to the compiler",
    )

    # ---------------------------------------------------------------------
    # Pipeline behaviour
    # ---------------------------------------------------------------------

    default_language: Literal["en", "ja"] = "en"

    enable_mermaid: bool = Field(
        default=False,
        description="Render ```mermaid blocks to PNG with mermaid-cli",
    )

    parallel_bilingual: bool = Field(
        default=True,
        description="Build the three bilingual artifacts concurrently",
    )

    max_concurrent_compiles: Annotated[
        int,
        Field(
            default=4,
            ge=1,
            le=64,
            description="Process-wide cap on artifact builds in flight",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="TYPST_PDF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ---------------------------------------------------------------------
    # Validators
    # ---------------------------------------------------------------------

    @field_validator("template_dir", "assets_dir")
    @classmethod
    def directory_must_exist(cls, v: Path) -> Path:
        v = v.expanduser().resolve()
        if not v.is_dir():
            raise ValueError(f"Configured directory does not exist: {v}")
        return v

    @field_validator("font_dir")
    @classmethod
    def font_dir_must_exist(cls, v: Optional[Path]) -> Optional[Path]:
        if v is None:
            return v
        v = v.expanduser().resolve()
        if not v.is_dir():
            raise ValueError(f"Configured font directory does not exist: {v}")
        return v


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
