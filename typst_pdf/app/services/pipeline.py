"""
PDF generation orchestrator.

The orchestrator sequences the pipeline stages and packages the response.
It holds no per-request state: every artifact is built from scratch in
its own working directory.

Per-language build:
    assemble markdown -> rewrite image references -> (mermaid) ->
    mark page breaks -> pandoc -> post-process -> render template ->
    typst compile -> estimate pages

Modes:
    single      One build in ``primaryLanguage``.
    bilingual   Three independent builds: English-only, Japanese-only and
                the combined document. Each has its own working directory
                and compiler invocation; no pages are spliced between
                compiles. If any build fails the request fails, and the
                remaining builds are cancelled (their processes killed,
                their working directories removed).

A process-wide capacity limiter caps how many builds run at once, since
every build spawns heavyweight external processes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

import anyio

from typst_pdf.app.config import Settings
from typst_pdf.app.schemas.request import DocumentRequest, Language
from typst_pdf.app.schemas.response import (
    BilingualPageInfo,
    BilingualResponse,
    SinglePageInfo,
    SingleResponse,
    encode_pdf,
)
from typst_pdf.app.services import markdown, mermaid, pandoc, postprocess, rendering, typst
from typst_pdf.app.services.pages import count_pdf_pages
from typst_pdf.app.services.workdir import working_directory

logger = logging.getLogger("typst_pdf.pipeline")

# The bilingual template renders exactly one cover page.
COVER_PAGES = 1


@dataclass(frozen=True)
class CompiledArtifact:
    pdf: bytes
    page_count: int


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc


class PdfPipeline:
    """
    Document compilation pipeline.

    Construct once per process (the capacity limiter is shared across
    requests) and call ``generate`` per validated request. Must be
    constructed inside a running event loop.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._limiter = anyio.CapacityLimiter(settings.max_concurrent_compiles)

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def convert_language(
        self,
        request: DocumentRequest,
        language: Language,
        workdir: Path,
    ) -> str:
        """Assemble, convert and post-process the content of one language."""
        source = markdown.assemble_markdown(request, language)
        source = markdown.rewrite_image_references(source)
        if self._settings.enable_mermaid:
            # The combined build converts both languages in one workdir.
            source = await mermaid.render_mermaid_blocks(
                source, workdir, self._settings, prefix=f"mermaid-{language}"
            )
        source = markdown.mark_page_breaks(source)

        converted = await pandoc.markdown_to_typst(source, workdir, self._settings)
        return postprocess.post_process(converted)

    async def build_language_pdf(
        self,
        request: DocumentRequest,
        language: Language,
    ) -> CompiledArtifact:
        """Build a standalone single-language PDF."""
        async with self._limiter:
            with working_directory(self._settings, request.images) as workdir:
                content = await self.convert_language(request, language, workdir)
                if language != self._settings.default_language:
                    content = rendering.language_directive(language) + content

                rendering.render_single(workdir, request, content, self._settings)
                pdf = await typst.compile_typst(workdir, request.watermark, self._settings)

        artifact = CompiledArtifact(pdf=pdf, page_count=count_pdf_pages(pdf))
        logger.info(
            "language_pdf_built",
            extra={"language": language, "pages": artifact.page_count},
        )
        return artifact

    async def build_bilingual_pdf(self, request: DocumentRequest) -> CompiledArtifact:
        """Build the combined PDF: cover, scoped outlines, both languages."""
        async with self._limiter:
            with working_directory(self._settings, request.images) as workdir:
                first = await self.convert_language(
                    request, request.first_language, workdir
                )
                second = await self.convert_language(
                    request, request.second_language, workdir
                )

                rendering.render_bilingual(workdir, request, first, second, self._settings)
                pdf = await typst.compile_typst(workdir, request.watermark, self._settings)

        artifact = CompiledArtifact(pdf=pdf, page_count=count_pdf_pages(pdf))
        logger.info(
            "bilingual_pdf_built",
            extra={
                "first_language": request.first_language,
                "pages": artifact.page_count,
            },
        )
        return artifact

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def generate_single(self, request: DocumentRequest) -> SingleResponse:
        artifact = await self.build_language_pdf(request, request.primary_language)
        return SingleResponse(
            combined=encode_pdf(artifact.pdf),
            page_info=SinglePageInfo(total_pages=artifact.page_count),
        )

    async def generate_bilingual(self, request: DocumentRequest) -> BilingualResponse:
        artifacts: Dict[str, CompiledArtifact] = {}

        async def build_language(language: Language) -> None:
            artifacts[language] = await self.build_language_pdf(request, language)

        async def build_combined() -> None:
            artifacts["combined"] = await self.build_bilingual_pdf(request)

        if self._settings.parallel_bilingual:
            try:
                async with anyio.create_task_group() as tg:
                    tg.start_soon(build_combined)
                    tg.start_soon(build_language, "en")
                    tg.start_soon(build_language, "ja")
            except ExceptionGroup as group:
                # Surface the first failure as-is; siblings were cancelled.
                raise _first_leaf(group) from group
        else:
            await build_combined()
            await build_language("en")
            await build_language("ja")

        return BilingualResponse(
            combined=encode_pdf(artifacts["combined"].pdf),
            english=encode_pdf(artifacts["en"].pdf),
            japanese=encode_pdf(artifacts["ja"].pdf),
            page_info=BilingualPageInfo(
                cover_pages=COVER_PAGES,
                english_pages=artifacts["en"].page_count,
                japanese_pages=artifacts["ja"].page_count,
                total_pages=artifacts["combined"].page_count,
            ),
        )

    async def generate(
        self,
        request: DocumentRequest,
    ) -> Union[SingleResponse, BilingualResponse]:
        """Generate every artifact for ``request`` and package the response."""
        started = time.perf_counter()

        if request.mode == "single":
            response = await self.generate_single(request)
        else:
            response = await self.generate_bilingual(request)

        logger.info(
            "pdf_generation_completed",
            extra={
                "mode": request.mode,
                "sections": len(request.sections),
                "elapsed_ms": round((time.perf_counter() - started) * 1000),
            },
        )
        return response
