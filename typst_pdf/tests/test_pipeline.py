"""
Orchestrator tests.

pandoc and typst are replaced by in-process fakes: the converter passes
markdown through unchanged and the compiler turns the rendered sources
into a real (uncompressed) PDF whose first page carries the content text.
Page count grows with the number of page breaks, so page arithmetic can
be checked without the real toolchain.
"""

import base64
import re
from pathlib import Path
from typing import List, Optional

import anyio
import pytest

from typst_pdf.app.schemas.request import Watermark
from typst_pdf.app.schemas.response import BilingualResponse, SingleResponse
from typst_pdf.app.services import pandoc, typst
from typst_pdf.app.services.errors import CompilerError, ConverterError
from typst_pdf.app.services.pages import count_pdf_pages
from typst_pdf.app.services.pipeline import COVER_PAGES, PdfPipeline
from typst_pdf.app.services.rendering import CONTENT_NAME, MAIN_NAME
from typst_pdf.tests.fixtures.pdf_factory import uncompressed_pdf
from typst_pdf.tests.helpers import make_request, make_settings, write_fake_tool

pytestmark = pytest.mark.anyio


class Compile:
    def __init__(self, workdir: Path, main: str, content: str, watermark: Optional[Watermark]):
        self.workdir = workdir
        self.main = main
        self.content = content
        self.watermark = watermark
        self.files = sorted(p.name for p in workdir.iterdir())

    @property
    def bilingual(self) -> bool:
        return "<first-start>" in self.content


class FakeToolchain:
    def __init__(self, fail_bilingual: bool = False, delay: float = 0.0):
        self.compiles: List[Compile] = []
        self.conversions: List[str] = []
        self.fail_bilingual = fail_bilingual
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def markdown_to_typst(self, markdown, workdir, settings):
        self.conversions.append(markdown)
        return markdown

    async def compile_typst(self, workdir, watermark, settings, entrypoint=MAIN_NAME):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await anyio.sleep(self.delay)
            record = Compile(
                workdir,
                (workdir / entrypoint).read_text(encoding="utf-8"),
                (workdir / CONTENT_NAME).read_text(encoding="utf-8"),
                watermark,
            )
            self.compiles.append(record)

            if self.fail_bilingual and record.bilingual:
                raise CompilerError("typst", "compilation failed", diagnostics="error: boom")

            pages = 1 + record.content.count("#pagebreak()")
            if record.bilingual:
                # cover page + outline page
                pages += 2
            return uncompressed_pdf(pages=pages, text=record.content)
        finally:
            self.in_flight -= 1


@pytest.fixture
def toolchain(monkeypatch):
    fake = FakeToolchain()
    monkeypatch.setattr(pandoc, "markdown_to_typst", fake.markdown_to_typst)
    monkeypatch.setattr(typst, "compile_typst", fake.compile_typst)
    return fake


def _pdf(payload: str) -> bytes:
    return base64.b64decode(payload)


# ----------------------------------------------------------------------
# Single mode
# ----------------------------------------------------------------------

async def test_single_english_document(toolchain):
    pipeline = PdfPipeline(make_settings())
    request = make_request(
        title="Report",
        primaryLanguage="en",
        sections=[{"label": "Intro", "contentEn": "# Hello\n\nWorld"}],
    )

    response = await pipeline.generate(request)

    assert isinstance(response, SingleResponse)
    pdf = _pdf(response.combined)
    assert pdf.startswith(b"%PDF")
    assert b"Hello" in pdf and b"World" in pdf
    assert response.page_info.total_pages >= 1
    assert len(toolchain.compiles) == 1


async def test_single_default_language_has_no_directive(toolchain):
    pipeline = PdfPipeline(make_settings())

    await pipeline.generate(make_request(primaryLanguage="en"))

    assert '#set text(lang: "ja")' not in toolchain.compiles[0].content


async def test_single_japanese_document_sets_language(toolchain):
    pipeline = PdfPipeline(make_settings())
    request = make_request(
        primaryLanguage="ja",
        sections=[{"label": "Intro", "contentEn": "English", "contentJa": "日本語"}],
    )

    response = await pipeline.generate(request)

    content = toolchain.compiles[0].content
    assert content.startswith('#set text(lang: "ja")\n')
    assert "日本語" in content and "English" not in content
    assert "日本語".encode("utf-8") in _pdf(response.combined)


async def test_page_breaks_reach_the_compiler(toolchain):
    pipeline = PdfPipeline(make_settings())
    request = make_request(
        sections=[
            {"label": "A", "contentEn": "one"},
            {"label": "B", "contentEn": "two", "pageBreakBefore": True},
            {"label": "C", "contentEn": "three", "pageBreakBefore": True},
        ]
    )

    response = await pipeline.generate(request)

    assert "PDFTYPSTPAGEBREAK" not in toolchain.compiles[0].content
    assert "<!-- pagebreak -->" not in toolchain.conversions[0]
    assert response.page_info.total_pages == 3


async def test_images_and_assets_are_in_the_working_directory(toolchain):
    pipeline = PdfPipeline(make_settings())
    encoded = base64.b64encode(b"<svg/>").decode("ascii")
    request = make_request(
        images={"net-01.svg": encoded},
        sections=[{"label": "A", "contentEn": "![Net](/api/diagrams/net-01)"}],
    )

    await pipeline.generate(request)

    record = toolchain.compiles[0]
    assert {"logo.svg", "net-01.svg", MAIN_NAME, CONTENT_NAME} <= set(record.files)
    assert "![Net](net-01.svg)" in toolchain.conversions[0]


async def test_watermark_is_passed_to_the_compiler(toolchain):
    pipeline = PdfPipeline(make_settings())

    await pipeline.generate(make_request(watermark={"text": "Draft", "enabled": True}))

    assert toolchain.compiles[0].watermark == Watermark(text="Draft", enabled=True)


async def test_working_directories_are_removed(toolchain):
    pipeline = PdfPipeline(make_settings())

    await pipeline.generate(make_request(mode="bilingual"))

    assert len(toolchain.compiles) == 3
    assert all(not record.workdir.exists() for record in toolchain.compiles)


# ----------------------------------------------------------------------
# Bilingual mode
# ----------------------------------------------------------------------

BILINGUAL = {
    "mode": "bilingual",
    "title": "Proposal",
    "firstLanguage": "ja",
    "sections": [{"label": "Body", "contentEn": "English body", "contentJa": "日本語本文"}],
}


async def test_bilingual_returns_three_artifacts(toolchain):
    pipeline = PdfPipeline(make_settings())

    response = await pipeline.generate(make_request(**BILINGUAL))

    assert isinstance(response, BilingualResponse)
    assert len(toolchain.compiles) == 3

    english = _pdf(response.english)
    japanese = _pdf(response.japanese)
    combined = _pdf(response.combined)

    for pdf in (english, japanese, combined):
        assert pdf.startswith(b"%PDF")

    assert b"English body" in english
    assert "日本語本文".encode("utf-8") not in english
    assert "日本語本文".encode("utf-8") in japanese
    assert b"English body" not in japanese

    info = response.page_info
    assert info.cover_pages == COVER_PAGES
    assert info.english_pages == count_pdf_pages(english)
    assert info.japanese_pages == count_pdf_pages(japanese)
    assert info.total_pages == count_pdf_pages(combined)
    assert info.total_pages >= info.english_pages + info.japanese_pages - info.cover_pages


async def test_bilingual_first_language_leads_the_combined_document(toolchain):
    pipeline = PdfPipeline(make_settings())

    await pipeline.generate(make_request(**BILINGUAL))

    combined = next(record for record in toolchain.compiles if record.bilingual)
    content = combined.content

    assert (
        content.index("<first-start>")
        < content.index("日本語本文")
        < content.index("<second-start>")
        < content.index("English body")
    )
    assert '#let first-lang = "ja"' in combined.main


async def test_bilingual_english_first(toolchain):
    pipeline = PdfPipeline(make_settings())

    await pipeline.generate(make_request(**{**BILINGUAL, "firstLanguage": "en"}))

    content = next(r for r in toolchain.compiles if r.bilingual).content
    assert content.index("English body") < content.index("<second-start>") < content.index("日本語本文")


async def test_sequential_bilingual_mode(toolchain):
    pipeline = PdfPipeline(make_settings(parallel_bilingual=False))

    response = await pipeline.generate(make_request(**BILINGUAL))

    assert isinstance(response, BilingualResponse)
    assert toolchain.max_in_flight == 1
    assert toolchain.compiles[0].bilingual


async def test_any_failed_compile_fails_the_request(monkeypatch):
    fake = FakeToolchain(fail_bilingual=True, delay=0.01)
    monkeypatch.setattr(pandoc, "markdown_to_typst", fake.markdown_to_typst)
    monkeypatch.setattr(typst, "compile_typst", fake.compile_typst)
    pipeline = PdfPipeline(make_settings())

    with pytest.raises(CompilerError) as info:
        await pipeline.generate(make_request(**BILINGUAL))

    assert "error: boom" in info.value.diagnostics
    assert all(not record.workdir.exists() for record in fake.compiles)


async def test_converter_failure_propagates(monkeypatch):
    async def failing_convert(markdown, workdir, settings):
        raise ConverterError("pandoc", "conversion failed", diagnostics="bad input")

    monkeypatch.setattr(pandoc, "markdown_to_typst", failing_convert)
    pipeline = PdfPipeline(make_settings())

    with pytest.raises(ConverterError):
        await pipeline.generate(make_request())


async def test_capacity_limiter_caps_concurrent_builds(monkeypatch):
    fake = FakeToolchain(delay=0.02)
    monkeypatch.setattr(pandoc, "markdown_to_typst", fake.markdown_to_typst)
    monkeypatch.setattr(typst, "compile_typst", fake.compile_typst)
    pipeline = PdfPipeline(make_settings(max_concurrent_compiles=1))

    await pipeline.generate(make_request(**BILINGUAL))

    assert len(fake.compiles) == 3
    assert fake.max_in_flight == 1


async def test_parallel_builds_overlap_when_allowed(monkeypatch):
    fake = FakeToolchain(delay=0.05)
    monkeypatch.setattr(pandoc, "markdown_to_typst", fake.markdown_to_typst)
    monkeypatch.setattr(typst, "compile_typst", fake.compile_typst)
    pipeline = PdfPipeline(make_settings(max_concurrent_compiles=3))

    await pipeline.generate(make_request(**BILINGUAL))

    assert fake.max_in_flight > 1


# ----------------------------------------------------------------------
# Mermaid diagrams
# ----------------------------------------------------------------------

# Copies the diagram source into the "rendered" file so tests can tell
# which diagram a reference resolves to.
FAKE_MMDC_COPY = """
in=""; out=""
while [ $# -gt 0 ]; do
  case "$1" in
    -i) in="$2"; shift 2 ;;
    -o) out="$2"; shift 2 ;;
    *) shift ;;
  esac
done
cp "$in" "$out"
"""


async def test_combined_build_keeps_each_language_diagram(toolchain, monkeypatch, tmp_path):
    mmdc = write_fake_tool(tmp_path, "mmdc", FAKE_MMDC_COPY)
    pipeline = PdfPipeline(make_settings(mmdc_bin=str(mmdc), enable_mermaid=True))
    resolved = {}

    async def compile_with_diagrams(workdir, watermark, settings, entrypoint=MAIN_NAME):
        content = (workdir / CONTENT_NAME).read_text(encoding="utf-8")
        if "<first-start>" in content:
            for name in re.findall(r"mermaid-[\w-]+\.png", content):
                resolved[name] = (workdir / name).read_text(encoding="utf-8")
        return await toolchain.compile_typst(workdir, watermark, settings, entrypoint)

    monkeypatch.setattr(typst, "compile_typst", compile_with_diagrams)
    request = make_request(
        mode="bilingual",
        firstLanguage="ja",
        sections=[
            {
                "label": "Flow",
                "contentEn": "```mermaid\ngraph EN\n```",
                "contentJa": "```mermaid\ngraph JA\n```",
            }
        ],
    )

    await pipeline.generate(request)

    assert resolved == {"mermaid-ja-1.png": "graph JA", "mermaid-en-1.png": "graph EN"}
