"""
FastAPI entrypoint for the typst-pdf service.

Turns structured document requests into typeset PDFs by driving pandoc
and typst. The service is stateless: nothing is stored between requests
and every compile runs in its own temporary working directory.
"""

import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from typst_pdf.app.api.pdf import router as pdf_router
from typst_pdf.app.config import Settings, get_settings
from typst_pdf.app.services.pipeline import PdfPipeline
from typst_pdf.app.services.toolchain import missing_tools, tool_versions

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stderr,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("typst_pdf.main")


def get_app_version() -> str:
    try:
        return version("typst-pdf")
    except PackageNotFoundError:
        return "0.1.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    ``settings`` is injectable for tests; by default it is loaded from
    the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --------------------------------------------------------------
        # Load and validate configuration (FAIL FAST)
        # --------------------------------------------------------------
        try:
            resolved = settings if settings is not None else get_settings()
        except Exception:
            logger.exception("invalid_typst_pdf_configuration")
            raise

        missing = missing_tools(resolved)
        if missing:
            # Start anyway so /health can report the broken toolchain.
            logger.warning("external_tools_missing", extra={"tools": missing})

        app.state.settings = resolved
        app.state.pipeline = PdfPipeline(resolved)

        logger.info(
            "typst_pdf_startup_complete",
            extra={
                "version": get_app_version(),
                "max_concurrent_compiles": resolved.max_concurrent_compiles,
            },
        )
        yield
        logger.info("typst_pdf_shutdown")

    app = FastAPI(
        title="typst-pdf",
        description="Bilingual document compilation service (pandoc + typst)",
        version=get_app_version(),
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed or non-object bodies are client errors like any other bad field.
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request body", "errors": str(exc.errors())},
        )

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness probe with toolchain versions",
    )
    async def health_check(request: Request) -> JSONResponse:
        versions = await tool_versions(request.app.state.settings)
        return JSONResponse(
            content={
                "status": "ok",
                "service": "typst-pdf",
                "version": app.version,
                **versions,
            }
        )

    app.include_router(pdf_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    return app


app = create_app()
