"""
PDF generation endpoint.

Clients supply fully resolved document content: plain sections, decoded
cover letters and base64 images. This service renders and compiles;
it does not store anything.

Two modes are selected by the ``mode`` field of the request body:

    single      One PDF in ``primaryLanguage``.
    bilingual   Combined PDF plus standalone English and Japanese PDFs.

Status codes:
    400   invalid request (rejected before any side effect)
    500   external tool or working-directory failure, with diagnostics
"""

import logging
from typing import Any, Dict, Union

from fastapi import APIRouter, Body, HTTPException, Request

from typst_pdf.app.schemas.request import validate_request
from typst_pdf.app.schemas.response import BilingualResponse, SingleResponse
from typst_pdf.app.services.errors import DocumentValidationError, PipelineError
from typst_pdf.app.services.pipeline import PdfPipeline

logger = logging.getLogger("typst_pdf.api")

router = APIRouter(tags=["PDF Generation"])


@router.post(
    "/pdf",
    response_model=Union[BilingualResponse, SingleResponse],
    summary="Compile a document request into PDF artifacts",
    responses={
        400: {"description": "Invalid document request"},
        500: {"description": "PDF generation failed"},
    },
)
async def generate_pdf(
    request: Request,
    payload: Dict[str, Any] = Body(...),
) -> Union[BilingualResponse, SingleResponse]:
    """
    Generate the PDF artifact(s) for a document request.

    Returns base64-encoded PDFs and estimated page counts.
    """

    # ------------------------------------------------------------------
    # Payload validation
    # ------------------------------------------------------------------
    try:
        document = validate_request(payload)
    except DocumentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    # ------------------------------------------------------------------
    # Rendering pipeline
    # ------------------------------------------------------------------
    pipeline: PdfPipeline = request.app.state.pipeline

    try:
        return await pipeline.generate(document)
    except PipelineError as exc:
        logger.exception(
            "pdf_generation_failed",
            extra={"mode": document.mode},
        )
        raise HTTPException(
            status_code=500,
            detail=f"PDF generation failed: {exc}",
        ) from exc
