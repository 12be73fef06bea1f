"""
Error taxonomy for the PDF pipeline.

- DocumentValidationError: request rejected before any side effect.
- ExternalToolError: pandoc or typst failed, timed out, or is missing.
  Aborts the artifact being built and carries the tool's diagnostics.
- ResourceError: working directory could not be created or populated.
  Raised before any subprocess runs.

Nothing in the pipeline retries. Retry policy belongs to the caller.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every failure raised by the pipeline."""


class DocumentValidationError(PipelineError):
    """Raised when a document request is missing or has invalid fields."""


class ResourceError(PipelineError):
    """Raised when the working directory cannot be set up."""


class ExternalToolError(PipelineError):
    """Raised when an external tool fails or exceeds its timeout."""

    def __init__(self, tool: str, message: str, diagnostics: str = "") -> None:
        self.tool = tool
        self.diagnostics = diagnostics
        text = f"{tool}: {message}"
        if diagnostics:
            text = f"{text}\n\n{diagnostics}"
        super().__init__(text)


class ConverterError(ExternalToolError):
    """Raised when markdown to Typst conversion fails."""


class CompilerError(ExternalToolError):
    """Raised when Typst compilation fails."""
