"""
Error taxonomy for the PDF server.

Every error carries the HTTP status it maps to and renders to the JSON
body returned to the client.
"""

from typing import Any, Dict, Optional


class PdfServerError(Exception):
    """Base exception for PDF server errors."""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.context}


class ValidationError(PdfServerError):
    """Raised when a request is missing required input."""

    status_code = 400


class AuthFailure(PdfServerError):
    """Raised when the bearer token is missing or does not match."""

    status_code = 401

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class FetchFailure(PdfServerError):
    """Raised when a header/footer image cannot be downloaded."""

    def __init__(self, message: str, url: str):
        super().__init__(message, url=url)
        self.url = url


class RenderFailure(PdfServerError):
    """Raised when navigation, content loading or PDF generation fails."""


class PayloadTooLarge(PdfServerError):
    """Raised when a request body exceeds the configured limit."""

    status_code = 413
