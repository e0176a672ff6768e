"""
Global fixtures for all unit tests.

These fixtures keep unit tests away from real external services:
- Playwright is replaced by mocks (no Chromium launch)
- Template image downloads go through an httpx.MockTransport
- PDF server environment variables are cleared so local config can't leak in
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from pdf_server.app import create_app
from pdf_server.config import PdfServerSettings
from pdf_server.inliner import TemplateImageInliner

FAKE_PDF = b"%PDF-1.4 fake pdf content"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR fake png"

PDF_SERVER_ENV_VARS = [
    "PRESET_PDF_OPTIONS_FILE_PATH",
    "DEFAULT_PRESET_PDF_OPTIONS_NAME",
    "UNKNOWN_PRESET_POLICY",
    "PAGES_NUM",
    "PAGE_TIMEOUT_MILLISECONDS",
    "BEARER_AUTH_SECRET_KEY",
    "BODY_LIMIT",
    "LOG_LEVEL",
    "USER_AGENT",
    "ACCEPT_LANGUAGE",
    "VIEWPORT_WIDTH",
    "VIEWPORT_HEIGHT",
    "BROWSER_LAUNCH_ARGS",
    "DEFAULT_PDF_OPTION_FORMAT",
    "DEFAULT_PDF_OPTION_LANDSCAPE",
    "DEFAULT_PDF_OPTION_MARGIN",
    "EMULATE_MEDIA_TYPE_SCREEN_ENABLED",
]


def make_page(pdf_bytes: bytes = FAKE_PDF) -> MagicMock:
    """Mock Playwright page whose coroutine methods are AsyncMocks."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.set_content = AsyncMock()
    page.pdf = AsyncMock(return_value=pdf_bytes)
    page.emulate_media = AsyncMock()
    return page


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Prevent local PDF server configuration from leaking into tests."""
    for name in PDF_SERVER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_playwright():
    """
    Patch async_playwright in the pool module.

    Every browser context gets its own mock page; all created pages are
    collected in `pages` in creation order.
    """
    pages = []

    async def new_context(**kwargs):
        context = MagicMock()
        context.kwargs = kwargs
        context.close = AsyncMock()

        async def new_page():
            page = make_page()
            page.context = context
            pages.append(page)
            return page

        context.new_page = AsyncMock(side_effect=new_page)
        return context

    browser = MagicMock()
    browser.new_context = AsyncMock(side_effect=new_context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    with patch("pdf_server.pool.async_playwright") as mock_async_playwright:
        mock_async_playwright.return_value.start = AsyncMock(return_value=playwright)
        yield SimpleNamespace(
            async_playwright=mock_async_playwright,
            playwright=playwright,
            browser=browser,
            pages=pages,
        )


@pytest.fixture
def image_requests():
    """URLs requested through the image transport."""
    return []


@pytest.fixture
def image_transport(image_requests):
    """Serve PNG_BYTES for every image URL; paths ending in missing.png return 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        image_requests.append(str(request.url))
        if request.url.path.endswith("missing.png"):
            return httpx.Response(404)
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    return httpx.MockTransport(handler)


@pytest.fixture
def settings():
    """Single-page settings without auth."""
    return PdfServerSettings(
        pages_num=1,
        page_timeout_milliseconds=5000,
        bearer_auth_secret_key=None,
        preset_pdf_options_file_path=None,
        unknown_preset_policy="fallback",
    )


@pytest.fixture
def app(settings, mock_playwright, image_transport):
    return create_app(settings, inliner=TemplateImageInliner(transport=image_transport))


@pytest.fixture
def client(app):
    """Test client with the app lifespan (page pool) running."""
    with TestClient(app) as test_client:
        yield test_client
