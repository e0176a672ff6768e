"""
Unit tests for the render orchestrator.

Uses a minimal in-memory pool so each test controls the page directly.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pdf_server.errors import FetchFailure, RenderFailure, ValidationError
from pdf_server.presets import PresetRegistry, builtin_presets
from pdf_server.renderer import RenderOrchestrator, apply_templates

from conftest import FAKE_PDF, make_page


class FakePool:
    """Runs jobs on a single page and counts leases."""

    def __init__(self, page):
        self.page = page
        self.leases = 0

    async def run_on_page(self, job):
        self.leases += 1
        return await job(self.page)


@pytest.fixture
def page():
    return make_page()


@pytest.fixture
def pool(page):
    return FakePool(page)


@pytest.fixture
def inliner():
    inliner = MagicMock()
    inliner.inline = AsyncMock(side_effect=lambda fragment: f"inlined:{fragment}")
    return inliner


@pytest.fixture
def registry():
    return PresetRegistry(builtin_presets())


@pytest.fixture
def orchestrator(registry, pool, inliner):
    return RenderOrchestrator(registry, pool, inliner)


class TestApplyTemplates:
    """Tests for header/footer overlay."""

    def test_no_templates_returns_same_options(self, registry):
        options = registry.resolve("A4")
        assert apply_templates(options) is options

    def test_header_only(self, registry):
        options = apply_templates(registry.resolve("A4"), header="<div>H</div>")
        assert options.display_header_footer is True
        assert options.header_template == "<div>H</div>"
        assert options.footer_template is None

    def test_footer_only(self, registry):
        options = apply_templates(registry.resolve("A4"), footer="<div>F</div>")
        assert options.display_header_footer is True
        assert options.footer_template == "<div>F</div>"
        assert options.header_template is None


class TestRenderUrl:
    """Tests for RenderOrchestrator.render_url()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, ""])
    async def test_missing_url_rejected_before_lease(self, orchestrator, pool, url):
        with pytest.raises(ValidationError, match="url is required"):
            await orchestrator.render_url(url)
        assert pool.leases == 0

    @pytest.mark.asyncio
    async def test_renders_with_resolved_preset(self, orchestrator, pool, page):
        result = await orchestrator.render_url("https://example.com", pdf_option="A4L")

        assert result == FAKE_PDF
        assert pool.leases == 1
        page.goto.assert_awaited_once_with("https://example.com")
        page.pdf.assert_awaited_once_with(**builtin_presets()["A4L"].to_playwright_kwargs())

    @pytest.mark.asyncio
    async def test_default_preset_when_absent(self, orchestrator, page):
        await orchestrator.render_url("https://example.com")
        page.pdf.assert_awaited_once_with(**builtin_presets()["DEFAULT"].to_playwright_kwargs())

    @pytest.mark.asyncio
    async def test_header_and_footer_are_inlined(self, orchestrator, registry, inliner, page):
        await orchestrator.render_url(
            "https://example.com",
            pdf_option="A4",
            header='<img src="https://cdn/h.png">',
            footer="<div>F</div>",
        )

        assert inliner.inline.await_count == 2
        kwargs = page.pdf.await_args.kwargs
        assert kwargs["display_header_footer"] is True
        assert kwargs["header_template"] == 'inlined:<img src="https://cdn/h.png">'
        assert kwargs["footer_template"] == "inlined:<div>F</div>"
        assert registry.resolve("A4").header_template is None

    @pytest.mark.asyncio
    async def test_empty_header_is_ignored(self, orchestrator, inliner, page):
        await orchestrator.render_url("https://example.com", pdf_option="A4", header="", footer=None)

        inliner.inline.assert_not_awaited()
        assert "display_header_footer" not in page.pdf.await_args.kwargs

    @pytest.mark.asyncio
    async def test_header_and_footer_inlined_concurrently(self, registry, pool):
        header_started = asyncio.Event()
        footer_started = asyncio.Event()

        async def inline(fragment):
            if fragment == "header":
                header_started.set()
                await footer_started.wait()
            else:
                footer_started.set()
                await header_started.wait()
            return fragment

        inliner = MagicMock()
        inliner.inline = AsyncMock(side_effect=inline)
        orchestrator = RenderOrchestrator(registry, pool, inliner)

        await asyncio.wait_for(
            orchestrator.render_url("https://example.com", header="header", footer="footer"),
            timeout=1,
        )
        assert pool.leases == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_render_failure_without_lease(self, orchestrator, pool, inliner):
        inliner.inline.side_effect = FetchFailure(
            "failed to fetch image https://cdn/h.png: 404", url="https://cdn/h.png"
        )

        with pytest.raises(RenderFailure) as exc_info:
            await orchestrator.render_url("https://example.com", header='<img src="https://cdn/h.png">')

        assert pool.leases == 0
        assert exc_info.value.status_code == 500
        assert exc_info.value.to_dict() == {
            "error": "failed to fetch image https://cdn/h.png: 404",
            "url": "https://example.com",
            "image_url": "https://cdn/h.png",
        }
        assert isinstance(exc_info.value.__cause__, FetchFailure)

    @pytest.mark.asyncio
    async def test_navigation_failure(self, orchestrator, page):
        page.goto.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(RenderFailure) as exc_info:
            await orchestrator.render_url("https://nowhere.invalid")

        body = exc_info.value.to_dict()
        assert body["url"] == "https://nowhere.invalid"
        assert "ERR_NAME_NOT_RESOLVED" in body["error"]
        page.pdf.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout(self, registry, inliner):
        pool = MagicMock()
        pool.run_on_page = AsyncMock(side_effect=asyncio.TimeoutError())
        orchestrator = RenderOrchestrator(registry, pool, inliner)

        with pytest.raises(RenderFailure) as exc_info:
            await orchestrator.render_url("https://slow.example.com")

        assert exc_info.value.to_dict() == {"error": "rendering timed out", "url": "https://slow.example.com"}

    @pytest.mark.asyncio
    async def test_empty_pdf_is_a_failure(self, orchestrator, page):
        page.pdf.return_value = b""

        with pytest.raises(RenderFailure, match="no PDF data"):
            await orchestrator.render_url("https://example.com")

    @pytest.mark.asyncio
    async def test_unknown_preset_rejected_before_lease(self, pool, inliner):
        registry = PresetRegistry(builtin_presets(), unknown_policy="reject")
        orchestrator = RenderOrchestrator(registry, pool, inliner)

        with pytest.raises(ValidationError):
            await orchestrator.render_url("https://example.com", pdf_option="B5")

        assert pool.leases == 0
        inliner.inline.assert_not_awaited()


class TestRenderHtml:
    """Tests for RenderOrchestrator.render_html()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("html", [None, ""])
    async def test_missing_html_rejected(self, orchestrator, pool, html):
        with pytest.raises(ValidationError, match="html is required"):
            await orchestrator.render_html(html)
        assert pool.leases == 0

    @pytest.mark.asyncio
    async def test_sets_content_and_waits_for_dom(self, orchestrator, page):
        result = await orchestrator.render_html("<p>hi</p>", pdf_option="A3")

        assert result == FAKE_PDF
        page.set_content.assert_awaited_once_with("<p>hi</p>", wait_until="domcontentloaded")
        page.goto.assert_not_awaited()
        page.pdf.assert_awaited_once_with(**builtin_presets()["A3"].to_playwright_kwargs())

    @pytest.mark.asyncio
    async def test_templates_are_used_literally(self, orchestrator, inliner, page):
        header = '<img src="https://cdn/h.png"><div>H</div>'

        await orchestrator.render_html("<p>hi</p>", header=header, footer="<div>F</div>")

        inliner.inline.assert_not_awaited()
        kwargs = page.pdf.await_args.kwargs
        assert kwargs["display_header_footer"] is True
        assert kwargs["header_template"] == header
        assert kwargs["footer_template"] == "<div>F</div>"

    @pytest.mark.asyncio
    async def test_render_failure_has_no_url(self, orchestrator, page):
        page.pdf.side_effect = RuntimeError("Target closed")

        with pytest.raises(RenderFailure) as exc_info:
            await orchestrator.render_html("<p>hi</p>")

        assert exc_info.value.to_dict() == {"error": "rendering failed: Target closed"}
