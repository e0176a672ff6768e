"""
Render orchestration.

Validates a render request, resolves its preset, builds header/footer
templates and runs the render on a leased page from the pool.
"""

import asyncio
import logging
import time
from typing import Any, Optional, Protocol

from .errors import FetchFailure, RenderFailure, ValidationError
from .inliner import TemplateImageInliner
from .presets import PresetRegistry, RenderOptions

logger = logging.getLogger(__name__)


class PageRunner(Protocol):
    async def run_on_page(self, job: Any) -> Any: ...


def apply_templates(
    options: RenderOptions,
    header: Optional[str] = None,
    footer: Optional[str] = None,
) -> RenderOptions:
    """Return options with the given header/footer templates enabled."""
    overrides = {}
    if header:
        overrides.update(display_header_footer=True, header_template=header)
    if footer:
        overrides.update(display_header_footer=True, footer_template=footer)
    return options.overlay(**overrides) if overrides else options


class RenderOrchestrator:
    """
    Ties presets, template inlining and the page pool together.

    Validation errors are raised before a page is leased. Every other
    failure is logged and raised as RenderFailure.
    """

    def __init__(
        self,
        registry: PresetRegistry,
        pool: PageRunner,
        inliner: TemplateImageInliner,
    ):
        self.registry = registry
        self.pool = pool
        self.inliner = inliner

    async def render_url(
        self,
        url: Optional[str],
        pdf_option: Optional[str] = None,
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> bytes:
        """
        Navigate to a URL and render it to PDF.

        Remote images in the header and footer are inlined first.

        Raises:
            ValidationError: url is missing, or the preset is rejected
            RenderFailure: image download, navigation or PDF generation failed
        """
        if not url:
            raise ValidationError("url is required")

        base_options = self.registry.resolve(pdf_option)

        logger.info(f"Rendering URL {url} (pdf_option={pdf_option or self.registry.default_name})")
        started = time.monotonic()

        try:
            header_html, footer_html = await asyncio.gather(
                self._inline(header),
                self._inline(footer),
            )
            options = apply_templates(base_options, header_html, footer_html)
            pdf_kwargs = options.to_playwright_kwargs()

            async def job(page: Any) -> bytes:
                await page.goto(url)
                return await page.pdf(**pdf_kwargs)

            pdf_bytes = await self.pool.run_on_page(job)
        except FetchFailure as e:
            logger.error(f"Template image download failed while rendering {url}: {e.message}")
            raise RenderFailure(e.message, url=url, image_url=e.url) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Rendering {url} timed out")
            raise RenderFailure("rendering timed out", url=url) from e
        except Exception as e:
            logger.exception(f"Rendering {url} failed")
            raise RenderFailure(f"rendering failed: {e}", url=url) from e

        return self._check_result(pdf_bytes, started, url=url)

    async def render_html(
        self,
        html: Optional[str],
        pdf_option: Optional[str] = None,
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> bytes:
        """
        Load literal HTML into a page and render it to PDF.

        Header and footer are used as given; their images are not inlined.

        Raises:
            ValidationError: html is missing, or the preset is rejected
            RenderFailure: content loading or PDF generation failed
        """
        if not html:
            raise ValidationError("html is required")

        options = apply_templates(self.registry.resolve(pdf_option), header, footer)
        pdf_kwargs = options.to_playwright_kwargs()

        logger.info(f"Rendering HTML ({len(html)} chars, pdf_option={pdf_option or self.registry.default_name})")
        started = time.monotonic()

        async def job(page: Any) -> bytes:
            await page.set_content(html, wait_until="domcontentloaded")
            return await page.pdf(**pdf_kwargs)

        try:
            pdf_bytes = await self.pool.run_on_page(job)
        except asyncio.TimeoutError as e:
            logger.error(f"Rendering HTML ({len(html)} chars) timed out")
            raise RenderFailure("rendering timed out") from e
        except Exception as e:
            logger.exception(f"Rendering HTML ({len(html)} chars) failed")
            raise RenderFailure(f"rendering failed: {e}") from e

        return self._check_result(pdf_bytes, started)

    async def _inline(self, fragment: Optional[str]) -> Optional[str]:
        if not fragment:
            return None
        return await self.inliner.inline(fragment)

    def _check_result(self, pdf_bytes: Any, started: float, url: Optional[str] = None) -> bytes:
        if not isinstance(pdf_bytes, (bytes, bytearray)) or not pdf_bytes:
            logger.error("Renderer returned no PDF data")
            raise RenderFailure("renderer returned no PDF data", url=url)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Rendered PDF: {len(pdf_bytes)} bytes in {elapsed_ms}ms")
        return bytes(pdf_bytes)
