"""
Pool of reusable Playwright pages.

One headless Chromium process backs a fixed number of pages, each in its
own browser context. A page is leased to exactly one render at a time;
callers wait in FIFO order when every page is busy.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

from playwright.async_api import async_playwright

from .config import PdfServerSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PageOptions:
    """Configuration applied to every page when it is created."""

    user_agent: Optional[str] = None
    accept_language: str = ""
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1280, "height": 720})
    page_timeout_ms: int = 60000
    emulate_media_type_screen: bool = False

    def context_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for browser.new_context()."""
        kwargs: Dict[str, Any] = {"viewport": dict(self.viewport)}
        if self.user_agent:
            kwargs["user_agent"] = self.user_agent
        if self.accept_language:
            kwargs["extra_http_headers"] = {"Accept-Language": self.accept_language}
        return kwargs


class PagePool:
    """
    Fixed-size pool of browser pages.

    A page that fails (exception, timeout or cancellation) is closed and
    replaced before the next lease, so the pool never shrinks and never
    hands out a page left mid-navigation.
    """

    def __init__(
        self,
        size: int = 3,
        page_options: Optional[PageOptions] = None,
        launch_args: Optional[List[str]] = None,
        job_timeout: Optional[float] = None,
        headless: bool = True,
    ):
        if size < 1:
            raise ValueError("Page pool size must be at least 1")
        self.size = size
        self.page_options = page_options or PageOptions()
        self.launch_args = launch_args or []
        self.job_timeout = job_timeout
        self.headless = headless

        self._idle: "asyncio.Queue[Any]" = asyncio.Queue()
        self._playwright = None
        self._browser = None
        self._started = False

    @classmethod
    def from_settings(cls, settings: PdfServerSettings) -> "PagePool":
        page_options = PageOptions(
            user_agent=settings.user_agent,
            accept_language=settings.accept_language,
            viewport=settings.viewport,
            page_timeout_ms=settings.page_timeout_milliseconds,
            emulate_media_type_screen=settings.emulate_media_type_screen_enabled,
        )
        return cls(
            size=settings.pages_num,
            page_options=page_options,
            launch_args=settings.browser_launch_args_list,
            job_timeout=settings.page_timeout_seconds,
            headless=settings.browser_headless,
        )

    @property
    def ready(self) -> bool:
        return self._started

    @property
    def idle_count(self) -> int:
        return self._idle.qsize()

    @property
    def busy_count(self) -> int:
        return max(self.size - self._idle.qsize(), 0)

    async def start(self) -> None:
        """Launch Chromium and open every page."""
        if self._started:
            return

        logger.info(f"Launching Chromium with {self.size} pages (headless={self.headless})")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
            )
            for _ in range(self.size):
                self._idle.put_nowait(await self._new_page())
        except Exception:
            await self.close()
            raise

        self._started = True
        logger.info("Page pool ready")

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        self._started = False
        while not self._idle.empty():
            self._idle.get_nowait()

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _new_page(self) -> Any:
        context = await self._browser.new_context(**self.page_options.context_kwargs())
        page = await context.new_page()
        page.set_default_navigation_timeout(self.page_options.page_timeout_ms)
        if self.page_options.emulate_media_type_screen:
            await page.emulate_media(media="screen")
        return page

    async def _discard(self, page: Any) -> None:
        try:
            await page.context.close()
        except Exception as e:
            logger.warning(f"Error closing page context: {e}")

    async def _recycle(self, page: Any) -> None:
        """Replace a failed page with a fresh one and return it to the idle set."""
        if not self._started:
            await self._discard(page)
            return

        try:
            fresh = await self._new_page()
        except Exception:
            logger.exception("Could not replace failed page, reusing it")
            self._idle.put_nowait(page)
            return

        if self._started:
            self._idle.put_nowait(fresh)
        else:
            await self._discard(fresh)
        await self._discard(page)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[Any]:
        """
        Lease one idle page for exclusive use.

        The page (or its replacement) is returned to the idle set on every
        exit path, including exceptions and task cancellation.
        Pages released after close() are discarded instead.
        """
        if not self._started:
            raise RuntimeError("Page pool is not started")

        page = await self._idle.get()
        released = False
        try:
            yield page
            released = True
            if self._started:
                self._idle.put_nowait(page)
            else:
                await self._discard(page)
        finally:
            if not released:
                await asyncio.shield(self._recycle(page))

    async def run_on_page(self, job: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run job(page) on a leased page.

        Raises:
            asyncio.TimeoutError: the job exceeded job_timeout
        """
        async with self.lease() as page:
            if self.job_timeout:
                return await asyncio.wait_for(job(page), timeout=self.job_timeout)
            return await job(page)
