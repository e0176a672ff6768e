"""
Header/footer template image inlining.

Chromium renders header and footer templates in an isolated context that
cannot load remote resources, so every remote <img> source is downloaded
and replaced by a base64 data URI before the template is used.
"""

import asyncio
import base64
import logging
from typing import List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup, Tag

from .errors import FetchFailure

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image/png;base64,"


def _remote_source(src: Optional[str]) -> Optional[str]:
    """Return the absolute http(s) URL of an image source, or None if it is not remote."""
    if not src:
        return None
    src = src.strip()
    if src.startswith("//"):
        return f"https:{src}"
    if src.lower().startswith(("http://", "https://")):
        return src
    return None


class TemplateImageInliner:
    """
    Replace remote image sources in an HTML fragment with data URIs.

    Every <img> gets the data of its own source; identical sources are
    downloaded once. Images without a src, or with a non-http(s) src
    (data URIs, relative paths), are left untouched.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        verify_tls: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self._transport = transport

    async def inline(self, fragment: str) -> str:
        """
        Inline every remote image of an HTML fragment.

        Args:
            fragment: Header or footer HTML

        Returns:
            The fragment with remote image sources replaced by data URIs.
            Returned unchanged (no network access) when it has no remote images.

        Raises:
            FetchFailure: an image could not be downloaded
        """
        soup = BeautifulSoup(fragment, "html.parser")

        targets: List[Tuple[Tag, str]] = []
        for img in soup.find_all("img"):
            url = _remote_source(img.get("src"))
            if url:
                targets.append((img, url))

        if not targets:
            return fragment

        urls = list(dict.fromkeys(url for _, url in targets))
        logger.debug(f"Inlining {len(targets)} template images from {len(urls)} sources")

        async with httpx.AsyncClient(
            verify=self.verify_tls,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            payloads = await asyncio.gather(*(self._fetch_base64(client, url) for url in urls))

        data_uris = {url: f"{DATA_URI_PREFIX}{payload}" for url, payload in zip(urls, payloads)}
        for img, url in targets:
            img["src"] = data_uris[url]

        return str(soup)

    async def _fetch_base64(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download template image {url}: {e!r}")
            raise FetchFailure(f"failed to fetch image {url}: {e}", url=url) from e

        return base64.b64encode(response.content).decode("ascii")
