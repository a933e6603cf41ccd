from __future__ import annotations

import logging

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from errors import RenderBackendFailure

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-web-security",
]

PAGE_HEIGHT_JS = """() => Math.max(
    document.body ? document.body.scrollHeight : 0,
    document.documentElement ? document.documentElement.scrollHeight : 0
)"""

SCROLL_JS = "y => window.scrollTo({top: y, left: 0, behavior: 'instant'})"


class PlaywrightRenderBackend:
    """Headless Chromium page owned by exactly one capture job.

    Call start() before use and close() when done. close() is idempotent so
    the pipeline can release the browser as soon as the last frame is
    captured and again in its cleanup path.
    """

    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        load_timeout_ms: int = 30000,
        capture_timeout_ms: int = 10000,
        settle_ms: int = 500,
    ) -> None:
        self.width = width
        self.height = height
        self.load_timeout_ms = load_timeout_ms
        self.capture_timeout_ms = capture_timeout_ms
        self.settle_ms = settle_ms
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RenderBackendFailure("Browser session is not open")
        return self._page

    async def start(self) -> None:
        logger.info("Launching headless Chromium (%dx%d)", self.width, self.height)
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(headless=True, args=CHROMIUM_ARGS)
            self._context = await self._browser.new_context(
                viewport={"width": self.width, "height": self.height},
                device_scale_factor=1,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise RenderBackendFailure("Could not launch browser", detail=str(e)) from e

    async def load_document(self, html: str) -> int:
        """Load the HTML, wait for the network to settle, return the scrollable height."""
        page = self.page
        try:
            await page.set_content(html, wait_until="networkidle", timeout=self.load_timeout_ms)
            await page.wait_for_timeout(self.settle_ms)  # let fonts / late layout settle
            height = await page.evaluate(PAGE_HEIGHT_JS)
        except PlaywrightTimeoutError as e:
            raise RenderBackendFailure(
                f"Page did not finish loading within {self.load_timeout_ms}ms", detail=str(e)
            ) from e
        except PlaywrightError as e:
            raise RenderBackendFailure("Page failed to load", detail=str(e)) from e
        logger.info("Page height: %dpx, viewport: %dpx", height, self.height)
        return int(height)

    async def set_scroll_offset(self, y: int) -> None:
        try:
            await self.page.evaluate(SCROLL_JS, y)
        except PlaywrightError as e:
            raise RenderBackendFailure(f"Scroll to {y}px failed", detail=str(e)) from e

    async def capture_raster_frame(self) -> bytes:
        try:
            return await self.page.screenshot(
                type="png", full_page=False, timeout=self.capture_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise RenderBackendFailure(
                f"Screenshot timed out after {self.capture_timeout_ms}ms", detail=str(e)
            ) from e
        except PlaywrightError as e:
            raise RenderBackendFailure("Screenshot failed", detail=str(e)) from e

    async def close(self) -> None:
        if self._pw is None:
            return
        pw, browser = self._pw, self._browser
        self._pw = self._browser = self._context = self._page = None
        try:
            if browser is not None:
                await browser.close()
        except PlaywrightError as e:
            logger.warning("Browser close failed: %s", e)
        finally:
            await pw.stop()
        logger.info("Browser closed")
