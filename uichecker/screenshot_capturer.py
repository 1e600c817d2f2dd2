"""
Headless screenshot capture with Playwright.
"""

import logging
from pathlib import Path

from playwright.async_api import async_playwright

from .config import FREEZE_STYLES, SETTLE_DELAY_MS, VIEWPORT_HEIGHT, VIEWPORT_WIDTH

logger = logging.getLogger(__name__)


def screenshot_filename(route: str) -> str:
    """File name for a route's screenshot (``/`` -> ``index.png``)."""
    if route == "/":
        return "index.png"
    return f"{route.replace('/', '')}.png"


def route_display_name(route: str) -> str:
    """Name shown for a route in results (``/`` -> ``Home Page``)."""
    if route == "/":
        return "Home Page"
    return route.replace("/", "")


class ScreenshotCapturer:
    """
    Captures full-page screenshots of a running server.

    One Chromium instance is launched per ``capture`` call and reused for
    all routes of that call.
    """

    def __init__(
        self,
        viewport_width: int = VIEWPORT_WIDTH,
        viewport_height: int = VIEWPORT_HEIGHT,
        settle_delay_ms: int = SETTLE_DELAY_MS,
    ) -> None:
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self.settle_delay_ms = settle_delay_ms

    async def capture(self, base_url: str, routes: list[str], output_dir: Path) -> dict[str, Path]:
        """
        Screenshot every route of a server.

        Animations, transitions and the text caret are disabled before each
        capture so that timing does not leak into the pixels. A route that
        fails is logged and skipped.

        Args:
            base_url: Reachable server URL (including any base path).
            routes: Routes to capture, e.g. ``["/"]``.
            output_dir: Directory receiving the PNG files.

        Returns:
            Mapping of route to screenshot path, for routes that succeeded.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        captured: dict[str, Path] = {}

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch()
            try:
                for route in routes:
                    url = f"{base_url}{route}"
                    save_path = output_dir / screenshot_filename(route)
                    page = await browser.new_page(viewport=self.viewport)
                    try:
                        logger.info("Navigating to %s...", url)
                        await page.goto(url, wait_until="networkidle")
                        await page.add_style_tag(content=FREEZE_STYLES)
                        await page.wait_for_timeout(self.settle_delay_ms)
                        await page.screenshot(path=str(save_path), full_page=True)
                        captured[route] = save_path
                    except Exception as e:
                        logger.warning("Failed to capture %s: %s", url, e)
                    finally:
                        await page.close()
            finally:
                await browser.close()

        return captured
