import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright

from core.config import Settings, settings
from core.logger import get_logger
from models.session import Credential

logger = get_logger(__name__)


class BrowserManager:
    """
    Owns the single Chromium instance shared by the authenticator and the
    scraper. Every browser context is handed out through context() so it is
    closed on all exit paths.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                logger.info("[BROWSER] Launching Chromium...")
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.HEADLESS_MODE,
                    args=[
                        "--no-sandbox",
                        "--disable-setuid-sandbox",
                        "--disable-dev-shm-usage",
                        "--disable-blink-features=AutomationControlled",
                    ],
                )
            return self._browser

    @asynccontextmanager
    async def context(self, credential: Optional[Credential] = None) -> AsyncIterator[BrowserContext]:
        browser = await self._get_browser()
        context = await browser.new_context(
            user_agent=self.config.USER_AGENT,
            locale="es-AR",
            timezone_id=self.config.PORTAL_TIMEZONE,
            ignore_https_errors=True,
            accept_downloads=False,
        )
        try:
            if credential and credential.cookies:
                await context.add_cookies(credential.cookies)
            yield context
        finally:
            await context.close()

    def is_login_gate(self, url: str) -> bool:
        return bool(self.config.LOGIN_GATE_MARKER) and self.config.LOGIN_GATE_MARKER in url

    @property
    def timeout_ms(self) -> int:
        return int(self.config.SESSION_TIMEOUT_SECONDS * 1000)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning(f"[BROWSER] Error closing browser: {e}")
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("[BROWSER] Browser resources released")
