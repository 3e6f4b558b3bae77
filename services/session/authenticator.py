from datetime import datetime, timezone
from typing import Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from core.config import Settings, settings
from core.exceptions import AuthenticationError
from core.logger import get_logger
from models.session import Credential
from services.scraper.browser import BrowserManager

logger = get_logger(__name__)


class PlaywrightAuthenticator:
    """
    Logs into the portal SSO with a real browser and probes stored cookies
    by loading the portal landing page.
    """

    def __init__(self, browser: BrowserManager, config: Optional[Settings] = None):
        self.browser = browser
        self.config = config or settings

    async def probe(self, credential: Credential) -> bool:
        async with self.browser.context(credential) as context:
            page = await context.new_page()
            try:
                response = await page.goto(
                    self.config.PORTAL_URL,
                    wait_until="domcontentloaded",
                    timeout=self.browser.timeout_ms,
                )
            except PlaywrightError as e:
                logger.warning(f"[AUTH] Probe navigation failed: {e}")
                return False

            if response is None or not response.ok:
                logger.info("[AUTH] Portal did not answer the probe successfully")
                return False

            if self.browser.is_login_gate(page.url):
                logger.info("[AUTH] Probe redirected to login gate, session expired")
                return False

            return True

    async def login(self) -> Credential:
        if not self.config.PORTAL_USERNAME or not self.config.PORTAL_PASSWORD:
            raise AuthenticationError("PORTAL_USERNAME or PORTAL_PASSWORD not set")

        logger.info("[AUTH] Starting portal SSO login...")

        async with self.browser.context() as context:
            page = await context.new_page()
            try:
                await page.goto(
                    self.config.LOGIN_URL,
                    wait_until="domcontentloaded",
                    timeout=self.browser.timeout_ms,
                )
                await page.wait_for_selector(
                    self.config.USERNAME_SELECTOR, state="visible", timeout=self.browser.timeout_ms
                )
                await page.fill(self.config.USERNAME_SELECTOR, self.config.PORTAL_USERNAME)
                await page.fill(self.config.PASSWORD_SELECTOR, self.config.PORTAL_PASSWORD)

                submit = page.locator(self.config.SUBMIT_SELECTOR).first
                if await submit.count():
                    await submit.click()
                else:
                    await page.press(self.config.PASSWORD_SELECTOR, "Enter")

                logger.info("[AUTH] Credentials submitted, waiting for redirect...")
                try:
                    await page.wait_for_url(
                        lambda url: not self.browser.is_login_gate(url),
                        timeout=self.browser.timeout_ms,
                    )
                except PlaywrightTimeoutError:
                    message = await self._read_login_error(page)
                    raise AuthenticationError(
                        "Still on the login gate after submitting credentials",
                        {"url": page.url, "portal_message": message or "-"},
                    )

            except PlaywrightTimeoutError as e:
                raise AuthenticationError("Login page did not load in time", {"error": str(e)}) from e
            except PlaywrightError as e:
                raise AuthenticationError("Browser error during login", {"error": str(e)}) from e

            cookies = await context.cookies()
            logger.info(f"[AUTH] Login successful. Retrieved {len(cookies)} cookies.")
            return Credential(
                cookies=[dict(c) for c in cookies],
                obtained_at=datetime.now(timezone.utc),
            )

    @staticmethod
    async def _read_login_error(page) -> Optional[str]:
        locator = page.locator(".alert-danger, .kc-feedback-text, #input-error").first
        try:
            if await locator.count():
                return (await locator.text_content() or "").strip()
        except PlaywrightError:
            return None
        return None

    async def close(self) -> None:
        await self.browser.close()
