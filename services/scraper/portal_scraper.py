from typing import Optional

from playwright.async_api import Error as PlaywrightError

from core.config import Settings, settings
from core.exceptions import ScrapeError, SessionExpiredError
from core.logger import get_logger
from models.run import ScrapeResult
from models.session import Credential
from parsers.case_list_parser import CaseListParser
from services.scraper.browser import BrowserManager

logger = get_logger(__name__)


class PortalScraper:
    """
    Scraper Adapter: loads the case listing with the session cookies and
    hands the rendered HTML to CaseListParser.
    """

    def __init__(
        self,
        browser: BrowserManager,
        parser: Optional[CaseListParser] = None,
        config: Optional[Settings] = None,
    ):
        self.browser = browser
        self.config = config or settings
        self.parser = parser or CaseListParser.from_settings(self.config)

    async def fetch_listing(self, credential: Credential) -> str:
        async with self.browser.context(credential) as context:
            page = await context.new_page()
            try:
                response = await page.goto(
                    self.config.NOTIFICATIONS_URL,
                    wait_until="networkidle",
                    timeout=self.browser.timeout_ms,
                )
            except PlaywrightError as e:
                raise ScrapeError(
                    "Could not load the case listing",
                    {"url": self.config.NOTIFICATIONS_URL, "error": str(e)},
                ) from e

            if self.browser.is_login_gate(page.url):
                raise SessionExpiredError("Redirected to login gate while scraping", {"url": page.url})

            if response is not None and not response.ok:
                raise ScrapeError(
                    f"Case listing answered HTTP {response.status}",
                    {"url": self.config.NOTIFICATIONS_URL},
                )

            return await page.content()

    async def scrape(self, credential: Credential) -> ScrapeResult:
        html = await self.fetch_listing(credential)
        result = self.parser.parse(html)
        logger.info(
            f"[SCRAPER] {len(result.records)} cases observed, "
            f"{sum(1 for r in result.records if r.has_notification)} with notification"
        )
        return result
