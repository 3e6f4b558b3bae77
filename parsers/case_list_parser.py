import re
from typing import Optional
from bs4 import BeautifulSoup, Tag
from core.constants import DETAILS_TRUNCATE_LENGTH, TITLE_TRUNCATE_LENGTH
from core.logger import get_logger
from models.record import ObservedRecord
from models.run import ScrapeResult

logger = get_logger(__name__)


class CaseListParser:
    """
    Extracts ObservedRecords from the portal's case listing.
    All markup heuristics live here; the core only sees typed records.
    """

    def __init__(
        self,
        row_selector: str,
        title_selector: str,
        details_selector: str,
        notification_selector: str,
        case_number_pattern: str,
        all_rows_notified: bool = False,
    ):
        self.row_selector = row_selector
        self.title_selector = title_selector
        self.details_selector = details_selector
        self.notification_selector = notification_selector
        self.case_number_re = re.compile(case_number_pattern)
        self.all_rows_notified = all_rows_notified

    @classmethod
    def from_settings(cls, config) -> "CaseListParser":
        return cls(
            row_selector=config.ROW_SELECTOR,
            title_selector=config.TITLE_SELECTOR,
            details_selector=config.DETAILS_SELECTOR,
            notification_selector=config.NOTIFICATION_SELECTOR,
            case_number_pattern=config.CASE_NUMBER_PATTERN,
            all_rows_notified=config.ALL_ROWS_NOTIFIED,
        )

    def parse(self, html: str) -> ScrapeResult:
        soup = BeautifulSoup(html, "html.parser")
        rows = soup.select(self.row_selector)
        result = ScrapeResult()

        if not rows:
            logger.warning(f"[PARSER] No rows found with selector '{self.row_selector}'")
            return result

        for index, row in enumerate(rows):
            try:
                record = self.parse_row(row)
            except Exception as e:
                result.errors.append(f"Row {index}: could not be parsed ({e})")
                continue
            if record is not None:
                result.records.append(record)

        logger.info(
            f"[PARSER] {len(result.records)} cases parsed from {len(rows)} rows "
            f"({len(result.errors)} errors)"
        )
        return result

    def parse_row(self, row: Tag) -> Optional[ObservedRecord]:
        row_text = self._clean(row.get_text(" ", strip=True))
        match = self.case_number_re.search(row_text)
        if not match:
            # Header, spacer or pagination row
            logger.debug(f"[PARSER] Row without case number skipped: {row_text[:60]}")
            return None

        number = match.group(0)
        title = self._select_text(row, self.title_selector) or row_text
        title = title.replace(number, "").strip(" -|:") or number
        details = self._select_text(row, self.details_selector)

        has_notification = self.all_rows_notified or bool(
            self.notification_selector and row.select_one(self.notification_selector)
        )

        return ObservedRecord(
            number=number,
            title=title[:TITLE_TRUNCATE_LENGTH],
            has_notification=has_notification,
            notification_details=details[:DETAILS_TRUNCATE_LENGTH] if details else None,
        )

    def _select_text(self, row: Tag, selector: str) -> str:
        if not selector:
            return ""
        el = row.select_one(selector)
        return self._clean(el.get_text(" ", strip=True)) if el else ""

    @staticmethod
    def _clean(text: str) -> str:
        return re.sub(r"\s+", " ", text.replace("\x00", "")).strip()
