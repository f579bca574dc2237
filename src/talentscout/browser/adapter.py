from __future__ import annotations

import logging

import requests

from talentscout.browser.parser import parse_html
from talentscout.browser.service import BrowserServiceClient, random_user_agent
from talentscout.config import Settings, get_settings
from talentscout.errors import BrowserServiceUnavailable
from talentscout.types import ScrapeOptions, ScrapeResult

logger = logging.getLogger(__name__)

STATIC_METHOD = "static_html"
RENDERED_METHOD = "javascript_rendered"
SCRAPE_MODES = ("auto", "static", "rendered", "spa", "infinite")

SCROLL_TO_BOTTOM_SCRIPT = "window.scrollTo(0, document.body.scrollHeight);"
AUTO_SCROLL_SCRIPT = """
async function autoScroll() {
    await new Promise((resolve) => {
        let totalHeight = 0;
        const distance = 100;
        const timer = setInterval(() => {
            const scrollHeight = document.body.scrollHeight;
            window.scrollBy(0, distance);
            totalHeight += distance;
            if (totalHeight >= scrollHeight) {
                clearInterval(timer);
                resolve();
            }
        }, 100);
    });
}
await autoScroll();
"""


def has_enough_content(result: ScrapeResult) -> bool:
    text_length = len(result.text.full_text)
    return (
        text_length > 500
        or (bool(result.links) and bool(result.images))
        or (bool(result.headings) and text_length > 100)
    )


class ScrapeAdapter:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        service: BrowserServiceClient | None = None,
        http: requests.Session | None = None,
        mode: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.service = service or BrowserServiceClient(self.settings)
        self.http = http or requests.Session()
        self.mode = mode or self.settings.scrape_mode
        if self.mode not in SCRAPE_MODES:
            raise ValueError(f"unknown scrape mode {self.mode}, expected one of {', '.join(SCRAPE_MODES)}")

    def scrape(self, url: str, options: ScrapeOptions | None = None) -> ScrapeResult:
        """Fetch a page the way the configured mode asks.

        ``auto`` tries a static fetch first and renders with JS when the static
        page looks empty or fails. ``spa`` and ``infinite`` always render, with
        the waits and scrolling those kinds of sites need.
        """
        if self.mode == "static":
            return self.scrape_static(url)
        if self.mode == "rendered":
            return self.scrape_rendered(url, options)
        if self.mode == "spa":
            return self.scrape_spa(url, options)
        if self.mode == "infinite":
            return self.scrape_infinite(url, options)

        try:
            result = self.scrape_static(url)
        except Exception as exc:
            logger.info("Static fetch failed for %s, falling back to JS rendering: %s", url, exc)
            return self.scrape_rendered(url, options)

        if has_enough_content(result):
            return result

        logger.info(
            "Static content insufficient for %s (text=%s links=%s images=%s), rendering with JS",
            url,
            len(result.text.full_text),
            len(result.links),
            len(result.images),
        )
        return self.scrape_rendered(url, options)

    def scrape_static(self, url: str) -> ScrapeResult:
        response = self.http.get(
            url,
            timeout=self.settings.static_fetch_timeout_sec,
            headers={
                "User-Agent": random_user_agent(),
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
        )
        response.raise_for_status()
        return parse_html(response.text, url, method=STATIC_METHOD)

    def scrape_rendered(self, url: str, options: ScrapeOptions | None = None) -> ScrapeResult:
        self.service.check_health()
        data = self.service.render(url, options)
        result = parse_html(str(data.get("html", "")), str(data.get("url") or url), method=RENDERED_METHOD)
        if not result.title and data.get("title"):
            result.title = str(data["title"])
        result.metrics = {
            "metrics": data.get("metrics") or {},
            "timing": data.get("timing") or {},
        }
        return result

    def scrape_spa(self, url: str, options: ScrapeOptions | None = None) -> ScrapeResult:
        merged = (options or ScrapeOptions()).model_copy()
        merged.wait_until = "networkidle0"
        merged.wait_time_ms = merged.wait_time_ms or 3000
        merged.execute_script = merged.execute_script or SCROLL_TO_BOTTOM_SCRIPT
        return self.scrape_rendered(url, merged)

    def scrape_infinite(self, url: str, options: ScrapeOptions | None = None) -> ScrapeResult:
        merged = (options or ScrapeOptions()).model_copy()
        merged.execute_script = AUTO_SCROLL_SCRIPT
        merged.wait_time_ms = merged.wait_time_ms or 5000
        return self.scrape_rendered(url, merged)

    def service_available(self) -> bool:
        try:
            self.service.check_health()
        except BrowserServiceUnavailable:
            return False
        return True
