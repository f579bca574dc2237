from __future__ import annotations

import logging
import random
import time
from typing import Any

import requests

from talentscout.config import Settings, get_settings
from talentscout.errors import BrowserServiceUnavailable, ScrapeError
from talentscout.types import ScrapeOptions

logger = logging.getLogger(__name__)


USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


class BrowserServiceClient:
    """HTTP client for the remote headless-browser render service."""

    def __init__(self, settings: Settings | None = None, *, http: requests.Session | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.browser_service_url.rstrip("/")
        self.http = http or requests.Session()

    def check_health(self) -> dict[str, Any]:
        try:
            response = self.http.get(
                f"{self.base_url}/health", timeout=self.settings.browser_health_timeout_sec
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise BrowserServiceUnavailable(f"browser service health check failed: {exc}") from exc

        if not isinstance(payload, dict) or payload.get("status") != "healthy":
            raise BrowserServiceUnavailable(f"browser service reported unhealthy state: {payload}")
        return payload

    def render(self, url: str, options: ScrapeOptions | None = None) -> dict[str, Any]:
        data = self._post("/scrape", {"url": url, "options": self._service_options(options)})
        if not data.get("html"):
            raise ScrapeError(f"browser service returned no html for {url}")
        return data

    def render_pdf(self, url: str, *, page_format: str = "A4", print_background: bool = True) -> bytes:
        """Print the page to PDF; the service answers with the raw file."""
        options = {
            "timeout": self.settings.browser_service_timeout_sec * 1000,
            "format": page_format,
            "printBackground": print_background,
        }
        return self._post_binary("/pdf", {"url": url, "options": options}, "application/pdf")

    def screenshot(
        self,
        url: str,
        *,
        image_type: str = "png",
        full_page: bool = False,
        viewport: dict[str, int] | None = None,
        wait_time_ms: int | None = None,
    ) -> bytes:
        viewport = viewport or ScrapeOptions().viewport
        options: dict[str, Any] = {
            "timeout": self.settings.browser_service_timeout_sec * 1000,
            "type": image_type,
            "fullPage": full_page,
            "width": viewport["width"],
            "height": viewport["height"],
        }
        if wait_time_ms:
            options["waitTime"] = wait_time_ms
        return self._post_binary("/screenshot", {"url": url, "options": options}, "image/")

    def _service_options(self, options: ScrapeOptions | None) -> dict[str, Any]:
        options = options or ScrapeOptions()
        payload: dict[str, Any] = {
            "userAgent": random_user_agent(),
            "timeout": options.timeout_ms or self.settings.browser_service_timeout_sec * 1000,
            "waitUntil": options.wait_until,
            "blockResources": options.block_resources,
            "viewport": options.viewport,
        }
        if options.wait_for_selector:
            payload["waitForSelector"] = options.wait_for_selector
        if options.wait_time_ms:
            payload["waitTime"] = options.wait_time_ms
        if options.execute_script:
            payload["executeScript"] = options.execute_script
        return payload

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = self._send(path, body)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ScrapeError(f"browser service {path} failed: {exc}") from exc

        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error", "unknown error") if isinstance(payload, dict) else payload
            raise ScrapeError(f"browser service {path} error: {error}")
        return payload.get("data") or {}

    def _post_binary(self, path: str, body: dict[str, Any], content_type: str) -> bytes:
        response = self._send(path, body)
        received = response.headers.get("Content-Type", "")
        if not received.startswith(content_type):
            raise ScrapeError(f"browser service {path} returned {received or 'no content type'}, expected {content_type}")
        if not response.content:
            raise ScrapeError(f"browser service {path} returned an empty body for {body.get('url')}")
        return response.content

    def _send(self, path: str, body: dict[str, Any]) -> requests.Response:
        attempts = max(1, self.settings.browser_scrape_attempts)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self.http.post(
                    f"{self.base_url}{path}",
                    json=body,
                    timeout=self.settings.browser_service_timeout_sec,
                )
                response.raise_for_status()
                return response
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = exc
                logger.warning(
                    "Browser service %s attempt %s/%s failed url=%s: %s",
                    path,
                    attempt,
                    attempts,
                    body.get("url"),
                    exc,
                )
                if attempt < attempts:
                    time.sleep(self.settings.browser_retry_delay_sec)
            except requests.RequestException as exc:
                raise ScrapeError(f"browser service {path} failed: {exc}") from exc

        raise ScrapeError(f"browser service {path} unreachable after {attempts} attempts: {last_error}")
