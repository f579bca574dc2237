from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from talentscout.browser.adapter import (
    AUTO_SCROLL_SCRIPT,
    RENDERED_METHOD,
    STATIC_METHOD,
    ScrapeAdapter,
    has_enough_content,
)
from talentscout.browser.parser import parse_html
from talentscout.browser.service import BrowserServiceClient
from talentscout.config import Settings
from talentscout.errors import BrowserServiceUnavailable, ScrapeError
from talentscout.types import PageImage, PageLink, PageText, ScrapeResult

RICH_HTML = """
<html><head><title>Jane Doe | Editor</title><meta name="description" content="Video editor"></head>
<body>
  <h1>Jane Doe</h1>
  <p>{body}</p>
  <a href="/cv.pdf">Download my CV</a>
  <a href="mailto:jane@example.com">Email</a>
  <img src="/me.jpg" alt="portrait">
  <iframe src="https://www.youtube.com/embed/abc123"></iframe>
</body></html>
"""


class FakeHttp:
    def __init__(self, html: str = "", error: Exception | None = None):
        self.html = html
        self.error = error
        self.calls: list[str] = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.html, raise_for_status=lambda: None)


class FakeService:
    def __init__(self, *, healthy: bool = True):
        self.healthy = healthy
        self.rendered: list[str] = []
        self.options: list = []

    def check_health(self):
        if not self.healthy:
            raise BrowserServiceUnavailable("browser service down")
        return {"status": "healthy", "browser": "connected", "pages": 0}

    def render(self, url, options=None):
        self.rendered.append(url)
        self.options.append(options)
        return {
            "html": RICH_HTML.format(body="Rendered " * 80),
            "title": "Jane Doe",
            "url": url,
            "metrics": {"JSHeapUsedSize": 1},
            "timing": {"total": 1200},
        }


def _adapter(http: FakeHttp, service: FakeService) -> ScrapeAdapter:
    return ScrapeAdapter(Settings(), service=service, http=http)


def test_short_static_page_without_links_falls_back_to_rendering() -> None:
    http = FakeHttp(html=f"<html><body><p>{'x' * 50}</p></body></html>")
    service = FakeService()

    result = _adapter(http, service).scrape("https://jane.example.com")

    assert service.rendered == ["https://jane.example.com"]
    assert result.method == RENDERED_METHOD
    assert result.metrics["timing"] == {"total": 1200}


def test_rich_static_page_skips_rendering() -> None:
    http = FakeHttp(html=RICH_HTML.format(body="Static " * 120))
    service = FakeService()

    result = _adapter(http, service).scrape("https://jane.example.com")

    assert service.rendered == []
    assert result.method == STATIC_METHOD
    assert result.title == "Jane Doe | Editor"


def test_static_failure_falls_back_to_rendering() -> None:
    http = FakeHttp(error=ConnectionError("refused"))
    service = FakeService()

    result = _adapter(http, service).scrape("https://jane.example.com")

    assert result.method == RENDERED_METHOD


def test_unhealthy_browser_service_raises() -> None:
    http = FakeHttp(html="<html><body></body></html>")
    adapter = _adapter(http, FakeService(healthy=False))

    with pytest.raises(BrowserServiceUnavailable):
        adapter.scrape("https://jane.example.com")
    assert adapter.service_available() is False


def test_has_enough_content_thresholds() -> None:
    assert has_enough_content(ScrapeResult(url="u", text=PageText(full_text="a" * 501)))
    assert not has_enough_content(ScrapeResult(url="u", text=PageText(full_text="a" * 50)))
    assert has_enough_content(
        ScrapeResult(url="u", links=[PageLink(url="https://a")], images=[PageImage(url="https://b")])
    )


def test_parse_html_resolves_links_and_skips_non_http_schemes() -> None:
    result = parse_html(RICH_HTML.format(body="hello"), "https://jane.example.com/about", method=STATIC_METHOD)

    urls = [link.url for link in result.links]
    assert "https://jane.example.com/cv.pdf" in urls
    assert not any(url.startswith("mailto:") for url in urls)
    assert result.images[0].url == "https://jane.example.com/me.jpg"
    assert result.meta["description"] == "Video editor"
    assert result.videos and "youtube.com" in result.videos[0].url


def test_spa_mode_always_renders_and_waits_for_idle_network() -> None:
    http = FakeHttp(html=RICH_HTML.format(body="Static " * 120))
    service = FakeService()

    result = ScrapeAdapter(Settings(), service=service, http=http, mode="spa").scrape("https://jane.example.com")

    assert http.calls == []
    assert result.method == RENDERED_METHOD
    options = service.options[0]
    assert options.wait_until == "networkidle0"
    assert options.wait_time_ms == 3000


def test_infinite_mode_comes_from_settings_and_auto_scrolls() -> None:
    service = FakeService()
    adapter = ScrapeAdapter(Settings(scrape_mode="infinite"), service=service, http=FakeHttp())

    adapter.scrape("https://jane.example.com")

    assert service.options[0].execute_script == AUTO_SCROLL_SCRIPT
    assert service.options[0].wait_time_ms == 5000


def test_unknown_scrape_mode_is_rejected() -> None:
    with pytest.raises(ValueError, match="unknown scrape mode"):
        ScrapeAdapter(Settings(), service=FakeService(), http=FakeHttp(), mode="crawl")


class FakeServiceHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts: list[tuple[str, dict]] = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _binary(content: bytes, content_type: str):
    return SimpleNamespace(content=content, headers={"Content-Type": content_type}, raise_for_status=lambda: None)


def _client(http: FakeServiceHttp) -> BrowserServiceClient:
    return BrowserServiceClient(
        Settings(browser_service_url="http://browser:3000/", browser_retry_delay_sec=0), http=http
    )


def test_render_pdf_returns_the_raw_document() -> None:
    http = FakeServiceHttp(_binary(b"%PDF-1.7 body", "application/pdf"))

    pdf = _client(http).render_pdf("https://jane.example.com", page_format="Letter")

    assert pdf == b"%PDF-1.7 body"
    url, body = http.posts[0]
    assert url == "http://browser:3000/pdf"
    assert body["url"] == "https://jane.example.com"
    assert body["options"]["format"] == "Letter"
    assert body["options"]["printBackground"] is True


def test_screenshot_retries_a_dropped_connection() -> None:
    http = FakeServiceHttp(requests.ConnectionError("reset by peer"), _binary(b"\x89PNG data", "image/png"))

    image = _client(http).screenshot("https://jane.example.com", full_page=True, wait_time_ms=500)

    assert image == b"\x89PNG data"
    assert len(http.posts) == 2
    options = http.posts[1][1]["options"]
    assert options["fullPage"] is True
    assert options["waitTime"] == 500
    assert (options["width"], options["height"]) == (1920, 1080)


def test_capture_rejects_an_unexpected_content_type() -> None:
    http = FakeServiceHttp(_binary(b'{"success": false, "error": "boom"}', "application/json"))

    with pytest.raises(ScrapeError, match="expected image/"):
        _client(http).screenshot("https://jane.example.com")
