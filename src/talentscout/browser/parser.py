from __future__ import annotations

import re
from datetime import UTC, datetime
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup

from talentscout.types import (
    PageHeading,
    PageImage,
    PageLink,
    PageList,
    PageText,
    PageVideo,
    ScrapeResult,
)

VIDEO_HOSTS = {
    "youtube.com": "youtube",
    "youtu.be": "youtube",
    "youtube-nocookie.com": "youtube",
    "vimeo.com": "vimeo",
    "dailymotion.com": "dailymotion",
    "twitch.tv": "twitch",
}
SKIPPED_LINK_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
_WHITESPACE = re.compile(r"\s+")


def collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def parse_html(html: str, url: str, *, method: str) -> ScrapeResult:
    soup = BeautifulSoup(html or "", "html.parser")
    return ScrapeResult(
        url=url,
        title=_title(soup),
        meta=_meta(soup),
        links=_links(soup, url),
        images=_images(soup, url),
        videos=_videos(soup, url),
        headings=_headings(soup),
        text=_text(soup),
        method=method,
        scraped_at=datetime.now(UTC).isoformat(),
    )


def _title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return collapse(soup.title.string)
    heading = soup.find("h1")
    return collapse(heading.get_text(" ")) if heading else ""


def _meta(soup: BeautifulSoup) -> dict[str, str]:
    meta: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        key = tag.get("name") or tag.get("property") or tag.get("http-equiv")
        content = tag.get("content")
        if key and content:
            meta[str(key)] = str(content)
    return meta


def _links(soup: BeautifulSoup, base_url: str) -> list[PageLink]:
    links: list[PageLink] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
            continue
        absolute = urljoin(base_url, href)
        if absolute in seen:
            continue
        seen.add(absolute)
        links.append(
            PageLink(
                url=absolute,
                text=collapse(anchor.get_text(" ")),
                title=str(anchor.get("title") or ""),
                target=str(anchor.get("target") or ""),
            )
        )
    return links


def _images(soup: BeautifulSoup, base_url: str) -> list[PageImage]:
    images: list[PageImage] = []
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if not src or str(src).startswith("data:"):
            continue
        images.append(
            PageImage(
                url=urljoin(base_url, str(src)),
                alt=str(img.get("alt") or ""),
                title=str(img.get("title") or ""),
                width=str(img.get("width") or ""),
                height=str(img.get("height") or ""),
            )
        )
    return images


def video_host(url: str) -> str | None:
    host = urlparse(url).netloc.lower().removeprefix("www.").removeprefix("m.")
    if host == "iframe.ly" or host.endswith(".iframe.ly"):
        # iframe.ly wraps the real player url in its query string
        wrapped = parse_qs(urlparse(url).query).get("url")
        return video_host(wrapped[0]) if wrapped else None
    for domain, name in VIDEO_HOSTS.items():
        if host == domain or host.endswith("." + domain):
            return name
    if "facebook.com" in host and "/plugins/video" in url:
        return "facebook"
    return None


def _videos(soup: BeautifulSoup, base_url: str) -> list[PageVideo]:
    videos: list[PageVideo] = []
    seen: set[str] = set()

    def add(url: str, kind: str, title: str = "") -> None:
        if url and url not in seen:
            seen.add(url)
            videos.append(PageVideo(url=url, type=kind, title=title))

    for video in soup.find_all("video"):
        if video.get("src"):
            add(urljoin(base_url, str(video["src"])), "video", str(video.get("title") or ""))
        for source in video.find_all("source", src=True):
            add(urljoin(base_url, str(source["src"])), "video")

    for frame in soup.find_all("iframe", src=True):
        src = urljoin(base_url, str(frame["src"]))
        host = video_host(src)
        if host:
            add(src, host, str(frame.get("title") or ""))

    for anchor in soup.find_all("a", href=True):
        href = urljoin(base_url, str(anchor["href"]))
        host = video_host(href)
        if host and host != "facebook":
            add(href, host, collapse(anchor.get_text(" ")))
    return videos


def _headings(soup: BeautifulSoup) -> list[PageHeading]:
    headings: list[PageHeading] = []
    for tag in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        text = collapse(tag.get_text(" "))
        if text:
            headings.append(PageHeading(level=int(tag.name[1]), text=text))
    return headings


def _text(soup: BeautifulSoup) -> PageText:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.extract()

    paragraphs = [collapse(p.get_text(" ")) for p in soup.find_all("p")]
    lists: list[PageList] = []
    for tag in soup.find_all(["ul", "ol"]):
        items = [collapse(li.get_text(" ")) for li in tag.find_all("li", recursive=False)]
        items = [item for item in items if item]
        if items:
            lists.append(PageList(type=tag.name, items=items))

    body = soup.body or soup
    return PageText(
        paragraphs=[p for p in paragraphs if p],
        lists=lists,
        full_text=collapse(body.get_text(" ")),
    )
