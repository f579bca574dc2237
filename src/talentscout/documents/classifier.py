from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from talentscout.types import PageLink

DOWNLOADABLE_EXTENSIONS = ("pdf", "doc", "docx", "txt", "rtf", "odt", "xls", "xlsx", "ppt", "pptx")
CLOUD_STORAGE_DOMAINS = (
    "drive.google.com",
    "docs.google.com",
    "dropbox.com",
    "onedrive.live.com",
    "1drv.ms",
    "sharepoint.com",
)
DOCUMENT_KEYWORDS = (
    "resume",
    "cv",
    "portfolio",
    "document",
    "pdf",
    "download",
    "file",
    "attachment",
    "doc",
    "certificate",
    "report",
)

_EXTENSION_PATTERN = re.compile(r"\.(" + "|".join(DOWNLOADABLE_EXTENSIONS) + r")$", re.IGNORECASE)
_DRIVE_FILE_PATTERN = re.compile(r"/file/d/([a-zA-Z0-9_-]+)")


def url_extension(url: str) -> str | None:
    match = _EXTENSION_PATTERN.search(urlparse(url).path)
    return match.group(1).lower() if match else None


def is_cloud_storage(url: str) -> bool:
    host = urlparse(url).netloc.lower()
    return any(host == domain or host.endswith("." + domain) for domain in CLOUD_STORAGE_DOMAINS)


def is_downloadable(link: PageLink) -> bool:
    if url_extension(link.url):
        return True
    if is_cloud_storage(link.url):
        return True
    text = f"{link.text} {link.title}".lower()
    return any(keyword in text for keyword in DOCUMENT_KEYWORDS)


def guess_document_type(url: str, text: str = "") -> str:
    extension = url_extension(url)
    if extension:
        return extension

    lowered = text.lower()
    if "pdf" in lowered:
        return "pdf"
    if "resume" in lowered or re.search(r"\bcv\b", lowered):
        return "pdf"
    if "doc" in lowered:
        return "docx"
    return "pdf"


def to_direct_download_url(url: str) -> str:
    parsed = urlparse(url)
    host = parsed.netloc.lower()

    if host.endswith("drive.google.com"):
        match = _DRIVE_FILE_PATTERN.search(parsed.path)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"
        return url

    if host.endswith("dropbox.com"):
        query = [(key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True) if key != "dl"]
        query.append(("dl", "1"))
        return urlunparse(parsed._replace(query=urlencode(query)))

    if host.endswith("1drv.ms") or host.endswith("onedrive.live.com"):
        query = parse_qsl(parsed.query, keep_blank_values=True)
        if ("download", "1") not in query:
            query.append(("download", "1"))
        return urlunparse(parsed._replace(query=urlencode(query)))

    return url


def find_downloadable_links(links: list[PageLink]) -> list[PageLink]:
    found: list[PageLink] = []
    seen: set[str] = set()
    for link in links:
        if link.url in seen or not link.url.lower().startswith(("http://", "https://")):
            continue
        if is_downloadable(link):
            seen.add(link.url)
            found.append(link)
    return found
