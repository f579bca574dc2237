from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import requests

from talentscout.browser.service import random_user_agent
from talentscout.config import Settings, get_settings
from talentscout.core.storage import FileStorage
from talentscout.documents.classifier import to_direct_download_url, url_extension
from talentscout.errors import DocumentDownloadError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    "rtf": "application/rtf",
}
ACCEPT_HEADER = (
    "application/pdf,application/msword,"
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document,text/plain,*/*"
)
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass(slots=True)
class DownloadedFile:
    key: str
    path: Path
    filename: str
    size: int
    document_type: str
    content_type: str
    final_url: str


def detect_document_type(content: bytes, url: str = "", fallback: str = "pdf") -> str:
    if content.startswith(b"%PDF"):
        return "pdf"
    if content.startswith(OLE_SIGNATURE):
        return "doc"
    if content.startswith(b"PK"):
        # xlsx, pptx and odt share the zip container
        extension = url_extension(url)
        return extension if extension in {"xlsx", "pptx", "odt"} else "docx"
    if content[:5].lower() == b"{\\rtf":
        return "rtf"
    return url_extension(url) or fallback


def sanitize_filename(value: str, *, max_length: int = 100) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", value)
    cleaned = re.sub(r"_+", "_", cleaned).strip("_")
    return cleaned[:max_length] or "document"


def build_filename(talent_id: int, link_text: str, document_type: str) -> str:
    stem = sanitize_filename(f"{talent_id}_{link_text or 'document'}_{int(time.time())}")
    return f"{stem}.{document_type}"


class DocumentDownloader:
    def __init__(
        self,
        storage: FileStorage,
        settings: Settings | None = None,
        *,
        http: requests.Session | None = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage
        self.http = http or requests.Session()

    def fetch(self, url: str) -> tuple[bytes, str]:
        direct_url = to_direct_download_url(url)
        parsed = urlparse(direct_url)
        headers = {
            "User-Agent": random_user_agent(),
            "Accept": ACCEPT_HEADER,
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{parsed.scheme}://{parsed.netloc}",
        }
        try:
            response = self.http.get(
                direct_url,
                headers=headers,
                timeout=self.settings.document_download_timeout_sec,
                stream=True,
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DocumentDownloadError(f"download failed for {url}: {exc}") from exc

        limit = self.settings.document_max_bytes
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > limit:
            response.close()
            raise DocumentDownloadError(f"file too large ({declared} bytes, limit {limit})")

        chunks: list[bytes] = []
        total = 0
        try:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                total += len(chunk)
                if total > limit:
                    raise DocumentDownloadError(f"file too large (over {limit} bytes)")
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise DocumentDownloadError(f"download interrupted for {url}: {exc}") from exc
        finally:
            response.close()

        content = b"".join(chunks)
        if len(content) < self.settings.document_min_bytes:
            raise DocumentDownloadError(f"file too small ({len(content)} bytes), possibly an error page")
        return content, str(getattr(response, "url", "") or direct_url)

    def download(
        self,
        url: str,
        *,
        talent_id: int,
        link_text: str,
        directory: str,
        guessed_type: str = "pdf",
    ) -> DownloadedFile:
        content, final_url = self.fetch(url)
        document_type = detect_document_type(content, url, fallback=guessed_type)
        filename = build_filename(talent_id, link_text, document_type)
        key = f"{directory}/{filename}"
        path = self.storage.write_bytes(key, content)
        logger.info("Downloaded document url=%s type=%s size=%s", url, document_type, len(content))
        return DownloadedFile(
            key=key,
            path=path,
            filename=filename,
            size=len(content),
            document_type=document_type,
            content_type=CONTENT_TYPES.get(document_type, "application/octet-stream"),
            final_url=final_url,
        )
