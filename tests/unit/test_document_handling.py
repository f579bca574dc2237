from __future__ import annotations

import zipfile
import zlib
from pathlib import Path

import pytest

from talentscout.config import Settings
from talentscout.core.storage import FileStorage
from talentscout.documents.classifier import (
    find_downloadable_links,
    guess_document_type,
    to_direct_download_url,
)
from talentscout.documents.downloader import OLE_SIGNATURE, DocumentDownloader, detect_document_type
from talentscout.documents.extractor import TextExtractor
from talentscout.errors import DocumentDownloadError, DocumentExtractionError
from talentscout.types import PageLink


class FakeStreamResponse:
    def __init__(self, body: bytes, *, headers: dict | None = None, url: str = ""):
        self.body = body
        self.headers = headers or {}
        self.url = url

    def raise_for_status(self) -> None:
        return None

    def iter_content(self, chunk_size: int):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def close(self) -> None:
        return None


class FakeHttp:
    def __init__(self, response: FakeStreamResponse):
        self.response = response
        self.urls: list[str] = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        return self.response


def test_pdf_magic_bytes_win_over_url_extension() -> None:
    assert detect_document_type(b"%PDF-1.7 rest", "https://x.example.com/resume.docx") == "pdf"


def test_detect_document_type_from_signatures() -> None:
    assert detect_document_type(OLE_SIGNATURE + b"rest") == "doc"
    assert detect_document_type(b"PK\x03\x04rest", "https://x.example.com/file") == "docx"
    assert detect_document_type(b"PK\x03\x04rest", "https://x.example.com/deck.pptx") == "pptx"
    assert detect_document_type(b"{\\rtf1 hello") == "rtf"
    assert detect_document_type(b"plain words", "https://x.example.com/notes.txt") == "txt"
    assert detect_document_type(b"plain words", "https://x.example.com/download", fallback="docx") == "docx"


def test_find_downloadable_links_by_extension_host_and_keyword() -> None:
    links = [
        PageLink(url="https://jane.example.com/files/Jane.PDF", text="Portfolio"),
        PageLink(url="https://drive.google.com/file/d/abc_123/view", text="Reel"),
        PageLink(url="https://jane.example.com/about", text="Download my resume"),
        PageLink(url="https://jane.example.com/contact", text="Contact"),
        PageLink(url="https://jane.example.com/files/Jane.PDF", text="duplicate"),
        PageLink(url="ftp://jane.example.com/cv.pdf", text="CV"),
    ]

    found = [link.url for link in find_downloadable_links(links)]

    assert found == [
        "https://jane.example.com/files/Jane.PDF",
        "https://drive.google.com/file/d/abc_123/view",
        "https://jane.example.com/about",
    ]


def test_guess_document_type_prefers_extension_then_keywords() -> None:
    assert guess_document_type("https://x.example.com/cv.docx", "resume") == "docx"
    assert guess_document_type("https://x.example.com/get", "My CV") == "pdf"
    assert guess_document_type("https://x.example.com/get", "Word doc") == "docx"


def test_cloud_links_are_rewritten_to_direct_downloads() -> None:
    assert (
        to_direct_download_url("https://drive.google.com/file/d/abc_123/view?usp=sharing")
        == "https://drive.google.com/uc?export=download&id=abc_123"
    )
    assert to_direct_download_url("https://www.dropbox.com/s/xyz/cv.pdf?dl=0").endswith("dl=1")
    assert "download=1" in to_direct_download_url("https://onedrive.live.com/redir?resid=1")
    assert to_direct_download_url("https://jane.example.com/cv.pdf") == "https://jane.example.com/cv.pdf"


def test_downloader_stores_file_with_detected_type(tmp_path: Path) -> None:
    body = b"%PDF-1.4\n" + b"0" * 200
    http = FakeHttp(FakeStreamResponse(body, url="https://cdn.example.com/cv"))
    downloader = DocumentDownloader(FileStorage(tmp_path), Settings(), http=http)

    result = downloader.download(
        "https://www.dropbox.com/s/xyz/cv?dl=0",
        talent_id=7,
        link_text="My CV",
        directory="jane/1/documents",
        guessed_type="docx",
    )

    assert http.urls[0].endswith("dl=1")
    assert result.document_type == "pdf"
    assert result.filename.startswith("7_My_CV_") and result.filename.endswith(".pdf")
    assert result.path.read_bytes() == body
    assert result.final_url == "https://cdn.example.com/cv"


def test_downloader_rejects_tiny_and_oversized_files(tmp_path: Path) -> None:
    storage = FileStorage(tmp_path)
    tiny = DocumentDownloader(storage, Settings(), http=FakeHttp(FakeStreamResponse(b"<html>404</html>")))
    with pytest.raises(DocumentDownloadError, match="too small"):
        tiny.fetch("https://x.example.com/cv.pdf")

    declared = FakeStreamResponse(b"x" * 200, headers={"Content-Length": str(10**9)})
    with pytest.raises(DocumentDownloadError, match="too large"):
        DocumentDownloader(storage, Settings(), http=FakeHttp(declared)).fetch("https://x.example.com/cv.pdf")

    streamed = FakeStreamResponse(b"x" * 5000)
    small_limit = Settings(document_max_bytes=1000)
    with pytest.raises(DocumentDownloadError, match="too large"):
        DocumentDownloader(storage, small_limit, http=FakeHttp(streamed)).fetch("https://x.example.com/cv.pdf")


def test_extractor_falls_through_failed_strategies(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "cv.pdf"
    path.write_bytes(b"%PDF")
    extractor = TextExtractor(Settings())

    def broken(_path):
        raise RuntimeError("tool crashed")

    monkeypatch.setattr(
        extractor,
        "strategies_for",
        lambda document_type: [
            ("broken", broken),
            ("empty", lambda _path: "   \n"),
            ("working", lambda _path: "Jane Doe\n\n\n\nEditor   at   Studio"),
        ],
    )

    result = extractor.extract(path, "pdf")

    assert result.method == "working"
    assert result.text == "Jane Doe\n\nEditor at Studio"


def test_extractor_raises_when_every_strategy_fails(tmp_path: Path) -> None:
    path = tmp_path / "empty.txt"
    path.write_text("", encoding="utf-8")

    with pytest.raises(DocumentExtractionError, match="plain_text: no text"):
        TextExtractor(Settings()).extract(path, "txt")


def test_docx_xml_fallback_reads_word_body(tmp_path: Path) -> None:
    path = tmp_path / "cv.docx"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            "word/document.xml",
            "<w:document><w:body><w:p><w:r><w:t>Senior Editor</w:t></w:r></w:p>"
            "<w:p><w:r><w:t>Acme Studios</w:t></w:r></w:p></w:body></w:document>",
        )
    extractor = TextExtractor(Settings())

    text = extractor._docx_xml(path)

    assert "Senior Editor" in text and "Acme Studios" in text


def test_pdf_stream_regex_reads_uncompressed_text_operators(tmp_path: Path) -> None:
    path = tmp_path / "cv.pdf"
    path.write_bytes(b"%PDF-1.4\nBT (Jane Doe) Tj [(Video) -250 (Editor)] TJ ET\n")
    extractor = TextExtractor(Settings())

    text = extractor._pdf_stream_regex(path)

    assert "Jane Doe" in text
    assert "Video" in text and "Editor" in text


def test_pdf_stream_regex_respects_size_ceiling(tmp_path: Path) -> None:
    path = tmp_path / "big.pdf"
    path.write_bytes(b"%PDF" + b"0" * 2048)

    with pytest.raises(DocumentExtractionError, match="ceiling"):
        TextExtractor(Settings(document_regex_ceiling_bytes=1024))._pdf_stream_regex(path)


def test_plain_text_strategy(tmp_path: Path) -> None:
    path = tmp_path / "cv.txt"
    path.write_text("Jane\tDoe", encoding="utf-8")

    assert TextExtractor(Settings()).extract(path, "txt").text == "Jane Doe"


def test_pdf_stream_regex_stops_inflating_at_the_ceiling(tmp_path: Path) -> None:
    stream = zlib.compress(b"BT (Visible) Tj " + b" " * 200_000 + b"(Hidden) Tj ET")
    path = tmp_path / "bomb.pdf"
    path.write_bytes(b"%PDF-1.4\n1 0 obj\nstream\n" + stream + b"\nendstream\nendobj\n")
    extractor = TextExtractor(Settings(document_regex_ceiling_bytes=64 * 1024))

    text = extractor._pdf_stream_regex(path)

    assert "Visible" in text
    assert "Hidden" not in text
