from __future__ import annotations

import logging
import re
import shutil
import subprocess
import zipfile
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from talentscout.config import Settings, get_settings
from talentscout.errors import DocumentExtractionError

logger = logging.getLogger(__name__)

_NON_PRINTABLE = re.compile(r"[^\x09\x0a\x0d\x20-\x7e\u00a0-\uffff]")
_INLINE_SPACE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_PDF_TEXT_OPERAND = re.compile(rb"\(((?:\\.|[^\\)])*)\)\s*(?:Tj|'|\")")
_PDF_TEXT_ARRAY = re.compile(rb"\[((?:[^\]\\]|\\.)*)\]\s*TJ")
_PDF_STREAM = re.compile(rb"stream\r?\n(.*?)\r?\nendstream", re.DOTALL)
_XML_TAG = re.compile(r"<[^>]+>")
_RTF_CONTROL = re.compile(r"\\[a-z]+-?\d* ?|[{}]|\\'[0-9a-f]{2}", re.IGNORECASE)


@dataclass(slots=True)
class ExtractionResult:
    text: str
    method: str


def clean_text(text: str) -> str:
    text = _NON_PRINTABLE.sub("", text or "")
    text = _INLINE_SPACE.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


class TextExtractor:
    """Extracts text from downloaded documents by trying strategies in order."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def strategies_for(self, document_type: str) -> list[tuple[str, Callable[[Path], str]]]:
        pdf = [
            ("pdftotext", self._pdftotext),
            ("pdfplumber", self._pdfplumber),
            ("pypdf", self._pypdf),
            ("pdf_stream_regex", self._pdf_stream_regex),
        ]
        if document_type == "pdf":
            return pdf
        if document_type == "doc":
            return [
                ("antiword", self._antiword),
                ("docx2txt", self._docx2txt),
                ("python_docx", self._python_docx),
            ]
        if document_type in {"docx", "odt"}:
            return [
                ("docx2txt", self._docx2txt),
                ("python_docx", self._python_docx),
                ("docx_xml", self._docx_xml),
            ]
        if document_type == "txt":
            return [("plain_text", self._plain_text)]
        if document_type == "rtf":
            return [("unrtf", self._unrtf), ("rtf_regex", self._rtf_regex)]
        return pdf

    def extract(self, path: Path, document_type: str) -> ExtractionResult:
        errors: list[str] = []
        for name, strategy in self.strategies_for(document_type):
            try:
                text = clean_text(strategy(path))
            except Exception as exc:
                logger.debug("Extraction method %s failed for %s: %s", name, path.name, exc)
                errors.append(f"{name}: {exc}")
                continue
            if text:
                return ExtractionResult(text=text, method=name)
            errors.append(f"{name}: no text")

        raise DocumentExtractionError(
            f"all extraction methods failed for {path.name} ({document_type}): " + "; ".join(errors)
        )

    def _run_tool(self, command: list[str]) -> str:
        if shutil.which(command[0]) is None:
            raise FileNotFoundError(f"{command[0]} not installed")
        completed = subprocess.run(
            command,
            capture_output=True,
            timeout=self.settings.document_tool_timeout_sec,
            check=True,
        )
        return completed.stdout.decode("utf-8", errors="replace")

    def _pdftotext(self, path: Path) -> str:
        return self._run_tool(["pdftotext", "-layout", str(path), "-"])

    @staticmethod
    def _pdfplumber(path: Path) -> str:
        import pdfplumber

        with pdfplumber.open(str(path)) as pdf:
            return "\n\n".join(page.extract_text() or "" for page in pdf.pages)

    @staticmethod
    def _pypdf(path: Path) -> str:
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        return "\n\n".join(page.extract_text() or "" for page in reader.pages)

    def _pdf_stream_regex(self, path: Path) -> str:
        size = path.stat().st_size
        if size > self.settings.document_regex_ceiling_bytes:
            raise DocumentExtractionError(f"file of {size} bytes exceeds regex extraction ceiling")

        raw = path.read_bytes()
        bodies = [raw]
        # inflated streams share the same ceiling as the file itself
        budget = self.settings.document_regex_ceiling_bytes
        for match in _PDF_STREAM.finditer(raw):
            if budget <= 0:
                break
            try:
                body = zlib.decompressobj().decompress(match.group(1), budget)
            except zlib.error:
                continue
            budget -= len(body)
            bodies.append(body)

        parts: list[str] = []
        for body in bodies:
            for operand in _PDF_TEXT_OPERAND.findall(body):
                parts.append(_decode_pdf_string(operand))
            for array in _PDF_TEXT_ARRAY.findall(body):
                parts.extend(_decode_pdf_string(item) for item in re.findall(rb"\(((?:\\.|[^\\)])*)\)", array))
        return " ".join(part for part in parts if part.strip())

    def _antiword(self, path: Path) -> str:
        return self._run_tool(["antiword", str(path)])

    @staticmethod
    def _docx2txt(path: Path) -> str:
        import docx2txt

        return docx2txt.process(str(path)) or ""

    @staticmethod
    def _python_docx(path: Path) -> str:
        from docx import Document

        document = Document(str(path))
        lines = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                lines.append(" | ".join(cell.text for cell in row.cells))
        return "\n".join(lines)

    @staticmethod
    def _docx_xml(path: Path) -> str:
        with zipfile.ZipFile(path) as archive:
            names = [name for name in ("word/document.xml", "content.xml") if name in archive.namelist()]
            if not names:
                raise DocumentExtractionError("no document body in archive")
            xml = archive.read(names[0]).decode("utf-8", errors="replace")
        xml = re.sub(r"</(w:p|text:p)>", "\n", xml)
        return _XML_TAG.sub(" ", xml)

    @staticmethod
    def _plain_text(path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace")

    def _unrtf(self, path: Path) -> str:
        return self._run_tool(["unrtf", "--text", str(path)])

    @staticmethod
    def _rtf_regex(path: Path) -> str:
        raw = path.read_text(encoding="latin-1", errors="replace")
        return _RTF_CONTROL.sub(" ", raw)


_PDF_ESCAPES = {b"n": b"\n", b"r": b"", b"t": b" ", b"b": b"", b"f": b""}


def _decode_pdf_string(value: bytes) -> str:
    value = re.sub(rb"\\([nrtbf()\\])", lambda m: _PDF_ESCAPES.get(m.group(1), m.group(1)), value)
    return value.decode("latin-1", errors="replace")
