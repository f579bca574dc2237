from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from talentscout.config import Settings, get_settings
from talentscout.core.storage import FileStorage, documents_dir_key
from talentscout.db.models import Document, ScrapeRun, Talent
from talentscout.db.repositories import Repository
from talentscout.documents.classifier import find_downloadable_links, guess_document_type
from talentscout.documents.downloader import DocumentDownloader
from talentscout.documents.extractor import TextExtractor
from talentscout.errors import DocumentDownloadError, DocumentExtractionError
from talentscout.types import ScrapeResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestSummary:
    total: int = 0
    downloaded: int = 0
    extracted: int = 0
    failed_download: int = 0
    failed_extraction: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class DocumentIngestor:
    def __init__(
        self,
        session: Session,
        *,
        storage: FileStorage,
        settings: Settings | None = None,
        downloader: DocumentDownloader | None = None,
        extractor: TextExtractor | None = None,
    ):
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.storage = storage
        self.downloader = downloader or DocumentDownloader(storage, self.settings)
        self.extractor = extractor or TextExtractor(self.settings)

    def ingest(self, talent: Talent, run: ScrapeRun, page: ScrapeResult) -> IngestSummary:
        """Discover, download and extract every document linked from the page.

        Failures are recorded on the individual Document row and never raised.
        """
        self.repo.clear_run_documents(run.id)
        summary = IngestSummary()
        directory = documents_dir_key(talent.username, run.id)

        for link in find_downloadable_links(page.links):
            summary.total += 1
            document = self.repo.create_document(
                talent_id=talent.id,
                scrape_run_id=run.id,
                original_url=link.url,
                source_link_text=link.text[:255],
                document_type=guess_document_type(link.url, link.text),
                download_status="pending",
                extraction_status="pending",
                metadata_json={},
            )
            if not self._download(document, talent, directory):
                summary.failed_download += 1
                continue
            summary.downloaded += 1

            if self._extract(document):
                summary.extracted += 1
            else:
                summary.failed_extraction += 1

        logger.info("Document ingestion talent_id=%s run_id=%s %s", talent.id, run.id, summary.as_dict())
        return summary

    def _download(self, document: Document, talent: Talent, directory: str) -> bool:
        self.repo.update_document(document.id, download_status="downloading")
        try:
            downloaded = self.downloader.download(
                document.original_url,
                talent_id=talent.id,
                link_text=document.source_link_text,
                directory=directory,
                guessed_type=document.document_type,
            )
        except (DocumentDownloadError, OSError, ValueError) as exc:
            logger.warning("Document download failed url=%s: %s", document.original_url, exc)
            self.repo.update_document(document.id, download_status="failed", error_message=str(exc))
            return False

        self.repo.update_document(
            document.id,
            download_status="completed",
            document_type=downloaded.document_type,
            file_path=downloaded.key,
            filename=downloaded.filename,
            file_size=downloaded.size,
            metadata_json={
                **(document.metadata_json or {}),
                "content_type": downloaded.content_type,
                "final_url": downloaded.final_url,
                "downloaded_at": datetime.now(UTC).isoformat(),
            },
        )
        return True

    def _extract(self, document: Document) -> bool:
        self.repo.update_document(document.id, extraction_status="extracting")
        try:
            result = self.extractor.extract(self.storage.path(document.file_path), document.document_type)
        except (DocumentExtractionError, OSError) as exc:
            logger.warning("Document extraction failed document_id=%s: %s", document.id, exc)
            self.repo.update_document(document.id, extraction_status="failed", error_message=str(exc))
            return False

        self.repo.update_document(
            document.id,
            extraction_status="completed",
            extracted_content=result.text,
            metadata_json={
                **(document.metadata_json or {}),
                "extraction_method": result.method,
                "content_length": len(result.text),
                "extracted_at": datetime.now(UTC).isoformat(),
            },
        )
        return True
