from __future__ import annotations

from pathlib import Path

import pytest

from talentscout.config import Settings
from talentscout.core.orchestrator import PipelineOrchestrator
from talentscout.core.queue import StageQueue
from talentscout.core.storage import FileStorage
from talentscout.db.repositories import Repository
from talentscout.documents.downloader import DownloadedFile
from talentscout.documents.ingestor import DocumentIngestor
from talentscout.errors import BrowserServiceUnavailable, DocumentDownloadError, ScrapeError
from talentscout.types import PageLink, PageText, ScrapeResult

CV_TEXT = "Jane Doe\nSenior Editor, Netflix, 2020 - 2023\nColor grading in DaVinci Resolve"

EXTRACTED = {
    "name": "Jane Doe",
    "job_title": "Video Editor",
    "description": "Documentary editor with 6 years of experience.",
    "location": "Lisbon",
    "availability": "-",
    "experiences": [{"client_name": "Netflix", "job_type": "Senior Editor", "period": "2020 - 2023"}],
    "projects": [{"title": "Ocean Doc", "views": "5 million", "likes": "1.2K"}],
    "languages": ["English"],
    "skills": ["Color Grading"],
    "softwares": ["DaVinci Resolve", "davinci resolve"],
    "platform_specialties": ["YouTube"],
}


class FakeScraper:
    def __init__(self, error: Exception | None = None, *, extra_links: list[PageLink] | None = None):
        self.error = error
        self.extra_links = extra_links or []
        self.urls: list[str] = []

    def scrape(self, url: str, options=None) -> ScrapeResult:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return ScrapeResult(
            url=url,
            title="Jane Doe | Editor",
            links=[
                PageLink(url="https://jane.example.com/cv.txt", text="My CV"),
                PageLink(url="https://jane.example.com/work", text="Work"),
                *self.extra_links,
            ],
            text=PageText(paragraphs=["I cut documentaries."], full_text="Jane Doe. I cut documentaries."),
            method="static_html",
        )


class FakeDownloader:
    def __init__(self, storage: FileStorage):
        self.storage = storage
        self.urls: list[str] = []

    def download(self, url, *, talent_id, link_text, directory, guessed_type="pdf") -> DownloadedFile:
        self.urls.append(url)
        key = f"{directory}/{talent_id}_cv.txt"
        path = self.storage.write_bytes(key, CV_TEXT.encode("utf-8"))
        return DownloadedFile(
            key=key,
            path=path,
            filename=f"{talent_id}_cv.txt",
            size=len(CV_TEXT),
            document_type="txt",
            content_type="text/plain",
            final_url=url,
        )


class BrokenLinksDownloader(FakeDownloader):
    """Fails the download of some links and stores a blank file for others."""

    def __init__(self, storage: FileStorage, *, failures: dict[str, Exception], blank: set[str]):
        super().__init__(storage)
        self.failures = failures
        self.blank = blank

    def download(self, url, *, talent_id, link_text, directory, guessed_type="pdf") -> DownloadedFile:
        if url in self.failures:
            self.urls.append(url)
            raise self.failures[url]
        if url not in self.blank:
            return super().download(
                url, talent_id=talent_id, link_text=link_text, directory=directory, guessed_type=guessed_type
            )
        self.urls.append(url)
        key = f"{directory}/{talent_id}_blank.txt"
        path = self.storage.write_bytes(key, b"   \n\n   ")
        return DownloadedFile(
            key=key,
            path=path,
            filename=f"{talent_id}_blank.txt",
            size=8,
            document_type="txt",
            content_type="text/plain",
            final_url=url,
        )


class FakeLLM:
    def __init__(
        self,
        responses: list[dict] | None = None,
        *,
        embed_error: Exception | None = None,
        embed_failures: int = 0,
    ):
        self.responses = list(responses or [EXTRACTED])
        self.embed_error = embed_error
        self.embed_failures = embed_failures
        self.extract_messages: list[list[dict]] = []
        self.embedded: list[str] = []
        self.on_extract = None

    def extract_json(self, messages):
        self.extract_messages.append(messages)
        if self.on_extract is not None:
            self.on_extract()
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]

    def embed(self, text: str) -> list[float]:
        self.embedded.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        if self.embed_failures:
            self.embed_failures -= 1
            raise ConnectionError("embedding endpoint timed out")
        return [0.1, 0.2, 0.3]

    def rank_json(self, messages):
        return {"rankings": {}}


def _orchestrator(
    db, tmp_path: Path, *, scraper=None, llm=None, settings=None, downloader=None
) -> PipelineOrchestrator:
    settings = settings or Settings()
    storage = FileStorage(tmp_path)
    ingestor = DocumentIngestor(
        db, storage=storage, settings=settings, downloader=downloader or FakeDownloader(storage)
    )
    return PipelineOrchestrator(
        db,
        settings=settings,
        queue=StageQueue(),
        scraper=scraper or FakeScraper(),
        llm=llm or FakeLLM(),
        storage=storage,
        ingestor=ingestor,
    )


def _talent(db) -> int:
    return Repository(db).create_talent(username="jane").id


def test_successful_pipeline_completes_with_embedding(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM()
    orchestrator = _orchestrator(db, tmp_path, llm=llm)

    started = orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    assert started["pipeline_status"] == "scraping"

    assert orchestrator.run_pending() == 3
    status = orchestrator.get_status(talent_id)

    assert status["pipeline_status"] == "completed"
    assert status["has_embedding"] is True
    run = status["latest_run"]
    assert run["status"] == "completed"
    assert run["completed_at"] is not None
    assert run["metadata"]["downloadable_links"] == 1
    assert run["metadata"]["documents_processed"]["extracted"] == 1
    assert set(run["metadata"]["timings"]) == {"scrape", "extract", "index"}
    assert (tmp_path / run["scraped_data_path"]).exists()
    assert (tmp_path / run["processed_data_path"]).exists()

    prompt = llm.extract_messages[0][1]["content"]
    assert "=== CV / DOCUMENT:" in prompt and "Senior Editor, Netflix" in prompt

    repo = Repository(db)
    profile = repo.talent_profile(repo.require_talent(talent_id))
    assert profile["job_title"] == "Video Editor"
    assert profile["availability"] == ""
    assert profile["projects"][0]["views"] == 5_000_000
    assert profile["projects"][0]["likes"] == 1_200
    assert profile["taxonomy"]["Software"] == ["DaVinci Resolve"]
    assert "Skilled in Color Grading" in llm.embedded[0]

    actions = [event.action for event in repo.list_events(talent_id)]
    assert actions[0] == "source_url_changed"
    assert "scrape_succeeded" in actions and "profile_written" in actions
    assert actions[-1] == "completed"


def test_scrape_failure_marks_talent_and_run_failed(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper(error=ScrapeError("browser service returned no html"))
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()
    status = orchestrator.get_status(talent_id)

    assert status["pipeline_status"] == "failed"
    assert "no html" in status["error"]
    assert status["latest_run"]["status"] == "failed"
    assert "no html" in status["latest_run"]["error"]
    assert len(scraper.urls) == 1
    assert status["has_embedding"] is False


def test_browser_outage_is_not_retried(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper(error=BrowserServiceUnavailable("browser service unhealthy"))
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper, settings=Settings(scrape_stage_retries=3))

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()

    assert len(scraper.urls) == 1
    assert orchestrator.get_status(talent_id)["pipeline_status"] == "failed"


def test_malformed_extraction_is_retried_once(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM([{"job_title": "no name"}, EXTRACTED])
    orchestrator = _orchestrator(db, tmp_path, llm=llm)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()

    assert len(llm.extract_messages) == 2
    assert orchestrator.get_status(talent_id)["pipeline_status"] == "completed"
    actions = [event.action for event in Repository(db).list_events(talent_id)]
    assert "retry" in actions


def test_extraction_that_keeps_failing_marks_failed(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM([{"job_title": "no name"}])
    orchestrator = _orchestrator(db, tmp_path, llm=llm)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()
    status = orchestrator.get_status(talent_id)

    assert len(llm.extract_messages) == 2
    assert status["pipeline_status"] == "failed"
    assert "name" in status["latest_run"]["error"]


def test_index_failure_marks_failed_after_retries(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM(embed_error=ConnectionError("embedding endpoint down"))
    orchestrator = _orchestrator(db, tmp_path, llm=llm)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()
    status = orchestrator.get_status(talent_id)

    assert len(llm.embedded) == 3
    assert status["pipeline_status"] == "failed"
    assert "embedding endpoint down" in status["error"]


def test_trigger_while_queued_coalesces_into_one_run(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper()
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    second = orchestrator.trigger_scrape(talent_id, "https://jane.example.com/portfolio")
    assert second["latest_run"]["metadata"]["pending_url"] == "https://jane.example.com/portfolio"

    orchestrator.run_pending()

    assert scraper.urls == ["https://jane.example.com/portfolio"]
    assert len(Repository(db).list_runs(talent_id)) == 1
    assert orchestrator.get_status(talent_id)["pipeline_status"] == "completed"


def test_trigger_during_extraction_runs_a_follow_up_scrape(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper()
    llm = FakeLLM()
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper, llm=llm)

    def retarget() -> None:
        llm.on_extract = None
        status = orchestrator.trigger_scrape(talent_id, "https://jane.example.com/new")
        assert status["pipeline_status"] == "extracting"

    llm.on_extract = retarget
    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()

    runs = Repository(db).list_runs(talent_id)
    assert scraper.urls == ["https://jane.example.com", "https://jane.example.com/new"]
    assert [run.status for run in runs] == ["completed", "completed"]
    assert orchestrator.get_status(talent_id)["pipeline_status"] == "completed"


def test_profile_field_change_reindexes_without_scraping(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper()
    llm = FakeLLM()
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper, llm=llm)

    orchestrator.update_profile(talent_id, {"timezone": "UTC"})
    assert orchestrator.run_pending() == 0

    orchestrator.update_profile(talent_id, {"description": "Colorist for music videos"})
    assert orchestrator.run_pending() == 1

    assert scraper.urls == []
    assert "Colorist for music videos" in llm.embedded[0]
    assert orchestrator.get_status(talent_id)["has_embedding"] is True


def test_jobs_for_deleted_talents_are_skipped(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper()
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    Repository(db).soft_delete_talent(talent_id)

    assert orchestrator.run_pending() == 1
    assert scraper.urls == []


def test_reprocess_requires_a_stored_url(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    orchestrator = _orchestrator(db, tmp_path)

    with pytest.raises(ValueError, match="no website url"):
        orchestrator.reprocess(talent_id)


def test_resume_active_requeues_in_flight_talents(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    first = _orchestrator(db, tmp_path)
    first.trigger_scrape(talent_id, "https://jane.example.com")

    restarted = _orchestrator(db, tmp_path)
    assert restarted.resume_active() == 1
    restarted.run_pending()

    assert restarted.get_status(talent_id)["pipeline_status"] == "completed"


def test_failed_profile_reindex_leaves_in_flight_run_alone(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM(embed_failures=1)
    orchestrator = _orchestrator(db, tmp_path, llm=llm, settings=Settings(index_stage_retries=0))

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.update_profile(talent_id, {"description": "Colorist for music videos"})
    orchestrator.run_pending()

    status = orchestrator.get_status(talent_id)
    assert len(llm.extract_messages) == 1
    assert status["pipeline_status"] == "completed"
    assert status["error"] is None
    assert [run.status for run in Repository(db).list_runs(talent_id)] == ["completed"]
    actions = [event.action for event in Repository(db).list_events(talent_id)]
    assert "reindex_failed" in actions
    assert "stage_failed" not in actions


def test_failed_profile_reindex_keeps_idle_talent_idle(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    llm = FakeLLM(embed_error=ConnectionError("embedding endpoint timed out"))
    orchestrator = _orchestrator(db, tmp_path, llm=llm)

    orchestrator.update_profile(talent_id, {"job_title": "Colorist"})
    orchestrator.run_pending()

    status = orchestrator.get_status(talent_id)
    assert len(llm.embedded) == 3
    assert status["pipeline_status"] == "idle"
    assert status["error"] is None
    assert status["latest_run"] is None
    events = Repository(db).list_events(talent_id)
    assert [event.action for event in events][-1] == "reindex_failed"
    assert events[-1].payload_json["attempts"] == 3


def test_broken_documents_are_recorded_and_the_run_still_completes(db, tmp_path: Path) -> None:
    talent_id = _talent(db)
    scraper = FakeScraper(
        extra_links=[
            PageLink(url="https://jane.example.com/reel.pdf", text="Reel notes"),
            PageLink(url="https://jane.example.com/portfolio.docx", text="Portfolio"),
            PageLink(url="https://jane.example.com/notes.txt", text="Notes"),
        ]
    )
    downloader = BrokenLinksDownloader(
        FileStorage(tmp_path),
        failures={
            "https://jane.example.com/reel.pdf": DocumentDownloadError("HTTP 404 for reel.pdf"),
            "https://jane.example.com/portfolio.docx": PermissionError("storage directory is read-only"),
        },
        blank={"https://jane.example.com/notes.txt"},
    )
    llm = FakeLLM()
    orchestrator = _orchestrator(db, tmp_path, scraper=scraper, llm=llm, downloader=downloader)

    orchestrator.trigger_scrape(talent_id, "https://jane.example.com")
    orchestrator.run_pending()
    status = orchestrator.get_status(talent_id)

    assert status["pipeline_status"] == "completed"
    run = status["latest_run"]
    assert run["status"] == "completed"
    assert run["metadata"]["documents_processed"] == {
        "total": 4,
        "downloaded": 2,
        "extracted": 1,
        "failed_download": 2,
        "failed_extraction": 1,
    }

    documents = {document.original_url: document for document in Repository(db).list_run_documents(run["id"])}
    reel = documents["https://jane.example.com/reel.pdf"]
    assert (reel.download_status, reel.extraction_status) == ("failed", "pending")
    assert "404" in reel.error_message
    portfolio = documents["https://jane.example.com/portfolio.docx"]
    assert portfolio.download_status == "failed"
    assert "read-only" in portfolio.error_message
    notes = documents["https://jane.example.com/notes.txt"]
    assert (notes.download_status, notes.extraction_status) == ("completed", "failed")
    assert "no text" in notes.error_message

    prompt = llm.extract_messages[0][1]["content"]
    assert "Senior Editor, Netflix" in prompt
    assert prompt.count("=== CV / DOCUMENT:") == 1
