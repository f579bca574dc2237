from __future__ import annotations

import logging
import time
from typing import Any

from sqlalchemy.orm import Session

from talentscout.browser.adapter import ScrapeAdapter
from talentscout.config import Settings, get_settings
from talentscout.core.events import (
    INDEX_SUCCEEDED,
    PROFILE_FIELDS_CHANGED,
    PROFILE_WRITTEN,
    SCRAPE_SUCCEEDED,
    SOURCE_URL_CHANGED,
    STAGE_FAILED,
    EventBus,
    StageEvent,
)
from talentscout.core.indexer import EmbeddingIndexer
from talentscout.core.queue import StageJob, StageQueue
from talentscout.core.runtime import get_event_bus, get_stage_queue
from talentscout.core.storage import FileStorage, processed_data_key, scraped_data_key
from talentscout.core.writer import ProfileWriter
from talentscout.db.models import ScrapeRun
from talentscout.db.repositories import ACTIVE_PIPELINE_STATES, Repository
from talentscout.documents.classifier import find_downloadable_links
from talentscout.documents.ingestor import DocumentIngestor
from talentscout.errors import BrowserServiceUnavailable
from talentscout.llm.extractor import StructuredExtractor
from talentscout.llm.router import LLMRouter
from talentscout.types import ScrapeResult

logger = logging.getLogger(__name__)

# trigger -> (stage to enqueue, talent status to set)
TRANSITIONS: dict[str, tuple[str, str | None]] = {
    SOURCE_URL_CHANGED: ("scrape", "scraping"),
    PROFILE_FIELDS_CHANGED: ("index", None),
    SCRAPE_SUCCEEDED: ("extract", "extracting"),
    PROFILE_WRITTEN: ("index", "completed"),
}

INDEX_TRIGGER_FIELDS = frozenset(
    {"name", "job_title", "description", "location", "talent_status", "availability"}
)
EDITABLE_FIELDS = INDEX_TRIGGER_FIELDS | {"image", "timezone", "website_url"}


class PipelineOrchestrator:
    """Per-talent state machine that moves a talent through scrape, extract and index."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        queue: StageQueue | None = None,
        event_bus: EventBus | None = None,
        scraper: ScrapeAdapter | None = None,
        llm: LLMRouter | None = None,
        storage: FileStorage | None = None,
        ingestor: DocumentIngestor | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.queue = queue or get_stage_queue()
        self.event_bus = event_bus or get_event_bus()
        self.storage = storage or FileStorage(settings=self.settings)
        self.scraper = scraper or ScrapeAdapter(self.settings)
        self.llm = llm or LLMRouter(self.settings)
        self.ingestor = ingestor or DocumentIngestor(session, storage=self.storage, settings=self.settings)
        self.extractor = StructuredExtractor(session, llm=self.llm)
        self.writer = ProfileWriter(session, listeners=[self.handle_event])
        self.indexer = EmbeddingIndexer(session, llm=self.llm, settings=self.settings)

    def trigger_scrape(self, talent_id: int, url: str) -> dict[str, Any]:
        talent = self.repo.require_talent(talent_id)
        url = (url or "").strip()
        if not url:
            raise ValueError("website url is required")

        if talent.website_url != url:
            self.repo.update_talent(talent_id, website_url=url)

        if talent.pipeline_status in ACTIVE_PIPELINE_STATES:
            run = self.repo.latest_run(talent_id)
            if run is not None:
                self.repo.update_run(run.id, metadata={"pending_url": url})
            self._record(
                talent_id,
                "pipeline",
                "coalesced",
                run_id=run.id if run else None,
                payload={"url": url, "pipeline_status": talent.pipeline_status},
            )
            logger.info("Scrape already in flight talent_id=%s; recorded pending url %s", talent_id, url)
            return self.get_status(talent_id)

        self.handle_event(StageEvent(SOURCE_URL_CHANGED, talent_id, payload={"url": url}))
        return self.get_status(talent_id)

    def reprocess(self, talent_id: int) -> dict[str, Any]:
        talent = self.repo.require_talent(talent_id)
        if not talent.website_url:
            raise ValueError(f"talent {talent_id} has no website url")
        return self.trigger_scrape(talent_id, talent.website_url)

    def update_profile(self, talent_id: int, values: dict[str, Any]) -> dict[str, Any]:
        unknown = set(values) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"unknown talent fields {sorted(unknown)}")

        talent = self.repo.require_talent(talent_id)
        changes = {
            key: value for key, value in values.items() if value is not None and getattr(talent, key) != value
        }
        new_url = changes.pop("website_url", None)
        if new_url is not None and not new_url.strip():
            raise ValueError("website url is required")
        if changes:
            self.repo.update_talent(talent_id, **changes)
            self.on_profile_fields_changed(talent_id, list(changes))
        if new_url:
            self.trigger_scrape(talent_id, new_url)
        return self.repo.talent_profile(self.repo.require_talent(talent_id))

    def on_profile_fields_changed(self, talent_id: int, changed_fields: list[str]) -> bool:
        relevant = sorted(set(changed_fields) & INDEX_TRIGGER_FIELDS)
        if not relevant:
            return False
        self.handle_event(StageEvent(PROFILE_FIELDS_CHANGED, talent_id, payload={"fields": relevant}))
        return True

    def get_status(self, talent_id: int) -> dict[str, Any]:
        talent = self.repo.require_talent(talent_id)
        run = self.repo.latest_run(talent_id)
        return {
            "talent_id": talent.id,
            "pipeline_status": talent.pipeline_status,
            "error": talent.pipeline_error or None,
            "has_embedding": talent.embedding is not None,
            "latest_run": self.serialize_run(run) if run else None,
        }

    def serialize_run(self, run: ScrapeRun) -> dict[str, Any]:
        return {
            "id": run.id,
            "talent_id": run.talent_id,
            "website_url": run.website_url,
            "status": run.status,
            "error": run.error_message,
            "metadata": run.metadata_json or {},
            "scraped_data_path": run.scraped_data_path,
            "processed_data_path": run.processed_data_path,
            "created_at": run.created_at.isoformat() if run.created_at else None,
            "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        }

    def handle_event(self, event: StageEvent) -> None:
        if event.kind == STAGE_FAILED:
            self._mark_failed(event)
            return
        if event.kind == INDEX_SUCCEEDED:
            self._record(event.talent_id, "index", "completed", run_id=event.run_id, payload=event.payload)
            return

        transition = TRANSITIONS.get(event.kind)
        if transition is None:
            raise ValueError(f"unknown pipeline event {event.kind}")
        stage, status = transition

        run_id = event.run_id
        if event.kind == SOURCE_URL_CHANGED:
            talent = self.repo.require_talent(event.talent_id)
            run = self.repo.create_run(
                talent_id=talent.id,
                website_url=event.payload.get("url") or talent.website_url,
            )
            run_id = run.id

        if status is not None:
            self.repo.set_pipeline_status(event.talent_id, status, error="" if status == "scraping" else None)
        if event.kind == PROFILE_WRITTEN and run_id is not None:
            self.repo.update_run(run_id, status="completed", completed=True)

        self._record(event.talent_id, "pipeline", event.kind, run_id=run_id, payload=event.payload)
        self.queue.put(StageJob(stage=stage, talent_id=event.talent_id, run_id=run_id))

        if event.kind == PROFILE_WRITTEN and run_id is not None:
            self._follow_pending_url(event.talent_id, run_id)

    def process(self, job: StageJob) -> None:
        """Run one queued stage, re-enqueueing within the stage's retry budget."""
        if self._is_stale(job):
            return

        handler = {
            "scrape": self._run_scrape,
            "extract": self._run_extract,
            "index": self._run_index,
        }[job.stage]

        started = time.monotonic()
        try:
            handler(job)
        except Exception as exc:
            self.session.rollback()
            retryable = not isinstance(exc, BrowserServiceUnavailable)
            if retryable and job.attempt < self.settings.stage_retries(job.stage):
                logger.warning(
                    "Stage %s failed for talent_id=%s (attempt %s), retrying: %s",
                    job.stage,
                    job.talent_id,
                    job.attempt + 1,
                    exc,
                )
                self._record(
                    job.talent_id,
                    job.stage,
                    "retry",
                    run_id=job.run_id,
                    payload={"attempt": job.attempt + 1, "error": str(exc)},
                )
                self.queue.put(job.retry())
                return

            if job.run_id is None:
                logger.exception("Reindex after profile edit failed talent_id=%s", job.talent_id)
                self._record(
                    job.talent_id,
                    job.stage,
                    "reindex_failed",
                    payload={"error": str(exc), "attempts": job.attempt + 1},
                )
                return

            logger.exception("Stage %s failed talent_id=%s run_id=%s", job.stage, job.talent_id, job.run_id)
            self.handle_event(
                StageEvent(
                    STAGE_FAILED,
                    job.talent_id,
                    job.run_id,
                    {"stage": job.stage, "error": str(exc), "attempts": job.attempt + 1},
                )
            )
            return

        if job.run_id is not None:
            self._record_timing(job.run_id, job.stage, time.monotonic() - started)

    def run_pending(self, max_jobs: int | None = None) -> int:
        return self.queue.drain(self.process, max_jobs=max_jobs)

    def resume_active(self) -> int:
        """Re-enqueue the current stage of talents left mid-pipeline by a previous process."""
        resumed = 0
        for talent in self.repo.talents_in_status(ACTIVE_PIPELINE_STATES):
            run = self.repo.latest_run(talent.id)
            if run is None:
                continue
            stage = "extract" if talent.pipeline_status == "extracting" and run.scraped_data_path else "scrape"
            self.queue.put(StageJob(stage=stage, talent_id=talent.id, run_id=run.id))
            resumed += 1
        if resumed:
            logger.info("Resumed %s in-flight talents", resumed)
        return resumed

    def _is_stale(self, job: StageJob) -> bool:
        talent = self.repo.get_talent(job.talent_id)
        if talent is None:
            logger.info("Skipping %s job for missing talent_id=%s", job.stage, job.talent_id)
            return True
        if job.stage == "index" or job.run_id is None:
            return False

        latest = self.repo.latest_run(job.talent_id)
        if latest is None or latest.id != job.run_id or latest.status == "failed":
            logger.info("Skipping stale %s job talent_id=%s run_id=%s", job.stage, job.talent_id, job.run_id)
            return True
        return False

    def _require_run(self, job: StageJob) -> ScrapeRun:
        run = self.repo.get_run(job.run_id) if job.run_id is not None else None
        if run is None:
            raise ValueError(f"run {job.run_id} not found")
        return run

    def _run_scrape(self, job: StageJob) -> None:
        talent = self.repo.require_talent(job.talent_id)
        run = self._require_run(job)
        url = (run.metadata_json or {}).get("pending_url") or run.website_url
        self.repo.update_run(run.id, status="scraping", metadata={"pending_url": None, "scraped_url": url})

        page = self.scraper.scrape(url)
        key = scraped_data_key(talent.username, run.id)
        path = self.storage.write_json(key, page.model_dump(mode="json"))
        links = find_downloadable_links(page.links)
        self.repo.update_run(
            run.id,
            scraped_data_path=key,
            metadata={
                "scrape_method": page.method,
                "downloadable_links": len(links),
                "file_size": path.stat().st_size,
            },
        )
        self._record(
            talent.id,
            "scrape",
            "completed",
            run_id=run.id,
            payload={"url": url, "method": page.method, "links": len(page.links)},
        )
        self.handle_event(StageEvent(SCRAPE_SUCCEEDED, talent.id, run.id, {"url": url}))

    def _run_extract(self, job: StageJob) -> None:
        talent = self.repo.require_talent(job.talent_id)
        run = self._require_run(job)
        if not run.scraped_data_path:
            raise ValueError(f"run {run.id} has no scraped payload")
        self.repo.update_run(run.id, status="processing")

        page = ScrapeResult.model_validate(self.storage.read_json(run.scraped_data_path))
        summary = self.ingestor.ingest(talent, run, page)
        documents = [
            (document.filename or document.original_url, document.extracted_content)
            for document in self.repo.list_run_documents(run.id)
            if document.extraction_status == "completed" and document.extracted_content
        ]
        self.repo.update_run(run.id, metadata={"documents_processed": summary.as_dict()})
        self._record(talent.id, "documents", "ingested", run_id=run.id, payload=summary.as_dict())

        profile = self.extractor.extract(page, documents)
        key = processed_data_key(talent.username, run.id)
        self.storage.write_json(key, profile.model_dump(mode="json"))
        self.repo.update_run(
            run.id, processed_data_path=key, metadata={"youtube_videos": len(profile.youtube_videos)}
        )

        taxonomy = self.extractor.resolve_taxonomy(profile)
        self.writer.write(talent.id, profile, taxonomy, run_id=run.id)

    def _run_index(self, job: StageJob) -> None:
        vector = self.indexer.index_talent(job.talent_id)
        self.handle_event(StageEvent(INDEX_SUCCEEDED, job.talent_id, job.run_id, {"dimensions": len(vector)}))

    def _follow_pending_url(self, talent_id: int, run_id: int) -> None:
        run = self.repo.get_run(run_id)
        metadata = (run.metadata_json or {}) if run else {}
        pending = metadata.get("pending_url")
        if not pending or pending == metadata.get("scraped_url"):
            return
        self.repo.update_run(run_id, metadata={"pending_url": None})
        logger.info("Starting follow-up scrape talent_id=%s for %s", talent_id, pending)
        self.trigger_scrape(talent_id, pending)

    def _mark_failed(self, event: StageEvent) -> None:
        error = str(event.payload.get("error") or "pipeline stage failed")
        run_id = event.run_id
        if run_id is not None:
            self.repo.update_run(run_id, status="failed", error=error, completed=True)

        # a newer run owns the talent status once it exists
        latest = self.repo.latest_run(event.talent_id)
        if latest is not None and latest.id == run_id:
            self.repo.set_pipeline_status(event.talent_id, "failed", error=error)

        self._record(
            event.talent_id,
            event.payload.get("stage", "pipeline"),
            STAGE_FAILED,
            run_id=run_id,
            payload=event.payload,
        )

    def _record_timing(self, run_id: int, stage: str, elapsed: float) -> None:
        run = self.repo.get_run(run_id)
        if run is None:
            return
        timings = dict((run.metadata_json or {}).get("timings") or {})
        timings[stage] = round(elapsed, 3)
        self.repo.update_run(run_id, metadata={"timings": timings})

    def _record(
        self,
        talent_id: int,
        stage: str,
        action: str,
        *,
        run_id: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        event = self.repo.append_event(
            talent_id=talent_id,
            stage=stage,
            action=action,
            run_id=run_id,
            payload_json=payload,
        )
        self.event_bus.publish_sync(
            talent_id,
            {
                "event_id": event.id,
                "talent_id": talent_id,
                "run_id": run_id,
                "stage": stage,
                "action": action,
                "payload": event.payload_json,
                "created_at": event.created_at.isoformat() if event.created_at else None,
            },
        )
