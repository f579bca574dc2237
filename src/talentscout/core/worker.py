from __future__ import annotations

import logging
import threading

from talentscout.config import get_settings
from talentscout.core.orchestrator import PipelineOrchestrator
from talentscout.core.queue import StageJob
from talentscout.core.runtime import get_stage_queue
from talentscout.db.session import SessionLocal

logger = logging.getLogger(__name__)


def process_job(job: StageJob) -> None:
    with SessionLocal() as session:
        PipelineOrchestrator(session).process(job)


def start_background_worker() -> tuple[threading.Thread, threading.Event]:
    settings = get_settings()
    stop_event = threading.Event()
    thread = threading.Thread(
        target=get_stage_queue().work,
        args=(process_job, stop_event),
        kwargs={"poll_sec": settings.worker_poll_sec},
        name="talentscout-worker",
        daemon=True,
    )
    thread.start()
    logger.info("Background stage worker started")
    return thread, stop_event


def resume_in_flight() -> int:
    with SessionLocal() as session:
        return PipelineOrchestrator(session).resume_active()


def run_worker_forever() -> None:
    settings = get_settings()
    stop_event = threading.Event()
    resume_in_flight()
    logger.info("Stage worker polling every %ss", settings.worker_poll_sec)
    try:
        get_stage_queue().work(process_job, stop_event, poll_sec=settings.worker_poll_sec)
    except KeyboardInterrupt:
        logger.info("Stage worker stopped")
