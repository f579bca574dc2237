from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from talentscout.db.models import (
    Document,
    Experience,
    Language,
    PipelineEvent,
    Project,
    ScrapeRun,
    Talent,
    TalentTaxonomyLink,
    TaxonomyCategory,
    TaxonomyValue,
)

ACTIVE_PIPELINE_STATES = {"scraping", "extracting"}


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def create_talent(self, *, username: str, name: str = "", website_url: str = "") -> Talent:
        talent = Talent(username=username, name=name or username, website_url=website_url)
        self.session.add(talent)
        self.session.commit()
        self.session.refresh(talent)
        return talent

    def get_talent(self, talent_id: int) -> Talent | None:
        talent = self.session.get(Talent, talent_id)
        if talent is None or talent.deleted_at is not None:
            return None
        return talent

    def require_talent(self, talent_id: int) -> Talent:
        talent = self.get_talent(talent_id)
        if talent is None:
            raise ValueError(f"talent {talent_id} not found")
        return talent

    def get_talent_by_username(self, username: str) -> Talent | None:
        return self.session.scalar(
            select(Talent).where(Talent.username == username, Talent.deleted_at.is_(None))
        )

    def list_talents(self, *, limit: int = 10, offset: int = 0) -> list[Talent]:
        statement = (
            select(Talent)
            .where(Talent.deleted_at.is_(None))
            .order_by(Talent.id.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(statement).all())

    def talents_in_status(self, statuses: set[str]) -> list[Talent]:
        statement = (
            select(Talent)
            .where(Talent.pipeline_status.in_(sorted(statuses)), Talent.deleted_at.is_(None))
            .order_by(Talent.id.asc())
        )
        return list(self.session.scalars(statement).all())

    def count_talents(self) -> int:
        return self.session.scalar(select(func.count(Talent.id)).where(Talent.deleted_at.is_(None))) or 0

    def update_talent(self, talent_id: int, **values: Any) -> Talent:
        talent = self.require_talent(talent_id)
        for key, value in values.items():
            setattr(talent, key, value)
        self.session.commit()
        self.session.refresh(talent)
        return talent

    def soft_delete_talent(self, talent_id: int) -> None:
        talent = self.require_talent(talent_id)
        talent.deleted_at = datetime.now(UTC)
        self.session.commit()

    def set_pipeline_status(self, talent_id: int, status: str, *, error: str | None = None) -> Talent:
        talent = self.require_talent(talent_id)
        talent.pipeline_status = status
        if error is not None:
            talent.pipeline_error = error
        self.session.commit()
        self.session.refresh(talent)
        return talent

    def create_run(self, *, talent_id: int, website_url: str, status: str = "pending") -> ScrapeRun:
        run = ScrapeRun(talent_id=talent_id, website_url=website_url, status=status, metadata_json={})
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run

    def get_run(self, run_id: int) -> ScrapeRun | None:
        return self.session.get(ScrapeRun, run_id)

    def latest_run(self, talent_id: int) -> ScrapeRun | None:
        statement = (
            select(ScrapeRun).where(ScrapeRun.talent_id == talent_id).order_by(ScrapeRun.id.desc()).limit(1)
        )
        return self.session.scalar(statement)

    def list_runs(self, talent_id: int) -> list[ScrapeRun]:
        statement = select(ScrapeRun).where(ScrapeRun.talent_id == talent_id).order_by(ScrapeRun.id.asc())
        return list(self.session.scalars(statement).all())

    def update_run(
        self,
        run_id: int,
        *,
        status: str | None = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
        scraped_data_path: str | None = None,
        processed_data_path: str | None = None,
        completed: bool = False,
    ) -> ScrapeRun:
        run = self.session.get(ScrapeRun, run_id)
        if not run:
            raise ValueError(f"run {run_id} not found")

        if status is not None:
            run.status = status
        if error is not None:
            run.error_message = error
        if metadata:
            merged = dict(run.metadata_json or {})
            merged.update(metadata)
            run.metadata_json = merged
        if scraped_data_path is not None:
            run.scraped_data_path = scraped_data_path
        if processed_data_path is not None:
            run.processed_data_path = processed_data_path
        if completed:
            run.completed_at = datetime.now(UTC)

        self.session.commit()
        self.session.refresh(run)
        return run

    def create_document(self, **values: Any) -> Document:
        document = Document(**values)
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def update_document(self, document_id: int, **values: Any) -> Document:
        document = self.session.get(Document, document_id)
        if not document:
            raise ValueError(f"document {document_id} not found")
        for key, value in values.items():
            setattr(document, key, value)
        self.session.commit()
        self.session.refresh(document)
        return document

    def list_run_documents(self, run_id: int) -> list[Document]:
        statement = select(Document).where(Document.scrape_run_id == run_id).order_by(Document.id.asc())
        return list(self.session.scalars(statement).all())

    def clear_run_documents(self, run_id: int) -> None:
        self.session.execute(delete(Document).where(Document.scrape_run_id == run_id))
        self.session.commit()

    def extracted_documents(self, talent_id: int, *, limit: int | None = None) -> list[Document]:
        statement = (
            select(Document)
            .where(Document.talent_id == talent_id, Document.extraction_status == "completed")
            .order_by(Document.id.desc())
        )
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.scalars(statement).all())

    def list_experiences(self, talent_id: int) -> list[Experience]:
        statement = select(Experience).where(Experience.talent_id == talent_id).order_by(Experience.id.asc())
        return list(self.session.scalars(statement).all())

    def list_projects(self, talent_id: int) -> list[Project]:
        statement = select(Project).where(Project.talent_id == talent_id).order_by(Project.id.asc())
        return list(self.session.scalars(statement).all())

    def list_languages(self, talent_id: int) -> list[Language]:
        statement = select(Language).where(Language.talent_id == talent_id).order_by(Language.id.asc())
        return list(self.session.scalars(statement).all())

    def taxonomy_for_talent(self, talent_id: int) -> dict[str, list[str]]:
        statement = (
            select(TaxonomyCategory.name, TaxonomyValue.title)
            .select_from(TalentTaxonomyLink)
            .join(TaxonomyValue, TaxonomyValue.id == TalentTaxonomyLink.taxonomy_value_id)
            .join(TaxonomyCategory, TaxonomyCategory.id == TaxonomyValue.category_id)
            .where(TalentTaxonomyLink.talent_id == talent_id)
            .order_by(TaxonomyCategory.display_order.asc(), TalentTaxonomyLink.id.asc())
        )
        grouped: dict[str, list[str]] = {}
        for category, title in self.session.execute(statement).all():
            grouped.setdefault(category, []).append(title)
        return grouped

    def append_event(
        self,
        *,
        talent_id: int,
        stage: str,
        action: str,
        run_id: int | None = None,
        payload_json: dict | None = None,
    ) -> PipelineEvent:
        event = PipelineEvent(
            talent_id=talent_id,
            scrape_run_id=run_id,
            stage=stage,
            action=action,
            payload_json=payload_json or {},
        )
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    def list_events(self, talent_id: int) -> list[PipelineEvent]:
        statement = (
            select(PipelineEvent).where(PipelineEvent.talent_id == talent_id).order_by(PipelineEvent.id.asc())
        )
        return list(self.session.scalars(statement).all())

    def talent_profile(self, talent: Talent) -> dict[str, Any]:
        return {
            "id": talent.id,
            "username": talent.username,
            "name": talent.name,
            "job_title": talent.job_title,
            "description": talent.description,
            "image": talent.image,
            "location": talent.location,
            "timezone": talent.timezone,
            "talent_status": talent.talent_status,
            "availability": talent.availability,
            "website_url": talent.website_url,
            "pipeline_status": talent.pipeline_status,
            "experiences": [
                {
                    "client_name": row.client_name,
                    "client_sub_title": row.client_sub_title,
                    "job_type": row.job_type,
                    "period": row.period,
                    "description": row.description,
                }
                for row in self.list_experiences(talent.id)
            ],
            "projects": [
                {
                    "title": row.title,
                    "link": row.link,
                    "views": row.views,
                    "likes": row.likes,
                    "project_roles": list(row.project_roles_json or []),
                }
                for row in self.list_projects(talent.id)
            ],
            "languages": [
                {"language": row.language, "proficiency": row.proficiency}
                for row in self.list_languages(talent.id)
            ],
            "taxonomy": self.taxonomy_for_talent(talent.id),
        }
