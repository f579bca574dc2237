from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from talentscout.core.events import PROFILE_WRITTEN, StageEvent, StageListener
from talentscout.db.models import (
    Experience,
    Language,
    Project,
    Talent,
    TalentTaxonomyLink,
    TaxonomyCategory,
    TaxonomyValue,
)
from talentscout.types import ExtractedProfile, TaxonomyKind

logger = logging.getLogger(__name__)

PLACEHOLDER_VALUES = {"-", "n/a", "none", "unknown"}
PLACEHOLDER_FIELDS = {"talent_status", "availability"}
PROFILE_FIELDS = (
    "name",
    "job_title",
    "description",
    "image",
    "location",
    "timezone",
    "talent_status",
    "availability",
)


class ProfileWriter:
    """Persists an extracted profile in a single transaction and announces it after commit."""

    def __init__(self, session: Session, *, listeners: list[StageListener] | None = None):
        self.session = session
        self.listeners = list(listeners or [])

    def write(
        self,
        talent_id: int,
        profile: ExtractedProfile,
        taxonomy: dict[TaxonomyKind, list[int]],
        *,
        run_id: int | None = None,
    ) -> Talent:
        talent = self.session.get(Talent, talent_id)
        if talent is None or talent.deleted_at is not None:
            raise ValueError(f"talent {talent_id} not found")

        try:
            updated_fields = self._apply_fields(talent, profile)
            counts = {
                "experiences": self._replace_experiences(talent_id, profile),
                "projects": self._replace_projects(talent_id, profile),
                "languages": self._replace_languages(talent_id, profile),
                "taxonomy_links": self._replace_taxonomy(talent_id, taxonomy),
            }
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(talent)
        logger.info("Profile written talent_id=%s fields=%s counts=%s", talent_id, updated_fields, counts)
        self._emit(StageEvent(PROFILE_WRITTEN, talent_id, run_id, {"fields": updated_fields, **counts}))
        return talent

    @staticmethod
    def _apply_fields(talent: Talent, profile: ExtractedProfile) -> list[str]:
        updated: list[str] = []
        for field in PROFILE_FIELDS:
            value = getattr(profile, field).strip()
            if not value:
                continue
            if field in PLACEHOLDER_FIELDS and value.lower() in PLACEHOLDER_VALUES:
                continue
            if getattr(talent, field) != value:
                setattr(talent, field, value)
                updated.append(field)
        return updated

    def _replace_experiences(self, talent_id: int, profile: ExtractedProfile) -> int | None:
        if not profile.experiences:
            return None
        self.session.execute(delete(Experience).where(Experience.talent_id == talent_id))
        for item in profile.experiences:
            self.session.add(Experience(talent_id=talent_id, **item.model_dump()))
        return len(profile.experiences)

    def _replace_projects(self, talent_id: int, profile: ExtractedProfile) -> int | None:
        if not profile.projects:
            return None
        self.session.execute(delete(Project).where(Project.talent_id == talent_id))
        for item in profile.projects:
            self.session.add(
                Project(
                    talent_id=talent_id,
                    title=item.title,
                    link=item.link,
                    image=item.image,
                    views=item.views,
                    likes=item.likes,
                    project_roles_json=list(item.project_roles),
                )
            )
        return len(profile.projects)

    def _replace_languages(self, talent_id: int, profile: ExtractedProfile) -> int | None:
        if not profile.languages:
            return None
        self.session.execute(delete(Language).where(Language.talent_id == talent_id))
        for item in profile.languages:
            self.session.add(Language(talent_id=talent_id, language=item.language, proficiency=item.proficiency))
        return len(profile.languages)

    def _replace_taxonomy(self, talent_id: int, taxonomy: dict[TaxonomyKind, list[int]]) -> int | None:
        present = {kind: ids for kind, ids in taxonomy.items() if ids}
        if not present:
            return None

        category_ids = select(TaxonomyCategory.id).where(
            TaxonomyCategory.name.in_([kind.value for kind in present])
        )
        value_ids = select(TaxonomyValue.id).where(TaxonomyValue.category_id.in_(category_ids))
        self.session.execute(
            delete(TalentTaxonomyLink).where(
                TalentTaxonomyLink.talent_id == talent_id,
                TalentTaxonomyLink.taxonomy_value_id.in_(value_ids),
            )
        )

        linked: set[int] = set()
        for ids in present.values():
            for value_id in ids:
                if value_id in linked:
                    continue
                linked.add(value_id)
                self.session.add(TalentTaxonomyLink(talent_id=talent_id, taxonomy_value_id=value_id))
        return len(linked)

    def _emit(self, event: StageEvent) -> None:
        for listener in self.listeners:
            listener(event)
