from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session

from talentscout.config import Settings, get_settings
from talentscout.db.repositories import Repository
from talentscout.llm.router import LLMRouter
from talentscout.types import TaxonomyKind

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 500
DOCUMENT_EXCERPT_LIMIT = 500
MAX_DOCUMENTS = 2
MAX_PROJECTS = 3
_YEARS = re.compile(r"(\d+)\+?\s*years?\s*(?:of\s*)?experience", re.IGNORECASE)

SEARCH_PHRASES: dict[str, str] = {
    TaxonomyKind.SKILLS.value: "Skilled in {}",
    TaxonomyKind.SOFTWARE.value: "Uses {}",
    TaxonomyKind.JOB_TYPE.value: "Works as {}",
    TaxonomyKind.CONTENT_VERTICAL.value: "Creates {} content",
    TaxonomyKind.PLATFORM_SPECIALTY.value: "Specializes in {}",
}


def infer_years(texts: list[str]) -> int | None:
    years = [int(match) for text in texts for match in _YEARS.findall(text or "")]
    return max(years) if years else None


class EmbeddingIndexer:
    def __init__(self, session: Session, *, llm: LLMRouter | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.session = session
        self.llm = llm or LLMRouter(self.settings)

    def build_text(self, talent_id: int) -> str:
        talent = self.repo.require_talent(talent_id)
        parts: list[str] = []

        for label, value in (("Name", talent.name), ("Job Title", talent.job_title), ("Location", talent.location)):
            if value:
                parts.append(f"{label}: {value}")
        if talent.description:
            parts.append(f"Description: {talent.description[:DESCRIPTION_LIMIT]}")

        experiences = self.repo.list_experiences(talent_id)
        years = infer_years([row.description for row in experiences] + [talent.description])
        if years is not None:
            parts.append(f"{years} years of experience")
        elif experiences:
            parts.append(f"Has {len(experiences)} work experiences")

        companies = list(dict.fromkeys(row.client_name for row in experiences if row.client_name))
        if companies:
            parts.append("Worked with: " + ", ".join(companies))

        for category, values in self.repo.taxonomy_for_talent(talent_id).items():
            parts.append(f"{category}: {', '.join(values)}")
            phrase = SEARCH_PHRASES.get(category, "Has {}")
            parts.extend(phrase.format(value) for value in values)

        projects = [row.title for row in self.repo.list_projects(talent_id) if row.title][:MAX_PROJECTS]
        if projects:
            parts.append("Projects: " + ", ".join(projects))

        for document in self.repo.extracted_documents(talent_id, limit=MAX_DOCUMENTS):
            excerpt = " ".join(document.extracted_content.split())[:DOCUMENT_EXCERPT_LIMIT]
            if excerpt:
                parts.append(f"Document excerpt: {excerpt}")

        text = ". ".join(part.rstrip(". ") for part in parts if part)
        return text[: self.settings.embedding_max_chars]

    def index_talent(self, talent_id: int) -> list[float]:
        text = self.build_text(talent_id)
        if not text:
            raise ValueError(f"talent {talent_id} has no profile text to embed")

        vector = self.llm.embed(text)
        talent = self.repo.require_talent(talent_id)
        talent.embedding = list(vector)
        self.session.commit()
        logger.info("Embedding stored talent_id=%s chars=%s dims=%s", talent_id, len(text), len(vector))
        return vector
