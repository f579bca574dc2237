from __future__ import annotations

import json
import logging
import math
from typing import Any

import numpy as np
from sqlalchemy import select
from sqlalchemy.orm import Session

from talentscout.config import Settings, get_settings
from talentscout.db.models import Talent
from talentscout.db.repositories import Repository
from talentscout.errors import MalformedLLMOutput
from talentscout.llm.prompts import RANKING_PROMPT, RANKING_SYSTEM_PROMPT
from talentscout.llm.router import LLMRouter
from talentscout.types import RankedTalent, SearchPage, TaxonomyKind

logger = logging.getLogger(__name__)

RANKED_CATEGORIES = (TaxonomyKind.SKILLS.value, TaxonomyKind.SOFTWARE.value, TaxonomyKind.JOB_TYPE.value)


def validate_rankings(data: Any, candidate_ids: list[int]) -> dict[int, float]:
    """Turn the model's ranking payload into one clamped score per candidate."""
    rankings = data.get("rankings") if isinstance(data, dict) else None
    if not isinstance(rankings, dict):
        raise MalformedLLMOutput("ranking response is missing the 'rankings' object")

    scores: dict[int, float] = {}
    for candidate_id in candidate_ids:
        raw = rankings.get(str(candidate_id))
        if raw is None:
            logger.warning("Ranking missing for candidate %s; defaulting to 0", candidate_id)
            scores[candidate_id] = 0.0
            continue
        try:
            score = float(raw)
        except (TypeError, ValueError):
            logger.warning("Non-numeric ranking %r for candidate %s; defaulting to 0", raw, candidate_id)
            scores[candidate_id] = 0.0
            continue
        if math.isnan(score):
            logger.warning("NaN ranking for candidate %s; defaulting to 0", candidate_id)
            score = 0.0
        if score < 0 or score > 100:
            logger.warning("Ranking %s for candidate %s out of range; clamping", score, candidate_id)
            score = min(100.0, max(0.0, score))
        scores[candidate_id] = score

    unexpected = set(rankings) - {str(candidate_id) for candidate_id in candidate_ids}
    if unexpected:
        logger.warning("Ranking response contains unknown candidate ids %s", sorted(unexpected))
    return scores


class HybridSearchEngine:
    def __init__(self, session: Session, *, llm: LLMRouter | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.session = session
        self.repo = Repository(session)
        self.llm = llm or LLMRouter(self.settings)

    def search(self, query: str | None, page_size: int | None = None, page: int = 1) -> SearchPage:
        page_size = max(1, page_size or self.settings.search_default_page_size)
        page = max(1, page)
        if not query or not query.strip():
            return self.listing(page_size=page_size, page=page)

        try:
            return self._hybrid(query.strip(), page_size=page_size, page=page)
        except Exception as exc:
            logger.warning("Hybrid search failed for query=%r, falling back to listing: %s", query, exc)
            self.session.rollback()
            result = self.listing(page_size=page_size, page=page)
            result.mode = "fallback"
            return result

    def listing(self, *, page_size: int, page: int = 1) -> SearchPage:
        talents = self.repo.list_talents(limit=page_size, offset=(page - 1) * page_size)
        return SearchPage(
            items=[RankedTalent(talent=self.repo.talent_profile(talent), score=None) for talent in talents],
            page=page,
            page_size=page_size,
            total=self.repo.count_talents(),
            mode="listing",
        )

    def _hybrid(self, query: str, *, page_size: int, page: int) -> SearchPage:
        vector = self.llm.embed(query)
        limit = min(3 * page_size, self.settings.search_candidate_cap)
        candidates = self.nearest(vector, limit)
        if not candidates:
            return SearchPage(items=[], page=page, page_size=page_size, total=0, mode="vector")

        scores = self.rerank(query, candidates)
        ranked = sorted(candidates, key=lambda talent: -scores[talent.id])
        start = (page - 1) * page_size
        return SearchPage(
            items=[
                RankedTalent(talent=self.repo.talent_profile(talent), score=scores[talent.id])
                for talent in ranked[start : start + page_size]
            ],
            page=page,
            page_size=page_size,
            total=len(ranked),
            mode="vector",
        )

    def nearest(self, vector: list[float], limit: int) -> list[Talent]:
        base = select(Talent).where(Talent.embedding.is_not(None), Talent.deleted_at.is_(None))
        if self.session.get_bind().dialect.name == "postgresql":
            statement = base.order_by(Talent.embedding.cosine_distance(vector)).limit(limit)
            return list(self.session.scalars(statement).all())

        rows = list(self.session.scalars(base).all())
        if not rows:
            return []
        matrix = np.asarray([np.asarray(row.embedding, dtype=float) for row in rows])
        query = np.asarray(vector, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        distances = 1.0 - (matrix @ query) / norms
        order = np.argsort(distances, kind="stable")[:limit]
        return [rows[index] for index in order]

    def rerank(self, query: str, candidates: list[Talent]) -> dict[int, float]:
        payload = [self._candidate_summary(talent) for talent in candidates]
        messages = [
            {"role": "system", "content": RANKING_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": RANKING_PROMPT.format(
                    query=query,
                    candidates="\n".join(json.dumps(item, ensure_ascii=False) for item in payload),
                ),
            },
        ]
        data = self.llm.rank_json(messages)
        return validate_rankings(data, [talent.id for talent in candidates])

    def _candidate_summary(self, talent: Talent) -> dict[str, Any]:
        taxonomy = self.repo.taxonomy_for_talent(talent.id)
        skills = [value for category in RANKED_CATEGORIES for value in taxonomy.get(category, [])][:10]
        return {
            "id": talent.id,
            "name": talent.name,
            "job_title": talent.job_title,
            "description": talent.description[:300],
            "location": talent.location,
            "experiences": [
                {"client": row.client_name, "role": row.job_type, "period": row.period}
                for row in self.repo.list_experiences(talent.id)[:3]
            ],
            "skills": skills,
            "content_verticals": taxonomy.get(TaxonomyKind.CONTENT_VERTICAL.value, []),
            "platforms": taxonomy.get(TaxonomyKind.PLATFORM_SPECIALTY.value, []),
            "projects": [row.title for row in self.repo.list_projects(talent.id)[:2]],
        }
