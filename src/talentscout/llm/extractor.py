from __future__ import annotations

import logging
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from talentscout.config import get_settings
from talentscout.db.taxonomy import resolve_values
from talentscout.errors import MalformedLLMOutput
from talentscout.llm.prompts import EXTRACTION_PROMPT, EXTRACTION_SYSTEM_PROMPT
from talentscout.llm.router import LLMRouter
from talentscout.llm.youtube import YouTubeAnalyzer
from talentscout.types import ExtractedProfile, ScrapeResult, TaxonomyKind, YouTubeVideo

logger = logging.getLogger(__name__)

MAX_PARAGRAPHS = 25
MAX_LINKS = 10
MAX_VIDEOS = 20
PAGE_TEXT_LIMIT = 8000
DOCUMENT_TEXT_LIMIT = 15000

_METRIC = re.compile(r"^([\d.,]+)\s*(million|thousand|billion|m|k|b)?\b", re.IGNORECASE)
_MULTIPLIERS = {
    "thousand": 1_000,
    "k": 1_000,
    "million": 1_000_000,
    "m": 1_000_000,
    "billion": 1_000_000_000,
    "b": 1_000_000_000,
}
_TEXT_FIELDS = ("name", "job_title", "description", "image", "location", "timezone", "talent_status", "availability")
_EXPERIENCE_FIELDS = ("client_name", "client_sub_title", "client_logo", "job_type", "period", "description")
_CATEGORY_FIELDS = ("job_types", "content_verticals", "platform_specialties", "skills", "softwares")


def parse_metric(value: Any) -> int | None:
    """Parse counts such as "5 million", "1.2K" or "500k" into integers.

    Absent or unparseable values return None so that missing data never reads as zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None

    text = str(value).strip()
    match = _METRIC.match(text)
    if not match:
        return None
    try:
        amount = Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None
    unit = (match.group(2) or "").lower()
    return int(amount * _MULTIPLIERS.get(unit, 1))


def build_content(
    page: ScrapeResult,
    documents: list[tuple[str, str]],
    youtube: list[YouTubeVideo] | None = None,
) -> str:
    sections: list[str] = ["=== PORTFOLIO ==="]
    description = page.meta.get("description") or page.meta.get("og:description")
    if description:
        sections.append(f"Meta description: {description}")

    if page.headings:
        sections.append("Headings:")
        sections.extend(f"H{heading.level}: {heading.text}" for heading in page.headings)

    if page.text.paragraphs:
        sections.append("Paragraphs:")
        sections.extend(page.text.paragraphs[:MAX_PARAGRAPHS])

    for page_list in page.text.lists:
        sections.append("List: " + "; ".join(page_list.items))

    if page.videos:
        sections.append("Videos:")
        sections.extend(video.url for video in page.videos[:MAX_VIDEOS])

    if youtube:
        sections.append("")
        sections.append("=== YOUTUBE VIDEOS ===")
        for video in youtube:
            line = f"- {video.youtube_url} (id {video.video_id})"
            if video.title:
                line += f" \"{video.title}\""
            if video.content_vertical:
                line += f", likely vertical: {video.content_vertical} ({video.confidence or 'low'} confidence)"
            sections.append(line)
        sections.append("")

    if page.links:
        sections.append("Links:")
        sections.extend(f"{link.text or link.title}: {link.url}" for link in page.links[:MAX_LINKS])

    sections.append("Full text:")
    sections.append(page.text.full_text[:PAGE_TEXT_LIMIT])

    for name, text in documents:
        sections.append("")
        sections.append(f"=== CV / DOCUMENT: {name} ===")
        sections.append("Use this section for exact employment periods and company names.")
        sections.append(text[:DOCUMENT_TEXT_LIMIT])

    return "\n".join(sections)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return value
    return [value]


def normalize_payload(data: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {field: _as_text(data.get(field)) for field in _TEXT_FIELDS}

    payload["experiences"] = [
        {field: _as_text(item.get(field)) for field in _EXPERIENCE_FIELDS}
        for item in _as_list(data.get("experiences"))
        if isinstance(item, dict)
    ]
    payload["projects"] = [
        {
            "title": _as_text(item.get("title")),
            "project_roles": [_as_text(role) for role in _as_list(item.get("project_roles")) if _as_text(role)],
            "link": _as_text(item.get("link")),
            "image": _as_text(item.get("image")),
            "views": parse_metric(item.get("views")),
            "likes": parse_metric(item.get("likes")),
        }
        for item in _as_list(data.get("projects"))
        if isinstance(item, dict)
    ]

    languages: list[dict[str, str]] = []
    for item in _as_list(data.get("languages")):
        if isinstance(item, dict) and _as_text(item.get("language")):
            languages.append({"language": _as_text(item["language"]), "proficiency": _as_text(item.get("proficiency"))})
        elif isinstance(item, str) and item.strip():
            languages.append({"language": item.strip(), "proficiency": ""})
    payload["languages"] = languages

    for field in _CATEGORY_FIELDS:
        payload[field] = [_as_text(value) for value in _as_list(data.get(field)) if isinstance(value, (str, int))]
    return payload


class StructuredExtractor:
    def __init__(
        self,
        session: Session,
        *,
        llm: LLMRouter | None = None,
        youtube: YouTubeAnalyzer | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.llm = llm or LLMRouter()
        self.youtube = youtube or YouTubeAnalyzer(
            self.llm,
            enabled=settings.youtube_analysis_enabled,
            max_videos=settings.youtube_max_videos,
        )

    def build_messages(
        self,
        page: ScrapeResult,
        documents: list[tuple[str, str]],
        youtube: list[YouTubeVideo] | None = None,
    ) -> list[dict[str, str]]:
        prompt = EXTRACTION_PROMPT.format(
            url=page.url,
            title=page.title,
            content=build_content(page, documents, youtube),
        )
        return [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def extract(self, page: ScrapeResult, documents: list[tuple[str, str]]) -> ExtractedProfile:
        youtube = self.youtube.analyze(page.videos)
        data = self.llm.extract_json(self.build_messages(page, documents, youtube))
        if not isinstance(data, dict) or not _as_text(data.get("name")):
            raise MalformedLLMOutput("LLM extraction response is missing the required 'name' key")

        try:
            profile = ExtractedProfile.model_validate(normalize_payload(data))
        except ValidationError as exc:
            raise MalformedLLMOutput(f"LLM extraction response failed validation: {exc}") from exc
        profile.youtube_videos = youtube
        return profile

    def resolve_taxonomy(self, profile: ExtractedProfile) -> dict[TaxonomyKind, list[int]]:
        present = {kind: values for kind, values in profile.category_values().items() if values}
        resolved = resolve_values(self.session, present)
        logger.info(
            "Resolved taxonomy values %s",
            {kind.value: len(ids) for kind, ids in resolved.items()},
        )
        return resolved
