from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

PipelineStatus = Literal["idle", "scraping", "extracting", "completed", "failed"]
RunStatus = Literal["pending", "scraping", "processing", "completed", "failed"]
DownloadStatus = Literal["pending", "downloading", "completed", "failed"]
ExtractionStatus = Literal["pending", "extracting", "completed", "failed"]
SearchMode = Literal["vector", "fallback", "listing"]


class TaxonomyKind(str, Enum):
    JOB_TYPE = "Job Type"
    CONTENT_VERTICAL = "Content Vertical"
    PLATFORM_SPECIALTY = "Platform Specialty"
    SKILLS = "Skills"
    SOFTWARE = "Software"

    @property
    def order(self) -> int:
        return list(TaxonomyKind).index(self) + 1


class PageLink(BaseModel):
    url: str
    text: str = ""
    title: str = ""
    target: str = ""


class PageImage(BaseModel):
    url: str
    alt: str = ""
    title: str = ""
    width: str = ""
    height: str = ""


class PageVideo(BaseModel):
    url: str
    type: str = "video"
    title: str = ""


class PageHeading(BaseModel):
    level: int
    text: str


class PageList(BaseModel):
    type: Literal["ul", "ol"] = "ul"
    items: list[str] = Field(default_factory=list)


class PageText(BaseModel):
    paragraphs: list[str] = Field(default_factory=list)
    lists: list[PageList] = Field(default_factory=list)
    full_text: str = ""


class ScrapeResult(BaseModel):
    url: str
    title: str = ""
    meta: dict[str, str] = Field(default_factory=dict)
    links: list[PageLink] = Field(default_factory=list)
    images: list[PageImage] = Field(default_factory=list)
    videos: list[PageVideo] = Field(default_factory=list)
    headings: list[PageHeading] = Field(default_factory=list)
    text: PageText = Field(default_factory=PageText)
    method: str = "static_html"
    scraped_at: str = ""
    metrics: dict[str, Any] = Field(default_factory=dict)


class ScrapeOptions(BaseModel):
    wait_until: str = "networkidle2"
    wait_for_selector: str | None = None
    wait_time_ms: int | None = None
    execute_script: str | None = None
    block_resources: bool = True
    viewport: dict[str, int] = Field(default_factory=lambda: {"width": 1920, "height": 1080})
    timeout_ms: int | None = None


class ExtractedExperience(BaseModel):
    client_name: str = ""
    client_sub_title: str = ""
    client_logo: str = ""
    job_type: str = ""
    period: str = ""
    description: str = ""


class ExtractedProject(BaseModel):
    title: str = ""
    project_roles: list[str] = Field(default_factory=list)
    link: str = ""
    image: str = ""
    views: int | None = None
    likes: int | None = None


class ExtractedLanguage(BaseModel):
    language: str
    proficiency: str = ""


class YouTubeVideo(BaseModel):
    original_url: str
    youtube_url: str
    video_id: str
    type: str = "youtube"
    title: str = ""
    content_vertical: str = ""
    confidence: str = ""
    reasoning: str = ""


class ExtractedProfile(BaseModel):
    name: str
    job_title: str = ""
    description: str = ""
    image: str = ""
    location: str = ""
    timezone: str = ""
    talent_status: str = ""
    availability: str = ""
    experiences: list[ExtractedExperience] = Field(default_factory=list)
    projects: list[ExtractedProject] = Field(default_factory=list)
    languages: list[ExtractedLanguage] = Field(default_factory=list)
    job_types: list[str] = Field(default_factory=list)
    content_verticals: list[str] = Field(default_factory=list)
    platform_specialties: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    softwares: list[str] = Field(default_factory=list)
    youtube_videos: list[YouTubeVideo] = Field(default_factory=list)

    @field_validator("job_types", "content_verticals", "platform_specialties", "skills", "softwares")
    @classmethod
    def strip_blank_values(cls, values: list[str]) -> list[str]:
        return [value.strip() for value in values if isinstance(value, str) and value.strip()]

    def category_values(self) -> dict[TaxonomyKind, list[str]]:
        return {
            TaxonomyKind.JOB_TYPE: self.job_types,
            TaxonomyKind.CONTENT_VERTICAL: self.content_verticals,
            TaxonomyKind.PLATFORM_SPECIALTY: self.platform_specialties,
            TaxonomyKind.SKILLS: self.skills,
            TaxonomyKind.SOFTWARE: self.softwares,
        }


class RankedTalent(BaseModel):
    talent: dict[str, Any]
    score: float | None = None


class SearchPage(BaseModel):
    items: list[RankedTalent] = Field(default_factory=list)
    page: int = 1
    page_size: int = 10
    total: int = 0
    mode: SearchMode = "listing"
