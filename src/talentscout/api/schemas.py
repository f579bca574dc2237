from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from talentscout.types import RankedTalent, SearchMode


class TalentCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    name: str = ""
    website_url: str = ""
    start_pipeline: bool = True


class TalentUpdateRequest(BaseModel):
    name: str | None = None
    job_title: str | None = None
    description: str | None = None
    image: str | None = None
    location: str | None = None
    timezone: str | None = None
    talent_status: str | None = None
    availability: str | None = None
    website_url: str | None = None


class ScrapeRequest(BaseModel):
    url: str | None = None


class RunResponse(BaseModel):
    id: int
    talent_id: int
    website_url: str
    status: str
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    scraped_data_path: str | None = None
    processed_data_path: str | None = None
    created_at: str | None = None
    completed_at: str | None = None


class PipelineStatusResponse(BaseModel):
    talent_id: int
    pipeline_status: str
    error: str | None = None
    has_embedding: bool = False
    latest_run: RunResponse | None = None


class TalentResponse(BaseModel):
    id: int
    username: str
    name: str
    job_title: str = ""
    description: str = ""
    image: str = ""
    location: str = ""
    timezone: str = ""
    talent_status: str = ""
    availability: str = ""
    website_url: str = ""
    pipeline_status: str = "idle"
    experiences: list[dict[str, Any]] = Field(default_factory=list)
    projects: list[dict[str, Any]] = Field(default_factory=list)
    languages: list[dict[str, Any]] = Field(default_factory=list)
    taxonomy: dict[str, list[str]] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    items: list[RankedTalent]
    page: int
    per_page: int
    total: int
    mode: SearchMode
