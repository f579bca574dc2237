from __future__ import annotations

from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from talentscout.config import get_settings
from talentscout.db.base import Base, TimestampMixin

# pgvector on postgres; a JSON float list everywhere else (sqlite in tests and local runs)
EmbeddingType = Vector(get_settings().embedding_dimensions).with_variant(JSON(none_as_null=True), "sqlite")


class Talent(TimestampMixin, Base):
    __tablename__ = "talent"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    job_title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    image: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    location: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    timezone: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    talent_status: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    availability: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    website_url: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    embedding: Mapped[Any | None] = mapped_column(EmbeddingType, nullable=True)
    pipeline_status: Mapped[str] = mapped_column(String(40), default="idle", nullable=False, index=True)
    pipeline_error: Mapped[str] = mapped_column(Text, default="", nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ScrapeRun(TimestampMixin, Base):
    __tablename__ = "scrape_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    website_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    scraped_data_path: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    processed_data_path: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(40), default="pending", nullable=False)
    error_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Document(TimestampMixin, Base):
    __tablename__ = "talent_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    scrape_run_id: Mapped[int | None] = mapped_column(
        ForeignKey("scrape_runs.id", ondelete="CASCADE"), index=True, nullable=True
    )
    original_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    source_link_text: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    document_type: Mapped[str] = mapped_column(String(20), default="pdf", nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    filename: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    download_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    extraction_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    extracted_content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    error_message: Mapped[str] = mapped_column(Text, default="", nullable=False)


class Experience(TimestampMixin, Base):
    __tablename__ = "talent_experiences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    client_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    client_sub_title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    client_logo: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    job_type: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    period: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)


class Project(TimestampMixin, Base):
    __tablename__ = "talent_projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    link: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    image: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    views: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    likes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    project_roles_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)


class Language(TimestampMixin, Base):
    __tablename__ = "talent_languages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    language: Mapped[str] = mapped_column(String(120), nullable=False)
    proficiency: Mapped[str] = mapped_column(String(120), default="", nullable=False)


class TaxonomyCategory(TimestampMixin, Base):
    __tablename__ = "taxonomy_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class TaxonomyValue(TimestampMixin, Base):
    __tablename__ = "taxonomy_values"
    __table_args__ = (UniqueConstraint("category_id", "normalized_title", name="uq_taxonomy_value"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("taxonomy_categories.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_title: Mapped[str] = mapped_column(String(255), nullable=False)


class TalentTaxonomyLink(TimestampMixin, Base):
    __tablename__ = "talent_taxonomy_links"
    __table_args__ = (UniqueConstraint("talent_id", "taxonomy_value_id", name="uq_talent_taxonomy_link"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    taxonomy_value_id: Mapped[int] = mapped_column(
        ForeignKey("taxonomy_values.id", ondelete="CASCADE"), index=True
    )


class PipelineEvent(TimestampMixin, Base):
    __tablename__ = "pipeline_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent.id", ondelete="CASCADE"), index=True)
    scrape_run_id: Mapped[int | None] = mapped_column(
        ForeignKey("scrape_runs.id", ondelete="CASCADE"), index=True, nullable=True
    )
    stage: Mapped[str] = mapped_column(String(80), nullable=False)
    action: Mapped[str] = mapped_column(String(120), nullable=False)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
