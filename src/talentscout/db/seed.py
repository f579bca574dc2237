from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from talentscout.db.models import TaxonomyCategory
from talentscout.db.taxonomy import find_or_create_value
from talentscout.types import TaxonomyKind

STARTER_VALUES: dict[TaxonomyKind, list[str]] = {
    TaxonomyKind.JOB_TYPE: ["Video Editor", "Script Writer", "Creative Director", "Videographer"],
    TaxonomyKind.CONTENT_VERTICAL: [
        "Travel",
        "Education",
        "Lifestyle & Vlogs",
        "Entertainment",
        "Tech & Startup",
        "Self-Help",
        "Kids & Family",
        "IRL",
        "Scripted & Skits",
        "How-To & DIY",
    ],
    TaxonomyKind.PLATFORM_SPECIALTY: ["YouTube", "TikTok", "Instagram"],
    TaxonomyKind.SKILLS: ["Graphic Design", "Photography", "Color Grading"],
    TaxonomyKind.SOFTWARE: [
        "Adobe Illustrator",
        "Adobe Photoshop",
        "Figma",
        "Adobe Premiere Pro",
        "Adobe After Effects",
        "Adobe Lightroom",
        "Canva",
    ],
}


def seed_taxonomy_categories(session: Session) -> int:
    inserted = 0
    for kind in TaxonomyKind:
        existing = session.scalar(select(TaxonomyCategory).where(TaxonomyCategory.name == kind.value))
        if existing:
            continue
        session.add(TaxonomyCategory(name=kind.value, display_order=kind.order))
        inserted += 1

    session.commit()
    return inserted


def seed_starter_values(session: Session) -> int:
    count = 0
    for kind, titles in STARTER_VALUES.items():
        for title in titles:
            find_or_create_value(session, kind, title)
            count += 1
    return count
