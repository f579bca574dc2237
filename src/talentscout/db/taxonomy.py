from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from talentscout.db.base import utcnow
from talentscout.db.models import TaxonomyCategory, TaxonomyValue
from talentscout.types import TaxonomyKind

logger = logging.getLogger(__name__)


def normalize_title(title: str) -> str:
    return " ".join(title.strip().lower().split())


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"atomic upsert not supported for dialect {dialect}")


def ensure_category(session: Session, kind: TaxonomyKind) -> int:
    category_id = session.scalar(select(TaxonomyCategory.id).where(TaxonomyCategory.name == kind.value))
    if category_id is not None:
        return category_id

    insert = _insert_for(session)
    now = utcnow()
    statement = (
        insert(TaxonomyCategory)
        .values(name=kind.value, display_order=kind.order, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["name"])
    )
    session.execute(statement)
    session.commit()
    return session.scalar(select(TaxonomyCategory.id).where(TaxonomyCategory.name == kind.value))


def find_or_create_value(session: Session, kind: TaxonomyKind, title: str) -> int:
    """Return the id of the (category, title) value, inserting it when absent.

    The insert ignores unique conflicts so two workers creating the same value
    both end up reading back the single committed row.
    """
    normalized = normalize_title(title)
    if not normalized:
        raise ValueError("taxonomy title must not be blank")

    category_id = ensure_category(session, kind)
    lookup = select(TaxonomyValue.id).where(
        TaxonomyValue.category_id == category_id,
        TaxonomyValue.normalized_title == normalized,
    )

    insert = _insert_for(session)
    now = utcnow()
    statement = (
        insert(TaxonomyValue)
        .values(
            category_id=category_id,
            title=" ".join(title.strip().split()),
            normalized_title=normalized,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["category_id", "normalized_title"])
    )
    result = session.execute(statement)
    session.commit()
    if result.rowcount == 0:
        logger.debug("Taxonomy value already present category=%s title=%s", kind.value, normalized)

    value_id = session.scalar(lookup)
    if value_id is None:
        raise RuntimeError(f"taxonomy value {kind.value}:{normalized} vanished after upsert")
    return value_id


def resolve_values(session: Session, values: dict[TaxonomyKind, list[str]]) -> dict[TaxonomyKind, list[int]]:
    resolved: dict[TaxonomyKind, list[int]] = {}
    for kind, titles in values.items():
        ids: list[int] = []
        for title in titles:
            if not normalize_title(title):
                continue
            value_id = find_or_create_value(session, kind, title)
            if value_id not in ids:
                ids.append(value_id)
        resolved[kind] = ids
    return resolved


def list_category_values(session: Session, kind: TaxonomyKind) -> list[TaxonomyValue]:
    statement = (
        select(TaxonomyValue)
        .join(TaxonomyCategory, TaxonomyCategory.id == TaxonomyValue.category_id)
        .where(TaxonomyCategory.name == kind.value)
        .order_by(TaxonomyValue.id.asc())
    )
    return list(session.scalars(statement).all())
