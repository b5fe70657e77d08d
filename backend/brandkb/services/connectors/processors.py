"""Project successful connector payloads into brand-scoped derived tables.

Rows are upserted on each table's natural key, so processing the same
payload twice leaves one row per key.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from brandkb.models import BrandConnectorSnapshot, BrandTopic, CompetitorMeta
from brandkb.models.base import new_id, utcnow

MAX_SEMRUSH_TOPICS = 20


def upsert(session: Session, model, rows: List[Dict[str, Any]], conflict_cols: Sequence[str]) -> int:
    """INSERT ... ON CONFLICT (conflict_cols) DO UPDATE for postgres and sqlite."""
    if not rows:
        return 0

    # one row per key, last one wins; postgres rejects duplicate keys in one statement
    deduped: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        deduped[tuple(row[col] for col in conflict_cols)] = row
    rows = list(deduped.values())
    for row in rows:
        row.setdefault("id", new_id())

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model.__table__).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model.__table__).values(rows)
    else:
        raise NotImplementedError(f"upsert not supported on {dialect}")

    immutable = set(conflict_cols) | {"id", "created_at"}
    update_cols = [col for col in rows[0] if col not in immutable]
    stmt = stmt.on_conflict_do_update(
        index_elements=[model.__table__.c[col] for col in conflict_cols],
        set_={col: stmt.excluded[col] for col in update_cols},
    )
    session.execute(stmt)
    return len(rows)


def priority_level(competition_level: float) -> int:
    if competition_level > 70:
        return 1
    if competition_level > 40:
        return 2
    return 3


def _competitor_name(domain: str) -> str:
    host = domain.lower()
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0]


def process_semrush(session: Session, brand_id: str, data: Dict[str, Any]) -> Dict[str, int]:
    now = utcnow()
    keywords = data.get("organicKeywords") or []
    topics = [
        {
            "brand_id": brand_id,
            "topic": kw["keyword"],
            "source": "semrush",
            "relevance_score": min((kw.get("volume") or 0) / 1000, 1.0),
            "source_data": {
                "position": kw.get("position"),
                "volume": kw.get("volume"),
                "difficulty": kw.get("difficulty"),
                "url": kw.get("url"),
            },
            "updated_at": now,
        }
        for kw in keywords[:MAX_SEMRUSH_TOPICS]
        if kw.get("keyword")
    ]
    competitors = [
        {
            "brand_id": brand_id,
            "domain": comp["domain"],
            "name": _competitor_name(comp["domain"]),
            "relationship_type": "direct",
            "priority_level": priority_level(comp.get("competitionLevel") or 0),
            "common_keywords": comp.get("commonKeywords") or 0,
            "competition_level": comp.get("competitionLevel") or 0,
            "added_by": "semrush",
            "updated_at": now,
        }
        for comp in data.get("competitors") or []
        if comp.get("domain")
    ]
    topics_written = upsert(session, BrandTopic, topics, ("brand_id", "topic", "source"))
    competitors_written = upsert(session, CompetitorMeta, competitors, ("brand_id", "domain"))
    return {
        "topicsGenerated": topics_written,
        "competitorsAdded": competitors_written,
        "keywordsAnalyzed": len(keywords),
    }


def process_serpapi(session: Session, brand_id: str, data: Dict[str, Any]) -> Dict[str, int]:
    now = utcnow()
    rows = [
        {
            "brand_id": brand_id,
            "topic": item["question"],
            "source": "serpapi",
            "relevance_score": 0.8,
            "source_data": {"snippet": item.get("snippet") or "", "type": "people_also_ask"},
            "updated_at": now,
        }
        for item in data.get("peopleAlsoAsk") or []
        if item.get("question")
    ]
    rows.extend(
        {
            "brand_id": brand_id,
            "topic": query,
            "source": "serpapi",
            "relevance_score": 0.6,
            "source_data": {"type": "related_search"},
            "updated_at": now,
        }
        for query in data.get("relatedSearches") or []
        if query
    )
    return {"topicsGenerated": upsert(session, BrandTopic, rows, ("brand_id", "topic", "source"))}


def process_similarweb(session: Session, brand_id: str, data: Dict[str, Any]) -> Dict[str, int]:
    upsert(
        session,
        BrandConnectorSnapshot,
        [{"brand_id": brand_id, "connector": "similarweb", "data": data, "captured_at": utcnow()}],
        ("brand_id", "connector"),
    )
    return {}


PROCESSORS: Dict[str, Callable[[Session, str, Dict[str, Any]], Dict[str, int]]] = {
    "semrush": process_semrush,
    "serpapi": process_serpapi,
    "similarweb": process_similarweb,
}
