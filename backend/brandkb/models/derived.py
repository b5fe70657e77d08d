"""Brand-scoped records projected from connector payloads.

Every table here carries a natural unique key so processors can upsert and a
repeated analysis run updates rows instead of duplicating them.
"""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint

from brandkb.models.base import Base, new_id, utcnow


class BrandTopic(Base):
    __tablename__ = "brand_topics"
    __table_args__ = (UniqueConstraint("brand_id", "topic", "source", name="uq_brand_topics_brand_topic_source"),)

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    topic = Column(Text, nullable=False)
    source = Column(String(50), nullable=False)
    relevance_score = Column(Float, nullable=False, default=0.0)
    source_data = Column(JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class CompetitorMeta(Base):
    __tablename__ = "competitor_meta"
    __table_args__ = (UniqueConstraint("brand_id", "domain", name="uq_competitor_meta_brand_domain"),)

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    domain = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    relationship_type = Column(String(50), nullable=False, default="direct")
    priority_level = Column(Integer, nullable=False, default=3)  # 1 = closest competitor
    common_keywords = Column(Integer, nullable=False, default=0)
    competition_level = Column(Float, nullable=False, default=0.0)  # 0-100
    added_by = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class BrandConnectorSnapshot(Base):
    """Latest raw payload of a connector that has no finer-grained projection."""
    __tablename__ = "brand_connector_snapshots"
    __table_args__ = (UniqueConstraint("brand_id", "connector", name="uq_brand_connector_snapshots_brand_connector"),)

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    connector = Column(String(50), nullable=False)
    data = Column(JSON, default=dict)

    captured_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
