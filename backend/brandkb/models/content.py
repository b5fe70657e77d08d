"""Crawled snapshots and their normalized text."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from brandkb.models.base import Base, new_id, utcnow


class RawPage(Base):
    """One fetched + stored document. Only status 200 with a non-empty body."""
    __tablename__ = "raw_pages"

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=True, index=True)

    url = Column(Text, nullable=False)
    canonical_url = Column(Text, nullable=True)
    status_code = Column(Integer, nullable=False)
    content_type = Column(String(255), nullable=True)
    content_hash = Column(String(64), nullable=False, index=True)
    title = Column(Text, nullable=True)
    meta_description = Column(Text, nullable=True)
    storage_path = Column(Text, nullable=False)
    content_length = Column(Integer, nullable=False, default=0)

    fetch_time = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PageContent(Base):
    """Main text extracted from a RawPage by the normalize job."""
    __tablename__ = "page_contents"

    id = Column(String(36), primary_key=True, default=new_id)
    raw_page_id = Column(String(36), ForeignKey("raw_pages.id"), nullable=False, unique=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)

    url = Column(Text, nullable=False)
    title = Column(Text, nullable=True)
    headings = Column(JSON, default=list)
    text = Column(Text, nullable=False, default="")
    word_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
