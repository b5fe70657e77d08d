"""Read model of the external brand/competitor registry."""
from sqlalchemy import Column, DateTime, JSON, String

from brandkb.models.base import Base, new_id, utcnow


class Brand(Base):
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    competitors = Column(JSON, default=list)  # ["competitor.com", ...]
    created_at = Column(DateTime(timezone=True), default=utcnow)
