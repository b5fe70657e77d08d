"""Synchronous connector aggregation for a brand."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from brandkb.api.deps import get_aggregator
from brandkb.api.errors import http_error
from brandkb.errors import BrandNotFound
from brandkb.jobs.orchestrator import site_domain
from brandkb.models.base import get_db
from brandkb.services.brands import BrandRegistry
from brandkb.services.connectors import ConnectorAggregator, ConnectorContext

router = APIRouter()


class AggregateRequest(BaseModel):
    brand_id: str = Field(alias="brandId")
    connectors: Optional[List[str]] = None
    domain: Optional[str] = None
    competitors: Optional[List[str]] = None

    class Config:
        populate_by_name = True


class AggregateResponse(BaseModel):
    results: List[Dict[str, Any]]
    processed_data: Dict[str, Any] = Field(alias="processedData")
    summary: Dict[str, Any]

    class Config:
        populate_by_name = True


@router.post("/connectors:aggregate", response_model=AggregateResponse)
def aggregate(
    request: AggregateRequest,
    db: Session = Depends(get_db),
    aggregator: ConnectorAggregator = Depends(get_aggregator),
):
    try:
        brand = BrandRegistry(db).get(request.brand_id)
    except BrandNotFound as exc:
        raise http_error(exc)

    names = request.connectors
    if names is None:
        names = aggregator.settings.default_connector_names()
    names = [name.strip().lower() for name in names if name and name.strip()]

    ctx = ConnectorContext(
        domain=site_domain(request.domain or brand.domain),
        brand_name=brand.name,
        competitors=list(request.competitors if request.competitors is not None else brand.competitors or []),
    )
    return aggregator.run(db, brand.id, names, ctx)
