"""Lookups against the brand registry read model."""
from typing import Optional

from sqlalchemy.orm import Session

from brandkb.errors import BrandNotFound
from brandkb.models import Brand


class BrandRegistry:
    def __init__(self, session: Session):
        self.session = session

    def find(self, brand_id: str) -> Optional[Brand]:
        return self.session.get(Brand, brand_id)

    def get(self, brand_id: str) -> Brand:
        brand = self.find(brand_id)
        if brand is None:
            raise BrandNotFound(brand_id)
        return brand
