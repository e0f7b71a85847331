from typing import Any, Dict, List, Optional

from sqlalchemy import select

from storefront.models import HeroSlide, SettingsDocument
from storefront.repositories.base import BaseRepository


class HeroSlideRepository(BaseRepository[HeroSlide]):

    @property
    def model(self):
        return HeroSlide

    def list_ordered(self, active_only: bool = False, location: Optional[str] = None) -> List[HeroSlide]:
        stmt = select(HeroSlide).order_by(HeroSlide.sort_order.desc(), HeroSlide.id.desc())
        if active_only:
            stmt = stmt.where(HeroSlide.is_active.is_(True))
        if location:
            stmt = stmt.where(HeroSlide.location == location)
        with self.guard("SELECT"):
            return list(self.session.scalars(stmt))


class SettingsRepository(BaseRepository[SettingsDocument]):
    """Keyed JSON settings documents ('site', 'payment', 'tax', 'shipping')"""

    @property
    def model(self):
        return SettingsDocument

    def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        with self.guard("SELECT"):
            document = self.session.scalar(select(SettingsDocument).where(SettingsDocument.key == key))
        return dict(document.data) if document is not None else None

    def upsert_document(self, key: str, data: Dict[str, Any]) -> SettingsDocument:
        with self.guard("UPSERT"):
            document = self.session.scalar(select(SettingsDocument).where(SettingsDocument.key == key))
            if document is None:
                document = SettingsDocument(key=key, data=data)
                self.session.add(document)
            else:
                document.data = data
            self.session.flush()
            return document
