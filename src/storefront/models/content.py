from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Text

from storefront.db import Base, BigIntPK, JSONDoc


def _utcnow():
    return datetime.now(timezone.utc)


class HeroSlide(Base):
    """A storefront banner. location is 'hero' (carousel) or 'featured'."""

    __tablename__ = "hero_slides"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=False)
    cta_text = Column(Text, nullable=False)
    cta_href = Column(Text, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    location = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image_url": self.image_url,
            "cta_text": self.cta_text,
            "cta_href": self.cta_href,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "location": self.location,
        }

    def __repr__(self) -> str:
        return f"<HeroSlide id={self.id} title={self.title!r}>"


class SettingsDocument(Base):
    """
    Singleton configuration documents edited from the admin console.

    key is one of 'site', 'payment', 'tax', 'shipping'; data is the JSON
    body, validated against the matching pydantic model in
    storefront.schemas.settings on every read and write.
    """

    __tablename__ = "settings_documents"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    key = Column(Text, nullable=False, unique=True)
    data = Column(JSONDoc, nullable=False, default=dict)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<SettingsDocument key={self.key!r}>"
