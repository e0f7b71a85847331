import logging
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import ValidationError
from storefront.models import HeroSlide
from storefront.repositories.content_repository import HeroSlideRepository

logger = logging.getLogger(__name__)

SLIDE_FIELDS = ("title", "description", "image_url", "cta_text", "cta_href", "sort_order", "is_active", "location")
LOCATIONS = ("hero", "featured")


class HeroSlideService:
    """
    Storefront banners

    Business Rules:
    - Slides are shown highest sort_order first
    - A new slide without a sort_order goes after the existing ones
    """

    def __init__(self, session):
        self.repo = HeroSlideRepository(session)

    def list(self) -> List[HeroSlide]:
        return self.repo.list_ordered()

    def list_active(self, location: Optional[str] = None) -> List[HeroSlide]:
        return self.repo.list_ordered(active_only=True, location=location)

    def get(self, slide_id: int) -> HeroSlide:
        return self.repo.get_or_404(slide_id, message="Slide not found")

    def create(self, data: Dict[str, Any]) -> HeroSlide:
        self._check_location(data.get("location"))
        values = {field: data[field] for field in SLIDE_FIELDS if field in data}
        if values.get("sort_order") is None:
            values["sort_order"] = self.repo.count()

        slide = self.repo.add(HeroSlide(**values))
        self.repo.commit()
        logger.info(f"Created hero slide {slide.id}")
        return slide

    def update(self, slide_id: int, data: Dict[str, Any]) -> HeroSlide:
        slide = self.get(slide_id)
        if "location" in data:
            self._check_location(data["location"])
        for field in SLIDE_FIELDS:
            if field in data:
                setattr(slide, field, data[field])
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated hero slide {slide_id}")
        return slide

    def remove(self, slide_id: int) -> None:
        slide = self.get(slide_id)
        self.repo.delete(slide)
        self.repo.commit()
        logger.info(f"Deleted hero slide {slide_id}")

    @staticmethod
    def _check_location(location: Optional[str]) -> None:
        if location is not None and location not in LOCATIONS:
            raise ValidationError(f"Location must be one of: {', '.join(LOCATIONS)}")
