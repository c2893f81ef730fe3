"""Pydantic models describing request and response payloads."""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .services.library import LOGO, LibraryItem

TRANSFORMATION_ID = "b3d45a0e-3dac-4413-97df-32a13316571e"


class TransformPayload(BaseModel):
    """Body posted by the host's file transformation pipeline."""

    contents: str | None = None


class RegistrationRequest(BaseModel):
    """Registers the ``index.html`` rewrite callback with the host."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = TRANSFORMATION_ID
    file_name_pattern: str = Field(default="index.html", alias="fileNamePattern")
    transformation_endpoint: str = Field(alias="transformationEndpoint")

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


def carousel_entry(
    item: LibraryItem, *, show_description: bool, show_rating: bool
) -> dict[str, object]:
    """Return the display fields the client needs for a single slide."""

    entry: dict[str, object] = {
        "id": item.id,
        "name": item.name,
        "tagline": item.tagline,
        "official_rating": item.official_rating,
        "hasLogo": item.has_image(LOGO),
    }
    if show_description and item.overview:
        entry["overview"] = item.overview
    if show_rating and item.critic_rating is not None:
        entry["critic_rating"] = item.critic_rating
    if show_rating and item.community_rating is not None:
        entry["community_rating"] = round(item.community_rating, 2)
    return entry


class CarouselPayload(BaseModel):
    """The JSON document served to the web client."""

    favourites: list[dict[str, Any]] = Field(default_factory=list)
    autoplay: bool
    autoplay_interval: int
    reduce_image_sizes: bool
    banner_height: int
    heading: str | None = None

    @classmethod
    def from_selection(
        cls, items: Iterable[LibraryItem], settings: Settings
    ) -> "CarouselPayload":
        entries = [
            carousel_entry(
                item,
                show_description=settings.show_description,
                show_rating=settings.show_rating,
            )
            for item in items
        ]
        heading = (settings.heading or "").strip()
        return cls(
            favourites=entries,
            autoplay=settings.enable_autoplay,
            autoplay_interval=settings.autoplay_interval_ms,
            reduce_image_sizes=settings.reduce_image_size,
            banner_height=settings.banner_height,
            heading=heading or None,
        )

    def to_response(self) -> dict[str, object]:
        response: dict[str, object] = {
            "favourites": self.favourites,
            "autoplay": self.autoplay,
            "autoplayInterval": self.autoplay_interval,
            "reduceImageSizes": self.reduce_image_sizes,
            "bannerHeight": self.banner_height,
        }
        if self.heading:
            response["heading"] = self.heading
        return response
