"""Application configuration models."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class SelectionMode(str, Enum):
    """Strategies used to fill the carousel."""

    FAVOURITES = "FAVOURITES"
    COLLECTIONS = "COLLECTIONS"
    NEW = "NEW"
    RANDOM = "RANDOM"


INHERIT_PARENTAL_RATING = -2

NEW_TIME_LIMITS: tuple[str, ...] = ("2month", "6month", "1year", "2year", "5year")


def _split_identifiers(value: object, *, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        raw_values = [part.strip() for part in value.split(",")]
    elif isinstance(value, Iterable):
        raw_values = [str(part).strip() for part in value]
    else:
        raise TypeError(f"{field_name} must be a string or iterable of strings")

    cleaned: list[str] = []
    for entry in raw_values:
        if entry and entry not in cleaned:
            cleaned.append(entry)
    return tuple(cleaned)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="EditorsChoice", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=8097, alias="PORT")

    mode: SelectionMode | None = Field(default=None, alias="MODE")
    show_random_media: bool = Field(default=False, alias="SHOW_RANDOM_MEDIA")

    minimum_rating: float = Field(default=0.0, alias="MINIMUM_RATING", ge=0, le=10)
    minimum_critic_rating: float = Field(
        default=0.0, alias="MINIMUM_CRITIC_RATING", ge=0, le=100
    )
    maximum_parent_rating: int = Field(
        default=INHERIT_PARENTAL_RATING, alias="MAXIMUM_PARENT_RATING", ge=-2
    )
    random_media_count: int = Field(
        default=5, alias="RANDOM_MEDIA_COUNT", ge=1, le=100
    )
    filtered_libraries: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), alias="FILTERED_LIBRARIES"
    )
    show_played: bool = Field(default=True, alias="SHOW_PLAYED")

    editor_user_id: str | None = Field(default=None, alias="EDITOR_USER_ID")
    selected_collections: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), alias="SELECTED_COLLECTIONS"
    )
    new_time_limit: str = Field(default="1month", alias="NEW_TIME_LIMIT")

    show_description: bool = Field(default=True, alias="SHOW_DESCRIPTION")
    show_rating: bool = Field(default=True, alias="SHOW_RATING")
    enable_autoplay: bool = Field(default=True, alias="ENABLE_AUTOPLAY")
    autoplay_interval: int = Field(default=10, alias="AUTOPLAY_INTERVAL", ge=1)
    reduce_image_size: bool = Field(default=False, alias="REDUCE_IMAGE_SIZE")
    banner_height: int = Field(default=360, alias="BANNER_HEIGHT", ge=0)
    heading: str | None = Field(default=None, alias="HEADING")

    do_script_inject: bool = Field(default=False, alias="DO_SCRIPT_INJECT")
    file_transformation: bool = Field(default=True, alias="FILE_TRANSFORMATION")
    public_url: HttpUrl | None = Field(default=None, alias="PUBLIC_URL")
    web_path: Path | None = Field(default=None, alias="WEB_PATH")
    network_config_path: Path | None = Field(
        default=None, alias="NETWORK_CONFIG_PATH"
    )
    host_http_port: int = Field(default=8096, alias="HOST_HTTP_PORT", ge=1, le=65535)

    user_header: str = Field(default="X-Forwarded-User", alias="USER_HEADER")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./editorschoice.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: object) -> object:
        """Accept mode names case-insensitively; blanks mean "not set"."""

        if value is None or isinstance(value, SelectionMode):
            return value
        text = str(value).strip().upper()
        if not text:
            return None
        if text not in SelectionMode.__members__:
            raise ValueError("Unknown selection mode configured")
        return SelectionMode(text)

    @field_validator("filtered_libraries", mode="before")
    @classmethod
    def _parse_filtered_libraries(cls, value: object) -> tuple[str, ...]:
        return _split_identifiers(value, field_name="FILTERED_LIBRARIES")

    @field_validator("selected_collections", mode="before")
    @classmethod
    def _parse_selected_collections(cls, value: object) -> tuple[str, ...]:
        return _split_identifiers(value, field_name="SELECTED_COLLECTIONS")

    @field_validator("new_time_limit", mode="before")
    @classmethod
    def _parse_new_time_limit(cls, value: object) -> str:
        return str(value or "").strip().lower() or "1month"

    @field_validator("editor_user_id", "heading", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _normalise_mode(self) -> "Settings":
        """Derive the mode from the legacy random-media flag when unset."""

        if self.mode is None:
            self.mode = (
                SelectionMode.RANDOM
                if self.show_random_media
                else SelectionMode.FAVOURITES
            )
        return self

    @property
    def autoplay_interval_ms(self) -> int:
        return self.autoplay_interval * 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
