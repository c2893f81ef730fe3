"""Pick the items shown in the editor's choice carousel."""

from __future__ import annotations

import calendar
import logging
import random
import uuid
from datetime import date
from typing import Callable, Iterable, NamedTuple

from ..config import INHERIT_PARENTAL_RATING, SelectionMode, Settings
from .library import (
    BACKDROP,
    FOLDER_KINDS,
    ItemKind,
    ItemQuery,
    LibraryBackend,
    LibraryItem,
    LibraryUser,
)

logger = logging.getLogger(__name__)

FAVOURITE_KINDS: tuple[ItemKind, ...] = ("series", "movie", "episode", "season")
TITLE_KINDS: tuple[ItemKind, ...] = ("series", "movie")

NEW_WINDOW_MONTHS: dict[str, int] = {
    "2month": 2,
    "6month": 6,
    "1year": 12,
    "2year": 24,
    "5year": 60,
}
DEFAULT_NEW_WINDOW_MONTHS = 1


class ParentalCeiling(NamedTuple):
    maximum: int | None
    required: bool | None


def resolve_parental_ceiling(settings: Settings, user: LibraryUser) -> ParentalCeiling:
    """Return the parental rating limit applied to every library query.

    ``-2`` inherits the requesting account's limit; a rating is then only
    required when that limit is set. A fixed limit always requires one.
    """

    if settings.maximum_parent_rating == INHERIT_PARENTAL_RATING:
        maximum = user.max_parental_rating
        required = True if maximum is not None and maximum >= 0 else None
        return ParentalCeiling(maximum, required)
    return ParentalCeiling(settings.maximum_parent_rating, True)


def shift_months(value: date, months: int) -> date:
    """Move ``value`` back by ``months``, clamping to the end of the month."""

    month_index = value.year * 12 + (value.month - 1) - months
    year, month_zero = divmod(month_index, 12)
    month = month_zero + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def new_items_cutoff(window: str, today: date) -> date:
    """Earliest premiere/end date still considered new for ``window``."""

    months = NEW_WINDOW_MONTHS.get(window, DEFAULT_NEW_WINDOW_MONTHS)
    return shift_months(today, months)


class _DrawPool:
    """Candidates handed out in random order, each at most once."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[LibraryItem]):
        self._items = list(items)

    def __len__(self) -> int:
        return len(self._items)

    def draw(self, rng: random.Random) -> LibraryItem:
        index = rng.randrange(len(self._items))
        last = len(self._items) - 1
        self._items[index], self._items[last] = self._items[last], self._items[index]
        return self._items.pop()


class SelectionEngine:
    """Builds a bounded, de-duplicated carousel for one request."""

    def __init__(
        self,
        settings: Settings,
        library: LibraryBackend,
        *,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._settings = settings
        self._library = library
        self._rng = rng or random.Random()
        self._today = today

    async def select(self, user: LibraryUser) -> list[LibraryItem]:
        """Return the carousel items for ``user`` in the configured mode."""

        ceiling = resolve_parental_ceiling(self._settings, user)
        mode = self._settings.mode
        result: list[LibraryItem] = []
        exhausted = False

        if mode is SelectionMode.FAVOURITES:
            result = await self._favourites(user, ceiling)
            exhausted = not result
        elif mode is SelectionMode.COLLECTIONS:
            result = await self._collections(user, ceiling)
            exhausted = not result
        elif mode is SelectionMode.NEW:
            result = await self._new_items(user, ceiling)
            exhausted = not result

        if mode is SelectionMode.RANDOM or exhausted:
            if exhausted:
                logger.info(
                    "No %s items qualified for %s; using random selection",
                    mode.value if mode else "configured",
                    user.name,
                )
            result = await self._random(user, ceiling)
        return result

    async def sample_items(
        self, candidates: Iterable[LibraryItem], user: LibraryUser
    ) -> list[LibraryItem]:
        """Draw up to ``random_media_count`` qualifying titles from a pool.

        Episodes and seasons are replaced by their series before the
        acceptance checks. Every drawn candidate leaves the pool whether or
        not it is accepted, so the loop ends once the pool is empty.
        """

        target = self._settings.random_media_count
        pool = _DrawPool(candidates)
        selected: list[LibraryItem] = []
        seen: set[str] = set()

        while len(selected) < target and len(pool):
            drawn = pool.draw(self._rng)
            item = await self._series_for(drawn)
            if item is None or item.id in seen:
                continue
            if await self._accepts(item, user):
                selected.append(item)
                seen.add(item.id)
        return selected

    async def _series_for(self, item: LibraryItem) -> LibraryItem | None:
        if item.kind not in ("episode", "season"):
            return item
        parent = await self._parent_of(item)
        if parent is not None and parent.kind == "season":
            parent = await self._parent_of(parent)
        return parent

    async def _parent_of(self, item: LibraryItem) -> LibraryItem | None:
        if item.parent_id is None:
            return None
        return await self._library.get_item(item.parent_id)

    async def _accepts(self, item: LibraryItem, user: LibraryUser) -> bool:
        if not item.has_image(BACKDROP):
            return False
        if not await self._library.is_visible(item, user):
            return False
        if not self._settings.show_played and await self._library.is_played(item, user):
            return False
        libraries = self._settings.filtered_libraries
        if libraries:
            ancestors = await self._library.ancestor_ids(item)
            if not ancestors.intersection(libraries):
                return False
        return True

    def _played_filter(self) -> bool | None:
        return None if self._settings.show_played else False

    def _query(
        self,
        user: LibraryUser,
        kinds: tuple[ItemKind, ...],
        ceiling: ParentalCeiling,
        *,
        limit: int,
        **criteria: object,
    ) -> ItemQuery:
        settings = self._settings
        return ItemQuery(
            user=user,
            include_kinds=kinds,
            min_community_rating=settings.minimum_rating or None,
            min_critic_rating=settings.minimum_critic_rating or None,
            max_parental_rating=ceiling.maximum,
            has_parental_rating=ceiling.required,
            random_order=True,
            limit=limit,
            **criteria,  # type: ignore[arg-type]
        )

    def _pool_size(self) -> int:
        return self._settings.random_media_count * 2

    async def _favourites(
        self, user: LibraryUser, ceiling: ParentalCeiling
    ) -> list[LibraryItem]:
        editor_id = (self._settings.editor_user_id or "").strip()
        if len(editor_id) < 16:
            return []
        try:
            uuid.UUID(editor_id)
        except ValueError:
            logger.warning("Ignoring malformed editor user id %r", editor_id)
            return []
        editor = await self._library.get_user_by_id(editor_id)
        if editor is None:
            logger.warning("Editor user %s not found", editor_id)
            return []

        favourites = await self._library.query_items(
            self._query(
                editor,
                FAVOURITE_KINDS,
                ceiling,
                limit=self._pool_size(),
                is_favorite=True,
            )
        )
        visible_ids: list[str] = []
        for item in favourites:
            if item.id not in visible_ids and await self._library.is_visible(item, user):
                visible_ids.append(item.id)
        if not visible_ids:
            return []

        pool = await self._library.query_items(
            ItemQuery(
                user=user,
                include_kinds=FAVOURITE_KINDS,
                item_ids=tuple(visible_ids),
                is_played=self._played_filter(),
            )
        )
        return await self.sample_items(pool, user)

    async def _collections(
        self, user: LibraryUser, ceiling: ParentalCeiling
    ) -> list[LibraryItem]:
        remaining = list(self._settings.selected_collections)
        result: list[LibraryItem] = []
        while not result and remaining:
            collection_id = remaining.pop(self._rng.randrange(len(remaining)))
            collection = await self._library.get_item(collection_id)
            if collection is None or collection.kind not in FOLDER_KINDS:
                logger.warning("Collection %s not found; skipping", collection_id)
                continue
            children = await self._library.get_children(collection, user)
            item_ids = tuple(dict.fromkeys(child.id for child in children))
            if not item_ids:
                continue
            pool = await self._library.query_items(
                self._query(
                    user,
                    TITLE_KINDS,
                    ceiling,
                    limit=self._pool_size(),
                    item_ids=item_ids,
                    is_played=self._played_filter(),
                )
            )
            result = await self.sample_items(pool, user)
        return result

    async def _new_items(
        self, user: LibraryUser, ceiling: ParentalCeiling
    ) -> list[LibraryItem]:
        cutoff = new_items_cutoff(self._settings.new_time_limit, self._today())
        limit = self._settings.random_media_count
        series_pool = await self._library.query_items(
            self._query(
                user,
                ("series",),
                ceiling,
                limit=limit,
                min_end_date=cutoff,
                is_played=self._played_filter(),
            )
        )
        movie_pool = await self._library.query_items(
            self._query(
                user,
                ("movie",),
                ceiling,
                limit=limit,
                min_premiere_date=cutoff,
                is_played=self._played_filter(),
            )
        )
        series = await self.sample_items(series_pool, user)
        movies = await self.sample_items(movie_pool, user)
        return series + movies

    async def _random(
        self, user: LibraryUser, ceiling: ParentalCeiling
    ) -> list[LibraryItem]:
        pool = await self._library.query_items(
            self._query(
                user,
                TITLE_KINDS,
                ceiling,
                limit=self._pool_size(),
                is_played=self._played_filter(),
            )
        )
        return await self.sample_items(pool, user)
