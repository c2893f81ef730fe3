"""Read-only access to the host media library."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator, Callable, Literal, Protocol

from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import ItemRecord, UserItemDataRecord, UserRecord, collection_items

ItemKind = Literal["movie", "series", "season", "episode", "folder", "collection"]

FOLDER_KINDS: frozenset[str] = frozenset({"folder", "collection"})
BACKDROP = "backdrop"
LOGO = "logo"


@dataclass(slots=True, frozen=True)
class LibraryItem:
    """Snapshot of a library entry as seen by the selection engine."""

    id: str
    name: str
    kind: ItemKind
    parent_id: str | None = None
    tagline: str | None = None
    official_rating: str | None = None
    parental_rating_value: int | None = None
    overview: str | None = None
    critic_rating: float | None = None
    community_rating: float | None = None
    premiere_date: date | None = None
    end_date: date | None = None
    image_types: frozenset[str] = frozenset()

    def has_image(self, image_type: str) -> bool:
        return image_type in self.image_types


@dataclass(slots=True, frozen=True)
class LibraryUser:
    """A host account and the access limits attached to it."""

    id: str
    name: str
    max_parental_rating: int | None = None
    enabled_folders: frozenset[str] | None = None


@dataclass(slots=True)
class ItemQuery:
    """Filter criteria understood by :meth:`LibraryBackend.query_items`.

    ``None`` leaves a criterion unconstrained. When ``user`` is set the
    result only contains items that user may see, and the favourite and
    played filters refer to that user's data.
    """

    user: LibraryUser | None = None
    include_kinds: tuple[ItemKind, ...] = ()
    item_ids: tuple[str, ...] | None = None
    is_favorite: bool | None = None
    is_played: bool | None = None
    min_community_rating: float | None = None
    min_critic_rating: float | None = None
    max_parental_rating: int | None = None
    has_parental_rating: bool | None = None
    min_premiere_date: date | None = None
    min_end_date: date | None = None
    random_order: bool = False
    limit: int | None = None


class LibraryBackend(Protocol):
    """Capabilities the host library exposes to the carousel."""

    async def get_user_by_name(self, name: str) -> LibraryUser | None: ...

    async def get_user_by_id(self, user_id: str) -> LibraryUser | None: ...

    async def get_item(self, item_id: str) -> LibraryItem | None: ...

    async def get_children(
        self, folder: LibraryItem, user: LibraryUser
    ) -> list[LibraryItem]: ...

    async def query_items(self, query: ItemQuery) -> list[LibraryItem]: ...

    async def is_visible(self, item: LibraryItem, user: LibraryUser) -> bool: ...

    async def is_played(self, item: LibraryItem, user: LibraryUser) -> bool: ...

    async def ancestor_ids(self, item: LibraryItem) -> frozenset[str]: ...


LibraryFactory = Callable[[], AbstractAsyncContextManager[LibraryBackend]]


def is_visible_to(
    item: LibraryItem, user: LibraryUser, ancestors: frozenset[str]
) -> bool:
    """Apply the account's parental ceiling and library access to ``item``."""

    if (
        user.max_parental_rating is not None
        and item.parental_rating_value is not None
        and item.parental_rating_value > user.max_parental_rating
    ):
        return False
    if user.enabled_folders is None:
        return True
    return bool(ancestors & user.enabled_folders)


def _to_item(record: ItemRecord) -> LibraryItem:
    return LibraryItem(
        id=record.id,
        name=record.name,
        kind=record.kind,  # type: ignore[arg-type]
        parent_id=record.parent_id,
        tagline=record.tagline,
        official_rating=record.official_rating,
        parental_rating_value=record.parental_rating_value,
        overview=record.overview,
        critic_rating=record.critic_rating,
        community_rating=record.community_rating,
        premiere_date=record.premiere_date,
        end_date=record.end_date,
        image_types=frozenset(record.image_types or ()),
    )


def _to_user(record: UserRecord) -> LibraryUser:
    folders = record.enabled_folders
    return LibraryUser(
        id=record.id,
        name=record.name,
        max_parental_rating=record.max_parental_rating,
        enabled_folders=frozenset(folders) if folders is not None else None,
    )


class SqlLibrary:
    """:class:`LibraryBackend` over the SQLAlchemy library mirror.

    One instance serves a single request; ancestor chains are memoised for
    the lifetime of the session.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._ancestors: dict[str, frozenset[str]] = {}

    @classmethod
    @asynccontextmanager
    async def session_scope(
        cls, session_factory: async_sessionmaker[AsyncSession]
    ) -> AsyncIterator["SqlLibrary"]:
        async with session_factory() as session:
            yield cls(session)

    async def get_user_by_name(self, name: str) -> LibraryUser | None:
        record = await self._session.scalar(
            select(UserRecord).where(func.lower(UserRecord.name) == name.lower())
        )
        return _to_user(record) if record is not None else None

    async def get_user_by_id(self, user_id: str) -> LibraryUser | None:
        record = await self._session.get(UserRecord, user_id)
        return _to_user(record) if record is not None else None

    async def get_item(self, item_id: str) -> LibraryItem | None:
        record = await self._session.get(ItemRecord, item_id)
        return _to_item(record) if record is not None else None

    async def get_children(
        self, folder: LibraryItem, user: LibraryUser
    ) -> list[LibraryItem]:
        if folder.kind == "collection":
            stmt = (
                select(ItemRecord)
                .join(collection_items, collection_items.c.item_id == ItemRecord.id)
                .where(collection_items.c.collection_id == folder.id)
            )
        else:
            stmt = select(ItemRecord).where(ItemRecord.parent_id == folder.id)
        records = (await self._session.scalars(stmt)).all()
        children: list[LibraryItem] = []
        for record in records:
            item = _to_item(record)
            if await self.is_visible(item, user):
                children.append(item)
        return children

    async def query_items(self, query: ItemQuery) -> list[LibraryItem]:
        if query.item_ids is not None and not query.item_ids:
            return []

        stmt = select(ItemRecord)
        if query.include_kinds:
            stmt = stmt.where(ItemRecord.kind.in_(query.include_kinds))
        if query.item_ids is not None:
            stmt = stmt.where(ItemRecord.id.in_(query.item_ids))
        if query.min_community_rating is not None:
            stmt = stmt.where(ItemRecord.community_rating >= query.min_community_rating)
        if query.min_critic_rating is not None:
            stmt = stmt.where(ItemRecord.critic_rating >= query.min_critic_rating)
        if query.max_parental_rating is not None:
            stmt = stmt.where(
                or_(
                    ItemRecord.parental_rating_value.is_(None),
                    ItemRecord.parental_rating_value <= query.max_parental_rating,
                )
            )
        if query.has_parental_rating is True:
            stmt = stmt.where(ItemRecord.parental_rating_value.is_not(None))
        elif query.has_parental_rating is False:
            stmt = stmt.where(ItemRecord.parental_rating_value.is_(None))
        if query.min_premiere_date is not None:
            stmt = stmt.where(ItemRecord.premiere_date >= query.min_premiere_date)
        if query.min_end_date is not None:
            stmt = stmt.where(ItemRecord.end_date >= query.min_end_date)

        if query.is_favorite is not None or query.is_played is not None:
            if query.user is None:
                raise ValueError("Favourite and played filters require a user")
            stmt = stmt.outerjoin(
                UserItemDataRecord,
                and_(
                    UserItemDataRecord.item_id == ItemRecord.id,
                    UserItemDataRecord.user_id == query.user.id,
                ),
            )
            if query.is_favorite is not None:
                stmt = stmt.where(
                    func.coalesce(UserItemDataRecord.is_favorite, false())
                    == query.is_favorite
                )
            if query.is_played is not None:
                stmt = stmt.where(
                    func.coalesce(UserItemDataRecord.played, false()) == query.is_played
                )

        if query.random_order:
            stmt = stmt.order_by(func.random())
        else:
            stmt = stmt.order_by(ItemRecord.name)

        records = (await self._session.scalars(stmt)).all()
        items: list[LibraryItem] = []
        for record in records:
            item = _to_item(record)
            if query.user is not None and not await self.is_visible(item, query.user):
                continue
            items.append(item)
            if query.limit is not None and len(items) >= query.limit:
                break
        return items

    async def is_visible(self, item: LibraryItem, user: LibraryUser) -> bool:
        return is_visible_to(item, user, await self.ancestor_ids(item))

    async def is_played(self, item: LibraryItem, user: LibraryUser) -> bool:
        record = await self._session.get(UserItemDataRecord, (user.id, item.id))
        return bool(record and record.played)

    async def ancestor_ids(self, item: LibraryItem) -> frozenset[str]:
        cached = self._ancestors.get(item.id)
        if cached is not None:
            return cached

        ancestors: list[str] = []
        parent_id = item.parent_id
        while parent_id is not None and parent_id not in ancestors:
            ancestors.append(parent_id)
            parent_id = await self._session.scalar(
                select(ItemRecord.parent_id).where(ItemRecord.id == parent_id)
            )
        result = frozenset(ancestors)
        self._ancestors[item.id] = result
        return result
