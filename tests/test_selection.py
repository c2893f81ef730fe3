"""Behaviour of the carousel selection engine."""

from __future__ import annotations

import random
from datetime import date
from typing import Any

import pytest

from app.config import Settings
from app.services.selection import (
    SelectionEngine,
    new_items_cutoff,
    resolve_parental_ceiling,
    shift_months,
)
from fakes import FakeLibrary, make_item, make_user

EDITOR_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"
TODAY = date(2026, 10, 17)


def build_settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {"MODE": "RANDOM", "RANDOM_MEDIA_COUNT": 5}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def build_engine(settings: Settings, library: FakeLibrary, seed: int = 7) -> SelectionEngine:
    return SelectionEngine(settings, library, rng=random.Random(seed), today=lambda: TODAY)


def series_with_episodes() -> list:
    return [
        make_item("show-a", "series", parent_id="lib-shows"),
        make_item("show-a-s1", "season", parent_id="show-a", backdrop=False),
        make_item("show-a-e1", "episode", parent_id="show-a-s1", backdrop=False),
        make_item("show-a-e2", "episode", parent_id="show-a-s1", backdrop=False),
    ]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("target", [1, 3, 7, 20])
async def test_sample_returns_min_of_target_and_qualifying(target: int) -> None:
    """Sampling stops at the target or when qualifying candidates run out."""

    user = make_user(max_parental_rating=12)
    good = [make_item(f"movie-{index}") for index in range(6)]
    rejected = [
        make_item("no-backdrop-1", backdrop=False),
        make_item("no-backdrop-2", backdrop=False),
        make_item("adult", parental_rating_value=18),
        make_item("watched"),
    ]
    shows = series_with_episodes()
    library = FakeLibrary(good + rejected + shows, [user])
    library.played[user.id].add("watched")
    engine = build_engine(
        build_settings(RANDOM_MEDIA_COUNT=target, SHOW_PLAYED=False), library
    )

    pool = good + rejected + shows[1:] + [shows[0]]
    result = await engine.sample_items(pool, user)

    qualifying = {item.id for item in good} | {"show-a"}
    ids = [item.id for item in result]
    assert len(ids) == min(target, len(qualifying))
    assert len(set(ids)) == len(ids)
    assert set(ids) <= qualifying


@pytest.mark.anyio("asyncio")
async def test_episodes_and_seasons_are_replaced_by_their_series() -> None:
    user = make_user()
    shows = series_with_episodes()
    library = FakeLibrary(shows, [user])
    engine = build_engine(build_settings(), library)

    result = await engine.sample_items(shows[1:], user)

    assert [item.id for item in result] == ["show-a"]


@pytest.mark.anyio("asyncio")
async def test_partial_fill_does_not_trigger_random_fallback() -> None:
    """Three usable favourites out of five still beat the random pool."""

    user = make_user()
    editor = make_user(EDITOR_ID)
    favourites = [make_item(f"fav-{index}") for index in range(3)] + [
        make_item("fav-plain-1", backdrop=False),
        make_item("fav-plain-2", backdrop=False),
    ]
    others = [make_item(f"other-{index}") for index in range(10)]
    library = FakeLibrary(favourites + others, [user, editor])
    library.favourites[EDITOR_ID].update(item.id for item in favourites)
    engine = build_engine(
        build_settings(MODE="FAVOURITES", EDITOR_USER_ID=EDITOR_ID), library
    )

    result = await engine.select(user)

    assert sorted(item.id for item in result) == ["fav-0", "fav-1", "fav-2"]
    assert len(library.queries) == 2


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("editor_id", [None, "short", "x" * 20])
async def test_favourites_without_usable_editor_falls_back_to_random(
    editor_id: str | None,
) -> None:
    user = make_user()
    library = FakeLibrary([make_item("movie-1"), make_item("movie-2")], [user])
    overrides: dict[str, Any] = {"MODE": "FAVOURITES"}
    if editor_id is not None:
        overrides["EDITOR_USER_ID"] = editor_id
    engine = build_engine(build_settings(**overrides), library)

    result = await engine.select(user)

    assert {item.id for item in result} == {"movie-1", "movie-2"}
    assert library.queries[-1].include_kinds == ("series", "movie")


@pytest.mark.anyio("asyncio")
async def test_favourites_hides_items_the_viewer_cannot_see() -> None:
    user = make_user(enabled_folders=["lib-movies"])
    editor = make_user(EDITOR_ID)
    library = FakeLibrary(
        [
            make_item("fav-movie"),
            make_item("fav-show", "series", parent_id="lib-shows"),
            make_item("not-a-favourite"),
        ],
        [user, editor],
    )
    library.favourites[EDITOR_ID].update({"fav-movie", "fav-show"})
    engine = build_engine(
        build_settings(MODE="FAVOURITES", EDITOR_USER_ID=EDITOR_ID), library
    )

    result = await engine.select(user)

    assert [item.id for item in result] == ["fav-movie"]


@pytest.mark.anyio("asyncio")
async def test_collections_move_on_from_collections_without_candidates() -> None:
    user = make_user()
    library = FakeLibrary(
        [
            make_item("empty-box", "collection", parent_id=None),
            make_item("full-box", "collection", parent_id=None),
            make_item("bare-1", backdrop=False),
            make_item("pick-1"),
            make_item("pick-2"),
            make_item("outside"),
        ],
        [user],
    )
    library.collections = {
        "empty-box": ["bare-1"],
        "full-box": ["pick-1", "pick-2"],
    }
    settings = build_settings(
        MODE="COLLECTIONS", SELECTED_COLLECTIONS="missing-box,empty-box,full-box"
    )

    for seed in range(5):
        result = await build_engine(settings, library, seed=seed).select(user)
        assert {item.id for item in result} == {"pick-1", "pick-2"}


@pytest.mark.anyio("asyncio")
async def test_new_mode_only_keeps_recent_titles() -> None:
    user = make_user()
    library = FakeLibrary(
        [
            make_item("recent", premiere_date=date(2026, 7, 17)),
            make_item("older", premiere_date=date(2026, 2, 17)),
            make_item(
                "running-show",
                "series",
                parent_id="lib-shows",
                end_date=date(2026, 9, 1),
            ),
            make_item(
                "ended-show",
                "series",
                parent_id="lib-shows",
                end_date=date(2019, 5, 1),
            ),
        ],
        [user],
    )
    engine = build_engine(build_settings(MODE="NEW", NEW_TIME_LIMIT="6month"), library)

    result = await engine.select(user)

    assert sorted(item.id for item in result) == ["recent", "running-show"]


@pytest.mark.anyio("asyncio")
async def test_new_mode_without_recent_titles_uses_random_pool() -> None:
    user = make_user()
    library = FakeLibrary([make_item("older", premiere_date=date(2020, 1, 1))], [user])
    engine = build_engine(build_settings(MODE="NEW", NEW_TIME_LIMIT="2month"), library)

    result = await engine.select(user)

    assert [item.id for item in result] == ["older"]


@pytest.mark.anyio("asyncio")
async def test_played_items_respect_show_played() -> None:
    user = make_user()
    library = FakeLibrary([make_item("seen"), make_item("unseen")], [user])
    library.played[user.id].add("seen")

    hidden = await build_engine(build_settings(SHOW_PLAYED=False), library).select(user)
    shown = await build_engine(build_settings(SHOW_PLAYED=True), library).select(user)

    assert [item.id for item in hidden] == ["unseen"]
    assert {item.id for item in shown} == {"seen", "unseen"}


@pytest.mark.anyio("asyncio")
async def test_filtered_libraries_limit_the_result() -> None:
    user = make_user()
    library = FakeLibrary(
        [make_item("movie-1"), make_item("show-1", "series", parent_id="lib-shows")],
        [user],
    )
    engine = build_engine(build_settings(FILTERED_LIBRARIES="lib-shows"), library)

    result = await engine.select(user)

    assert [item.id for item in result] == ["show-1"]


def test_parental_ceiling_inherits_from_user() -> None:
    settings = build_settings(MAXIMUM_PARENT_RATING=-2)

    assert resolve_parental_ceiling(settings, make_user(max_parental_rating=12)) == (12, True)
    assert resolve_parental_ceiling(settings, make_user()) == (None, None)


def test_parental_ceiling_fixed_value_requires_rating() -> None:
    settings = build_settings(MAXIMUM_PARENT_RATING=16)

    assert resolve_parental_ceiling(settings, make_user(max_parental_rating=7)) == (16, True)


@pytest.mark.parametrize(
    ("window", "expected"),
    [
        ("2month", date(2026, 8, 17)),
        ("6month", date(2026, 4, 17)),
        ("1year", date(2025, 10, 17)),
        ("5year", date(2021, 10, 17)),
        ("weekly", date(2026, 9, 17)),
    ],
)
def test_new_items_cutoff(window: str, expected: date) -> None:
    assert new_items_cutoff(window, TODAY) == expected


def test_shift_months_clamps_to_month_end() -> None:
    assert shift_months(date(2026, 3, 31), 1) == date(2026, 2, 28)
    assert shift_months(date(2024, 2, 29), 12) == date(2023, 2, 28)
