"""Unit tests for title store queries against an in-memory SQLite database."""

import pytest
from sqlalchemy import create_engine

from vidident.core.errors import DatabaseError
from vidident.database import create_title_engine
from vidident.services.title_store import (
    TitleStore,
    escape_like,
    parse_characters,
    usable_names,
)


class TestHelpers:
    def test_escape_like(self):
        assert escape_like("100%_off\\") == "100\\%\\_off\\\\"

    def test_usable_names_drops_short_and_duplicate_names(self):
        assert usable_names([" Mal ", "mal", "Jo", "River Tam", "RIVER TAM"]) == [
            "Mal",
            "River Tam",
        ]

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('["Malcolm Reynolds", "Mal"]', ["Malcolm Reynolds", "Mal"]),
            ("Self", ["Self"]),
            ("\\N", []),
            (None, []),
        ],
    )
    def test_parse_characters(self, raw, expected):
        assert parse_characters(raw) == expected


class TestSearchByCharacters:
    def test_counts_distinct_matched_names(self, title_store):
        hits = title_store.search_by_characters(
            ["Michael Scott", "Dwight", "Nobody"], "office", ["tvSeries"]
        )

        assert [(h.tconst, h.character_matches) for h in hits] == [("tt0386676", 2)]

    def test_require_match_drops_titles_without_overlap(self, title_store):
        assert title_store.search_by_characters(["Nobody"], "office", ["tvSeries"]) == []

    def test_actor_names_qualify_titles_without_hint(self, title_store):
        hits = title_store.search_by_characters(
            ["Nathan Fillion"],
            "",
            ["movie"],
            actors=["Nathan Fillion"],
            require_match=False,
        )

        assert [(h.tconst, h.actor_matches) for h in hits] == [("tt0379786", 1)]

    def test_runtime_window(self, title_store):
        kwargs = dict(actors=["Nathan Fillion"], require_match=False, runtime_tolerance=3)
        inside = title_store.search_by_characters(
            ["River Tam"], "Serenity", ["movie"], runtime=121, **kwargs
        )
        outside = title_store.search_by_characters(
            ["River Tam"], "Serenity", ["movie"], runtime=90, **kwargs
        )

        assert [h.tconst for h in inside] == ["tt0379786"]
        assert outside == []


def test_search_by_title_and_runtime(title_store):
    hits = title_store.search_by_title_and_runtime(
        "Office", 22, 2, ["tvSeries", "tvMiniSeries"]
    )

    assert [(h.tconst, h.runtime_minutes) for h in hits] == [("tt0386676", 22)]


def test_sweep_requires_minimum_matches(title_store):
    names = ["Malcolm Reynolds", "River Tam", "Simon Tam"]

    hits = title_store.sweep_by_names(names, ["movie", "tvSeries"], min_matches=3)
    assert [(h.tconst, h.character_matches) for h in hits] == [("tt0379786", 3)]
    assert title_store.sweep_by_names(names[:2], ["movie", "tvSeries"], min_matches=3) == []


def test_get_characters_in_billing_order(title_store):
    assert title_store.get_characters("tt0303461") == ["Malcolm Reynolds", "River Tam"]


def test_list_episodes(title_store):
    episodes = title_store.list_episodes("tt0386676", season=1)

    assert len(episodes) == 6
    assert (episodes[1].season, episodes[1].episode, episodes[1].title) == (1, 2, "Diversity Day")
    assert title_store.list_episodes("tt0386676", season=2) == []


def test_get_title(title_store):
    assert title_store.get_title("tt0379786").primary_title == "Serenity"
    assert title_store.get_title("tt9999999") is None


def test_query_failure_is_a_database_error(tmp_path):
    # A database without the title tables
    store = TitleStore(create_engine(f"sqlite:///{tmp_path / 'empty.db'}"))

    with pytest.raises(DatabaseError) as exc_info:
        store.get_characters("tt0379786")

    assert exc_info.value.structural is True


def test_unreachable_store_fails_at_engine_creation(tmp_path):
    with pytest.raises(DatabaseError):
        create_title_engine(f"sqlite:///{tmp_path / 'missing' / 'titles.db'}")
