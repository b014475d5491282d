"""Unit tests for candidate search, scoring and content-type classification."""

import pytest

from vidident.core.candidates import (
    CandidateSearch,
    SearchResult,
    classify_content_type,
    merge_candidates,
    prominent_names,
    title_runtime_score,
)
from vidident.models import (
    Confidence,
    ContentType,
    DiskRecord,
    MatchCandidate,
    ParsedDiskName,
    VideoRecord,
)
from vidident.services.title_store import TitleHit


def _candidate(tconst: str, kind: str, score: float, year: int = 2000) -> MatchCandidate:
    return MatchCandidate(
        external_id=tconst, title=tconst, year=year, content_kind=kind, score=score
    )


class TestClassifyContentType:
    def test_top_match_wins_over_hit_counts(self):
        result = SearchResult(
            candidates=[
                _candidate("tt1", "tvSeries", 95),
                _candidate("tt2", "movie", 40),
                _candidate("tt3", "movie", 38),
            ],
            found_tv=True,
            found_movie=True,
        )
        assert classify_content_type(result, same_length_count=0, longest_split=False) == (
            ContentType.TV
        )

    def test_movie_top(self):
        result = SearchResult(candidates=[_candidate("tt1", "movie", 180)], found_movie=True)
        assert classify_content_type(result, same_length_count=5, longest_split=True) == (
            ContentType.MOVIE
        )

    @pytest.mark.parametrize(
        "found_tv,same_length,expected",
        [
            (True, 3, ContentType.HYBRID),
            (True, 2, ContentType.MOVIE),
            (False, 5, ContentType.MOVIE),
        ],
    )
    def test_tv_movie_top(self, found_tv, same_length, expected):
        result = SearchResult(candidates=[_candidate("tt1", "tvMovie", 150)], found_tv=found_tv)
        assert (
            classify_content_type(result, same_length_count=same_length, longest_split=False)
            == expected
        )

    @pytest.mark.parametrize(
        "split,same_length,expected",
        [
            (True, 0, ContentType.HYBRID),
            (False, 3, ContentType.HYBRID),
            (False, 1, ContentType.MOVIE),
        ],
    )
    def test_video_top(self, split, same_length, expected):
        result = SearchResult(candidates=[_candidate("tt1", "video", 150)])
        assert (
            classify_content_type(result, same_length_count=same_length, longest_split=split)
            == expected
        )

    def test_hybrid_threshold_is_tunable(self):
        result = SearchResult(candidates=[_candidate("tt1", "tvMovie", 150)], found_tv=True)
        assert (
            classify_content_type(
                result, same_length_count=2, longest_split=False, hybrid_threshold=1
            )
            == ContentType.HYBRID
        )

    def test_no_candidates(self):
        assert classify_content_type(
            SearchResult(), same_length_count=4, longest_split=False
        ) == (ContentType.UNKNOWN)


class TestScoring:
    @pytest.mark.parametrize(
        "runtime,title,expected",
        [
            (22, "The Office", 180),
            (22, "Office", 150),
            (24, "The Office", 150),
            (30, "the office", 130),
        ],
    )
    def test_title_runtime_score(self, runtime, title, expected):
        hit = TitleHit(
            tconst="tt0386676",
            title="The Office",
            year=2005,
            title_type="tvSeries",
            runtime_minutes=22,
        )
        assert title_runtime_score(hit, title, runtime) == expected

    def test_unknown_runtime_gets_no_runtime_bonus(self):
        hit = TitleHit(tconst="tt1", title="Alien", year=1979, title_type="movie")
        assert title_runtime_score(hit, "Alien", 117) == 130

    def test_merge_keeps_best_score_and_ranks(self):
        merged = merge_candidates(
            [
                _candidate("tt1", "tvSeries", 30),
                _candidate("tt2", "movie", 100, year=1999),
                _candidate("tt1", "tvSeries", 180),
                _candidate("tt3", "movie", 100, year=2010),
            ],
            limit=20,
        )
        assert [(c.external_id, c.score) for c in merged] == [
            ("tt1", 180),
            ("tt3", 100),
            ("tt2", 100),
        ]

    def test_merge_truncates(self):
        merged = merge_candidates([_candidate(f"tt{i}", "movie", i) for i in range(30)], 20)
        assert len(merged) == 20
        assert merged[0].score == 29


def test_prominent_names_order():
    names = ["Bob", "Dwight", "Michael Scott", "Jean-Luc", "Man", "Professor", "Pam"]
    assert prominent_names(names) == ["Jean-Luc", "Michael Scott", "Dwight"]


class TestCandidateSearch:
    def _disk(self, title: str, minutes: list[int], characters: list[str]) -> DiskRecord:
        return DiskRecord(
            name=title or "DISC",
            parsed=ParsedDiskName(title=title),
            videos=[
                VideoRecord(identifier=f"t{i}", file_name=f"t{i}.mkv", duration_seconds=m * 60)
                for i, m in enumerate(minutes)
            ],
            characters=characters,
            same_length_count=len(minutes),
            same_length_seconds=minutes[0] * 60,
        )

    def test_series_found_by_title_and_episode_runtime(self, settings, title_store):
        disk = self._disk(
            "THE OFFICE", [22, 22, 22], ["Michael Scott", "Dwight Schrute", "Jim Halpert"]
        )

        result = CandidateSearch(title_store, settings).search(disk)

        assert result.top.external_id == "tt0386676"
        assert result.top.score == 180
        assert result.top.confidence == Confidence.MEDIUM
        assert result.found_tv is True
        assert classify_content_type(result, same_length_count=3, longest_split=False) == (
            ContentType.TV
        )

    def test_movie_found_by_characters_and_runtime(self, settings, title_store):
        disk = self._disk("Serenity", [119], ["Malcolm Reynolds", "River Tam", "Jayne Cobb"])

        result = CandidateSearch(title_store, settings).search(disk)

        assert result.top.external_id == "tt0379786"
        assert result.top.score == 180
        assert result.found_movie is True
        assert "tt0303461" not in [c.external_id for c in result.candidates]

    def test_sweep_without_title_hint(self, settings, title_store):
        disk = self._disk(
            "", [119], ["Malcolm Reynolds", "River Tam", "Zoe Washburne", "Jayne Cobb"]
        )

        result = CandidateSearch(title_store, settings).search(disk)

        assert [c.external_id for c in result.candidates] == ["tt0379786"]
        assert result.top.score == 40
        assert result.top.confidence == Confidence.LOW
        assert result.found_movie is True
        assert result.found_tv is False

    def test_character_name_used_as_title_hint(self, settings, title_store):
        """Nothing matches the disc name, but a character name is also the title."""
        disk = self._disk("DISC 1", [119], ["Serenity", "Bob"])

        result = CandidateSearch(title_store, settings).search(disk)

        assert result.top.external_id == "tt0379786"

    def test_nothing_found(self, settings, title_store):
        disk = self._disk("UNKNOWN THING", [90], ["Nobody"])

        result = CandidateSearch(title_store, settings).search(disk)

        assert result.candidates == []
        assert result.top is None
