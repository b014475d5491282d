"""Candidate search and scoring against the title store.

Several independent, weighted queries are issued and their results merged:

* character overlap within titles matching the disc-name hint
  (+10 per matched character name, +5 per credited actor named in dialogue)
* title hint combined with a runtime window
  (base 100, +50 exact runtime, +20 within 3 minutes, +30 exact title)
* a broad sweep over all titles requiring several matched names, used
  only when nothing matched the title hint

Movies and series are always both searched; the disc's content type is
then read off the top-ranked candidate.
"""

import logging
import re
from dataclasses import dataclass, field

from vidident.models import (
    ALL_TITLE_TYPES,
    MOVIE_TITLE_TYPES,
    SERIES_TITLE_TYPES,
    Confidence,
    ContentType,
    DiskRecord,
    MatchCandidate,
    rank_candidates,
)
from vidident.services.title_store import TitleHit, TitleStore

logger = logging.getLogger(__name__)

TITLE_BASE_SCORE = 100
EXACT_RUNTIME_BONUS = 50
CLOSE_RUNTIME_BONUS = 20
CLOSE_RUNTIME_MINUTES = 3
EXACT_TITLE_BONUS = 30
CHARACTER_HINT_RUNTIME_TOLERANCE = 5

# Role words that are not names worth using as a title hint
_GENERIC_NAMES = frozenset(
    {
        "Man",
        "Woman",
        "Boy",
        "Girl",
        "Uncle",
        "Aunt",
        "Cousin",
        "Professor",
        "Doctor",
        "Sheriff",
        "Santa",
    }
)
_HYPHENATED_RE = re.compile(r"^[A-Z][a-z]+-[A-Z][a-z]+")
_TWO_WORD_RE = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+")
_SINGLE_RE = re.compile(r"^[A-Z][a-z]{3,}$")


@dataclass
class SearchResult:
    """Merged shortlist plus which kinds of title produced hits."""

    candidates: list[MatchCandidate] = field(default_factory=list)
    found_tv: bool = False
    found_movie: bool = False

    @property
    def top(self) -> MatchCandidate | None:
        return self.candidates[0] if self.candidates else None


def title_runtime_score(hit: TitleHit, title: str, runtime: int) -> int:
    score = TITLE_BASE_SCORE
    if hit.runtime_minutes is not None:
        diff = abs(hit.runtime_minutes - runtime)
        if diff == 0:
            score += EXACT_RUNTIME_BONUS
        elif diff <= CLOSE_RUNTIME_MINUTES:
            score += CLOSE_RUNTIME_BONUS
    if hit.title.casefold() == title.casefold():
        score += EXACT_TITLE_BONUS
    return score


def prominent_names(names: list[str], per_kind: int = 3) -> list[str]:
    """Character names likely to double as a franchise title.

    Hyphenated names first, then two-word names, then single capitalised
    names of four letters or more that are not generic role words.
    """
    hyphenated = [n for n in names if _HYPHENATED_RE.match(n)][:per_kind]
    two_word = [n for n in names if _TWO_WORD_RE.match(n)][:per_kind]
    single = [n for n in names if _SINGLE_RE.match(n) and n not in _GENERIC_NAMES][:per_kind]
    ordered = []
    for name in hyphenated + two_word + single:
        if name not in ordered:
            ordered.append(name)
    return ordered


def merge_candidates(candidates: list[MatchCandidate], limit: int) -> list[MatchCandidate]:
    """Deduplicate by external id keeping the best score, then rank and truncate."""
    best: dict[str, MatchCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.external_id)
        if current is None or candidate.score > current.score:
            best[candidate.external_id] = candidate
    return rank_candidates(list(best.values()))[:limit]


def classify_content_type(
    result: SearchResult,
    *,
    same_length_count: int,
    longest_split: bool,
    hybrid_threshold: int = 2,
) -> ContentType:
    """Decide movie/tv/hybrid from the top-ranked candidate's title type.

    Raw counts of TV versus movie hits are ignored so that low-scoring noise
    cannot outvote a strong match. ``tvMovie`` and ``video`` tops become
    hybrid only when the disc also looks episodic.
    """
    top = result.top
    if top is None:
        return ContentType.UNKNOWN

    kind = top.content_kind
    if kind in SERIES_TITLE_TYPES:
        return ContentType.TV
    if kind == "movie":
        return ContentType.MOVIE
    if kind == "tvMovie":
        if result.found_tv and same_length_count > hybrid_threshold:
            return ContentType.HYBRID
        return ContentType.MOVIE
    if kind == "video":
        if longest_split or same_length_count > hybrid_threshold:
            return ContentType.HYBRID
        return ContentType.MOVIE

    if result.found_tv and result.found_movie:
        return ContentType.HYBRID
    if result.found_tv:
        return ContentType.TV
    return ContentType.MOVIE


def _candidate(hit: TitleHit, score: float, reasoning: str) -> MatchCandidate:
    return MatchCandidate(
        external_id=hit.tconst,
        title=hit.title,
        year=hit.year,
        content_kind=hit.title_type,
        score=score,
        confidence=Confidence.MEDIUM if score >= TITLE_BASE_SCORE else Confidence.LOW,
        reasoning=reasoning,
    )


class CandidateSearch:
    """Builds the candidate shortlist of a disc from the title store."""

    def __init__(self, store: TitleStore, settings):
        self._store = store
        self._settings = settings

    def search(self, disk: DiskRecord) -> SearchResult:
        """Run all weighted queries for the disc and merge the results.

        Args:
            disk: Record with parsed name, video durations and extracted names

        Returns:
            Ranked, de-duplicated shortlist (possibly empty)
        """
        s = self._settings
        names = list(disk.characters)
        hint = disk.parsed.title
        runtimes = self._movie_runtimes(disk)
        episode_minutes = round(disk.same_length_seconds / 60) or None

        logger.info(
            f"Searching candidates: hint='{hint}', {len(names)} names, "
            f"runtimes {runtimes}, episode length {episode_minutes}"
        )

        result = SearchResult()
        found: list[MatchCandidate] = []

        if hint:
            tv = self._series_by_characters(names, hint)
            movies = self._movies_by_characters(names, hint, runtimes[0] if runtimes else None)
            tv += self._by_title_and_runtime(
                hint,
                [episode_minutes] if episode_minutes else [],
                s.tv_runtime_tolerance,
                SERIES_TITLE_TYPES,
            )
            movies += self._by_title_and_runtime(
                hint, runtimes, s.movie_runtime_tolerance, MOVIE_TITLE_TYPES
            )
            result.found_tv = result.found_tv or bool(tv)
            result.found_movie = result.found_movie or bool(movies)
            found += tv + movies

        if not found:
            sweep = self._sweep(names)
            result.found_tv = any(c.content_kind in SERIES_TITLE_TYPES for c in sweep)
            result.found_movie = any(c.content_kind in MOVIE_TITLE_TYPES for c in sweep)
            found += sweep

        if not found:
            found += self._character_name_fallback(names, runtimes, result)

        result.candidates = merge_candidates(found, s.shortlist_size)
        for c in result.candidates[:5]:
            logger.info(f"  {c.title} ({c.year}) - {c.content_kind} [score: {c.score:.0f}]")
        if not result.candidates:
            logger.warning("No candidates found in title store")
        return result

    def _movie_runtimes(self, disk: DiskRecord) -> list[int]:
        """Minutes of the three longest non-play-all videos, longest first."""
        durations = sorted(
            (v.duration_seconds for v in disk.videos if not v.is_play_all), reverse=True
        )
        runtimes = []
        for seconds in durations[:3]:
            minutes = round(seconds / 60)
            if minutes and minutes not in runtimes:
                runtimes.append(minutes)
        return runtimes

    def _series_by_characters(self, names: list[str], hint: str) -> list[MatchCandidate]:
        s = self._settings
        hits = self._store.search_by_characters(names, hint, SERIES_TITLE_TYPES)
        return [
            _candidate(
                h,
                h.character_matches * s.character_match_points,
                f"{h.character_matches} character name(s) matched",
            )
            for h in hits
        ]

    def _movies_by_characters(
        self, names: list[str], hint: str, runtime: int | None
    ) -> list[MatchCandidate]:
        s = self._settings
        if not names:
            return []
        hits = self._store.search_by_characters(
            names,
            hint,
            MOVIE_TITLE_TYPES,
            actors=names,
            runtime=runtime,
            runtime_tolerance=s.movie_runtime_tolerance,
            require_match=False,
        )
        return [
            _candidate(
                h,
                h.character_matches * s.character_match_points
                + h.actor_matches * s.actor_match_points,
                f"{h.character_matches} character name(s), {h.actor_matches} actor(s) matched",
            )
            for h in hits
        ]

    def _by_title_and_runtime(
        self, title: str, runtimes: list[int], tolerance: int, title_types
    ) -> list[MatchCandidate]:
        candidates = []
        for runtime in runtimes:
            hits = self._store.search_by_title_and_runtime(title, runtime, tolerance, title_types)
            for h in hits:
                score = title_runtime_score(h, title, runtime)
                reasoning = f"title '{title}', runtime {h.runtime_minutes} vs {runtime}min"
                candidates.append(_candidate(h, score, reasoning))
        return candidates

    def _sweep(self, names: list[str]) -> list[MatchCandidate]:
        s = self._settings
        hits = self._store.sweep_by_names(names, ALL_TITLE_TYPES, min_matches=s.sweep_min_names)
        if hits:
            logger.info(f"Name sweep found {len(hits)} titles")
        return [
            _candidate(
                h,
                h.character_matches * s.character_match_points,
                f"{h.character_matches} character name(s) matched across all titles",
            )
            for h in hits
        ]

    def _character_name_fallback(
        self, names: list[str], runtimes: list[int], result: SearchResult
    ) -> list[MatchCandidate]:
        """Retry with prominent character names standing in for the title."""
        found: list[MatchCandidate] = []
        for name in prominent_names(names):
            logger.info(f"  Trying character name as title: {name}")
            tv = self._series_by_characters(names, name)
            movies = (
                self._by_title_and_runtime(
                    name, runtimes[:1], CHARACTER_HINT_RUNTIME_TOLERANCE, MOVIE_TITLE_TYPES
                )
                if runtimes
                else []
            )
            result.found_tv = result.found_tv or bool(tv)
            result.found_movie = result.found_movie or bool(movies)
            found += tv + movies
            if len(found) > 1:
                break
        return found
