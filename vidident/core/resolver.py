"""Match resolution for a unit of content (a whole disc, a video, or a segment).

Two paths are tried in order:

1. Character evidence. Names extracted from the dialogue are looked up in
   each shortlisted title's credited characters. A title with enough
   matched names is accepted outright with high confidence and the
   reasoning service is never consulted.
2. Semantic evidence. A synopsis of the unit is ranked against the
   shortlist by the reasoning service. Unparseable replies degrade to an
   unknown, low-confidence answer.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from vidident.models import (
    SERIES_TITLE_TYPES,
    Confidence,
    DiskRecord,
    MatchCandidate,
)
from vidident.services.reasoning import EpisodeContext, ReasoningClient
from vidident.services.title_store import EpisodeInfo, TitleStore

logger = logging.getLogger(__name__)

# Score a resolver-derived match carries for each confidence level
CONFIDENCE_SCORES = {
    Confidence.HIGH: 90.0,
    Confidence.MEDIUM: 70.0,
    Confidence.LOW: 40.0,
}

_EPISODE_KINDS = {"tv_episode": "tvEpisode", "tv_special": "tvSpecial", "movie": "movie"}


@dataclass(frozen=True)
class CharacterEvidence:
    candidate: MatchCandidate
    matched: int


def count_character_matches(names: Sequence[str], characters: Sequence[str]) -> int:
    """Distinct extracted names found (case-insensitive substring) in credited characters."""
    haystack = "\n".join(characters).lower()
    if not haystack:
        return 0
    seen = set()
    for name in names:
        key = name.strip().lower()
        if key and key not in seen and key in haystack:
            seen.add(key)
    return len(seen)


def _as_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _is_null(value) -> bool:
    return value is None or str(value).strip().lower() in ("", "null", "none", "unknown")


class MatchResolver:
    """Resolves units of content against a candidate shortlist."""

    def __init__(self, store: TitleStore, reasoning: ReasoningClient, settings):
        self._store = store
        self._reasoning = reasoning
        self._settings = settings
        self._cast_cache: dict[str, list[str]] = {}

    def _characters_of(self, tconst: str) -> list[str]:
        if tconst not in self._cast_cache:
            self._cast_cache[tconst] = self._store.get_characters(tconst)
        return self._cast_cache[tconst]

    def character_evidence(
        self, names: Sequence[str], candidates: Sequence[MatchCandidate]
    ) -> CharacterEvidence | None:
        """Candidate whose credited cast shares the most names with the dialogue.

        Ties go to the higher-ranked candidate. None when nothing matches.
        """
        if not names:
            return None
        best: CharacterEvidence | None = None
        for candidate in candidates:
            matched = count_character_matches(names, self._characters_of(candidate.external_id))
            if matched > 0 and (best is None or matched > best.matched):
                best = CharacterEvidence(candidate=candidate, matched=matched)
        return best

    def resolve_by_characters(
        self, names: Sequence[str], candidates: Sequence[MatchCandidate]
    ) -> MatchCandidate | None:
        """Accept a candidate on character evidence alone, or return None."""
        evidence = self.character_evidence(names, candidates)
        if evidence is None:
            logger.info("No character matches found")
            return None
        if evidence.matched < self._settings.character_evidence_min:
            logger.info(
                f"Character match too weak ({evidence.matched} < "
                f"{self._settings.character_evidence_min}) for {evidence.candidate.title}"
            )
            return None

        logger.info(
            f"Character match: {evidence.candidate.title} ({evidence.candidate.year}), "
            f"{evidence.matched} names"
        )
        return evidence.candidate.model_copy(
            update={
                "confidence": Confidence.HIGH,
                "score": CONFIDENCE_SCORES[Confidence.HIGH],
                "reasoning": (
                    f"Matched {evidence.matched} character names from dialogue "
                    "against credited cast data"
                ),
            }
        )

    def _from_reply(
        self, reply: dict, candidates: Sequence[MatchCandidate], **extra
    ) -> MatchCandidate | None:
        """Turn a story/hybrid reply into a candidate, or None for a null best match."""
        external_id = reply.get("best_match")
        if _is_null(external_id):
            return None
        external_id = str(external_id).strip()
        confidence = Confidence.parse(reply.get("confidence"))
        listed = next((c for c in candidates if c.external_id == external_id), None)

        fields = {
            "external_id": external_id,
            "title": (listed.title if listed else None) or str(reply.get("title") or "Unknown"),
            "year": listed.year if listed else _as_int(reply.get("year")),
            "content_kind": listed.content_kind if listed else "unknown",
            "score": CONFIDENCE_SCORES[confidence],
            "confidence": confidence,
            "reasoning": str(reply.get("reasoning") or ""),
        }
        fields.update(extra)
        return MatchCandidate(**fields)

    def resolve_movie(
        self,
        names: Sequence[str],
        synopsis: str | None,
        candidates: Sequence[MatchCandidate],
    ) -> MatchCandidate | None:
        """Resolve a movie disc: character path first, then the story match."""
        if not candidates:
            return None
        match = self.resolve_by_characters(names, candidates)
        if match is not None:
            return match
        if not synopsis:
            logger.warning("No synopsis available for semantic matching")
            return None

        reply = self._reasoning.match_story(synopsis, candidates)
        match = self._from_reply(reply, candidates)
        if match is None:
            logger.info("Reasoning service returned no best match")
        else:
            logger.info(f"Semantic match: {match.title} ({match.year}) [{match.confidence.value}]")
        return match

    def choose_series(
        self, names: Sequence[str], candidates: Sequence[MatchCandidate]
    ) -> MatchCandidate | None:
        """The series an episodic disc belongs to.

        Character evidence among series candidates wins; otherwise the top
        series in the shortlist.
        """
        series = [c for c in candidates if c.content_kind in SERIES_TITLE_TYPES] or list(
            candidates[:1]
        )
        if not series:
            return None
        by_characters = self.resolve_by_characters(names, series)
        return by_characters or series[0]

    def list_episodes(self, series: MatchCandidate, season: int | None) -> list[EpisodeInfo]:
        episodes = self._store.list_episodes(series.external_id, season)
        if not episodes:
            logger.warning(
                f"No episodes found for {series.title} season {season}; matching on synopsis only"
            )
        return episodes

    def resolve_episode(
        self,
        synopsis: str,
        series: MatchCandidate,
        episodes: Sequence[EpisodeInfo],
        context: EpisodeContext,
        segment: int | None = None,
    ) -> MatchCandidate | None:
        """Match one episode unit against the series' episode list."""
        reply = self._reasoning.match_episode(
            synopsis, [(e.season, e.episode, e.title) for e in episodes], context
        )
        season, episode = _as_int(reply.get("season")), _as_int(reply.get("episode"))
        if season is None or episode is None:
            logger.info(f"No episode match for unit {context.position}/{context.total}")
            return None

        confidence = Confidence.parse(reply.get("confidence"))
        listed = next((e for e in episodes if e.season == season and e.episode == episode), None)
        episode_title = (listed.title if listed else None) or reply.get("episode_title")
        return MatchCandidate(
            external_id=listed.tconst if listed else series.external_id,
            title=series.title,
            year=series.year,
            content_kind="tvEpisode",
            season=season,
            episode=episode,
            episode_title=str(episode_title) if episode_title else None,
            segment=segment,
            score=CONFIDENCE_SCORES[confidence],
            confidence=confidence,
            reasoning=f"Episode matched from synopsis (file {context.position} of {context.total})",
        )

    def resolve_hybrid(
        self,
        names: Sequence[str],
        synopsis: str | None,
        candidates: Sequence[MatchCandidate],
        duration_minutes: int,
        season_hint: int | None = None,
    ) -> MatchCandidate | None:
        """Resolve a disc that may be a movie or episodes of a series."""
        if not candidates:
            return None
        match = self.resolve_by_characters(names, candidates)
        if match is not None:
            return match
        if not synopsis:
            logger.warning("No synopsis available for hybrid matching")
            return None

        reply = self._reasoning.match_hybrid(synopsis, candidates, duration_minutes, season_hint)
        kind = _EPISODE_KINDS.get(str(reply.get("content_type") or "").lower())
        extra = {}
        if kind in ("tvEpisode", "tvSpecial"):
            extra = {
                "content_kind": kind,
                "season": _as_int(reply.get("season")),
                "episode": _as_int(reply.get("episode")),
            }
        match = self._from_reply(reply, candidates, **extra)
        if match is not None:
            logger.info(
                f"Hybrid match: {match.title} ({match.year}) {match.episode_code or ''} "
                f"[{match.confidence.value}]"
            )
        return match


def unresolved_reason(disk: DiskRecord, min_score: float) -> str | None:
    """Why a disc must go to manual review, or None when it is identified.

    A disc is unresolved when an upstream error was recorded, when there is no
    best match, when no unit has any match, or when no match scores above
    ``min_score``.
    """
    if disk.status.error:
        return disk.status.error
    if disk.best_match is None:
        return disk.unresolved_reason or "No best match"

    unit_matches = [m for v in disk.videos for m in v.matches]
    if not unit_matches:
        return "No unit on the disc has a match"

    top = max(m.score for m in [disk.best_match, *unit_matches])
    if top <= min_score:
        return f"Best score {top:.0f} does not exceed acceptance threshold {min_score:.0f}"
    return None
