"""Identification pipeline for one disc directory.

Wires subtitle input, gap analysis, boundary selection, disc classification,
candidate search and match resolution into the nine numbered steps run by
the PipelineStateMachine. Every step reads what earlier steps left on the
DiskRecord, so a resumed run continues from the persisted record alone.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from pathlib import Path

from vidident.core.analyst import DiskAnalyst, apply_analysis, parse_disk_name
from vidident.core.boundaries import segment_dialogue, select_boundaries
from vidident.core.candidates import CandidateSearch, classify_content_type
from vidident.core.errors import SubtitleError
from vidident.core.gaps import analyze_gaps
from vidident.core.resolver import MatchResolver, unresolved_reason
from vidident.models import (
    ContentType,
    DiskRecord,
    MatchCandidate,
    SubtitleTrack,
    VideoRecord,
    rank_candidates,
)
from vidident.services.reasoning import EpisodeContext, ReasoningClient
from vidident.services.state_machine import PipelineStateMachine, StepResult
from vidident.services.status_store import StatusStore
from vidident.services.title_store import TitleStore
from vidident.subtitles.dialogue import (
    discover_subtitles,
    pick_preferred_track,
    read_dialogue,
    write_dialogue_files,
)
from vidident.subtitles.srt import captions_duration, get_video_duration, read_captions

logger = logging.getLogger(__name__)


@dataclass
class EpisodeUnit:
    """One episode-sized piece of dialogue: a whole video or one segment of it."""

    video: VideoRecord
    dialogue_file: str
    segment: int | None = None  # 1-based, only for split videos


def count_mentions(name: str, text: str) -> int:
    """Whole-word, case-insensitive occurrences of a name; at least 1 once extracted."""
    pattern = re.compile(rf"(?<!\w){re.escape(name)}(?!\w)", re.IGNORECASE)
    return max(1, len(pattern.findall(text)))


def rank_names(videos: list[VideoRecord]) -> list[str]:
    """Disc-wide character names, most mentioned first, case-insensitively unique."""
    totals: Counter[str] = Counter()
    spelling: dict[str, str] = {}
    for video in videos:
        for name, count in video.proper_nouns.items():
            key = name.casefold()
            spelling.setdefault(key, name)
            totals[key] += count
    ordered = sorted(totals, key=lambda k: (-totals[k], k))
    return [spelling[k] for k in ordered]


class IdentificationPipeline:
    """Identifies the content of one disc directory."""

    def __init__(
        self,
        disc_dir: Path,
        settings,
        store: TitleStore,
        reasoning: ReasoningClient,
        status_store: StatusStore | None = None,
    ):
        self.disc_dir = Path(disc_dir)
        self.settings = settings
        self.reasoning = reasoning
        self.analyst = DiskAnalyst(settings)
        self.search = CandidateSearch(store, settings)
        self.resolver = MatchResolver(store, reasoning, settings)
        self.status_store = status_store or StatusStore(self.disc_dir)
        self.machine = PipelineStateMachine(
            self.status_store,
            {
                1: self.extract_subtitles,
                2: self.analyze_disk,
                3: self.extract_dialogue,
                4: self.extract_characters,
                5: self.candidate_search,
                6: self.movie_matching,
                7: self.tv_matching,
                8: self.hybrid_matching,
                9: self.finalize,
            },
        )

    def load_or_create(self) -> DiskRecord:
        disk = self.status_store.load()
        if disk is not None:
            return disk
        return DiskRecord(name=self.disc_dir.name, parsed=parse_disk_name(self.disc_dir.name))

    def run(self, restart: bool = False) -> DiskRecord:
        """Run (or resume) the pipeline and return the final record.

        Args:
            restart: Discard any persisted record and start from step 1
        """
        if restart:
            logger.info(f"Restarting {self.disc_dir.name} from scratch")
            self.status_store.clear()
        disk = self.load_or_create()
        return self.machine.run(disk)

    # Helpers

    def _preferred_track(self, video: VideoRecord) -> SubtitleTrack | None:
        tracks = [(Path(t.file_name), t.language) for t in video.subtitle_tracks]
        picked = pick_preferred_track(tracks, self.settings.preferred_languages)
        if picked is None:
            return None
        return next(t for t in video.subtitle_tracks if t.file_name == picked[0].name)

    def _read_track(self, video: VideoRecord):
        track = self._preferred_track(video)
        if track is None:
            return None, []
        return track, read_captions(self.disc_dir / track.file_name)

    def _dialogue_text(self, names: list[str], max_lines: int) -> str:
        return read_dialogue(self.disc_dir, names, max_lines=max_lines)

    def _episode_units(self, disk: DiskRecord, include_long: bool) -> list[EpisodeUnit]:
        """Episode-sized dialogue units in file order.

        Split videos contribute one unit per segment. Unsplit videos longer than
        an episode are left out unless ``include_long`` is set.
        """
        units = []
        for video in sorted(disk.videos, key=lambda v: v.identifier):
            if video.is_play_all or video.error or not video.dialogue_files:
                continue
            if video.is_split:
                for n, name in enumerate(video.dialogue_files, start=1):
                    units.append(EpisodeUnit(video=video, dialogue_file=name, segment=n))
            elif include_long or video.duration_seconds < self.settings.episode_max_duration:
                units.append(EpisodeUnit(video=video, dialogue_file=video.dialogue_files[0]))
            else:
                logger.info(
                    f"Skipping {video.file_name} ({video.duration_minutes} min) "
                    "for episode matching"
                )
        return units

    # Step 1

    def extract_subtitles(self, disk: DiskRecord) -> StepResult:
        """Discover videos and their subtitle tracks."""
        found = discover_subtitles(self.disc_dir)
        videos = []
        for base, tracks in sorted(found.items()):
            mkv = self.disc_dir / f"{base}.mkv"
            video = VideoRecord(
                identifier=base,
                file_name=mkv.name,
                subtitle_tracks=[
                    SubtitleTrack(file_name=p.name, language=lang) for p, lang in tracks
                ],
                subtitle_languages={lang for _, lang in tracks},
            )
            if mkv.exists():
                video.duration_seconds = get_video_duration(mkv)
            if not tracks:
                video.error = "No subtitle track"
            videos.append(video)

        disk.videos = videos
        track_count = sum(len(v.subtitle_tracks) for v in videos)
        if track_count == 0:
            return StepResult.unresolved("No srt found")
        return StepResult.success(f"{len(videos)} videos, {track_count} subtitle tracks")

    # Step 2

    def analyze_disk(self, disk: DiskRecord) -> StepResult:
        """Gap statistics per video, then disc pattern and play-all detection."""
        for video in disk.videos:
            if video.error:
                continue
            try:
                track, captions = self._read_track(video)
            except SubtitleError as e:
                video.error = str(e)
                continue
            if not captions:
                video.error = f"No captions in {track.file_name}"
                logger.warning(f"{video.file_name}: {video.error}")
                continue
            if not video.duration_seconds:
                video.duration_seconds = captions_duration(captions)
            video.gap_stats, video.gaps = analyze_gaps(
                [(c.start, c.end) for c in captions], self.settings
            )

        analysis = self.analyst.analyze(disk.videos)
        apply_analysis(disk.videos, analysis)
        disk.pattern = analysis.pattern
        disk.same_length_count = analysis.same_length_count
        disk.same_length_seconds = analysis.same_length_seconds

        if all(v.error for v in disk.videos):
            return StepResult.unresolved("No usable subtitle track")
        return StepResult.success(f"{analysis.pattern.value}: {analysis.reason}")

    # Step 3

    def extract_dialogue(self, disk: DiskRecord) -> StepResult:
        """Choose episode boundaries and write per-segment dialogue files."""
        written = 0
        for video in disk.videos:
            if video.error or video.is_play_all:
                continue
            try:
                track, captions = self._read_track(video)
            except SubtitleError as e:
                video.error = str(e)
                continue
            stats = video.gap_stats
            video.boundaries = select_boundaries(
                video.gaps, video.duration_seconds, self.settings
            )
            segmentation = segment_dialogue(
                captions,
                video.duration_seconds,
                stats.threshold if stats else self.settings.gap_fixed_threshold,
                video.boundaries,
                self.settings,
            )
            video.segments = segmentation.durations
            video.dialogue_files = write_dialogue_files(
                self.disc_dir, video.identifier, track.language, segmentation.lines
            )
            written += len(video.dialogue_files)
            if segmentation.is_split:
                logger.info(
                    f"{video.file_name}: split into {len(video.segments)} segments "
                    f"({', '.join(f'{d / 60:.0f}min' for d in video.segments)})"
                )

        if written == 0:
            return StepResult.unresolved("No dialogue extracted")
        return StepResult.success(f"{written} dialogue files")

    # Step 4

    def extract_characters(self, disk: DiskRecord) -> StepResult:
        """Character names per video and ranked across the disc."""
        limit = self.settings.character_dialogue_lines
        for video in disk.videos:
            if video.is_play_all or not video.dialogue_files:
                continue
            text = self._dialogue_text(video.dialogue_files, limit)
            if not text.strip():
                continue
            names = self.reasoning.extract_characters(text)
            video.proper_nouns = {name: count_mentions(name, text) for name in names}
            logger.info(f"{video.file_name}: {len(names)} character name(s)")

        disk.characters = rank_names(disk.videos)
        if not disk.characters:
            return StepResult.fail("No characters extracted")
        return StepResult.success(f"{len(disk.characters)} unique names")

    # Step 5

    def candidate_search(self, disk: DiskRecord) -> StepResult:
        """Build the shortlist and read the content type off its top entry."""
        result = self.search.search(disk)
        disk.candidates = result.candidates
        longest = disk.longest_video()
        disk.content_type = classify_content_type(
            result,
            same_length_count=disk.same_length_count,
            longest_split=bool(longest and longest.is_split),
            hybrid_threshold=self.settings.hybrid_same_length_threshold,
        )
        if not result.candidates:
            return StepResult.unresolved("No candidates found in title store")
        top = result.top
        return StepResult.success(
            f"{disk.content_type.value}, top candidate {top.title} ({top.year}) "
            f"[{top.content_kind}, {top.score:.0f}]"
        )

    # Step 6

    def movie_matching(self, disk: DiskRecord) -> StepResult:
        if disk.content_type != ContentType.MOVIE:
            return StepResult.skip("not a movie disc")

        video = disk.longest_video()
        if video is None or not video.dialogue_files:
            return StepResult.fail("No dialogue for the main feature")

        dialogue = self._dialogue_text(video.dialogue_files, self.settings.summary_dialogue_lines)
        video.synopsis = self.reasoning.summarize(dialogue, "movie") or None
        match = self.resolver.resolve_movie(disk.characters, video.synopsis, disk.candidates)

        video.matches = [match] if match else []
        disk.best_match = match
        if match is None:
            disk.unresolved_reason = "No movie match"
            return StepResult.fail("No movie match")
        return StepResult.success(f"{match.title} ({match.year}) [{match.confidence.value}]")

    # Step 7

    def tv_matching(self, disk: DiskRecord) -> StepResult:
        if disk.content_type != ContentType.TV:
            return StepResult.skip("not a TV disc")

        series = self.resolver.choose_series(disk.characters, disk.candidates)
        if series is None:
            disk.unresolved_reason = "No series candidate"
            return StepResult.fail("No series candidate")
        disk.best_match = series
        logger.info(f"Series: {series.title} ({series.year}) - {series.external_id}")

        episodes = self.resolver.list_episodes(series, disk.parsed.season)
        units = self._episode_units(disk, include_long=False)
        for video in disk.videos:
            video.matches = []
            video.segment_synopses = []

        previous: list[str] = []
        matched = 0
        for position, unit in enumerate(units, start=1):
            synopsis = self._summarize_unit(unit, "episode")
            if not synopsis:
                logger.warning(f"No synopsis for {unit.dialogue_file}, skipping")
                continue
            context = EpisodeContext(
                season_hint=disk.parsed.season,
                disc_number=disk.parsed.disc,
                position=position,
                total=len(units),
                previous_matches=list(previous),
            )
            match = self.resolver.resolve_episode(
                synopsis, series, episodes, context, segment=unit.segment
            )
            if match is None:
                continue
            unit.video.matches.append(match)
            previous.append(
                f"File {position}: {match.episode_code} - {match.episode_title or 'Unknown'}"
            )
            matched += 1

        if matched == 0:
            disk.unresolved_reason = "No episode matched"
            return StepResult.fail("No episode matched")
        return StepResult.success(f"Matched {matched} of {len(units)} episodes")

    # Step 8

    def hybrid_matching(self, disk: DiskRecord) -> StepResult:
        if disk.content_type != ContentType.HYBRID:
            return StepResult.skip("not a hybrid disc")

        units = self._episode_units(disk, include_long=True)
        for video in disk.videos:
            video.matches = []
            video.segment_synopses = []

        found: list[MatchCandidate] = []
        for unit in units:
            minutes = self._unit_minutes(unit)
            kind = "episode" if minutes * 60 < self.settings.episode_max_duration else "movie"
            synopsis = self._summarize_unit(unit, kind)
            match = self.resolver.resolve_hybrid(
                list(unit.video.proper_nouns),
                synopsis,
                disk.candidates,
                minutes,
                disk.parsed.season,
            )
            if match is None:
                continue
            if unit.segment is not None:
                match = match.model_copy(update={"segment": unit.segment})
            unit.video.matches.append(match)
            found.append(match)

        if not found:
            disk.unresolved_reason = "No hybrid match"
            return StepResult.fail("No hybrid match")
        disk.best_match = rank_candidates(found)[0]
        return StepResult.success(f"Matched {len(found)} of {len(units)} units")

    def _unit_minutes(self, unit: EpisodeUnit) -> int:
        if unit.segment is not None and unit.segment <= len(unit.video.segments):
            return int(unit.video.segments[unit.segment - 1] // 60)
        return unit.video.duration_minutes

    def _summarize_unit(self, unit: EpisodeUnit, kind: str) -> str | None:
        dialogue = self._dialogue_text([unit.dialogue_file], self.settings.summary_dialogue_lines)
        if not dialogue.strip():
            return None
        synopsis = self.reasoning.summarize(dialogue, kind) or None
        if unit.segment is None:
            unit.video.synopsis = synopsis
        else:
            unit.video.segment_synopses.append(synopsis or "")
        return synopsis

    # Step 9

    def finalize(self, disk: DiskRecord) -> StepResult:
        """Acceptance checks and the human-readable best guess."""
        if disk.best_match is not None:
            self.status_store.write_best_guess(disk)
        reason = unresolved_reason(disk, self.settings.min_acceptance_score)
        if reason:
            return StepResult.unresolved(reason)
        best = disk.best_match
        return StepResult.success(f"Identified as {best.title} ({best.year}) {best.external_id}")
