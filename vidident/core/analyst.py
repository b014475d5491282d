"""Analyst - Disc Pattern Classification Engine.

Parses the disc directory name and classifies the disc from the durations
of its videos: a single feature, an episodic series, or mixed content.
Also detects "play all" concatenations so they are kept out of matching.
"""

import logging
import re
from dataclasses import dataclass, field

import numpy as np

from vidident.models import SYNOPSIS_SKIPPED, DiskPattern, ParsedDiskName, VideoRecord

logger = logging.getLogger(__name__)

_ID_PREFIX_RE = re.compile(r"^[0-9a-fA-F]{8}-")
_SEASON_DISC_RE = re.compile(r"\bS(\d+)\s*D(\d+)\b", re.IGNORECASE)
_SEASON_PATTERNS = [
    re.compile(r"\bSEASON\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bSERIES\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bS(\d+)\b", re.IGNORECASE),
]
_DISC_PATTERNS = [
    re.compile(r"\bDISC\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bDISK\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bD(\d+)\b", re.IGNORECASE),
]
_STATUS_SUFFIX_RE = re.compile(r"\s+(ok|done|ripped|complete)$", re.IGNORECASE)
_TRAILING_NUMBER_RE = re.compile(r"\s*\d*\s*$")


@dataclass
class DurationCluster:
    """Videos whose durations lie within the cluster tolerance of the running mean."""

    videos: list[VideoRecord] = field(default_factory=list)

    @property
    def mean(self) -> float:
        return sum(v.duration_seconds for v in self.videos) / len(self.videos)

    @property
    def total(self) -> float:
        return sum(v.duration_seconds for v in self.videos)

    def __len__(self) -> int:
        return len(self.videos)


@dataclass
class DiskAnalysis:
    """Result of classifying a disc's videos."""

    pattern: DiskPattern
    mean_seconds: float = 0.0
    variance: float = 0.0
    stddev: float = 0.0
    main_cluster: list[str] = field(default_factory=list)
    play_all: list[str] = field(default_factory=list)
    same_length_count: int = 0
    same_length_seconds: float = 0.0
    reason: str = ""


def parse_disk_name(name: str) -> ParsedDiskName:
    """Parse title hint, season and disc number from a disc directory name.

    Examples:
        "5f3a9c1e-The_Office_S1_D2" -> ("The Office", 1, 2)
        "FIREFLY_DISC1" -> ("FIREFLY", None, 1)
        "Breaking Bad Season 2 done" -> ("Breaking Bad", 2, None)
    """
    label = _ID_PREFIX_RE.sub("", name).replace("_", " ").strip()
    season = disc = None

    match = _SEASON_DISC_RE.search(label)
    if match:
        season, disc = int(match.group(1)), int(match.group(2))
        label = _SEASON_DISC_RE.sub(" ", label)
    else:
        for pattern in _SEASON_PATTERNS:
            match = pattern.search(label)
            if match:
                season = int(match.group(1))
                label = pattern.sub(" ", label, count=1)
                break
        for pattern in _DISC_PATTERNS:
            match = pattern.search(label)
            if match:
                disc = int(match.group(1))
                label = pattern.sub(" ", label, count=1)
                break

    title = re.sub(r"\s+", " ", label).strip()
    title = _STATUS_SUFFIX_RE.sub("", title)
    title = _TRAILING_NUMBER_RE.sub("", title).strip()

    if season is not None or disc is not None:
        logger.info(f"Parsed disc name '{name}': title='{title}', season={season}, disc={disc}")
    return ParsedDiskName(title=title, season=season, disc=disc)


def cluster_durations(videos: list[VideoRecord], tolerance: float) -> list[DurationCluster]:
    """Group videos by approximate duration, shortest first."""
    clusters: list[DurationCluster] = []
    for video in sorted(videos, key=lambda v: v.duration_seconds):
        for cluster in clusters:
            if abs(video.duration_seconds - cluster.mean) <= tolerance:
                cluster.videos.append(video)
                break
        else:
            clusters.append(DurationCluster(videos=[video]))
    return clusters


def same_length_group(videos: list[VideoRecord], tolerance: float) -> tuple[int, float]:
    """Largest number of videos within ``tolerance`` seconds of one of them.

    Returns:
        (count, representative duration in seconds)
    """
    best_count, best_length = 0, 0.0
    for video in videos:
        count = sum(
            1
            for other in videos
            if abs(video.duration_seconds - other.duration_seconds) <= tolerance
        )
        if count > best_count:
            best_count, best_length = count, video.duration_seconds
    return best_count, best_length


class DiskAnalyst:
    """Classifies a disc from the durations of its videos."""

    def __init__(self, settings):
        self._settings = settings

    def analyze(self, videos: list[VideoRecord]) -> DiskAnalysis:
        """Classify the disc and detect play-all videos.

        Args:
            videos: All videos of the disc with known durations

        Returns:
            Analysis with pattern, main-cluster statistics and play-all ids
        """
        s = self._settings
        logger.info(f"Analyzing {len(videos)} videos")
        if videos:
            durations_str = ", ".join(f"{v.duration_minutes}min" for v in videos[:10])
            if len(videos) > 10:
                durations_str += f", ... ({len(videos) - 10} more)"
            logger.info(f"Video durations: {durations_str}")

        content = [v for v in videos if v.duration_seconds >= s.content_min_duration]
        if not content:
            return DiskAnalysis(
                pattern=DiskPattern.UNKNOWN,
                reason=f"No content-length videos among {len(videos)}",
            )

        clusters = cluster_durations(content, s.cluster_tolerance)
        main = max(clusters, key=len)
        durations = np.array([v.duration_seconds for v in main.videos], dtype=float)
        mean = float(np.mean(durations))
        variance = float(np.var(durations))
        stddev = float(np.sqrt(variance))

        play_all = self._detect_play_all(videos, main)
        non_play_all = [v for v in videos if v.identifier not in play_all]
        same_count, same_length = same_length_group(non_play_all, s.same_length_tolerance)

        pattern, reason = self._classify(content, main, stddev, play_all)
        logger.info(
            f"Disc pattern {pattern.value}: main cluster {len(main)} x ~{mean / 60:.0f}min "
            f"(stddev {stddev:.0f}s), play-all {play_all or 'none'} - {reason}"
        )
        return DiskAnalysis(
            pattern=pattern,
            mean_seconds=mean,
            variance=variance,
            stddev=stddev,
            main_cluster=[v.identifier for v in main.videos],
            play_all=play_all,
            same_length_count=same_count,
            same_length_seconds=same_length,
            reason=reason,
        )

    def _detect_play_all(self, videos: list[VideoRecord], main: DurationCluster) -> list[str]:
        """Identify videos that concatenate the main cluster.

        A play-all video lies outside the main cluster and its duration is
        within the play-all tolerance of the cluster's summed duration. A
        disc holding a single video never has one.
        """
        if len(videos) < 2 or len(main) < 2:
            return []

        members = {v.identifier for v in main.videos}
        total = main.total
        play_all = []
        for video in videos:
            if video.identifier in members:
                continue
            if abs(video.duration_seconds - total) <= self._settings.play_all_tolerance * total:
                play_all.append(video.identifier)
                logger.info(
                    f"Detected 'Play All' video {video.identifier} "
                    f"({video.duration_minutes}min ≈ {total // 60:.0f}min cluster total)"
                )
        return play_all

    def _classify(
        self,
        content: list[VideoRecord],
        main: DurationCluster,
        stddev: float,
        play_all: list[str],
    ) -> tuple[DiskPattern, str]:
        s = self._settings
        features = [v for v in content if v.identifier not in play_all]
        long_videos = [v for v in features if v.duration_seconds > s.single_feature_min_duration]
        total = sum(v.duration_seconds for v in features)

        if len(long_videos) == 1 and total:
            dominance = long_videos[0].duration_seconds / total
            if dominance >= s.single_feature_dominance:
                return DiskPattern.SINGLE_FEATURE, f"one long video, {dominance:.0%} of content"

        if len(features) < 2:
            return DiskPattern.UNKNOWN, f"{len(features)} content video(s), too few to decide"

        if len(main) >= 2 and stddev < s.episodic_max_stddev:
            return DiskPattern.EPISODIC, f"{len(main)} videos of similar length"

        if len(long_videos) == 1:
            return DiskPattern.SINGLE_FEATURE, "one long video"

        if len(long_videos) >= 2:
            return DiskPattern.MIXED, f"{len(long_videos)} feature-length videos"
        return DiskPattern.MIXED, "inconsistent durations"


def apply_analysis(videos: list[VideoRecord], analysis: DiskAnalysis) -> None:
    """Flag play-all videos on the records and mark their synopsis as skipped.

    The only video of a disc is never flagged, so it stays eligible for
    boundary-based splitting.
    """
    for video in videos:
        video.is_play_all = video.identifier in analysis.play_all
        if video.is_play_all:
            video.synopsis = SYNOPSIS_SKIPPED
