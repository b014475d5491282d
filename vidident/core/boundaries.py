"""Episode boundary selection and dialogue segmentation.

Long recordings (a "play all" title, or a disc authored as one stream) are
partitioned into episodes at significant subtitle gaps. Selection is
target-driven: the episode count is estimated from the total duration,
ideal cut points are spaced evenly, and each is snapped to the closest
significant gap that keeps the segment inside the episode-length band.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from vidident.models import EpisodeBoundaryCandidate, SubtitleGap

logger = logging.getLogger(__name__)


@dataclass
class Segmentation:
    """Dialogue cut into contiguous pieces."""

    cut_positions: list[float] = field(default_factory=list)
    lines: list[list[str]] = field(default_factory=list)
    durations: list[float] = field(default_factory=list)

    @property
    def is_split(self) -> bool:
        return len(self.lines) > 1


def estimate_episode_count(total_seconds: float, target_seconds: float) -> int:
    return round(total_seconds / target_seconds) if target_seconds > 0 else 0


def boundary_candidates(
    gaps: Sequence[SubtitleGap],
    previous_boundary: float,
    min_segment: float,
    max_segment: float,
) -> list[EpisodeBoundaryCandidate]:
    """Gaps that would close a segment of plausible episode length."""
    candidates = []
    for gap in gaps:
        segment = gap.position_seconds - previous_boundary
        if min_segment <= segment <= max_segment:
            candidates.append(EpisodeBoundaryCandidate(gap=gap, segment_seconds=segment))
    return candidates


def select_boundaries(
    gaps: Sequence[SubtitleGap],
    total_seconds: float,
    settings,
    episode_count: int | None = None,
) -> list[float]:
    """Choose episode boundary positions among significant gaps.

    Args:
        gaps: Significant gaps of the track, any order
        total_seconds: Duration of the video
        settings: Run settings carrying the episode band and split minimum
        episode_count: Override for the estimated number of episodes

    Returns:
        Ascending boundary positions, or an empty list when the video should
        not be split. Either every segment, the last one included, lies in
        the episode band or no boundary is returned at all.
    """
    if total_seconds < settings.split_min_video_duration:
        return []

    k = episode_count or estimate_episode_count(total_seconds, settings.episode_target_duration)
    if k < 2:
        return []

    ordered = sorted(gaps, key=lambda g: g.position_seconds)
    if not ordered:
        return []

    ideal_segment = total_seconds / k
    min_segment = settings.episode_min_duration
    max_segment = settings.episode_max_duration

    chosen: list[float] = []
    used: set[float] = set()
    last_boundary = 0.0

    for b in range(1, k):
        target = ideal_segment * b
        candidates = [
            c
            for c in boundary_candidates(ordered, last_boundary, min_segment, max_segment)
            if c.gap.position_seconds not in used
        ]
        if not candidates:
            logger.debug(f"No gap qualifies for boundary {b} (target {target:.0f}s), skipping")
            continue

        best = min(candidates, key=lambda c: abs(target - c.gap.position_seconds))
        chosen.append(best.gap.position_seconds)
        used.add(best.gap.position_seconds)
        last_boundary = best.gap.position_seconds

    if not chosen:
        return []

    final_segment = total_seconds - last_boundary
    if not min_segment <= final_segment <= max_segment:
        logger.debug(
            f"Final segment {final_segment / 60:.1f}min outside "
            f"[{min_segment // 60}, {max_segment // 60}]min, discarding {len(chosen)} boundaries"
        )
        return []

    logger.info(
        f"Selected {len(chosen)} boundaries in {total_seconds / 60:.0f}min video: "
        + ", ".join(f"{p / 60:.1f}min" for p in chosen)
    )
    return chosen


def _segment_durations(cuts: Sequence[float], total_seconds: float) -> list[float]:
    edges = [0.0, *cuts, total_seconds]
    return [max(0.0, end - start) for start, end in zip(edges, edges[1:])]


def segment_dialogue(
    captions: Sequence,
    total_seconds: float,
    threshold: float,
    boundaries: Sequence[float],
    settings,
) -> Segmentation:
    """Cut caption text into per-episode line lists.

    With boundaries, a cut is made at a gap longer than ``threshold`` whose
    start lies within the boundary tolerance of a chosen boundary. Without
    boundaries, every gap longer than ``threshold`` is a cut, but only for
    videos longer than the fallback minimum; shorter videos stay whole.

    Args:
        captions: Parsed captions (``start``, ``end``, ``text``) in order
        total_seconds: Duration of the video
        threshold: Structural gap threshold of the track
        boundaries: Output of :func:`select_boundaries`
        settings: Run settings carrying tolerance and fallback minimum
    """
    tolerance = settings.boundary_tolerance
    may_fallback_split = total_seconds > settings.fallback_split_min_duration

    cuts: list[float] = []
    lines: list[list[str]] = [[]]
    prev_end: float | None = None

    for caption in captions:
        if prev_end is not None:
            gap = caption.start - prev_end
            if gap > threshold:
                if boundaries:
                    is_cut = any(abs(prev_end - b) <= tolerance for b in boundaries)
                else:
                    is_cut = may_fallback_split
                if is_cut:
                    cuts.append(prev_end)
                    lines.append([])
        if caption.text:
            lines[-1].extend(caption.text.splitlines())
        prev_end = caption.end

    if len(lines) == 1:
        return Segmentation(lines=lines, durations=[total_seconds])

    return Segmentation(
        cut_positions=cuts,
        lines=lines,
        durations=_segment_durations(cuts, total_seconds),
    )
