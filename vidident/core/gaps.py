"""Gap statistics over subtitle timing.

A gap is the silence between the end of one caption and the start of the
next. Long silences mark structural breaks (credits, episode changes); the
threshold separating them from ordinary pacing adapts to the track once
there are enough gaps to trust the statistics.
"""

import logging
from collections.abc import Sequence

import numpy as np

from vidident.models import GapStatistics, SubtitleGap

logger = logging.getLogger(__name__)


def compute_gaps(timings: Sequence[tuple[float, float]]) -> list[SubtitleGap]:
    """Return one gap per adjacent caption pair that is separated by silence.

    Args:
        timings: (start, end) pairs in playback order

    Returns:
        Gaps with positive duration, positioned at the earlier caption's end
    """
    gaps = []
    for (_, prev_end), (next_start, _) in zip(timings, timings[1:]):
        duration = next_start - prev_end
        if duration > 0:
            gaps.append(SubtitleGap(position_seconds=prev_end, duration_seconds=duration))
    return gaps


def gap_statistics(
    gaps: Sequence[SubtitleGap],
    *,
    fixed_threshold: float = 60.0,
    min_sample: int = 30,
    median_multiplier: float = 10.0,
    stddev_multiplier: float = 3.0,
) -> GapStatistics:
    """Summarize gap durations and derive the significance threshold.

    With at least ``min_sample`` gaps the threshold is
    ``max(median * median_multiplier, median + stddev_multiplier * stddev)``;
    sparser tracks use ``fixed_threshold``.
    """
    if not gaps:
        return GapStatistics(threshold=fixed_threshold)

    durations = np.array([g.duration_seconds for g in gaps], dtype=float)
    median = float(np.median(durations))
    stddev = float(np.std(durations))

    adaptive = len(gaps) >= min_sample
    if adaptive:
        threshold = max(median * median_multiplier, median + stddev_multiplier * stddev)
    else:
        threshold = fixed_threshold

    return GapStatistics(
        sample_size=len(gaps),
        median=median,
        stddev=stddev,
        threshold=threshold,
        adaptive=adaptive,
    )


def significant_gaps(gaps: Sequence[SubtitleGap], threshold: float) -> list[SubtitleGap]:
    """Gaps strictly longer than ``threshold``."""
    return [g for g in gaps if g.duration_seconds > threshold]


def analyze_gaps(
    timings: Sequence[tuple[float, float]], settings
) -> tuple[GapStatistics, list[SubtitleGap]]:
    """Compute statistics and the significant gaps of one caption track.

    Fewer than two captions yield empty statistics and no gaps.
    """
    gaps = compute_gaps(timings)
    stats = gap_statistics(
        gaps,
        fixed_threshold=settings.gap_fixed_threshold,
        min_sample=settings.gap_min_sample,
        median_multiplier=settings.gap_median_multiplier,
        stddev_multiplier=settings.gap_stddev_multiplier,
    )
    significant = significant_gaps(gaps, stats.threshold)
    logger.debug(
        f"{stats.sample_size} gaps, median {stats.median:.2f}s, stddev {stats.stddev:.2f}s, "
        f"threshold {stats.threshold:.1f}s ({'adaptive' if stats.adaptive else 'fixed'}), "
        f"{len(significant)} significant"
    )
    return stats, significant
