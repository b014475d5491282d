"""Data models for the identifier."""

from vidident.models.records import (
    SYNOPSIS_SKIPPED,
    Confidence,
    ContentType,
    DiskPattern,
    DiskRecord,
    EpisodeBoundaryCandidate,
    GapStatistics,
    MatchCandidate,
    ParsedDiskName,
    PipelineStatus,
    StepOutcome,
    StepRecord,
    SubtitleGap,
    SubtitleTrack,
    Terminal,
    VideoRecord,
    rank_candidates,
)
from vidident.models.title_store import (
    ALL_TITLE_TYPES,
    MOVIE_TITLE_TYPES,
    SERIES_TITLE_TYPES,
    NameBasics,
    TitleBasics,
    TitleEpisode,
    TitlePrincipals,
)

__all__ = [
    "ALL_TITLE_TYPES",
    "MOVIE_TITLE_TYPES",
    "SERIES_TITLE_TYPES",
    "SYNOPSIS_SKIPPED",
    "Confidence",
    "ContentType",
    "DiskPattern",
    "DiskRecord",
    "EpisodeBoundaryCandidate",
    "GapStatistics",
    "MatchCandidate",
    "NameBasics",
    "ParsedDiskName",
    "PipelineStatus",
    "StepOutcome",
    "StepRecord",
    "SubtitleGap",
    "SubtitleTrack",
    "Terminal",
    "TitleBasics",
    "TitleEpisode",
    "TitlePrincipals",
    "VideoRecord",
    "rank_candidates",
]
