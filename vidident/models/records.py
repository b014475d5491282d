"""Identification records - the per-disc and per-video state of a run.

Records are created at subtitle discovery and mutated additively by each
pipeline step. The whole DiskRecord is persisted as JSON after every step.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Synopsis placeholder for videos excluded from summarisation (play-all concatenations)
SYNOPSIS_SKIPPED = "[skipped: play-all]"


class ContentType(str, Enum):
    """Classification of a whole disc."""

    MOVIE = "movie"
    TV = "tv"
    HYBRID = "hybrid"
    UNKNOWN = "unknown"


class DiskPattern(str, Enum):
    """Duration pattern of the videos on a disc."""

    EPISODIC = "episodic"
    SINGLE_FEATURE = "single_feature"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value) -> "Confidence":
        """Lenient conversion from reasoning-service output; anything unknown is LOW."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LOW


class Terminal(str, Enum):
    """Terminal flag of a pipeline run."""

    NONE = "none"
    UNKNOWN = "unknown"  # unresolved, routed to manual review
    COMPLETED = "completed"


class StepOutcome(str, Enum):
    """Tagged result of one pipeline step."""

    PENDING = "pending"
    SUCCESS = "success"
    SKIP = "skip"
    FAIL = "fail"
    UNRESOLVED = "unresolved"


class SubtitleGap(BaseModel):
    """Silence between two adjacent captions."""

    model_config = ConfigDict(frozen=True)

    position_seconds: float  # end of the previous caption
    duration_seconds: float

    @property
    def end_seconds(self) -> float:
        return self.position_seconds + self.duration_seconds


class EpisodeBoundaryCandidate(BaseModel):
    """A significant gap together with the segment it would close if chosen."""

    model_config = ConfigDict(frozen=True)

    gap: SubtitleGap
    segment_seconds: float


class GapStatistics(BaseModel):
    """Summary of all inter-caption gaps of one track."""

    sample_size: int = 0
    median: float = 0.0
    stddev: float = 0.0
    threshold: float = 0.0
    adaptive: bool = False


class SubtitleTrack(BaseModel):
    """An extracted subtitle file belonging to a video."""

    file_name: str
    language: str = "und"


class MatchCandidate(BaseModel):
    """A proposed identification for a disc or a unit of content."""

    external_id: str
    title: str
    year: int | None = None
    content_kind: str = "unknown"  # store title type, or tvEpisode/tvSpecial once resolved
    season: int | None = None
    episode: int | None = None
    episode_title: str | None = None
    segment: int | None = None  # dialogue segment of a split video
    score: float = 0.0
    confidence: Confidence = Confidence.LOW
    reasoning: str = ""

    @property
    def episode_code(self) -> str | None:
        if self.season is None or self.episode is None:
            return None
        return f"S{self.season:02d}E{self.episode:02d}"


def rank_candidates(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    """Sort descending by score; ties go to the most recent release year."""
    return sorted(candidates, key=lambda c: (-c.score, -(c.year or 0)))


class VideoRecord(BaseModel):
    """One source video file and everything learned about it."""

    identifier: str  # file stem, e.g. "title_t00"
    file_name: str
    duration_seconds: float = 0.0
    subtitle_languages: set[str] = Field(default_factory=set)
    subtitle_tracks: list[SubtitleTrack] = Field(default_factory=list)
    gap_stats: GapStatistics | None = None
    gaps: list[SubtitleGap] = Field(default_factory=list)  # significant gaps only
    boundaries: list[float] = Field(default_factory=list)
    segments: list[float] = Field(default_factory=list)  # segment durations in seconds
    dialogue_files: list[str] = Field(default_factory=list)
    is_play_all: bool = False
    proper_nouns: dict[str, int] = Field(default_factory=dict)
    synopsis: str | None = None
    segment_synopses: list[str] = Field(default_factory=list)
    matches: list[MatchCandidate] = Field(default_factory=list)
    error: str | None = None  # input defect local to this video

    @field_serializer("subtitle_languages")
    def _serialize_languages(self, value: set[str]) -> list[str]:
        return sorted(value)

    @property
    def is_split(self) -> bool:
        return len(self.segments) > 1

    @property
    def duration_minutes(self) -> int:
        return int(self.duration_seconds // 60)


class ParsedDiskName(BaseModel):
    title: str = ""
    season: int | None = None
    disc: int | None = None


class StepRecord(BaseModel):
    name: str
    outcome: StepOutcome = StepOutcome.PENDING
    message: str = ""


class PipelineStatus(BaseModel):
    """Resumable status of a disc run.

    ``completed_steps`` only grows, and only after a step's effects are persisted.
    A non-null ``error`` is terminal.
    """

    current_step: int = 0
    completed_steps: set[int] = Field(default_factory=set)
    error: str | None = None
    terminal: Terminal = Terminal.NONE
    steps: dict[int, StepRecord] = Field(default_factory=dict)

    @field_serializer("completed_steps")
    def _serialize_completed(self, value: set[int]) -> list[int]:
        return sorted(value)

    @property
    def is_terminal(self) -> bool:
        return self.terminal != Terminal.NONE or self.error is not None


class DiskRecord(BaseModel):
    """One disc directory. Owns its VideoRecords."""

    name: str
    parsed: ParsedDiskName = Field(default_factory=ParsedDiskName)
    videos: list[VideoRecord] = Field(default_factory=list)
    pattern: DiskPattern = DiskPattern.UNKNOWN
    content_type: ContentType = ContentType.UNKNOWN
    same_length_count: int = 0
    same_length_seconds: float = 0.0
    characters: list[str] = Field(default_factory=list)
    candidates: list[MatchCandidate] = Field(default_factory=list)
    best_match: MatchCandidate | None = None
    unresolved_reason: str | None = None
    status: PipelineStatus = Field(default_factory=PipelineStatus)

    def video(self, identifier: str) -> VideoRecord | None:
        return next((v for v in self.videos if v.identifier == identifier), None)

    def longest_video(self, include_play_all: bool = False) -> VideoRecord | None:
        pool = [v for v in self.videos if include_play_all or not v.is_play_all]
        if not pool:
            return None
        return max(pool, key=lambda v: v.duration_seconds)
