"""Run-level configuration from environment variables.

A single ``Settings`` instance is built by the CLI and handed to every
component that needs it. All fields have defaults except the title-store
credentials; no .env file is required.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vidident.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Service endpoints, retry policy and identification thresholds."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Reasoning service (OpenAI-compatible chat completions)
    llm_base_url: str = "http://nas2:8191/v1"
    llm_model: str = "qwen3-30b"
    llm_max_retries: int = 3
    llm_retry_delay: float = 5.0  # fixed backoff between attempts
    llm_connect_timeout: float = 10.0
    llm_timeout: float = 1200.0  # 20 minutes
    llm_temperature: float = 0.3

    # Title store. DATABASE_URL wins; otherwise assembled from IMDB_* parts.
    database_url: str = ""
    imdb_host: str = "nas2"
    imdb_user: str = "imdb"
    imdb_password: str = ""
    imdb_database: str = "imdb"

    # Logging
    debug: bool = False
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".vidident")

    # Gap statistics
    gap_fixed_threshold: float = 60.0  # seconds, used for sparse tracks
    gap_min_sample: int = 30  # gaps needed before the adaptive threshold applies
    gap_median_multiplier: float = 10.0
    gap_stddev_multiplier: float = 3.0

    # Episode boundary selection
    episode_min_duration: int = 15 * 60
    episode_max_duration: int = 45 * 60
    episode_target_duration: int = 25 * 60
    split_min_video_duration: int = 60 * 60
    boundary_tolerance: float = 5.0
    fallback_split_min_duration: int = 45 * 60  # split on significant gaps only above this

    # Disk pattern classification
    content_min_duration: int = 10 * 60  # shorter videos are extras
    cluster_tolerance: int = 2 * 60
    play_all_tolerance: float = 0.05
    episodic_max_stddev: float = 300.0
    single_feature_min_duration: int = 60 * 60
    single_feature_dominance: float = 0.6
    same_length_tolerance: int = 60

    # Candidate search and resolution
    shortlist_size: int = 20
    tv_runtime_tolerance: int = 2  # minutes
    movie_runtime_tolerance: int = 3  # minutes
    character_match_points: int = 10
    actor_match_points: int = 5
    sweep_min_names: int = 3
    min_acceptance_score: float = 60.0
    character_evidence_min: int = 3
    hybrid_same_length_threshold: int = 2

    # Dialogue handed to the reasoning service
    preferred_languages: list[str] = Field(default_factory=lambda: ["en", "eng"])
    character_dialogue_lines: int = 1000
    summary_dialogue_lines: int = 6000

    def resolved_database_url(self) -> str:
        """Return the SQLAlchemy URL of the title store.

        Raises:
            ConfigurationError: If neither DATABASE_URL nor IMDB_PASSWORD is set.
        """
        if self.database_url:
            return self.database_url
        if not self.imdb_password:
            raise ConfigurationError(
                "Title store is not configured: set DATABASE_URL or IMDB_PASSWORD"
            )
        return (
            f"mysql+pymysql://{self.imdb_user}:{self.imdb_password}"
            f"@{self.imdb_host}/{self.imdb_database}"
        )

    @property
    def chat_completions_url(self) -> str:
        return f"{self.llm_base_url.rstrip('/')}/chat/completions"
