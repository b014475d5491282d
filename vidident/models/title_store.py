"""Read-only tables of the title/cast/episode store.

Mirrors the IMDb non-commercial dataset as loaded into MariaDB: the
attribute names are pythonic, the column names keep the dataset's
camelCase spelling.
"""

from sqlalchemy import Column, Integer, String, Text
from sqlmodel import Field, SQLModel

# Title types searched as movies and as series
MOVIE_TITLE_TYPES = ("movie", "tvMovie", "video")
SERIES_TITLE_TYPES = ("tvSeries", "tvMiniSeries")
ALL_TITLE_TYPES = MOVIE_TITLE_TYPES + SERIES_TITLE_TYPES


class TitleBasics(SQLModel, table=True):
    __tablename__ = "title_basics"

    tconst: str = Field(primary_key=True)
    title_type: str = Field(sa_column=Column("titleType", String(32), index=True))
    primary_title: str = Field(sa_column=Column("primaryTitle", String(512), index=True))
    start_year: int | None = Field(default=None, sa_column=Column("startYear", Integer))
    runtime_minutes: int | None = Field(default=None, sa_column=Column("runtimeMinutes", Integer))
    genres: str | None = Field(default=None, sa_column=Column("genres", String(255)))


class TitlePrincipals(SQLModel, table=True):
    """Credited cast/crew of a title. ``characters`` is a JSON-ish list string."""

    __tablename__ = "title_principals"

    tconst: str = Field(primary_key=True, index=True)
    ordering: int = Field(primary_key=True)
    nconst: str = Field(index=True)
    category: str | None = None
    characters: str | None = Field(default=None, sa_column=Column("characters", Text))


class NameBasics(SQLModel, table=True):
    __tablename__ = "name_basics"

    nconst: str = Field(primary_key=True)
    primary_name: str = Field(sa_column=Column("primaryName", String(255), index=True))


class TitleEpisode(SQLModel, table=True):
    __tablename__ = "title_episode"

    tconst: str = Field(primary_key=True)
    parent_tconst: str = Field(sa_column=Column("parentTconst", String(16), index=True))
    season_number: int | None = Field(default=None, sa_column=Column("seasonNumber", Integer))
    episode_number: int | None = Field(default=None, sa_column=Column("episodeNumber", Integer))
