"""Core pytest fixtures for identifier tests."""

import json

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from vidident.config import Settings
from vidident.database import init_db
from vidident.models import NameBasics, TitleBasics, TitleEpisode, TitlePrincipals
from vidident.services.title_store import TitleStore

OFFICE_EPISODES = [
    "Pilot",
    "Diversity Day",
    "Health Care",
    "The Alliance",
    "Basketball",
    "Hot Girl",
]

# tconst -> (type, title, year, runtime, [(person, [characters])])
TITLES = {
    "tt0386676": (
        "tvSeries",
        "The Office",
        2005,
        22,
        [
            ("Steve Carell", ["Michael Scott"]),
            ("Rainn Wilson", ["Dwight Schrute"]),
            ("John Krasinski", ["Jim Halpert"]),
            ("Jenna Fischer", ["Pam Beesly"]),
        ],
    ),
    "tt1135985": ("movie", "The Office Party", 2010, 95, [("Kim Carol", ["Carol"])]),
    "tt0379786": (
        "movie",
        "Serenity",
        2005,
        119,
        [
            ("Nathan Fillion", ["Malcolm Reynolds", "Mal"]),
            ("Gina Torres", ["Zoe Washburne"]),
            ("Summer Glau", ["River Tam"]),
            ("Sean Maher", ["Simon Tam"]),
            ("Adam Baldwin", ["Jayne Cobb"]),
        ],
    ),
    "tt0303461": (
        "tvSeries",
        "Firefly",
        2002,
        44,
        [("Nathan Fillion", ["Malcolm Reynolds"]), ("Summer Glau", ["River Tam"])],
    ),
    "tt1227926": (
        "video",
        "Dr. Horrible's Sing-Along Blog",
        2008,
        None,
        [
            ("Neil Patrick Harris", ["Dr. Horrible", "Billy"]),
            ("Felicia Day", ["Penny"]),
            ("Simon Helberg", ["Moist"]),
        ],
    ),
}


def format_timestamp(seconds: float) -> str:
    millis = round(seconds * 1000)
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def build_srt(captions: list[tuple[float, float, str]]) -> str:
    blocks = []
    for i, (start, end, text) in enumerate(captions, start=1):
        blocks.append(f"{i}\n{format_timestamp(start)} --> {format_timestamp(end)}\n{text}\n")
    return "\n".join(blocks)


def steady_captions(
    start: float,
    end: float,
    lines: list[str],
    step: float = 6.0,
    length: float = 3.0,
) -> list[tuple[float, float, str]]:
    """Evenly paced captions cycling through ``lines`` between ``start`` and ``end``."""
    captions = []
    t = start
    i = 0
    while t + length <= end:
        captions.append((t, t + length, lines[i % len(lines)]))
        t += step
        i += 1
    return captions


@pytest.fixture
def settings(tmp_path):
    """Settings with no environment influence and no retry delay."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        log_dir=tmp_path / "logs",
        llm_retry_delay=0,
    )


@pytest.fixture
def write_srt():
    """Write captions as an SRT file and return its path."""

    def _write(path, captions):
        path.write_text(build_srt(captions), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_captions():
    return steady_captions


@pytest.fixture
def title_engine():
    """In-memory title store seeded with a few series, movies and episodes."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    people: dict[str, str] = {}
    with Session(engine) as session:
        for tconst, (title_type, title, year, runtime, cast) in TITLES.items():
            session.add(
                TitleBasics(
                    tconst=tconst,
                    title_type=title_type,
                    primary_title=title,
                    start_year=year,
                    runtime_minutes=runtime,
                )
            )
            for ordering, (person, characters) in enumerate(cast, start=1):
                if person not in people:
                    people[person] = f"nm{len(people) + 1:07d}"
                    session.add(NameBasics(nconst=people[person], primary_name=person))
                session.add(
                    TitlePrincipals(
                        tconst=tconst,
                        ordering=ordering,
                        nconst=people[person],
                        category="actor",
                        characters=json.dumps(characters),
                    )
                )

        for number, name in enumerate(OFFICE_EPISODES, start=1):
            tconst = f"tt06640{number:02d}"
            session.add(
                TitleBasics(
                    tconst=tconst,
                    title_type="tvEpisode",
                    primary_title=name,
                    start_year=2005,
                    runtime_minutes=22,
                )
            )
            session.add(
                TitleEpisode(
                    tconst=tconst,
                    parent_tconst="tt0386676",
                    season_number=1,
                    episode_number=number,
                )
            )
        session.commit()

    yield engine
    engine.dispose()


@pytest.fixture
def title_store(title_engine):
    return TitleStore(title_engine)
