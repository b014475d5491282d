"""Read-only queries against the title/cast/episode store.

Queries are plain SQL through SQLModel sessions and stay portable between
MariaDB (production) and SQLite (tests): substring matching uses
case-insensitive LIKE with escaped patterns rather than full-text search.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import case, distinct, func, literal, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from vidident.core.errors import DatabaseError, handle_errors
from vidident.models import NameBasics, TitleBasics, TitleEpisode, TitlePrincipals

logger = logging.getLogger(__name__)

# Names of two characters or fewer match far too much to be evidence
MIN_NAME_LENGTH = 3


@dataclass(frozen=True)
class TitleHit:
    """One row returned by a title search."""

    tconst: str
    title: str
    year: int | None
    title_type: str
    runtime_minutes: int | None = None
    character_matches: int = 0
    actor_matches: int = 0


@dataclass(frozen=True)
class EpisodeInfo:
    tconst: str
    season: int | None
    episode: int | None
    title: str


def escape_like(value: str) -> str:
    """Escape LIKE wildcards; the escape character is a backslash."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def usable_names(names: Sequence[str]) -> list[str]:
    """Distinct, trimmed names long enough to be meaningful, order kept."""
    seen: set[str] = set()
    result = []
    for name in names:
        name = name.strip()
        key = name.lower()
        if len(name) >= MIN_NAME_LENGTH and key not in seen:
            seen.add(key)
            result.append(name)
    return result


def parse_characters(raw: str | None) -> list[str]:
    """Decode the principals ``characters`` field (a JSON list, or a bare string)."""
    if not raw or raw == "\\N":
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return [raw.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value).strip()]


def _character_score(names: Sequence[str]):
    """SQL expression counting how many ``names`` appear in any credited character."""
    if not names:
        return None
    return sum(
        func.max(
            case(
                (TitlePrincipals.characters.ilike(f"%{escape_like(n)}%", escape="\\"), 1),
                else_=0,
            )
        )
        for n in names
    )


class TitleStore:
    """Read-only access to the title store.

    Every query runs in its own short session. SQLAlchemy failures surface as
    :class:`DatabaseError`, which the pipeline treats as structural.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Character search failed",
        wrap_as=DatabaseError,
    )
    def search_by_characters(
        self,
        names: Sequence[str],
        title_hint: str,
        title_types: Sequence[str],
        *,
        actors: Sequence[str] = (),
        runtime: int | None = None,
        runtime_tolerance: int = 0,
        require_match: bool = True,
        limit: int = 10,
    ) -> list[TitleHit]:
        """Titles matching ``title_hint`` ranked by character and actor overlap.

        Args:
            names: Extracted character names
            title_hint: Substring the primary title must contain
            title_types: Allowed title types
            actors: Names that also count when they equal a principal's name;
                titles credited to one of them qualify even without the hint
            runtime: Runtime in minutes; when given, titles outside the window are
                excluded but unknown runtimes are kept
            runtime_tolerance: Half-width of the runtime window in minutes
            require_match: Drop titles with no character overlap
            limit: Maximum rows
        """
        names = usable_names(names)
        actors = usable_names(actors)
        if not title_hint and not actors:
            return []
        if require_match and not names:
            return []

        char_score = _character_score(names)
        char_col = (char_score if char_score is not None else literal(0)).label(
            "character_matches"
        )
        if actors:
            actor_count = func.count(
                distinct(case((NameBasics.primary_name.in_(actors), NameBasics.nconst), else_=None))
            )
        else:
            actor_count = literal(0)
        actor_col = actor_count.label("actor_matches")

        text_filters = []
        if title_hint:
            text_filters.append(
                TitleBasics.primary_title.ilike(f"%{escape_like(title_hint)}%", escape="\\")
            )
        if actors:
            text_filters.append(NameBasics.primary_name.in_(actors))

        stmt = (
            select(
                TitleBasics.tconst,
                TitleBasics.primary_title,
                TitleBasics.start_year,
                TitleBasics.title_type,
                TitleBasics.runtime_minutes,
                char_col,
                actor_col,
            )
            .join(TitlePrincipals, TitlePrincipals.tconst == TitleBasics.tconst, isouter=True)
            .join(NameBasics, NameBasics.nconst == TitlePrincipals.nconst, isouter=True)
            .where(TitleBasics.title_type.in_(list(title_types)))
            .where(or_(*text_filters))
        )
        if runtime is not None:
            stmt = stmt.where(
                or_(
                    TitleBasics.runtime_minutes.between(
                        runtime - runtime_tolerance, runtime + runtime_tolerance
                    ),
                    TitleBasics.runtime_minutes.is_(None),
                )
            )
        stmt = stmt.group_by(
            TitleBasics.tconst,
            TitleBasics.primary_title,
            TitleBasics.start_year,
            TitleBasics.title_type,
            TitleBasics.runtime_minutes,
        )
        if require_match:
            stmt = stmt.having(char_score > 0)
        stmt = stmt.order_by(
            char_col.desc(), actor_col.desc(), TitleBasics.start_year.desc()
        ).limit(limit)

        with Session(self._engine) as session:
            rows = session.exec(stmt).all()
        hits = [
            TitleHit(
                tconst=r[0],
                title=r[1],
                year=r[2],
                title_type=r[3],
                runtime_minutes=r[4],
                character_matches=int(r[5] or 0),
                actor_matches=int(r[6] or 0),
            )
            for r in rows
        ]
        logger.debug(f"Character search '{title_hint}' ({len(names)} names): {len(hits)} hits")
        return hits

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Title/runtime search failed",
        wrap_as=DatabaseError,
    )
    def search_by_title_and_runtime(
        self,
        title: str,
        runtime: int,
        tolerance: int,
        title_types: Sequence[str],
        limit: int = 20,
    ) -> list[TitleHit]:
        """Titles containing ``title`` whose runtime is within ``tolerance`` minutes.

        Titles with unknown runtime are included. Ordered by runtime distance,
        then exact title, then most recent year.
        """
        if not title:
            return []
        runtime_distance = case(
            (TitleBasics.runtime_minutes == runtime, 0),
            (
                TitleBasics.runtime_minutes.is_not(None),
                func.abs(TitleBasics.runtime_minutes - runtime),
            ),
            else_=999,
        )
        stmt = (
            select(
                TitleBasics.tconst,
                TitleBasics.primary_title,
                TitleBasics.start_year,
                TitleBasics.title_type,
                TitleBasics.runtime_minutes,
            )
            .where(TitleBasics.primary_title.ilike(f"%{escape_like(title)}%", escape="\\"))
            .where(
                or_(
                    TitleBasics.runtime_minutes.between(runtime - tolerance, runtime + tolerance),
                    TitleBasics.runtime_minutes.is_(None),
                )
            )
            .where(TitleBasics.title_type.in_(list(title_types)))
            .order_by(
                runtime_distance,
                case((TitleBasics.primary_title == title, 0), else_=1),
                TitleBasics.start_year.desc(),
            )
            .limit(limit)
        )
        with Session(self._engine) as session:
            rows = session.exec(stmt).all()
        return [
            TitleHit(tconst=r[0], title=r[1], year=r[2], title_type=r[3], runtime_minutes=r[4])
            for r in rows
        ]

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Name sweep failed",
        wrap_as=DatabaseError,
    )
    def sweep_by_names(
        self,
        names: Sequence[str],
        title_types: Sequence[str],
        min_matches: int = 3,
        limit: int = 20,
    ) -> list[TitleHit]:
        """All titles whose credited characters contain at least ``min_matches`` names."""
        names = usable_names(names)
        if len(names) < min_matches:
            return []
        char_score = _character_score(names)
        char_col = char_score.label("character_matches")
        stmt = (
            select(
                TitleBasics.tconst,
                TitleBasics.primary_title,
                TitleBasics.start_year,
                TitleBasics.title_type,
                char_col,
            )
            .join(TitlePrincipals, TitlePrincipals.tconst == TitleBasics.tconst, isouter=True)
            .where(TitleBasics.title_type.in_(list(title_types)))
            .group_by(
                TitleBasics.tconst,
                TitleBasics.primary_title,
                TitleBasics.start_year,
                TitleBasics.title_type,
            )
            .having(char_score >= min_matches)
            .order_by(char_col.desc(), TitleBasics.start_year.desc())
            .limit(limit)
        )
        with Session(self._engine) as session:
            rows = session.exec(stmt).all()
        return [
            TitleHit(
                tconst=r[0], title=r[1], year=r[2], title_type=r[3], character_matches=int(r[4])
            )
            for r in rows
        ]

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Cast lookup failed",
        wrap_as=DatabaseError,
    )
    def get_characters(self, tconst: str) -> list[str]:
        """Credited character names of a title, in billing order, de-duplicated."""
        stmt = (
            select(TitlePrincipals.characters)
            .where(TitlePrincipals.tconst == tconst)
            .where(TitlePrincipals.characters.is_not(None))
            .order_by(TitlePrincipals.ordering)
        )
        with Session(self._engine) as session:
            raws = session.exec(stmt).all()
        characters: list[str] = []
        for raw in raws:
            for name in parse_characters(raw):
                if name not in characters:
                    characters.append(name)
        return characters

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Episode listing failed",
        wrap_as=DatabaseError,
    )
    def list_episodes(self, series_tconst: str, season: int | None = None) -> list[EpisodeInfo]:
        """Episodes of a series, optionally restricted to one season, in broadcast order."""
        stmt = (
            select(
                TitleEpisode.tconst,
                TitleEpisode.season_number,
                TitleEpisode.episode_number,
                TitleBasics.primary_title,
            )
            .join(TitleBasics, TitleBasics.tconst == TitleEpisode.tconst)
            .where(TitleEpisode.parent_tconst == series_tconst)
        )
        if season is not None:
            stmt = stmt.where(TitleEpisode.season_number == season)
        stmt = stmt.order_by(TitleEpisode.season_number, TitleEpisode.episode_number)
        with Session(self._engine) as session:
            rows = session.exec(stmt).all()
        return [EpisodeInfo(tconst=r[0], season=r[1], episode=r[2], title=r[3]) for r in rows]

    @handle_errors(
        error_types=(SQLAlchemyError,),
        default_message="Title lookup failed",
        wrap_as=DatabaseError,
    )
    def get_title(self, tconst: str) -> TitleBasics | None:
        with Session(self._engine) as session:
            return session.get(TitleBasics, tconst)
