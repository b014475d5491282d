"""Engine setup for the read-only title store."""

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine

from vidident.core.errors import DatabaseError, error_context

# Import all models so their tables are registered with SQLModel.metadata
from vidident.models import NameBasics, TitleBasics, TitleEpisode, TitlePrincipals  # noqa: F401

logger = logging.getLogger(__name__)


def create_title_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a synchronous engine for the title store.

    Connectivity is checked eagerly so an unreachable server aborts the run
    before any step does work.

    Raises:
        DatabaseError: If the server cannot be reached.
    """
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    with error_context(
        error_types=(SQLAlchemyError,),
        default_message="Cannot reach title store",
        wrap_as=DatabaseError,
    ):
        with engine.connect():
            pass
    logger.info(f"Connected to title store at {engine.url.render_as_string(hide_password=True)}")
    return engine


def init_db(engine: Engine) -> None:
    """Create the title-store tables. Used for local fixtures and tests."""
    SQLModel.metadata.create_all(engine)
