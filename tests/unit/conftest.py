"""Shared fixtures for unit tests."""

from unittest.mock import MagicMock

import pytest

from vidident.models import MatchCandidate, VideoRecord
from vidident.services.reasoning import ReasoningClient


@pytest.fixture
def make_videos():
    """Build VideoRecords from durations in minutes (title_t00, title_t01, ...)."""

    def _make(durations_min: list[float]) -> list[VideoRecord]:
        return [
            VideoRecord(
                identifier=f"title_t{i:02d}",
                file_name=f"title_t{i:02d}.mkv",
                duration_seconds=d * 60,
            )
            for i, d in enumerate(durations_min)
        ]

    return _make


@pytest.fixture
def mock_reasoning():
    """Reasoning client double; no method is wired to the network."""
    return MagicMock(spec=ReasoningClient)


@pytest.fixture
def serenity_candidates():
    return [
        MatchCandidate(
            external_id="tt0379786",
            title="Serenity",
            year=2005,
            content_kind="movie",
            score=180,
        ),
        MatchCandidate(
            external_id="tt0303461",
            title="Firefly",
            year=2002,
            content_kind="tvSeries",
            score=120,
        ),
    ]
