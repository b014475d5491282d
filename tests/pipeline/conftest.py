"""Shared fixtures for pipeline tests.

These tests build small disc directories out of synthetic SRT files and run
the real analysis, search and resolution logic against the seeded in-memory
title store. Only the reasoning service and ffprobe are replaced.
"""

from unittest.mock import patch

import pytest

from vidident.services.pipeline import IdentificationPipeline


@pytest.fixture(autouse=True)
def no_ffprobe():
    """Video durations come from the captions."""
    with patch("vidident.services.pipeline.get_video_duration", return_value=0.0) as ffprobe:
        yield ffprobe


@pytest.fixture
def make_disc(tmp_path, write_srt, make_captions):
    """Create a disc directory with one English track per (minutes, lines) video."""

    def _make(name, videos, parent=None):
        disc = (parent or tmp_path) / name
        disc.mkdir(parents=True)
        for i, (minutes, lines) in enumerate(videos):
            base = f"title_t{i:02d}"
            (disc / f"{base}.mkv").touch()
            if lines:
                write_srt(disc / f"{base}.en.srt", make_captions(0, minutes * 60, lines))
        return disc

    return _make


@pytest.fixture
def make_pipeline(settings, title_store):
    def _make(disc, reasoning):
        return IdentificationPipeline(disc, settings, title_store, reasoning)

    return _make
