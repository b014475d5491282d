"""End-to-end runs of the nine identification steps over temporary discs."""

from unittest.mock import MagicMock, patch

import pytest

from vidident.core.errors import SubtitleError
from vidident.models import (
    SYNOPSIS_SKIPPED,
    Confidence,
    ContentType,
    DiskPattern,
    StepOutcome,
    Terminal,
)
from vidident.services import pipeline as pipeline_module
from vidident.services.reasoning import ReasoningClient
from vidident.services.status_store import StatusStore

pytestmark = pytest.mark.pipeline

OFFICE_CAST = ["Michael Scott", "Dwight Schrute", "Jim Halpert"]

OFFICE_LINES = [
    "Michael Scott wants to see you in the conference room.",
    "Dwight Schrute is not the assistant regional manager.",
    "Jim Halpert put my stapler in jello again.",
    "I think we should just get back to work.",
]

SERENITY_LINES = [
    "Malcolm, we have a problem with the engine.",
    "Zoe, take the shuttle and get River out of there.",
    "Jayne, put the gun down. Now.",
    "They will come back for her, you know that.",
]

HORRIBLE_LINES = [
    "Penny was at the laundromat again today.",
    "I need to get into the Evil League of Evil.",
    "Moist, the freeze ray is almost ready.",
    "Maybe Penny will notice me this time.",
]


def fake_reasoning(characters: list[str]) -> MagicMock:
    """Reasoning client double that answers like a cooperative model.

    Episode requests are matched to the episode whose number equals the
    position of the unit on the disc.
    """
    reasoning = MagicMock(spec=ReasoningClient)
    reasoning.extract_characters.return_value = list(characters)
    reasoning.summarize.side_effect = lambda dialogue, kind: f"A {kind} summary"
    reasoning.match_episode.side_effect = lambda synopsis, episodes, context: {
        "season": 1,
        "episode": context.position,
        "confidence": "high",
    }
    reasoning.match_story.return_value = {"best_match": None, "confidence": "low"}
    return reasoning


def _office_disc(make_disc, parent=None):
    return make_disc("THE_OFFICE_S1_D1", [(22, OFFICE_LINES)] * 3, parent=parent)


class TestTvDisc:
    def test_episodes_are_matched_in_disc_order(self, make_disc, make_pipeline):
        disc = _office_disc(make_disc)
        reasoning = fake_reasoning(OFFICE_CAST)

        disk = make_pipeline(disc, reasoning).run()

        assert disk.status.terminal == Terminal.COMPLETED
        assert disk.status.error is None
        assert disk.status.completed_steps == set(range(1, 10))
        assert disk.pattern == DiskPattern.EPISODIC
        assert disk.content_type == ContentType.TV
        assert disk.parsed.season == 1

        assert disk.best_match.external_id == "tt0386676"
        assert disk.best_match.confidence == Confidence.HIGH
        matches = [m for v in disk.videos for m in v.matches]
        assert [m.episode_code for m in matches] == ["S01E01", "S01E02", "S01E03"]
        assert [m.episode_title for m in matches] == ["Pilot", "Diversity Day", "Health Care"]
        assert [m.external_id for m in matches] == ["tt0664001", "tt0664002", "tt0664003"]

        last_context = reasoning.match_episode.call_args.args[2]
        assert last_context.total == 3
        assert last_context.previous_matches == [
            "File 1: S01E01 - Pilot",
            "File 2: S01E02 - Diversity Day",
        ]

        assert (disc / "BEST_GUESS.txt").exists()
        assert not (disc / "UNKNOWN.txt").exists()
        assert (disc / "title_t00.eng.dialogue.txt").exists()

    def test_character_names_are_counted(self, make_disc, make_pipeline):
        disc = _office_disc(make_disc)

        disk = make_pipeline(disc, fake_reasoning(OFFICE_CAST)).run()

        # equal counts rank alphabetically
        assert disk.characters == ["Dwight Schrute", "Jim Halpert", "Michael Scott"]
        assert disk.videos[0].proper_nouns["Michael Scott"] > 1



class TestPlayAllDisc:
    """The Office S1D1 plus a "Play All" title concatenating its three episodes."""

    @pytest.fixture
    def disc(self, make_disc):
        return make_disc("THE_OFFICE_S1_D1", [(22, OFFICE_LINES)] * 3 + [(66, OFFICE_LINES)])

    def test_play_all_flagged(self, disc, make_pipeline):
        disk = make_pipeline(disc, fake_reasoning(OFFICE_CAST)).run()

        assert [v.is_play_all for v in disk.videos] == [False, False, False, True]
        assert disk.pattern == DiskPattern.EPISODIC
        assert disk.same_length_count == 3

    def test_play_all_is_never_summarized(self, disc, make_pipeline):
        reasoning = fake_reasoning(OFFICE_CAST)

        disk = make_pipeline(disc, reasoning).run()

        play_all = disk.videos[3]
        assert play_all.synopsis == SYNOPSIS_SKIPPED
        assert play_all.dialogue_files == []
        assert play_all.matches == []
        assert list(disc.glob("title_t03.*dialogue*.txt")) == []
        assert reasoning.summarize.call_count == 3
        assert reasoning.extract_characters.call_count == 3

    def test_episodes_exclude_play_all(self, disc, make_pipeline):
        disk = make_pipeline(disc, fake_reasoning(OFFICE_CAST)).run()

        assert disk.status.terminal == Terminal.COMPLETED
        assert disk.content_type == ContentType.TV
        matches = [m for v in disk.videos for m in v.matches]
        assert [m.episode_code for m in matches] == ["S01E01", "S01E02", "S01E03"]
        best_guess = (disc / "BEST_GUESS.txt").read_text()
        assert f"  title_t03.mkv: {SYNOPSIS_SKIPPED}" in best_guess


class TestHybridDisc:
    """Three equal-length parts of a direct-to-video release."""

    @pytest.fixture
    def reasoning(self):
        reasoning = fake_reasoning(["Penny"])
        reasoning.match_hybrid.return_value = {
            "best_match": "tt1227926",
            "content_type": "movie",
            "confidence": "high",
            "reasoning": "A would-be supervillain keeps a video blog",
        }
        return reasoning

    def test_parts_are_matched_by_hybrid_step(self, make_disc, make_pipeline, reasoning):
        disc = make_disc("HORRIBLE", [(14, HORRIBLE_LINES)] * 3)

        disk = make_pipeline(disc, reasoning).run()

        assert disk.content_type == ContentType.HYBRID
        assert disk.status.terminal == Terminal.COMPLETED
        assert disk.status.completed_steps == set(range(1, 10))
        assert disk.status.steps[6].outcome == StepOutcome.SKIP
        assert disk.status.steps[7].outcome == StepOutcome.SKIP
        assert disk.status.steps[8].message == "Matched 3 of 3 units"

        assert disk.best_match.external_id == "tt1227926"
        assert disk.best_match.content_kind == "video"
        assert disk.best_match.confidence == Confidence.HIGH
        assert [len(v.matches) for v in disk.videos] == [1, 1, 1]
        assert all(v.synopsis == "A episode summary" for v in disk.videos)

        assert reasoning.match_hybrid.call_count == 3
        reasoning.match_story.assert_not_called()
        reasoning.match_episode.assert_not_called()
        assert (
            "  title_t00.mkv: video - Dr. Horrible's Sing-Along Blog (high)"
            in (disc / "BEST_GUESS.txt").read_text()
        )

    def test_unreadable_part_is_left_out(self, make_disc, make_pipeline, reasoning):
        disc = make_disc("HORRIBLE", [(14, HORRIBLE_LINES)] * 4)
        read_captions = pipeline_module.read_captions

        def flaky(path):
            if path.name.startswith("title_t03"):
                raise SubtitleError(f"Cannot read subtitle file {path.name}")
            return read_captions(path)

        with patch.object(pipeline_module, "read_captions", side_effect=flaky):
            disk = make_pipeline(disc, reasoning).run()

        assert disk.videos[3].error == "Cannot read subtitle file title_t03.en.srt"
        assert disk.videos[3].matches == []
        assert disk.status.terminal == Terminal.COMPLETED
        assert reasoning.match_hybrid.call_count == 3

class TestMovieDisc:
    def test_character_evidence_identifies_movie(self, make_disc, make_pipeline):
        disc = make_disc("SERENITY", [(119, SERENITY_LINES)])
        reasoning = fake_reasoning(["Malcolm", "Zoe", "River", "Jayne"])

        disk = make_pipeline(disc, reasoning).run()

        assert disk.status.terminal == Terminal.COMPLETED
        assert disk.pattern == DiskPattern.SINGLE_FEATURE
        assert disk.content_type == ContentType.MOVIE
        assert disk.best_match.external_id == "tt0379786"
        assert disk.best_match.confidence == Confidence.HIGH
        assert disk.videos[0].synopsis == "A movie summary"
        reasoning.match_story.assert_not_called()

        best_guess = (disc / "BEST_GUESS.txt").read_text()
        assert "IMDB ID: tt0379786" in best_guess
        assert "Story Summary:\nA movie summary" in best_guess


class TestUnresolvedDiscs:
    def test_no_subtitles(self, make_disc, make_pipeline):
        disc = make_disc("SERENITY", [(119, None)])

        disk = make_pipeline(disc, fake_reasoning([])).run()

        assert disk.status.terminal == Terminal.UNKNOWN
        assert disk.status.error is None
        assert disk.videos[0].error == "No subtitle track"
        assert (disc / "UNKNOWN.txt").read_text() == "No srt found\n"

    def test_no_candidates(self, make_disc, make_pipeline):
        disc = make_disc("MYSTERY", [(22, OFFICE_LINES)])
        reasoning = fake_reasoning(["Nobody Known"])

        disk = make_pipeline(disc, reasoning).run()

        assert disk.status.terminal == Terminal.UNKNOWN
        assert disk.candidates == []
        assert disk.status.completed_steps == {1, 2, 3, 4}
        assert (disc / "UNKNOWN.txt").read_text() == "No candidates found in title store\n"
        reasoning.summarize.assert_not_called()

    def test_weak_semantic_match_is_unresolved(self, make_disc, make_pipeline):
        disc = make_disc("SERENITY", [(119, SERENITY_LINES)])
        reasoning = fake_reasoning(["River"])
        reasoning.match_story.return_value = {
            "best_match": "tt0379786",
            "confidence": "low",
            "reasoning": "Vague",
        }

        disk = make_pipeline(disc, reasoning).run()

        assert disk.status.terminal == Terminal.UNKNOWN
        assert disk.best_match.score == 40
        assert "threshold" in (disc / "UNKNOWN.txt").read_text()
        assert (disc / "BEST_GUESS.txt").exists()


class TestResume:
    def test_interrupted_run_resumes_to_the_same_record(
        self, tmp_path, make_disc, make_pipeline
    ):
        disc = _office_disc(make_disc, parent=tmp_path / "interrupted")
        crashing = fake_reasoning(OFFICE_CAST)
        crashing.extract_characters.side_effect = RuntimeError("killed")

        with pytest.raises(RuntimeError):
            make_pipeline(disc, crashing).run()

        persisted = StatusStore(disc).load()
        assert persisted.status.completed_steps == {1, 2, 3}
        assert persisted.status.current_step == 3

        with patch.object(
            pipeline_module, "discover_subtitles", wraps=pipeline_module.discover_subtitles
        ) as discover:
            resumed = make_pipeline(disc, fake_reasoning(OFFICE_CAST)).run()
        discover.assert_not_called()

        fresh_disc = _office_disc(make_disc, parent=tmp_path / "fresh")
        fresh = make_pipeline(fresh_disc, fake_reasoning(OFFICE_CAST)).run()

        assert resumed.status.terminal == Terminal.COMPLETED
        assert resumed.model_dump() == fresh.model_dump()
        assert StatusStore(disc).load() == StatusStore(fresh_disc).load()
        assert (disc / "BEST_GUESS.txt").read_text() == (fresh_disc / "BEST_GUESS.txt").read_text()

    def test_completed_disc_is_not_reprocessed(self, make_disc, make_pipeline):
        disc = _office_disc(make_disc)
        make_pipeline(disc, fake_reasoning(OFFICE_CAST)).run()

        again = fake_reasoning(OFFICE_CAST)
        disk = make_pipeline(disc, again).run()

        assert disk.status.terminal == Terminal.COMPLETED
        again.extract_characters.assert_not_called()

    def test_restart_discards_previous_outcome(self, make_disc, make_pipeline):
        disc = make_disc("MYSTERY", [(22, OFFICE_LINES)])
        make_pipeline(disc, fake_reasoning(["Nobody Known"])).run()
        assert (disc / "UNKNOWN.txt").exists()

        reasoning = fake_reasoning(["Nobody Known"])
        disk = make_pipeline(disc, reasoning).run(restart=True)

        reasoning.extract_characters.assert_called_once()
        assert disk.status.terminal == Terminal.UNKNOWN
