"""Client for the language-model reasoning service.

Speaks the OpenAI-compatible ``/chat/completions`` protocol. Calls are
retried a fixed number of times with a fixed delay; a call that still
fails yields an empty or low-confidence result instead of an exception.
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, TypeVar

import requests
from loguru import logger

from vidident.core.errors import ReasoningServiceError
from vidident.core.response_parser import extract_object, extract_string_list, strip_reasoning
from vidident.models import MatchCandidate

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

UNKNOWN_STORY_MATCH = {
    "best_match": None,
    "title": None,
    "confidence": "low",
    "reasoning": "No match found",
}
UNKNOWN_EPISODE_MATCH = {
    "season": None,
    "episode": None,
    "episode_title": None,
    "confidence": "low",
}
UNKNOWN_HYBRID_MATCH = {
    "content_type": "unknown",
    "best_match": None,
    "title": "Unknown",
    "confidence": "low",
    "reasoning": "Failed to parse response",
}


def retry_network_operation(attempts: int = 3, delay: float = 5.0) -> Callable[[F], F]:
    """Decorator for retrying reasoning-service calls with a fixed delay."""

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception: Exception | None = None

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except (requests.RequestException, ReasoningServiceError) as e:
                    last_exception = e
                    if attempt == attempts:
                        logger.error(f"Max attempts ({attempts}) exceeded for {func.__name__}: {e}")
                        break

                    logger.warning(f"Retry {attempt}/{attempts} for {func.__name__}: {e}")
                    time.sleep(delay)

            raise ReasoningServiceError(
                f"{func.__name__} failed after {attempts} attempts: {last_exception}"
            ) from last_exception

        return wrapper  # type: ignore

    return decorator


@dataclass
class EpisodeContext:
    """Positional hints for matching one episode on a disc."""

    season_hint: int | None = None
    disc_number: int | None = None
    position: int | None = None  # 1-based among the disc's episode units
    total: int | None = None
    previous_matches: list[str] = field(default_factory=list)  # "S01E02 - Title"

    def render(self) -> str:
        hints = []
        if self.season_hint is not None:
            hints.append(f"Season hint from disc name: Season {self.season_hint}")
        if self.disc_number is not None:
            hints.append(
                f"Disc number: {self.disc_number} (earlier discs have earlier episodes)"
            )
        if self.position is not None and self.total is not None:
            hints.append(
                f"File position: This is file {self.position} of {self.total} on this disc "
                "(episodes are typically in sequential order on a disc)"
            )
        if self.previous_matches:
            hints.append(
                "Previously matched episodes on this disc (in file order):\n"
                + "\n".join(self.previous_matches)
                + "\nThe next episode should logically follow the sequence."
            )
        return "\n".join(hints)


def format_candidates(candidates: Sequence[MatchCandidate], with_score: bool = False) -> str:
    """Render a shortlist as ``id|title|year|type[|score]`` lines."""
    lines = []
    for c in candidates:
        line = f"{c.external_id}|{c.title}|{c.year or ''}|{c.content_kind}"
        if with_score:
            line += f"|{c.score:.0f}"
        lines.append(line)
    return "\n".join(lines)


class ReasoningClient:
    """Sequential client for the reasoning service."""

    def __init__(self, settings, session: requests.Session | None = None):
        self._settings = settings
        self._session = session or requests.Session()
        self._call = retry_network_operation(settings.llm_max_retries, settings.llm_retry_delay)(
            self._post
        )

    def _post(self, payload: dict, timeout: float) -> str:
        """One chat-completion request; raises on transport errors and empty replies."""
        s = self._settings
        response = self._session.post(
            s.chat_completions_url,
            json=payload,
            timeout=(s.llm_connect_timeout, timeout),
        )
        response.raise_for_status()
        data = response.json()

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ReasoningServiceError(f"Service error: {message}")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise ReasoningServiceError("Empty or invalid response")
        return content

    def generate(
        self,
        prompt: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 4096,
        timeout: float | None = None,
    ) -> str:
        """Send one prompt and return the reply text, or "" on permanent failure.

        ``<think>`` blocks are removed from the reply.
        """
        s = self._settings
        payload = {
            "model": s.llm_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": s.llm_temperature,
        }
        timeout = timeout if timeout is not None else s.llm_timeout
        logger.debug(f"Calling reasoning service ({len(prompt)} chars, timeout {timeout}s)")
        try:
            content = self._call(payload, timeout)
        except ReasoningServiceError as e:
            logger.error(f"Reasoning service call failed: {e}")
            return ""
        return strip_reasoning(content).strip()

    def extract_characters(self, dialogue: str) -> list[str]:
        """Character names mentioned in a dialogue transcript."""
        truncated = "\n".join(dialogue.splitlines()[: self._settings.character_dialogue_lines])
        prompt = (
            "Extract all character names from this dialogue transcript.\n"
            "Return ONLY a valid JSON array of character names, nothing else.\n"
            "Only include actual character names (people, not places or objects).\n"
            'Example format: ["John", "Mary", "Detective Smith"]\n\n'
            f"DIALOGUE:\n{truncated}"
        )
        response = self.generate(
            prompt,
            "You are a character extraction assistant. Extract character names from "
            "dialogue and return them as a JSON array.",
            max_tokens=1024,
            timeout=600,
        )
        parsed = extract_string_list(response)
        if not parsed.ok:
            logger.warning(f"No characters parsed from reply: {parsed.error}")
            return []
        return parsed.value

    def summarize(self, dialogue: str, kind: str = "movie") -> str:
        """Story summary of a movie or an episode from its dialogue."""
        truncated = "\n".join(dialogue.splitlines()[: self._settings.summary_dialogue_lines])
        if kind == "movie":
            system_prompt = "You are a film analyst. Write comprehensive movie summaries."
            prompt = (
                "Write a detailed story summary of this movie based on the dialogue.\n"
                "Include:\n"
                "- Main plot points and story arc\n"
                "- Character arcs and relationships\n"
                "- Key scenes and turning points\n"
                "- Resolution and ending\n"
                "- Themes explored\n\n"
                "Keep the summary under 6000 characters.\n\n"
                f"DIALOGUE:\n{truncated}"
            )
        else:
            system_prompt = "You are a TV episode analyst. Write comprehensive episode summaries."
            prompt = (
                "Write a detailed story summary of this TV episode based on the dialogue.\n"
                "Include:\n"
                "- Episode plot and story arc\n"
                "- Character actions and decisions\n"
                "- Key scenes and conflicts\n"
                "- Resolution (if any)\n\n"
                "Keep the summary under 6000 characters.\n\n"
                f"DIALOGUE:\n{truncated}"
            )
        return self.generate(prompt, system_prompt, max_tokens=4096, timeout=600)

    def match_story(self, summary: str, candidates: Sequence[MatchCandidate]) -> dict:
        """Pick the best shortlist entry for a story summary.

        Returns:
            Dict with best_match, title, year, confidence and reasoning; an
            unknown/low result when the reply cannot be parsed
        """
        prompt = (
            "Given this story summary and list of potential matches, identify the best match.\n\n"
            f"STORY SUMMARY:\n{summary}\n\n"
            "POTENTIAL MATCHES (format: imdb_id|title|year|type):\n"
            f"{format_candidates(candidates)}\n\n"
            "Return a JSON object with these fields:\n"
            "{\n"
            '  "best_match": "imdb_id of best match",\n'
            '  "title": "title of best match",\n'
            '  "year": year,\n'
            '  "confidence": "high" or "medium" or "low",\n'
            '  "reasoning": "brief explanation of why this is the best match"\n'
            "}\n\n"
            "Return ONLY the JSON object, no other text."
        )
        response = self.generate(
            prompt,
            "You are an IMDB matching expert. Match story summaries to movie/TV entries.",
            max_tokens=512,
            timeout=180,
        )
        parsed = extract_object(response, ("best_match",))
        if not parsed.ok:
            logger.warning(f"Story match unparsed: {parsed.error}")
            return dict(UNKNOWN_STORY_MATCH)
        return parsed.value

    def match_episode(
        self,
        summary: str,
        episodes: Sequence[tuple[int | None, int | None, str]],
        context: EpisodeContext | None = None,
    ) -> dict:
        """Pick the episode a summary describes, biased by positional context."""
        context = context or EpisodeContext()
        episode_list = "\n".join(
            f"{season or ''}|{episode or ''}|{title}" for season, episode, title in episodes
        )
        prompt = (
            "Match this TV episode summary to an episode from the list.\n\n"
            f"CONTEXT HINTS:\n{context.render()}\n\n"
            "IMPORTANT: Use the context hints above to help narrow down which episode this is. "
            "Episodes on a disc are typically sequential (e.g., if previous file was E01, this "
            "file is likely E02). Multi-part episodes (Part 1, Part 2) appear on consecutive "
            "files.\n\n"
            f"EPISODE SUMMARY:\n{summary}\n\n"
            f"EPISODE LIST (format: season|episode|title):\n{episode_list}\n\n"
            "Return a JSON object:\n"
            "{\n"
            '  "season": season_number,\n'
            '  "episode": episode_number,\n'
            '  "episode_title": "episode title",\n'
            '  "confidence": "high" or "medium" or "low"\n'
            "}\n\n"
            "Return ONLY the JSON object."
        )
        response = self.generate(
            prompt,
            "You are an episode matching expert. Match summaries to specific episodes. "
            "Pay attention to context hints about disc number and file order.",
            max_tokens=256,
            timeout=180,
        )
        parsed = extract_object(response, ("season", "episode"))
        if not parsed.ok:
            logger.warning(f"Episode match unparsed: {parsed.error}")
            return dict(UNKNOWN_EPISODE_MATCH)
        return parsed.value

    def match_hybrid(
        self,
        summary: str,
        candidates: Sequence[MatchCandidate],
        duration_minutes: int,
        season_hint: int | None = None,
    ) -> dict:
        """Decide between movie and episode candidates for one piece of content."""
        season_line = f"Season hint from disc name: Season {season_hint}\n" if season_hint else ""
        prompt = (
            "Given this story summary and list of potential matches (which includes both movies "
            "and TV series), identify the best match.\n"
            "Determine if this content is more likely a movie or a TV episode based on the "
            f"narrative structure and length ({duration_minutes} minutes).\n"
            f"{season_line}\n"
            f"STORY SUMMARY:\n{summary}\n\n"
            "POTENTIAL MATCHES (format: imdb_id|title|year|type|score):\n"
            f"{format_candidates(candidates, with_score=True)}\n\n"
            "Return a JSON object:\n"
            "{\n"
            '  "content_type": "movie" or "tv_episode" or "tv_special",\n'
            '  "best_match": "imdb_id of best match",\n'
            '  "title": "title of best match",\n'
            '  "year": year,\n'
            '  "season": null or season_number (for TV),\n'
            '  "episode": null or episode_number (for TV),\n'
            '  "confidence": "high" or "medium" or "low",\n'
            '  "reasoning": "brief explanation"\n'
            "}\n\n"
            "Return ONLY the JSON object."
        )
        response = self.generate(
            prompt,
            "You are a content identification expert matching summaries to movies and TV shows.",
            max_tokens=512,
            timeout=180,
        )
        parsed = extract_object(response, ("best_match",))
        if not parsed.ok:
            logger.warning(f"Hybrid match unparsed: {parsed.error}")
            return dict(UNKNOWN_HYBRID_MATCH)
        return parsed.value
