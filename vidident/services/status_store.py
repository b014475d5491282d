"""Persistence of a disc's identification record and marker files.

Everything lives in the disc directory:

* ``identification.json`` - the complete DiskRecord including its status
* ``UNKNOWN.txt`` - present iff the disc is routed to manual review
* ``BEST_GUESS.txt`` - human-readable summary of the final identification

The JSON record is never appended to or edited in place: each save writes a
temporary file in the same directory and atomically replaces the old one.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from vidident.core.errors import ConfigurationError, StorageError, error_context
from vidident.models import SYNOPSIS_SKIPPED, ContentType, DiskRecord

logger = logging.getLogger(__name__)

RECORD_FILE = "identification.json"
UNKNOWN_FILE = "UNKNOWN.txt"
BEST_GUESS_FILE = "BEST_GUESS.txt"


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temporary sibling and ``os.replace``.

    Raises:
        StorageError: If the file cannot be written; ``path`` is left untouched.
    """
    with error_context(
        error_types=(OSError,),
        default_message=f"Cannot write {path.name}",
        wrap_as=StorageError,
    ):
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class StatusStore:
    """Reads and writes the identification artifacts of one disc directory."""

    def __init__(self, disc_dir: Path):
        self.disc_dir = Path(disc_dir)

    @property
    def record_path(self) -> Path:
        return self.disc_dir / RECORD_FILE

    @property
    def unknown_path(self) -> Path:
        return self.disc_dir / UNKNOWN_FILE

    @property
    def best_guess_path(self) -> Path:
        return self.disc_dir / BEST_GUESS_FILE

    def load(self) -> DiskRecord | None:
        """Return the persisted record, or None when the disc was never processed.

        Raises:
            ConfigurationError: If the record exists but cannot be decoded.
        """
        if not self.record_path.exists():
            return None
        with error_context(
            error_types=(ValidationError, ValueError),
            default_message=f"Unreadable {RECORD_FILE} (rerun with --restart)",
            wrap_as=ConfigurationError,
        ):
            return DiskRecord.model_validate_json(self.record_path.read_text(encoding="utf-8"))

    def save(self, disk: DiskRecord) -> None:
        atomic_write_text(self.record_path, disk.model_dump_json(indent=2) + "\n")
        logger.debug(
            f"Saved {RECORD_FILE}: step {disk.status.current_step}, "
            f"completed {sorted(disk.status.completed_steps)}"
        )

    def write_unknown(self, reason: str) -> None:
        atomic_write_text(self.unknown_path, reason.strip() + "\n")
        logger.info(f"Marked {self.disc_dir.name} as UNKNOWN: {reason}")

    def write_best_guess(self, disk: DiskRecord) -> None:
        atomic_write_text(self.best_guess_path, render_best_guess(disk))

    def clear(self) -> None:
        """Remove every artifact so the next run starts from scratch."""
        for path in (self.record_path, self.unknown_path, self.best_guess_path):
            if path.exists():
                path.unlink()
                logger.info(f"Removed {path.name}")


def render_best_guess(disk: DiskRecord) -> str:
    """Human-readable identification summary of a disc."""
    best = disk.best_match
    lines = [
        f"BEST_GUESS - {disk.content_type.value.upper()}",
        "=" * 40,
        f"Disc: {disk.name}",
        f"Title hint: {disk.parsed.title or 'none'}",
        f"Season hint: {disk.parsed.season if disk.parsed.season is not None else 'none'}",
        f"Pattern: {disk.pattern.value}",
        "",
    ]
    if best is not None:
        lines += [
            "Best Match:",
            f"  IMDB ID: {best.external_id}",
            f"  Title: {best.title}",
            f"  Year: {best.year or ''}",
            f"  Type: {best.content_kind}",
        ]
        if best.episode_code:
            lines.append(f"  Episode: {best.episode_code}")
        lines += [
            f"  Confidence: {best.confidence.value}",
            "",
            "Reasoning:",
            f"  {best.reasoning}",
            "",
        ]

    if disk.content_type in (ContentType.TV, ContentType.HYBRID):
        lines.append("Episode Matches:")
        for video in disk.videos:
            if video.is_play_all:
                lines.append(f"  {video.file_name}: {SYNOPSIS_SKIPPED}")
                continue
            if not video.matches:
                lines.append(f"  {video.file_name}: no match")
                continue
            for match in video.matches:
                part = f" (part {match.segment})" if match.segment else ""
                code = match.episode_code or match.content_kind
                lines.append(
                    f"  {video.file_name}{part}: {code} - "
                    f"{match.episode_title or match.title} ({match.confidence.value})"
                )
        lines.append("")

    longest = disk.longest_video()
    if disk.content_type == ContentType.MOVIE and longest is not None:
        lines += [
            f"Source File: {longest.file_name}",
            f"Duration: {longest.duration_minutes} minutes",
        ]
        if longest.synopsis:
            lines += ["", "Story Summary:", longest.synopsis]
    return "\n".join(lines).rstrip() + "\n"
