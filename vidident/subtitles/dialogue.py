"""Subtitle discovery and dialogue files on disk.

A disc directory holds ``<base>.mkv`` videos with extracted subtitles beside
them as ``<base>.srt``, ``<base>.<lang>.srt`` or ``<base>.trackN.srt``.
Dialogue text derived from the chosen track is written next to the video as
``<base>.<lang>.dialogue.txt``, or ``<base>.<lang>.dialogue.<n>.txt`` per
segment when the video was split.
"""

import glob
import re
from collections import defaultdict
from pathlib import Path

from loguru import logger

from vidident.core.errors import StorageError, SubtitleError, error_context
from vidident.subtitles.srt import detect_language, read_captions

_LANG_SUFFIX_RE = re.compile(r"^(?P<base>.+?)\.(?P<tag>[A-Za-z]{2,3}|track\d+)$")
_LANGUAGE_ALIASES = {"en": "eng", "es": "spa", "fr": "fra", "de": "deu", "pt": "por", "it": "ita"}


def split_subtitle_name(srt_path: Path) -> tuple[str, str | None]:
    """Return ``(base, tag)`` for a subtitle file name; tag is a language or ``trackN``."""
    stem = srt_path.stem
    match = _LANG_SUFFIX_RE.match(stem)
    if match:
        return match.group("base"), match.group("tag").lower()
    return stem, None


def normalize_language(code: str) -> str:
    code = code.lower()
    return _LANGUAGE_ALIASES.get(code, code)


def discover_subtitles(disc_dir: Path) -> dict[str, list[tuple[Path, str]]]:
    """Map each video base name to its subtitle files and their languages.

    Every ``.mkv`` gets an entry, possibly empty. Subtitle files whose base
    has no video are still reported so that bare subtitle directories work.
    ``.trackN`` files are assigned a language from their content.
    """
    found: dict[str, list[tuple[Path, str]]] = defaultdict(list)
    for mkv in sorted(disc_dir.glob("*.mkv")):
        found[mkv.stem]

    for srt in sorted(disc_dir.glob("*.srt")):
        if not srt.is_file() or srt.stat().st_size == 0:
            logger.debug(f"Skipping empty subtitle file {srt.name}")
            continue

        base, tag = split_subtitle_name(srt)
        if tag is not None and base not in found and srt.stem in found:
            # dotted video names such as "Dr.Who" carry no language tag
            base, tag = srt.stem, None

        if tag is None:
            language = "und"
        elif tag.startswith("track"):
            try:
                language = detect_language(read_captions(srt))
            except SubtitleError:
                language = "und"
            logger.info(f"Detected language '{language}' for {srt.name}")
        else:
            language = normalize_language(tag)

        found[base].append((srt, language))

    return dict(found)


def pick_preferred_track(
    tracks: list[tuple[Path, str]], preferred_languages: list[str]
) -> tuple[Path, str] | None:
    """English first (or whatever is configured), otherwise the first track."""
    if not tracks:
        return None
    preferred = {normalize_language(code) for code in preferred_languages}
    for track in tracks:
        if track[1] in preferred:
            return track
    return tracks[0]


def dialogue_file_names(base: str, language: str, count: int) -> list[str]:
    if count <= 1:
        return [f"{base}.{language}.dialogue.txt"]
    return [f"{base}.{language}.dialogue.{n}.txt" for n in range(1, count + 1)]


def write_dialogue_files(
    disc_dir: Path, base: str, language: str, segments: list[list[str]]
) -> list[str]:
    """Write one dialogue file per segment and return their names.

    Stale dialogue files of the same video are removed first so a re-run never
    leaves segments of an earlier split behind.

    Raises:
        StorageError: If the disc directory is not writable.
    """
    names = dialogue_file_names(base, language, len(segments))
    with error_context(
        error_types=(OSError,),
        default_message=f"Cannot write dialogue files for {base}",
        wrap_as=StorageError,
    ):
        for stale in disc_dir.glob(f"{glob.escape(base)}.*.dialogue*.txt"):
            stale.unlink()
        for name, lines in zip(names, segments):
            text = "\n".join(lines) + ("\n" if lines else "")
            (disc_dir / name).write_text(text, encoding="utf-8")
    logger.debug(f"Wrote {len(names)} dialogue file(s) for {base}")
    return names


def read_dialogue(disc_dir: Path, names: list[str], max_lines: int | None = None) -> str:
    """Concatenate dialogue files, keeping at most ``max_lines`` lines."""
    lines: list[str] = []
    for name in names:
        path = disc_dir / name
        if path.exists():
            lines.extend(path.read_text(encoding="utf-8").splitlines())
    if max_lines is not None:
        lines = lines[:max_lines]
    return "\n".join(lines)
