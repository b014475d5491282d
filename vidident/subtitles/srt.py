"""Subtitle file reading for ripped titles.

Detects the encoding of ``.srt`` files with chardet, parses their blocks into
time-ordered captions without watermark or credit lines, guesses the language
of untagged tracks and probes container durations with ffprobe.
"""

import os
import re
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import chardet
from loguru import logger

from vidident.core.errors import SubtitleError, error_context

_TIMESTAMP_RE = re.compile(r"(\d+):(\d{1,2}):(\d{1,2})(?:[,.](\d{1,3}))?")
_TAG_RE = re.compile(r"<[^>]*>|\{\\[^}]*\}")

# Common words per language, used to tag ".trackN" subtitle files
_LANGUAGE_WORDS: dict[str, frozenset[str]] = {
    "eng": frozenset(
        "the you and to is it that of in for have this what with are not but was they we "
        "he she my your can just get know like want think will would there about been were "
        "from more him his our than only back well because".split()
    ),
    "spa": frozenset(
        "que de no es la el en lo un por se con para una los del las al como pero le ya "
        "su todo esta cuando muy sin sobre ser tiene hay puede esto solo yo tu me te nos".split()
    ),
    "fra": frozenset(
        "que de ne pas le la les un une est et en ce il je vous tu nous qui dans pour sur "
        "avec plus tout sont mais elle ont fait bien peut comme sans cette aux lui votre".split()
    ),
    "deu": frozenset(
        "der die das und ist in du ich nicht ein es mit sie auf den zu haben werden wir von "
        "er wird bei sind aus auch als nach wie nur wenn aber noch oder diese kann schon".split()
    ),
    "por": frozenset(
        "que de nao para um uma com em os as por se como eu ele ela nos voce sua seu tem mas "
        "isso foi esta muito bem pode mais quando tudo fazer aqui esse essa meu ter ser".split()
    ),
    "ita": frozenset(
        "che di non la il un una per con sono come ma cosa questo quello lei lui noi loro qui "
        "essere fare bene tutto molto anche ora quando solo perche dove chi quale sempre".split()
    ),
}
_MIN_LANGUAGE_SCORE = 15


@dataclass(frozen=True)
class Caption:
    """One subtitle block."""

    start: float
    end: float
    text: str


def _is_watermark_block(block_text: str, subtitle_start: float) -> bool:
    """Detect subtitle blocks that are watermarks, ads, or non-dialogue annotations.

    Generically identifies watermark content regardless of source by checking for:
    - URLs or domain-like patterns (e.g., www.tvsubtitles.net, opensubtitles.org)
    - Very short credit lines near timestamp 0:00
    """
    stripped = _TAG_RE.sub("", block_text).lower().strip()

    if re.search(r"(?:www\.|https?://|\w+\.(?:com|net|org|io|tv|cc|me)\b)", stripped):
        return True

    # Very short non-dialogue at start (e.g., "sync by", "subtitles by", "corrected by")
    if subtitle_start < 5.0 and len(stripped.split()) <= 8:
        credit_patterns = [
            "sync",
            "subtitles by",
            "corrected by",
            "ripped by",
            "encoded by",
            "transcript by",
            "timing by",
        ]
        if any(p in stripped for p in credit_patterns):
            return True

    return False


def detect_file_encoding(file_path) -> str:
    """Detect the encoding of a file using chardet.

    Args:
        file_path: Path to the file

    Returns:
        Detected encoding, defaults to 'utf-8' if detection fails
    """
    try:
        with open(file_path, "rb") as f:
            raw_data = f.read(min(1024 * 1024, Path(file_path).stat().st_size))
        result = chardet.detect(raw_data)
        encoding = result["encoding"]
        confidence = result["confidence"] or 0.0

        logger.debug(
            f"Detected encoding {encoding} with {confidence:.2%} confidence for {file_path}"
        )
        return encoding if encoding else "utf-8"
    except OSError as e:
        logger.warning(f"Error detecting encoding for {file_path}: {e}")
        return "utf-8"


@lru_cache(maxsize=100)
def read_file_with_fallback(file_path, encodings=None) -> str:
    """Read a file trying multiple encodings in order of preference.

    Args:
        file_path: Path to the file
        encodings: Tuple of encodings to try, defaults to common subtitle encodings

    Returns:
        File contents without a leading byte-order mark

    Raises:
        ValueError: If file cannot be read with any encoding
    """
    if encodings is None:
        detected = detect_file_encoding(file_path)
        encodings = (detected, "utf-8", "latin-1", "cp1252")

    file_path = Path(file_path)
    errors = []

    for encoding in encodings:
        try:
            with open(file_path, encoding=encoding) as f:
                content = f.read()
            logger.debug(f"Successfully read {file_path} using {encoding} encoding")
            return content.lstrip("\ufeff")
        except (UnicodeDecodeError, LookupError) as e:
            errors.append(f"{encoding}: {str(e)}")
            continue

    error_msg = f"Failed to read {file_path} with any encoding. Errors:\n" + "\n".join(errors)
    logger.error(error_msg)
    raise ValueError(error_msg)


def parse_timestamp(timestamp: str) -> float:
    """Parse an SRT timestamp (``HH:MM:SS,mmm``) into seconds."""
    match = _TIMESTAMP_RE.search(timestamp)
    if not match:
        raise ValueError(f"Invalid SRT timestamp: {timestamp!r}")
    hours, minutes, seconds, millis = match.groups()
    fraction = int((millis or "0").ljust(3, "0")) / 1000
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + fraction


def clean_caption_text(text: str) -> str:
    """Strip markup tags and surrounding whitespace from caption text."""
    lines = [_TAG_RE.sub("", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def parse_srt(content: str) -> list[Caption]:
    """Parse SRT content into time-ordered captions, dropping watermark blocks."""
    captions = []
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")

    for block in re.split(r"\n\s*\n", normalized.strip()):
        lines = block.split("\n")
        timing_index = next((i for i, line in enumerate(lines) if "-->" in line), None)
        if timing_index is None:
            continue

        try:
            start_stamp, end_stamp = lines[timing_index].split("-->", 1)
            start = parse_timestamp(start_stamp)
            end = parse_timestamp(end_stamp)
        except ValueError as e:
            logger.warning(f"Error parsing subtitle block: {e}")
            continue

        text = "\n".join(lines[timing_index + 1 :])
        if _is_watermark_block(text, start):
            logger.debug(f"Filtered watermark/ad block at {start:.1f}s: {text[:80]}")
            continue

        captions.append(Caption(start=start, end=max(start, end), text=clean_caption_text(text)))

    captions.sort(key=lambda c: (c.start, c.end))
    return captions


def read_captions(file_path) -> list[Caption]:
    """Read and parse an SRT file with robust encoding handling.

    Raises:
        SubtitleError: If the file cannot be opened or decoded.
    """
    with error_context(
        error_types=(OSError, ValueError),
        default_message=f"Cannot read subtitle file {Path(file_path).name}",
        log_level="warning",
        wrap_as=SubtitleError,
    ):
        content = read_file_with_fallback(str(file_path))
    return parse_srt(content)


def captions_duration(captions: list[Caption]) -> float:
    """Latest caption end time, used when the container duration is unknown."""
    return max((c.end for c in captions), default=0.0)


def detect_language(captions: list[Caption], sample_size: int = 200) -> str:
    """Guess the ISO 639-2 language of a caption track by common-word counts.

    Returns:
        Language code, or "und" when no language reaches the minimum score
    """
    words = re.findall(r"[a-zà-ÿ]+", " ".join(c.text for c in captions[:sample_size]).lower())
    best_lang, best_score = "und", 0
    for lang, vocabulary in _LANGUAGE_WORDS.items():
        score = sum(1 for w in words if w in vocabulary)
        if score > best_score:
            best_lang, best_score = lang, score
    return best_lang if best_score >= _MIN_LANGUAGE_SCORE else "und"


def get_video_duration(video_file: Path) -> float:
    """Get video duration using ffprobe; 0.0 when it cannot be determined."""
    try:
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            os.fspath(video_file),
        ]

        logger.debug(f"Running ffprobe command: {' '.join(cmd)}")

        result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)

        if result.returncode != 0:
            logger.warning(f"ffprobe failed for {video_file}: {result.stderr.strip()}")
            return 0.0

        return float(result.stdout.strip())
    except subprocess.TimeoutExpired:
        logger.error(f"ffprobe timeout for {video_file}")
        return 0.0
    except FileNotFoundError:
        logger.debug("ffprobe not found in PATH")
        return 0.0
    except ValueError as e:
        logger.warning(f"Unreadable ffprobe duration for {video_file}: {e}")
        return 0.0
