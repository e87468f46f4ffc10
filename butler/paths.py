"""Translate logical job paths into Jenkins URL paths and back.

Jenkins nests folders by repeating the ``job`` token:
  'team/service' -> '/job/team/job/service'
  ''             -> ''  (root; its API endpoint is '/api/json')

Each segment is URL-encoded so spaces, '#', '%' etc. survive and the mapping
stays injective.
"""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import quote, unquote, urlsplit

from .errors import InvalidPathError

JobPath = tuple[str, ...]

DELIMITER = "/"
_JOB_TOKEN = "job"


def parse_job_path(value: str | Sequence[str]) -> JobPath:
    """Split a slash-delimited job name into segments.

    Accepts an already split sequence too.  The empty string is the root.
    """
    if isinstance(value, str):
        if value == "":
            return ()
        segments = tuple(value.split(DELIMITER))
        if any(seg == "" for seg in segments):
            raise InvalidPathError(value)
        return segments

    segments = tuple(value)
    for seg in segments:
        if seg == "":
            raise InvalidPathError(DELIMITER.join(segments))
        if DELIMITER in seg:
            raise InvalidPathError(
                DELIMITER.join(segments), f"segment {seg!r} contains '{DELIMITER}'",
            )
    return segments


def join_job_path(path: Sequence[str]) -> str:
    """Display form of a job path ('team/service')."""
    return DELIMITER.join(path)


def encode_job_path(path: str | Sequence[str]) -> str:
    segments = parse_job_path(path)
    return "".join(f"/{_JOB_TOKEN}/{quote(seg, safe='')}" for seg in segments)


def api_url(path: str | Sequence[str], suffix: str = "api/json") -> str:
    """URL of a Jenkins endpoint below a job (or the root when *path* is empty)."""
    return f"{encode_job_path(path)}/{suffix}"


def build_url(path: str | Sequence[str], build_number: int, suffix: str = "api/json") -> str:
    return f"{encode_job_path(path)}/{build_number}/{suffix}"


def decode_job_url(url: str) -> JobPath:
    """Recover the logical job path from a Jenkins job URL.

    Accepts absolute URLs ('https://ci/job/a/job/b/') as well as bare paths.
    Anything after the last ``job/<name>`` pair (build number, 'api/json', ...)
    is ignored.
    """
    parts = [p for p in urlsplit(url).path.split("/") if p]
    segments: list[str] = []
    i = 0
    while i + 1 < len(parts) and parts[i] == _JOB_TOKEN:
        segments.append(unquote(parts[i + 1]))
        i += 2
    return tuple(segments)
