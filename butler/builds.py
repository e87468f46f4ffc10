"""
Build history queries: fetch, filter, sort and page a job's builds.

Jenkins returns every retained build in a single ``tree=builds[...]`` call,
so filtering, ordering and paging all happen client-side in a fixed order:
status -> start time -> end time -> sort -> slice.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from operator import attrgetter

from .client import JenkinsClient
from .errors import (
    BuildActionError,
    BuildQueryError,
    ButlerError,
    LogRetrievalError,
    ProtocolViolation,
    TransportError,
)
from .models import BuildQuery, BuildRecord, SortKey, SortOrder
from .paths import api_url, build_url, encode_job_path, join_job_path, parse_job_path

logger = logging.getLogger(__name__)

RUNNING = "RUNNING"

_BUILD_FIELDS = "number,url,result,timestamp,duration,building,displayName,fullDisplayName,description"


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _parse_records(raw: object, job: str) -> list[BuildRecord]:
    if not isinstance(raw, list):
        raise ProtocolViolation(f"'builds' of {job} is not a list")
    try:
        return [BuildRecord.from_json(b) for b in raw]
    except (KeyError, TypeError, AttributeError) as exc:
        raise ProtocolViolation(f"Malformed build entry for {job}: {exc}") from exc


def filter_builds(builds: Sequence[BuildRecord], query: BuildQuery) -> list[BuildRecord]:
    """Status, then start-time, then end-time filtering (bounds are inclusive)."""
    result = list(builds)

    if query.status:
        wanted = query.status.upper()
        if wanted == RUNNING:
            result = [b for b in result if b.building]
        else:
            result = [b for b in result if (b.result or "").upper() == wanted]

    if query.start_time is not None:
        lower = _epoch_ms(query.start_time)
        result = [b for b in result if b.timestamp >= lower]

    if query.end_time is not None:
        upper = _epoch_ms(query.end_time)
        result = [b for b in result if b.timestamp <= upper]

    if query.branch:
        # Needs per-build parameters or changeSets; accepted but not applied.
        logger.debug("Branch filter %r is not supported and was ignored", query.branch)

    return result


def sort_and_page(builds: Sequence[BuildRecord], query: BuildQuery) -> list[BuildRecord]:
    field = "timestamp" if query.sort_key is SortKey.TIMESTAMP else "number"
    # sorted() is stable, so ties keep server order in both directions.
    ordered = sorted(builds, key=attrgetter(field), reverse=query.sort_order is SortOrder.DESC)
    return ordered[query.offset:query.offset + query.limit]


def get_builds(
    client: JenkinsClient, job: str | Sequence[str], query: BuildQuery | None = None,
) -> list[BuildRecord]:
    """Builds of *job* matching *query*, sorted and paged.

    A job that never ran yields an empty list.
    """
    query = query or BuildQuery()
    path = parse_job_path(job)
    name = join_job_path(path)
    try:
        data = client.get(api_url(path), params={"tree": f"builds[{_BUILD_FIELDS}]"}).data
        if not isinstance(data, dict):
            raise ProtocolViolation(f"Build listing of {name} is not a JSON object")
        builds = _parse_records(data.get("builds") or [], name)
    except ButlerError as exc:
        raise BuildQueryError(name, detail=str(exc)) from exc

    matched = filter_builds(builds, query)
    page = sort_and_page(matched, query)
    logger.debug(
        "%s: %d builds, %d after filters, returning %d", name, len(builds), len(matched), len(page),
    )
    return page


def get_build_info(client: JenkinsClient, job: str | Sequence[str], build_number: int) -> BuildRecord:
    """Snapshot of a single build."""
    path = parse_job_path(job)
    name = join_job_path(path)
    try:
        data = client.get(build_url(path, build_number), params={"tree": _BUILD_FIELDS}).data
        if not isinstance(data, dict) or "number" not in data:
            raise ProtocolViolation(f"Malformed build payload for {name} #{build_number}")
        return BuildRecord.from_json(data)
    except ButlerError as exc:
        raise BuildQueryError(name, build_number, str(exc)) from exc


def get_last_build(client: JenkinsClient, job: str | Sequence[str]) -> BuildRecord | None:
    """The most recent build, or None when the job has never run."""
    path = parse_job_path(job)
    name = join_job_path(path)
    try:
        data = client.get(api_url(path), params={"tree": f"lastBuild[{_BUILD_FIELDS}]"}).data
        last = data.get("lastBuild") if isinstance(data, dict) else None
        if last and (not isinstance(last, dict) or "number" not in last):
            raise ProtocolViolation(f"Malformed lastBuild entry for {name}")
    except ButlerError as exc:
        raise BuildQueryError(name, detail=str(exc)) from exc
    return BuildRecord.from_json(last) if last else None


def resolve_build_number(client: JenkinsClient, job: str | Sequence[str], build: int | str) -> int:
    """Turn 'latest' (or a numeric string) into a concrete build number."""
    if isinstance(build, int):
        return build
    if build.strip().lower() == "latest":
        last = get_last_build(client, job)
        if last is None:
            raise BuildQueryError(join_job_path(parse_job_path(job)), detail="job has no build history")
        return last.number
    try:
        return int(build)
    except ValueError:
        raise ValueError(f"Build must be a number or 'latest', got {build!r}") from None


def get_console_text(client: JenkinsClient, job: str | Sequence[str], build_number: int) -> str:
    """The full console log of a build in one request."""
    path = parse_job_path(job)
    try:
        return client.get(f"{encode_job_path(path)}/{build_number}/consoleText", text=True).data or ""
    except TransportError as exc:
        raise LogRetrievalError(join_job_path(path), build_number, str(exc)) from exc


def abort_build(client: JenkinsClient, job: str | Sequence[str], build_number: int) -> bool:
    """Ask Jenkins to stop a running build.

    Returns False without sending anything when the build has already
    finished; only running builds can be stopped.
    """
    path = parse_job_path(job)
    name = join_job_path(path)
    if not get_build_info(client, path, build_number).building:
        logger.debug("%s #%d already finished, nothing to stop", name, build_number)
        return False
    try:
        client.post(f"{encode_job_path(path)}/{build_number}/stop")
    except TransportError as exc:
        raise BuildActionError(name, build_number, f"stop request failed: {exc}") from exc
    logger.debug("Requested stop of %s #%d", name, build_number)
    return True
