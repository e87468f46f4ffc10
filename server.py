"""
Butler CI MCP Server

A Model Context Protocol server exposing the butler core: walk the Jenkins
folder/job tree, query a job's builds, read pipeline stages and read or follow
build console output.

Transport: Streamable HTTP by default (MCP_TRANSPORT=http, host 0.0.0.0, port 8000).
           Set MCP_TRANSPORT=stdio to use stdio instead (e.g. for Cursor/Claude Desktop).
Logs:      All application logs go to stderr to avoid corrupting the JSON-RPC stream.
"""

import logging
import os
import sys
import threading
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastmcp import FastMCP

from butler import builds, jobs, logstream, stages, tree
from butler.client import JenkinsClient
from butler.config import JenkinsConfig
from butler.errors import (
    ButlerError,
    InvalidPathError,
    NotFoundError,
    OperationError,
    ProtocolViolation,
    TransportError,
)
from butler.models import BuildQuery, JobParameter, LogChunk, StreamEnd, TreeNode

load_dotenv()

# Route all library and application logs to stderr, never stdout.
logging.basicConfig(
    stream=sys.stderr,
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("butler-mcp")

_TREE_WORKERS = int(os.getenv("BUTLER_TREE_WORKERS", "4"))
_MAX_LOG_CHARS = 200_000
_MAX_FOLLOW_SECONDS = 600

mcp = FastMCP(
    "Butler CI",
    instructions=(
        "You are a Jenkins CI assistant. "
        "Use list_job_tree or find_jobs to discover job full names (folder/sub/job). "
        "Use list_builds to pick build numbers, get_build_info for one build's "
        "details, get_build_stages to see where a pipeline build is, get_build_log "
        "for a finished build's output, follow_build_log to watch a running build "
        "and stop_build to abort one. Every build_number argument "
        "also accepts 'latest'."
    ),
)

_client: JenkinsClient | None = None
_client_lock = threading.Lock()


def _get_client() -> JenkinsClient:
    global _client
    with _client_lock:
        if _client is None:
            _client = JenkinsClient(JenkinsConfig.from_env())
        return _client


def _handle_error(exc: Exception, context: str) -> str:
    """Convert butler exceptions into readable strings for the AI."""
    logger.debug("%s failed", context, exc_info=exc)
    status = None
    if isinstance(exc, TransportError):
        status = exc.status_code
    elif isinstance(exc, OperationError):
        status = exc.status_code

    if isinstance(exc, InvalidPathError):
        return f"[{context}] {exc}. Use folder/sub/job with no empty segments."
    if isinstance(exc, NotFoundError) or status == 404:
        return f"[{context}] Not found (404). Verify the job name and build number: {exc}"
    if status in (401, 403):
        return f"[{context}] Authentication failed ({status}). Check JENKINS_USER and JENKINS_TOKEN."
    if isinstance(exc, ProtocolViolation):
        return f"[{context}] Unexpected response from Jenkins: {exc}"
    if isinstance(exc, (ButlerError, ValueError)):
        return f"[{context}] {exc}"
    return f"[{context}] Unexpected error: {exc}"


def _format_ts(ts: int | None) -> str:
    if not ts:
        return "unknown"
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _parse_date(value: str) -> datetime | None:
    """ISO date or datetime; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date {value!r}; use ISO format like 2024-05-01 or 2024-05-01T13:00") from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _format_tree(nodes: list[TreeNode]) -> list[str]:
    lines = []
    for n in nodes:
        indent = "  " * (n.depth + 1)
        if n.is_folder:
            lines.append(f"{indent}📁 {n.name}/")
        else:
            lines.append(f"{indent}{n.name:<40} {n.color or '-':<14} {n.full_name}")
    return lines


def _format_parameter(p: JobParameter) -> str:
    line = f"  {p.name} ({p.type}) default={p.default!r}"
    if p.choices:
        line += f" choices={list(p.choices)}"
    if p.description:
        line += f" - {p.description}"
    return line


def _tail(text: str, limit: int = _MAX_LOG_CHARS) -> str:
    if len(text) <= limit:
        return text
    return f"[LOG TRUNCATED: showing last {limit} characters]\n" + text[-limit:]


# ---------------------------------------------------------------------------
# Discovery Tools
# ---------------------------------------------------------------------------


@mcp.tool
def list_job_tree(folder: str = "", jobs_only: bool = False) -> str:
    """Recursively list folders and jobs below a folder (or the Jenkins root).

    Args:
        folder: Folder path (empty = Jenkins root).
        jobs_only: Only list jobs, not folders.
    """
    try:
        walker = tree.walk_jobs_only if jobs_only else tree.walk
        nodes = walker(_get_client(), folder, max_workers=_TREE_WORKERS)
    except Exception as exc:
        return _handle_error(exc, "list_job_tree")

    if not nodes:
        return f"No items found in '{folder or '(root)'}' (empty, or the folder could not be read)."

    n_folders = sum(1 for n in nodes if n.is_folder)
    lines = [f"Items in '{folder or '(root)'}' ({len(nodes) - n_folders} jobs, {n_folders} folders):\n"]
    lines.extend(_format_tree(nodes))
    return "\n".join(lines)


@mcp.tool
def find_jobs(term: str) -> str:
    """Find jobs anywhere in the tree whose name contains a search term.

    Args:
        term: Case-insensitive substring.
    """
    try:
        nodes = tree.find_jobs_by_name(_get_client(), term, max_workers=_TREE_WORKERS)
    except Exception as exc:
        return _handle_error(exc, "find_jobs")

    if not nodes:
        return f"No jobs matching '{term}'."
    lines = [f"Jobs matching '{term}' ({len(nodes)}):\n"]
    lines.extend(f"  {n.full_name:<60} {n.color or '-'}" for n in nodes)
    return "\n".join(lines)


@mcp.tool
def get_job_info(job_name: str) -> str:
    """Summary of a job: buildable flag, last build and health.

    Args:
        job_name: Job full name (folder/sub/job).
    """
    try:
        data = jobs.get_job_info(_get_client(), job_name)
    except Exception as exc:
        return _handle_error(exc, "get_job_info")

    last = data.get("lastBuild") or {}
    health = data.get("healthReport") or []
    lines = [
        f"Job:         {data.get('fullName') or job_name}",
        f"URL:         {data.get('url', '')}",
        f"Buildable:   {data.get('buildable', False)}",
        f"Color:       {data.get('color') or '-'}",
        f"Last build:  #{last['number']}" if last.get("number") else "Last build:  never",
    ]
    if health:
        lines.append(f"Health:      {health[0].get('description', '')}")
    return "\n".join(lines)


@mcp.tool
def get_job_parameters(job_name: str) -> str:
    """Parameters a job declares (name, type, default, choices).

    Args:
        job_name: Job full name.
    """
    try:
        params = jobs.get_job_parameters(_get_client(), job_name)
    except Exception as exc:
        return _handle_error(exc, "get_job_parameters")

    if not params:
        return f"Job '{job_name}' takes no parameters."
    lines = [f"Parameters of {job_name}:\n"]
    lines.extend(_format_parameter(p) for p in params)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Build Tools
# ---------------------------------------------------------------------------


@mcp.tool
def list_builds(
    job_name: str,
    status: str = "",
    since: str = "",
    until: str = "",
    offset: int = 0,
    limit: int = 50,
    sort_by: str = "number",
    order: str = "desc",
) -> str:
    """List a job's builds with filtering, sorting and paging.

    Args:
        job_name: Job full name.
        status: SUCCESS, FAILURE, UNSTABLE, ABORTED, NOT_BUILT or RUNNING.
        since: Only builds started at/after this ISO date.
        until: Only builds started at/before this ISO date.
        offset: Number of matching builds to skip.
        limit: Maximum builds to return (default 50).
        sort_by: "number" or "timestamp".
        order: "asc" or "desc".
    """
    try:
        query = BuildQuery(
            status=status or None,
            start_time=_parse_date(since),
            end_time=_parse_date(until),
            offset=offset,
            limit=limit,
            sort_key=sort_by,
            sort_order=order,
        )
        records = builds.get_builds(_get_client(), job_name, query)
    except Exception as exc:
        return _handle_error(exc, "list_builds")

    if not records:
        return f"No builds of '{job_name}' match the given criteria."

    lines = [f"Builds of {job_name} ({len(records)} shown, offset {offset}):\n"]
    lines.append(f"  {'#':<8} {'Status':<12} {'Duration':>10}  {'Started'}")
    lines.append(f"  {'-'*8} {'-'*12} {'-'*10}  {'-'*20}")
    for b in records:
        lines.append(
            f"  {b.number:<8} {b.status:<12} {b.duration_ms / 1000:>9.1f}s  {_format_ts(b.timestamp)}"
        )
    return "\n".join(lines)


def _build_details(client: JenkinsClient, job_name: str, build_number: str) -> str:
    number = builds.resolve_build_number(client, job_name, build_number)
    record = builds.get_build_info(client, job_name, number)
    job = jobs.get_job_info(client, job_name)

    title = record.full_display_name or f"{job_name} #{number}"
    duration = "still running" if record.building else f"{record.duration_ms / 1000:.1f}s"
    lines = [
        f"Build:       {title}",
        f"Job:         {job.get('fullName') or job_name}",
        f"Status:      {record.status}",
        f"Started:     {_format_ts(record.timestamp)}",
        f"Duration:    {duration}",
        f"URL:         {record.url or '-'}",
    ]
    if record.display_name and record.display_name != f"#{number}":
        lines.append(f"Name:        {record.display_name}")
    if record.description:
        lines.append(f"Description: {record.description}")
    return "\n".join(lines)


@mcp.tool
def get_build_info(job_name: str, build_number: str = "latest") -> str:
    """Details of one build: status, start time, duration, display name and description.

    Args:
        job_name: Job full name.
        build_number: Build number or "latest".
    """
    try:
        return _build_details(_get_client(), job_name, build_number)
    except Exception as exc:
        return _handle_error(exc, "get_build_info")


@mcp.tool
def get_build_stages(job_name: str, build_number: str = "latest") -> str:
    """Pipeline stages and steps of a build, with status, duration and step errors.
    Non-pipeline builds are shown as a single stage.

    Args:
        job_name: Job full name.
        build_number: Build number or "latest".
    """
    try:
        client = _get_client()
        number = builds.resolve_build_number(client, job_name, build_number)
        result = stages.resolve_stages(client, job_name, number)
    except Exception as exc:
        return _handle_error(exc, "get_build_stages")

    lines = [f"Stages for {job_name} #{number}:\n"]
    if not isinstance(result, stages.RichStages):
        lines.append("  (stage view unavailable; showing the build as a single stage)\n")
    for i, s in enumerate(result.stages, 1):
        lines.append(f"  {i}. {s.name:<30} {s.status:<15} {(s.duration_ms or 0) / 1000:>9.1f}s")
        for step in s.steps:
            lines.append(f"       - {step.name:<40} {step.status:<12} {(step.duration_ms or 0) / 1000:.1f}s")
            if step.error:
                lines.append(f"         error: {step.error.message} ({step.error.kind})")
    return "\n".join(lines)


@mcp.tool
def get_build_log(job_name: str, build_number: str = "latest") -> str:
    """Full console output of a build (tail-truncated when very large).

    Args:
        job_name: Job full name.
        build_number: Build number or "latest".
    """
    try:
        client = _get_client()
        number = builds.resolve_build_number(client, job_name, build_number)
        text = builds.get_console_text(client, job_name, number)
    except Exception as exc:
        return _handle_error(exc, "get_build_log")

    if not text.strip():
        return f"Build {job_name} #{number} has no console output."
    return _tail(text)


def _collect_stream(streamer: logstream.LogStreamer, max_seconds: float) -> tuple[str, StreamEnd]:
    """Drain a streamer into one string, cancelling it after *max_seconds*."""
    timer = threading.Timer(max_seconds, streamer.cancel)
    timer.daemon = True
    timer.start()
    parts: list[str] = []
    end = StreamEnd()
    try:
        for event in streamer.events():
            if isinstance(event, LogChunk):
                parts.append(event.text)
            else:
                end = event
    finally:
        timer.cancel()
        streamer.cancel()
    return "".join(parts), end


@mcp.tool
def follow_build_log(
    job_name: str,
    build_number: str = "latest",
    max_wait_seconds: int = 60,
    poll_interval: float = 0,
) -> str:
    """Follow a running build's console output until it finishes or the wait expires.

    Args:
        job_name: Job full name.
        build_number: Build number or "latest".
        max_wait_seconds: Stop following after this many seconds (max 600).
        poll_interval: Seconds between polls (0 = JENKINS_POLL_INTERVAL).
    """
    max_wait = max(1, min(max_wait_seconds, _MAX_FOLLOW_SECONDS))
    try:
        client = _get_client()
        number = builds.resolve_build_number(client, job_name, build_number)
        interval = poll_interval if poll_interval > 0 else client.config.poll_interval
        streamer = logstream.LogStreamer(client, job_name, number, interval)
        text, end = _collect_stream(streamer, max_wait)
    except Exception as exc:
        return _handle_error(exc, "follow_build_log")

    if end.cancelled:
        footer = f"\n[Stopped following after {max_wait}s; build still running. Last status: {end.result}]"
    else:
        footer = f"\n[Build finished: {end.result}]"
    return _tail(text) + footer


@mcp.tool
def trigger_build(job_name: str, parameters: dict[str, str] | None = None) -> str:
    """Queue a build of a job, optionally with parameters.

    Args:
        job_name: Job full name.
        parameters: Parameter name -> value (uses buildWithParameters when given).
    """
    try:
        location = jobs.trigger_build(_get_client(), job_name, parameters)
    except Exception as exc:
        return _handle_error(exc, "trigger_build")
    if location:
        return f"Build of {job_name} queued: {location}"
    return f"Build of {job_name} queued (Jenkins did not return a queue location)."


def _stop_build(client: JenkinsClient, job_name: str, build_number: str) -> str:
    number = builds.resolve_build_number(client, job_name, build_number)
    if builds.abort_build(client, job_name, number):
        return f"Stop requested for {job_name} #{number}. It will show as ABORTED once Jenkins stops it."
    return f"Build {job_name} #{number} is not running; only running builds can be stopped."


@mcp.tool
def stop_build(job_name: str, build_number: str) -> str:
    """Abort a running build.

    Args:
        job_name: Job full name.
        build_number: Build number or "latest".
    """
    try:
        return _stop_build(_get_client(), job_name, build_number)
    except Exception as exc:
        return _handle_error(exc, "stop_build")


def main() -> None:
    transport = os.getenv("MCP_TRANSPORT", "http")
    host = os.getenv("MCP_HOST", "0.0.0.0")
    port = int(os.getenv("MCP_PORT", "8000"))

    if transport == "stdio":
        mcp.run(transport="stdio", show_banner=False)
    else:
        print(
            f"Butler CI MCP server starting\n"
            f"  Local:    http://127.0.0.1:{port}/mcp",
            file=sys.stderr,
        )
        mcp.run(transport=transport, host=host, port=port, show_banner=False)


if __name__ == "__main__":
    main()
