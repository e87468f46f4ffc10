"""
Pipeline stage/step structure for one build.

Two capability levels exist on Jenkins servers:

  1. ``wfapi/describe`` (Pipeline Stage View plugin): full stages with their
     step flow nodes, timings and step errors.
  2. Plain build metadata: no stage data at all.  If the build's actions
     show a flow execution we report one "Build Execution" stage, otherwise
     a single generic "Build" stage.

Callers always get at least one stage for an existing build.  Which of the
three views was produced is explicit in the result type.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .client import JenkinsClient
from .errors import ButlerError, ProtocolViolation, StageResolutionError
from .models import StageNode, StepError, StepNode
from .paths import build_url, join_job_path, parse_job_path

logger = logging.getLogger(__name__)

_FLOW_MARKERS = ("FlowGraphAction", "FlowExecutionList")

EXECUTION_STAGE_NAME = "Build Execution"
GENERIC_STAGE_NAME = "Build"


@dataclass(frozen=True)
class RichStages:
    stages: tuple[StageNode, ...]


@dataclass(frozen=True)
class DegradedSingleStage:
    stage: StageNode

    @property
    def stages(self) -> tuple[StageNode, ...]:
        return (self.stage,)


@dataclass(frozen=True)
class GenericSingleStage:
    stage: StageNode

    @property
    def stages(self) -> tuple[StageNode, ...]:
        return (self.stage,)


StageResult = RichStages | DegradedSingleStage | GenericSingleStage


def _step(raw: dict) -> StepNode:
    error = raw.get("error")
    return StepNode(
        id=str(raw.get("id") or ""),
        name=raw.get("name") or "Unknown",
        status=raw.get("status") or "UNKNOWN",
        start_time_ms=raw.get("startTimeMillis"),
        duration_ms=raw.get("durationMillis"),
        pause_duration_ms=raw.get("pauseDurationMillis"),
        error=StepError(error.get("message") or "", error.get("type") or "") if isinstance(error, dict) else None,
    )


def parse_describe(data: object) -> tuple[StageNode, ...]:
    """Stages from a ``wfapi/describe`` payload.

    Raises ProtocolViolation when the payload does not have the expected shape.
    """
    if not isinstance(data, dict) or not isinstance(data.get("stages"), list):
        raise ProtocolViolation("describe payload has no 'stages' list")
    stages = []
    for raw in data["stages"]:
        if not isinstance(raw, dict):
            raise ProtocolViolation(f"stage entry is not an object: {raw!r}")
        flow_nodes = raw.get("stageFlowNodes") or []
        if not isinstance(flow_nodes, list) or not all(isinstance(fn, dict) for fn in flow_nodes):
            raise ProtocolViolation(f"malformed stageFlowNodes in stage {raw.get('name')!r}")
        stages.append(StageNode(
            id=str(raw.get("id") or ""),
            name=raw.get("name") or "Unknown",
            status=raw.get("status") or "UNKNOWN",
            start_time_ms=raw.get("startTimeMillis"),
            duration_ms=raw.get("durationMillis"),
            pause_duration_ms=raw.get("pauseDurationMillis"),
            steps=tuple(_step(fn) for fn in flow_nodes),
        ))
    return tuple(stages)


def has_flow_marker(build: dict) -> bool:
    """True when one of the build's actions belongs to a flow (pipeline) execution."""
    for action in build.get("actions") or []:
        cls = action.get("_class") if isinstance(action, dict) else None
        if cls and any(marker in cls for marker in _FLOW_MARKERS):
            return True
    return False


def _single_stage(name: str, build: dict) -> StageNode:
    status = build.get("result") or ("IN_PROGRESS" if build.get("building") else "UNKNOWN")
    return StageNode(
        id="1",
        name=name,
        status=status,
        start_time_ms=build.get("timestamp"),
        duration_ms=build.get("duration"),
    )


def select_stage_view(describe: tuple[StageNode, ...] | None, build: dict | None) -> StageResult:
    """Pick the stage view from what the server provided.

    *describe* is the parsed rich payload (None when that endpoint failed or
    had no stages); *build* is the basic build metadata, only consulted when
    *describe* is unusable.
    """
    if describe:
        return RichStages(describe)
    if build is None:
        raise ValueError("build metadata is required when no rich stage data is available")
    if has_flow_marker(build):
        return DegradedSingleStage(_single_stage(EXECUTION_STAGE_NAME, build))
    return GenericSingleStage(_single_stage(GENERIC_STAGE_NAME, build))


def _try_describe(client: JenkinsClient, path: tuple[str, ...], build_number: int) -> tuple[StageNode, ...] | None:
    try:
        return parse_describe(client.get(build_url(path, build_number, "wfapi/describe")).data)
    except ButlerError as exc:
        logger.debug(
            "wfapi unavailable for %s #%d, falling back to build metadata: %s",
            join_job_path(path), build_number, exc,
        )
        return None


def resolve_stages(client: JenkinsClient, job: str | Sequence[str], build_number: int) -> StageResult:
    path = parse_job_path(job)
    describe = _try_describe(client, path, build_number)
    if describe:
        return select_stage_view(describe, None)

    try:
        build = client.get(build_url(path, build_number)).data
        if not isinstance(build, dict):
            raise ProtocolViolation("build metadata is not a JSON object")
    except ButlerError as exc:
        raise StageResolutionError(join_job_path(path), build_number, str(exc)) from exc
    return select_stage_view(None, build)


def get_stages(client: JenkinsClient, job: str | Sequence[str], build_number: int) -> list[StageNode]:
    """Stages of a build; never empty for an existing build."""
    return list(resolve_stages(client, job, build_number).stages)
