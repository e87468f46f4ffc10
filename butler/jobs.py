"""Job-level lookups: metadata, declared parameters, and triggering a build."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .client import JenkinsClient
from .errors import BuildActionError, ButlerError, JobQueryError, ProtocolViolation, TransportError
from .models import JobParameter
from .paths import api_url, encode_job_path, join_job_path, parse_job_path

logger = logging.getLogger(__name__)

_PARAMETER_TYPES = {
    "StringParameterDefinition": "string",
    "BooleanParameterDefinition": "boolean",
    "ChoiceParameterDefinition": "choice",
    "PasswordParameterDefinition": "password",
    "TextParameterDefinition": "text",
    "FileParameterDefinition": "file",
}


def get_job_info(client: JenkinsClient, job: str | Sequence[str]) -> dict:
    """Raw job JSON (``buildable``, ``lastBuild``, ``property``, ...)."""
    path = parse_job_path(job)
    try:
        data = client.get(api_url(path)).data
        if not isinstance(data, dict):
            raise ProtocolViolation("job payload is not a JSON object")
    except ButlerError as exc:
        raise JobQueryError(join_job_path(path), detail=str(exc)) from exc
    return data


def _parameter_type(class_name: str) -> str:
    if not class_name:
        return "unknown"
    for suffix, kind in _PARAMETER_TYPES.items():
        if suffix in class_name:
            return kind
    return class_name.rsplit(".", 1)[-1] or "unknown"


def _default_value(param: dict) -> Any:
    default = param.get("defaultParameterValue") or {}
    if "BooleanParameterDefinition" in (param.get("_class") or ""):
        value = default.get("value")
        return False if value is None else value
    return default.get("value")


def get_job_parameters(client: JenkinsClient, job: str | Sequence[str]) -> list[JobParameter]:
    """Parameters the job declares, or an empty list for unparameterised jobs."""
    data = get_job_info(client, job)
    prop = next(
        (p for p in data.get("property") or []
         if isinstance(p, dict) and "ParametersDefinitionProperty" in (p.get("_class") or "")),
        None,
    )
    if not prop:
        return []

    params = []
    for p in prop.get("parameterDefinitions") or []:
        kind = _parameter_type(p.get("_class") or "")
        choices = p.get("choices") if kind == "choice" else None
        params.append(JobParameter(
            name=p.get("name", ""),
            type=kind,
            description=p.get("description") or None,
            default=_default_value(p),
            choices=tuple(choices) if choices else None,
        ))
    return params


def trigger_build(
    client: JenkinsClient, job: str | Sequence[str], parameters: Mapping[str, Any] | None = None,
) -> str:
    """Queue a build; returns the queue item URL from the ``Location`` header ('' if absent)."""
    path = parse_job_path(job)
    try:
        if parameters:
            reply = client.post(
                f"{encode_job_path(path)}/buildWithParameters",
                data={k: str(v) for k, v in parameters.items()},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        else:
            reply = client.post(f"{encode_job_path(path)}/build")
    except TransportError as exc:
        raise BuildActionError(join_job_path(path), detail=f"trigger failed: {exc}") from exc
    location = reply.headers.get("Location") or reply.headers.get("location") or ""
    logger.debug("Triggered %s, queue item %s", join_job_path(path), location or "(unknown)")
    return location
