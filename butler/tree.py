"""
Recursive enumeration of the Jenkins folder/job tree.

The walk fetches one listing per folder, level by level, and then merges the
per-folder child lists into a single pre-order (depth-first) sequence.  The
merge makes the output independent of request completion order, so a level
can be fetched with a thread pool without changing the result.

Folders are recognised by an explicit allow-list of ``_class`` names.  Any
class outside that list is treated as a job, which means a folder type from
a plugin we do not know about is listed without its contents.  Classes that
are in neither list are reported with ``UnknownItemClassWarning``.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from .client import JenkinsClient
from .errors import ButlerError
from .models import NodeKind, TreeNode
from .paths import JobPath, api_url, join_job_path, parse_job_path

logger = logging.getLogger(__name__)

FOLDER_CLASSES = frozenset({
    "com.cloudbees.hudson.plugins.folder.Folder",
    "jenkins.branch.OrganizationFolder",
    "org.jenkinsci.plugins.workflow.multibranch.WorkflowMultiBranchProject",
    "hudson.model.Folder",
})

KNOWN_JOB_CLASSES = frozenset({
    "hudson.model.FreeStyleProject",
    "hudson.model.ExternalJob",
    "hudson.matrix.MatrixProject",
    "hudson.maven.MavenModuleSet",
    "org.jenkinsci.plugins.workflow.job.WorkflowJob",
})

_LIST_TREE = "jobs[name,url,color,_class]"


class UnknownItemClassWarning(UserWarning):
    """An item's ``_class`` is neither a known folder nor a known job type."""


def classify(item_class: str) -> NodeKind:
    if item_class in FOLDER_CLASSES:
        return NodeKind.FOLDER
    if item_class not in KNOWN_JOB_CLASSES:
        warnings.warn(
            f"Unrecognised Jenkins item class {item_class!r}; treating it as a job",
            UnknownItemClassWarning,
            stacklevel=3,
        )
    return NodeKind.JOB


def _list_children(client: JenkinsClient, path: JobPath) -> list[dict]:
    """Raw child items of one folder; an unreachable folder has no children."""
    try:
        data = client.get(api_url(path), params={"tree": _LIST_TREE}).data
    except ButlerError as exc:
        logger.warning("Skipping %s: %s", join_job_path(path) or "(root)", exc)
        return []
    if not isinstance(data, dict):
        logger.warning("Skipping %s: listing is not a JSON object", join_job_path(path) or "(root)")
        return []
    items = []
    for item in data.get("jobs") or []:
        name = item.get("name") if isinstance(item, dict) else None
        if not name or "/" in name:
            logger.debug("Ignoring unnamed or unaddressable item in %s: %r", join_job_path(path), item)
            continue
        items.append(item)
    return items


def _fetch_level(
    client: JenkinsClient, paths: Sequence[JobPath], max_workers: int,
) -> list[list[dict]]:
    if max_workers <= 1 or len(paths) <= 1:
        return [_list_children(client, p) for p in paths]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(paths))) as pool:
        # map() yields in submission order, which is what the merge relies on.
        return list(pool.map(lambda p: _list_children(client, p), paths))


def walk(
    client: JenkinsClient, root: str | Sequence[str] = "", max_workers: int = 1,
) -> list[TreeNode]:
    """Every folder and job below *root*, in pre-order.

    ``depth`` is the number of segments in a node's parent path, so children
    of the Jenkins root have depth 0.
    """
    root_path = parse_job_path(root)

    children: dict[JobPath, list[tuple[dict, NodeKind]]] = {}
    level = [root_path]
    while level:
        listings = _fetch_level(client, level, max_workers)
        next_level: list[JobPath] = []
        for parent, items in zip(level, listings):
            classified = [(item, classify(item.get("_class", ""))) for item in items]
            children[parent] = classified
            next_level.extend(
                parent + (item["name"],) for item, kind in classified if kind is NodeKind.FOLDER
            )
        level = next_level

    nodes: list[TreeNode] = []

    def _emit(parent: JobPath) -> None:
        for item, kind in children.get(parent, []):
            path = parent + (item["name"],)
            nodes.append(TreeNode(
                name=item["name"],
                full_name=join_job_path(path),
                kind=kind,
                url=item.get("url", ""),
                depth=len(parent),
                color=item.get("color"),
                item_class=item.get("_class", ""),
            ))
            if kind is NodeKind.FOLDER:
                _emit(path)

    _emit(root_path)
    logger.debug("Walked %s: %d nodes", join_job_path(root_path) or "(root)", len(nodes))
    return nodes


def walk_jobs_only(
    client: JenkinsClient, root: str | Sequence[str] = "", max_workers: int = 1,
) -> list[TreeNode]:
    return [n for n in walk(client, root, max_workers) if n.kind is NodeKind.JOB]


def find_jobs_by_name(client: JenkinsClient, term: str, max_workers: int = 1) -> list[TreeNode]:
    """Jobs anywhere in the tree whose name or full name contains *term* (case-insensitive)."""
    needle = term.lower()
    return [
        n for n in walk_jobs_only(client, "", max_workers)
        if needle in n.name.lower() or needle in n.full_name.lower()
    ]


def get_folder_structure(client: JenkinsClient, max_depth: int = 2, max_workers: int = 1) -> list[TreeNode]:
    """The whole tree cut at *max_depth*."""
    return [n for n in walk(client, "", max_workers) if n.depth <= max_depth]
