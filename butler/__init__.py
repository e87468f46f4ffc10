"""Jenkins job-tree traversal, build queries, stage resolution and log streaming."""

from .builds import (
    abort_build,
    get_build_info,
    get_builds,
    get_console_text,
    get_last_build,
    resolve_build_number,
)
from .client import JenkinsClient, Reply
from .config import JenkinsConfig
from .errors import (
    BuildActionError,
    BuildQueryError,
    ButlerError,
    InvalidPathError,
    JobQueryError,
    LogRetrievalError,
    NotFoundError,
    ProtocolViolation,
    StageResolutionError,
    TransportError,
)
from .jobs import get_job_info, get_job_parameters, trigger_build
from .logstream import LogStreamer, stream_build_log
from .models import BuildQuery, BuildRecord, NodeKind, StageNode, StepNode, TreeNode
from .stages import get_stages, resolve_stages
from .tree import find_jobs_by_name, get_folder_structure, walk, walk_jobs_only

__version__ = "0.1.0"
