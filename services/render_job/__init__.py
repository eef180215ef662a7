"""
Render Job
==========
Job contract, workspace management and error taxonomy of the render pipeline.

The orchestrator lives in `services.render_job.orchestrator` and is imported
from there, since it depends on the renderer, encoder and storage packages.
"""

from .errors import (
    ErrorKind,
    RenderJobError,
    UnauthorizedError,
    InvalidRequestError,
    WorkspaceError,
    RenderError,
    EncodeError,
    UploadError,
    InternalError,
    ServiceBusyError,
    JobCancelledError,
)
from .models import RenderEngine, RenderRequest, Job, JobStage, JobResult, new_job_id
from .workspace import WorkspaceManager, WorkspacePaths
from .auth import verify_bearer_token

__all__ = [
    "ErrorKind",
    "RenderJobError",
    "UnauthorizedError",
    "InvalidRequestError",
    "WorkspaceError",
    "RenderError",
    "EncodeError",
    "UploadError",
    "InternalError",
    "ServiceBusyError",
    "JobCancelledError",
    "RenderEngine",
    "RenderRequest",
    "Job",
    "JobStage",
    "JobResult",
    "new_job_id",
    "WorkspaceManager",
    "WorkspacePaths",
    "verify_bearer_token",
]
