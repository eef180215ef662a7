"""
Render Job Models
=================
Request contract, job state machine and job result.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, model_validator

from config import settings

from .errors import ErrorKind, InternalError


SAFE_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"


class RenderEngine(str, Enum):
    """Supported rendering engines."""
    COMPOSITION = "composition"
    FRAME_CAPTURE = "frame_capture"


class RenderRequest(BaseModel):
    """
    Caller input for one render job.

    Dimensions and frame count are resolved during validation, so after a
    successful parse `width`, `height` and `duration_in_frames` are always set.
    """

    project_id: str = Field(
        ..., alias="projectId", min_length=1, max_length=128, pattern=SAFE_ID_PATTERN
    )
    user_id: str = Field(
        ..., alias="userId", min_length=1, max_length=128, pattern=SAFE_ID_PATTERN
    )
    source_code: str = Field(
        ...,
        validation_alias=AliasChoices("sourceCode", "animationCode", "source_code"),
        min_length=1,
        max_length=settings.MAX_SOURCE_CHARS,
    )
    engine: Optional[RenderEngine] = None

    fps: int = Field(default=settings.DEFAULT_FPS, ge=1, le=settings.MAX_FPS)
    duration_in_frames: Optional[int] = Field(None, alias="durationInFrames", gt=0)
    duration_seconds: Optional[float] = Field(
        None,
        alias="durationSeconds",
        gt=0,
        le=settings.MAX_TOTAL_FRAMES,
        allow_inf_nan=False,
    )

    width: Optional[int] = Field(None, gt=0, le=settings.MAX_DIMENSION)
    height: Optional[int] = Field(None, gt=0, le=settings.MAX_DIMENSION)
    resolution: Optional[str] = Field(
        None, validation_alias=AliasChoices("resolution", "resolutionPreset")
    )

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _resolve_dimensions_and_duration(self) -> "RenderRequest":
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must be given together")

        if self.width is None:
            if self.resolution is not None:
                preset = settings.RESOLUTION_PRESETS.get(self.resolution.lower())
                if preset is None:
                    raise ValueError(
                        f"Unknown resolution preset '{self.resolution}'. "
                        f"Available: {sorted(settings.RESOLUTION_PRESETS)}"
                    )
                self.width, self.height = preset
            else:
                self.width, self.height = settings.DEFAULT_WIDTH, settings.DEFAULT_HEIGHT

        if self.duration_in_frames is None:
            seconds = self.duration_seconds or settings.DEFAULT_DURATION_SECONDS
            self.duration_in_frames = round(seconds * self.fps)

        if not 1 <= self.duration_in_frames <= settings.MAX_TOTAL_FRAMES:
            raise ValueError(
                f"durationInFrames must be between 1 and {settings.MAX_TOTAL_FRAMES}, "
                f"got {self.duration_in_frames}"
            )
        return self


class JobStage(str, Enum):
    """Stages of the render job state machine."""
    CREATED = "created"
    WORKSPACE_READY = "workspace_ready"
    RENDERING = "rendering"
    ENCODING = "encoding"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STAGES = {JobStage.SUCCEEDED, JobStage.FAILED}

# Forward-only transitions. FAILED is reachable from every non-terminal stage.
ALLOWED_TRANSITIONS = {
    JobStage.CREATED: {JobStage.WORKSPACE_READY},
    JobStage.WORKSPACE_READY: {JobStage.RENDERING},
    JobStage.RENDERING: {JobStage.ENCODING, JobStage.UPLOADING},
    JobStage.ENCODING: {JobStage.UPLOADING},
    JobStage.UPLOADING: {JobStage.SUCCEEDED},
    JobStage.SUCCEEDED: set(),
    JobStage.FAILED: set(),
}


def new_job_id(project_id: str) -> str:
    """Project id + epoch millis + random suffix, unique across concurrent jobs."""
    return f"{project_id}-{int(time.time() * 1000)}-{uuid4().hex[:8]}"


@dataclass
class Job:
    """One execution of the render pipeline."""
    job_id: str
    request: RenderRequest
    engine: RenderEngine
    stage: JobStage = JobStage.CREATED
    progress: float = 0.0
    workspace_root: Optional[str] = None
    video_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def advance(self, stage: JobStage) -> None:
        if stage not in ALLOWED_TRANSITIONS[self.stage]:
            raise InternalError(
                f"Illegal job transition {self.stage.value} -> {stage.value}"
            )
        self.stage = stage

    def update_progress(self, fraction: float) -> bool:
        """Raise progress to `fraction`; returns False if it would not increase."""
        fraction = min(max(fraction, 0.0), 1.0)
        if fraction <= self.progress:
            return False
        self.progress = fraction
        return True

    def succeed(self, video_url: str) -> None:
        self.advance(JobStage.SUCCEEDED)
        self.video_url = video_url
        self.progress = 1.0
        self.finished_at = datetime.now(timezone.utc)

    def fail(self, kind: ErrorKind, message: str) -> None:
        if self.is_terminal:
            raise InternalError(f"Job {self.job_id} already finished as {self.stage.value}")
        self.stage = JobStage.FAILED
        self.error_kind = kind
        self.error_message = message
        self.finished_at = datetime.now(timezone.utc)


@dataclass
class JobResult:
    """The single outcome produced for a request."""
    success: bool
    job_id: Optional[str] = None
    video_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResult":
        if job.stage == JobStage.SUCCEEDED:
            return cls(success=True, job_id=job.job_id, video_url=job.video_url)
        return cls(
            success=False,
            job_id=job.job_id,
            error_kind=job.error_kind,
            error=job.error_message,
        )

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, job_id: Optional[str] = None) -> "JobResult":
        return cls(success=False, job_id=job_id, error_kind=kind, error=message)

    def to_response(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "videoUrl": self.video_url, "jobId": self.job_id}
        return {
            "success": False,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }
