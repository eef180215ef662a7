"""
Render Job Orchestrator
=======================
Drives one job through the render pipeline:

    CREATED -> WORKSPACE_READY -> RENDERING -> [ENCODING] -> UPLOADING -> SUCCEEDED
                                     any non-terminal stage -> FAILED

The workspace is held by a context manager, so it is released on every exit
path. Every stage failure is caught here and turned into one failed JobResult.
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from loguru import logger
from pydantic import ValidationError

from config.settings import ServiceSettings
from services.encoding import FfmpegEncoder
from services.storage import ArtifactUploader, create_uploader
from services.video_renderer import (
    ProgressCallback,
    RenderOutput,
    RenderSpec,
    VideoRenderer,
    VideoRendererFactory,
    list_frames,
)

from .auth import verify_bearer_token
from .errors import (
    ErrorKind,
    InvalidRequestError,
    RenderError,
    RenderJobError,
    ServiceBusyError,
)
from .models import Job, JobResult, JobStage, RenderEngine, RenderRequest, new_job_id
from .workspace import WorkspaceManager, WorkspacePaths

CONTENT_TYPE = "video/mp4"

# Share of overall job progress covered by each stage.
STAGE_SPANS = {
    JobStage.RENDERING: (0.05, 0.70),
    JobStage.ENCODING: (0.70, 0.90),
    JobStage.UPLOADING: (0.90, 1.0),
}

JobListener = Callable[[Job], None]


def storage_key(request: RenderRequest, timestamp_ms: Optional[int] = None) -> str:
    """`<userId>/<projectId>/video-<epoch ms>.mp4`"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{request.user_id}/{request.project_id}/video-{timestamp_ms}.mp4"


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "Invalid request: " + "; ".join(parts)


class RenderJobOrchestrator:
    """
    Coordinates workspace, rendering backend, encoder and uploader per job.

    At most `settings.max_concurrent_jobs` jobs run at once; a request that
    finds no free slot is rejected with ServiceBusy before anything is
    allocated.
    """

    def __init__(
        self,
        settings: ServiceSettings,
        renderers: Dict[RenderEngine, VideoRenderer],
        encoder: FfmpegEncoder,
        uploader: ArtifactUploader,
        workspaces: Optional[WorkspaceManager] = None,
    ):
        if settings.max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self.settings = settings
        self.renderers = renderers
        self.encoder = encoder
        self.uploader = uploader
        self.workspaces = workspaces or WorkspaceManager(settings.work_root)
        # Raises ValueError on a misconfigured RENDER_ENGINE
        self.default_engine = VideoRendererFactory.parse_engine(None, settings.default_engine)
        self._slots = threading.BoundedSemaphore(settings.max_concurrent_jobs)

    @classmethod
    def from_settings(cls, settings: Optional[ServiceSettings] = None) -> "RenderJobOrchestrator":
        settings = settings or ServiceSettings.from_env()
        return cls(
            settings=settings,
            renderers=VideoRendererFactory.create_all(settings),
            encoder=FfmpegEncoder(
                ffmpeg_path=settings.ffmpeg_path,
                ffprobe_path=settings.ffprobe_path,
                crf=settings.encode_crf,
                preset=settings.encode_preset,
                timeout_seconds=settings.process_timeout_seconds,
            ),
            uploader=create_uploader(settings),
        )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def authorize(self, authorization: Optional[str]) -> None:
        verify_bearer_token(authorization, self.settings.render_secret)

    def parse_request(self, payload: Any) -> RenderRequest:
        if not isinstance(payload, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        try:
            return RenderRequest.model_validate(payload)
        except ValidationError as e:
            raise InvalidRequestError(format_validation_error(e), errors=e.errors())

    def select_engine(self, request: RenderRequest) -> RenderEngine:
        engine = request.engine or self.default_engine
        if engine not in self.renderers:
            raise InvalidRequestError(f"Render engine '{engine.value}' is not available")
        return engine

    def submit(
        self,
        authorization: Optional[str],
        payload: Any,
        on_progress: Optional[JobListener] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> JobResult:
        """
        Synchronous entry point: authenticate, validate, then run the job.

        Credentials and fields are checked before any resource is allocated.
        """
        try:
            self.authorize(authorization)
            request = self.parse_request(payload)
        except RenderJobError as e:
            logger.warning(f"Render request rejected ({e.kind.value}): {e.message}")
            return JobResult.failure(e.kind, e.message)
        return asyncio.run(self.run(request, on_progress, cancel_event))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(
        self,
        request: RenderRequest,
        on_progress: Optional[JobListener] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> JobResult:
        """Run one validated request to a terminal state."""
        try:
            engine = self.select_engine(request)
        except RenderJobError as e:
            return JobResult.failure(e.kind, e.message)

        if not self._slots.acquire(blocking=False):
            busy = ServiceBusyError(
                f"Render capacity reached ({self.settings.max_concurrent_jobs} jobs running), retry later"
            )
            logger.warning(f"Render request for project {request.project_id} rejected: {busy.message}")
            return JobResult.failure(busy.kind, busy.message)

        try:
            job = Job(job_id=new_job_id(request.project_id), request=request, engine=engine)
            logger.info(
                f"[job {job.job_id}] Starting render for project {request.project_id} "
                f"({engine.value}, {request.width}x{request.height}, "
                f"{request.duration_in_frames} frames @ {request.fps}fps)"
            )
            await self._execute(job, on_progress, cancel_event)
            return JobResult.from_job(job)
        finally:
            self._slots.release()

    async def _execute(
        self,
        job: Job,
        on_progress: Optional[JobListener],
        cancel_event: Optional[threading.Event],
    ) -> None:
        started = time.time()
        try:
            with self.workspaces.session(job.job_id) as workspace:
                job.workspace_root = str(workspace.root)
                job.advance(JobStage.WORKSPACE_READY)
                job.update_progress(STAGE_SPANS[JobStage.RENDERING][0])
                self._notify(job, on_progress)

                video_url = await self._run_pipeline(job, workspace, on_progress, cancel_event)
                job.succeed(video_url)
        except RenderJobError as e:
            logger.error(f"[job {job.job_id}] {e.kind.value} during {job.stage.value}: {e.message}")
            job.fail(e.kind, e.message)
        except Exception as e:
            logger.exception(f"[job {job.job_id}] Unexpected error during {job.stage.value}")
            job.fail(ErrorKind.INTERNAL, str(e) or e.__class__.__name__)

        if job.stage == JobStage.SUCCEEDED:
            logger.info(f"[job {job.job_id}] Succeeded in {time.time() - started:.2f}s: {job.video_url}")
        self._notify(job, on_progress)

    async def _run_pipeline(
        self,
        job: Job,
        workspace: WorkspacePaths,
        on_progress: Optional[JobListener],
        cancel_event: Optional[threading.Event],
    ) -> str:
        request = job.request
        spec = RenderSpec(
            job_id=job.job_id,
            source_code=request.source_code,
            width=request.width,
            height=request.height,
            frame_count=request.duration_in_frames,
            fps=request.fps,
            cancel_event=cancel_event,
        )

        spec.check_cancelled()
        job.advance(JobStage.RENDERING)
        self._notify(job, on_progress)
        renderer = self.renderers[job.engine]
        output = await renderer.render(
            spec, workspace, self._stage_progress(job, JobStage.RENDERING, on_progress)
        )

        video_path = output.path
        if output.needs_encoding:
            spec.check_cancelled()
            self._verify_frames(output, spec.frame_count)
            job.advance(JobStage.ENCODING)
            job.update_progress(STAGE_SPANS[JobStage.ENCODING][0])
            self._notify(job, on_progress)
            await self.encoder.encode(
                output.path, spec.fps, workspace.output_path, expected_frames=spec.frame_count
            )
            video_path = workspace.output_path

        spec.check_cancelled()
        job.advance(JobStage.UPLOADING)
        job.update_progress(STAGE_SPANS[JobStage.UPLOADING][0])
        self._notify(job, on_progress)
        return await self._upload(job, Path(video_path))

    async def _upload(self, job: Job, video_path: Path) -> str:
        if not video_path.is_file():
            raise RenderError(f"Rendered video missing at {video_path}")
        key = storage_key(job.request)
        logger.info(f"[job {job.job_id}] Uploading {key}")
        data = video_path.read_bytes()
        return await self.uploader.upload(data, key, CONTENT_TYPE)

    def _verify_frames(self, output: RenderOutput, expected: int) -> None:
        """Encoding starts only once every expected frame file exists."""
        frames = list_frames(output.path)
        if len(frames) != expected:
            raise RenderError(f"Expected {expected} frames, found {len(frames)}")

    def _stage_progress(
        self,
        job: Job,
        stage: JobStage,
        on_progress: Optional[JobListener],
    ) -> ProgressCallback:
        low, high = STAGE_SPANS[stage]

        def report(fraction: float) -> None:
            if job.update_progress(low + (high - low) * fraction):
                logger.debug(f"[job {job.job_id}] {stage.value}: {job.progress:.0%}")
                self._notify(job, on_progress)

        return report

    def _notify(self, job: Job, listener: Optional[JobListener]) -> None:
        if listener is None:
            return
        try:
            listener(job)
        except Exception as e:
            logger.warning(f"[job {job.job_id}] Progress listener raised: {e}")
