"""
Video Renderer Base Classes
===========================
Abstract base class and shared types for rendering backends.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from services.render_job.errors import JobCancelledError
from services.render_job.models import RenderEngine
from services.render_job.workspace import WorkspacePaths

ProgressCallback = Callable[[float], None]


class RenderOutputKind(str, Enum):
    """What a backend hands back to the orchestrator."""
    ENCODED_FILE = "encoded_file"
    FRAME_SEQUENCE = "frame_sequence"


@dataclass
class RenderSpec:
    """Everything a backend needs to render one job."""
    job_id: str
    source_code: str
    width: int
    height: int
    frame_count: int
    fps: int
    cancel_event: Optional[threading.Event] = None

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise JobCancelledError(f"Job {self.job_id} was cancelled")


@dataclass
class RenderOutput:
    """Result of a render stage."""
    kind: RenderOutputKind
    path: Path
    frame_count: int
    engine_used: RenderEngine

    @property
    def needs_encoding(self) -> bool:
        return self.kind == RenderOutputKind.FRAME_SEQUENCE


class ProgressReporter:
    """
    Forwards progress to a listener as a clamped, non-decreasing fraction.

    Listener errors are logged and never reach the pipeline.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None, tag: str = "render"):
        self._callback = callback
        self._tag = tag
        self.last = 0.0

    def __call__(self, fraction: float) -> None:
        fraction = min(max(float(fraction), 0.0), 1.0)
        if fraction < self.last:
            return
        self.last = fraction
        if self._callback is None:
            return
        try:
            self._callback(fraction)
        except Exception as e:
            logger.warning(f"[{self._tag}] Progress listener raised: {e}")


class VideoRenderer(ABC):
    """
    Abstract base class for rendering backends.

    The composition backend renders straight to an encoded file; the frame
    capture backend produces a frame sequence that still needs encoding.
    """

    @abstractmethod
    def get_engine_name(self) -> RenderEngine:
        """Return the rendering engine name."""
        pass

    @abstractmethod
    async def render(
        self,
        spec: RenderSpec,
        workspace: WorkspacePaths,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderOutput:
        """
        Render the caller's source inside the job workspace.

        Args:
            spec: Source code, dimensions, frame count and fps
            workspace: Paths owned by the job
            on_progress: Called with a non-decreasing fraction in [0, 1]

        Returns:
            RenderOutput describing the encoded file or frame directory

        Raises:
            RenderError: If any engine step fails
            JobCancelledError: If the job's cancel event was set
        """
        pass
