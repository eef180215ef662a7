"""
Video Renderer Service
======================
Rendering backends behind one adapter interface.

Adapters:
- Remotion: renders a composition straight to an encoded file
- Frame capture: screenshots a live document frame by frame for encoding
"""

from .base import (
    VideoRenderer,
    RenderSpec,
    RenderOutput,
    RenderOutputKind,
    ProgressReporter,
    ProgressCallback,
    RenderEngine,
)
from .remotion_adapter import RemotionAdapter, COMPOSITION_ID
from .frame_capture_adapter import FrameCaptureAdapter, FRAME_PATTERN, frame_filename, list_frames
from .factory import VideoRendererFactory

__all__ = [
    "VideoRenderer",
    "RenderSpec",
    "RenderOutput",
    "RenderOutputKind",
    "ProgressReporter",
    "ProgressCallback",
    "RenderEngine",
    "RemotionAdapter",
    "COMPOSITION_ID",
    "FrameCaptureAdapter",
    "FRAME_PATTERN",
    "frame_filename",
    "list_frames",
    "VideoRendererFactory",
]
