"""
Video Renderer Factory
======================
Factory for creating rendering backends from service settings.
"""

from typing import Dict, Optional, Union

from loguru import logger

from config.settings import ServiceSettings
from services.render_job.models import RenderEngine

from .base import VideoRenderer
from .frame_capture_adapter import FrameCaptureAdapter
from .remotion_adapter import RemotionAdapter


class VideoRendererFactory:
    """
    Factory for creating video renderer instances.

    Default: frame capture (headless browser + ffmpeg)
    Alternative: Remotion composition render
    """

    @staticmethod
    def parse_engine(engine: Union[str, RenderEngine, None], default: str = "frame_capture") -> RenderEngine:
        value = engine if engine is not None else default
        try:
            return RenderEngine(value)
        except ValueError:
            raise ValueError(
                f"Unknown render engine: {value}. "
                f"Available: {[e.value for e in RenderEngine]}"
            )

    @staticmethod
    def create(
        engine: Optional[RenderEngine] = None,
        settings: Optional[ServiceSettings] = None,
    ) -> VideoRenderer:
        """
        Create a video renderer instance.

        Args:
            engine: Render engine to use (default: the configured engine)
            settings: Service settings (default: read from the environment)

        Returns:
            VideoRenderer instance
        """
        settings = settings or ServiceSettings.from_env()
        engine = VideoRendererFactory.parse_engine(engine, settings.default_engine)

        if engine == RenderEngine.COMPOSITION:
            logger.info("[Factory] Creating Remotion adapter")
            return RemotionAdapter(
                project_dir=str(settings.remotion_project_dir),
                npx_path=settings.npx_path,
                codec=settings.remotion_codec,
                timeout_seconds=settings.process_timeout_seconds,
            )
        logger.info("[Factory] Creating frame capture adapter")
        return FrameCaptureAdapter(
            no_sandbox=settings.browser_no_sandbox,
            page_load_timeout_ms=settings.page_load_timeout_ms,
            settle_ms=settings.settle_ms,
        )

    @staticmethod
    def create_all(settings: Optional[ServiceSettings] = None) -> Dict[RenderEngine, VideoRenderer]:
        """Create one renderer per engine, keyed by engine."""
        settings = settings or ServiceSettings.from_env()
        return {
            engine: VideoRendererFactory.create(engine, settings)
            for engine in RenderEngine
        }
