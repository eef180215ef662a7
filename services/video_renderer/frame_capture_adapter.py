"""
Frame Capture Adapter
=====================
Frame-capture backend: drives headless Chromium through Playwright, runs the
caller's React/framer-motion animation program and screenshots one PNG per
output frame.

The caller's program must define an `AnimatedVideo` component. It runs only
inside the browser's renderer process.
"""

import asyncio
import json
import time
from pathlib import Path
from typing import List, Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from services.render_job.errors import RenderError
from services.render_job.models import RenderEngine
from services.render_job.workspace import WorkspacePaths

from .base import (
    ProgressCallback,
    ProgressReporter,
    RenderOutput,
    RenderOutputKind,
    RenderSpec,
    VideoRenderer,
)

FRAME_PREFIX = "frame-"
FRAME_PAD = 5
FRAME_EXTENSION = ".png"
# ffmpeg input pattern matching frame_filename()
FRAME_PATTERN = f"{FRAME_PREFIX}%0{FRAME_PAD}d{FRAME_EXTENSION}"

ENTRY_COMPONENT = "AnimatedVideo"
DOCUMENT_FILE = "index.html"


def frame_filename(index: int) -> str:
    """Zero-padded frame name; lexical order equals capture order."""
    return f"{FRAME_PREFIX}{index:0{FRAME_PAD}d}{FRAME_EXTENSION}"


def list_frames(frames_dir: Path) -> List[Path]:
    """Captured frames of a directory in capture order."""
    return sorted(frames_dir.glob(f"{FRAME_PREFIX}*{FRAME_EXTENSION}"))


def build_document(spec: RenderSpec) -> str:
    """Self-contained HTML document embedding the caller's animation program."""
    render_config = json.dumps({
        "fps": spec.fps,
        "durationInFrames": spec.frame_count,
        "width": spec.width,
        "height": spec.height,
    })
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
  <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
  <script src="https://unpkg.com/framer-motion@11/dist/framer-motion.js"></script>
  <style>
    body {{ margin: 0; padding: 0; overflow: hidden; }}
    #root {{ width: {spec.width}px; height: {spec.height}px; }}
  </style>
</head>
<body>
  <div id="root"></div>
  <script>window.__RENDER_CONFIG__ = {render_config};</script>
  <script type="module">
    const {{ motion }} = Motion;

{spec.source_code}

    const root = ReactDOM.createRoot(document.getElementById('root'));
    root.render(React.createElement({ENTRY_COMPONENT}));
  </script>
</body>
</html>
"""


class FrameCaptureAdapter(VideoRenderer):
    """
    Playwright screenshot adapter.

    Frame i is captured at start + i * 1000/fps ms on a monotonic schedule,
    so a slow screenshot shortens the next wait instead of stretching the
    animation timeline.
    """

    def __init__(
        self,
        no_sandbox: bool = False,
        page_load_timeout_ms: int = 60_000,
        settle_ms: int = 1000,
    ):
        self.no_sandbox = no_sandbox
        self.page_load_timeout_ms = page_load_timeout_ms
        self.settle_ms = settle_ms

    def get_engine_name(self) -> RenderEngine:
        return RenderEngine.FRAME_CAPTURE

    def browser_args(self) -> List[str]:
        args = ["--disable-dev-shm-usage", "--disable-gpu"]
        if self.no_sandbox:
            args += ["--no-sandbox", "--disable-setuid-sandbox"]
        return args

    async def render(
        self,
        spec: RenderSpec,
        workspace: WorkspacePaths,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderOutput:
        start_time = time.time()
        progress = ProgressReporter(on_progress, tag="FrameCapture")
        frames_dir = workspace.frames_dir
        frames_dir.mkdir(parents=True, exist_ok=True)

        html = build_document(spec)
        (workspace.source_dir / DOCUMENT_FILE).write_text(html, encoding="utf-8")

        logger.info(f"[FrameCapture] Starting capture: {spec.job_id}")
        logger.info(f"  Frames: {spec.frame_count} @ {spec.fps}fps, {spec.width}x{spec.height}")

        try:
            async with async_playwright() as p:
                logger.info("[FrameCapture] Launching browser...")
                browser = await p.chromium.launch(headless=True, args=self.browser_args())
                try:
                    page = await browser.new_page(
                        viewport={"width": spec.width, "height": spec.height}
                    )
                    logger.info("[FrameCapture] Loading animation...")
                    await page.set_content(
                        html, wait_until="networkidle", timeout=self.page_load_timeout_ms
                    )
                    await page.wait_for_timeout(self.settle_ms)

                    await self._capture_frames(page, spec, frames_dir, progress)
                finally:
                    await browser.close()
                    logger.info("[FrameCapture] Browser closed")
        except PlaywrightError as e:
            logger.error(f"[FrameCapture] Capture failed: {e}")
            raise RenderError(f"Frame capture failed: {e}") from e
        except OSError as e:
            logger.error(f"[FrameCapture] Frame write failed: {e}")
            raise RenderError(f"Frame capture failed: {e}") from e

        captured = len(list_frames(frames_dir))
        if captured != spec.frame_count:
            raise RenderError(
                f"Frame capture incomplete: {captured}/{spec.frame_count} frames written"
            )

        progress(1.0)
        logger.info(
            f"[FrameCapture] Captured {captured} frames ({time.time() - start_time:.2f}s)"
        )
        return RenderOutput(
            kind=RenderOutputKind.FRAME_SEQUENCE,
            path=frames_dir,
            frame_count=captured,
            engine_used=RenderEngine.FRAME_CAPTURE,
        )

    async def _capture_frames(
        self,
        page,
        spec: RenderSpec,
        frames_dir: Path,
        progress: ProgressReporter,
    ) -> None:
        total = spec.frame_count
        interval_ms = 1000 / spec.fps
        loop = asyncio.get_running_loop()
        start = loop.time()
        last_decile = 0

        logger.info(f"[FrameCapture] Capturing {total} frames...")
        for i in range(total):
            spec.check_cancelled()

            due_ms = i * interval_ms - (loop.time() - start) * 1000
            if due_ms > 0:
                await page.wait_for_timeout(due_ms)

            frame_path = frames_dir / frame_filename(i)
            await page.screenshot(path=str(frame_path), type="png")
            if not frame_path.exists():
                raise RenderError(f"Screenshot was not written: {frame_path}")

            completed = i + 1
            decile = completed * 10 // total
            if decile > last_decile:
                last_decile = decile
                progress(completed / total)
                logger.info(f"[FrameCapture] Progress: {decile * 10}%")
