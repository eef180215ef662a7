"""
Remotion Adapter
================
Composition backend: renders a declarative Remotion scene straight to an
encoded video file.

Steps, all through the Remotion CLI in a Node subprocess:
1. Materialize the caller's component plus a generated entry stub
2. Bundle the entry point
3. Resolve the fixed composition id inside the bundle
4. Render the composition to the workspace output file
"""

import os
import re
import time
from pathlib import Path
from typing import List, Optional

from loguru import logger

from services.render_job.errors import RenderError
from services.render_job.models import RenderEngine
from services.render_job.workspace import WorkspacePaths
from shared.process_runner import ProcessTimeoutError, run_process

from .base import (
    ProgressCallback,
    ProgressReporter,
    RenderOutput,
    RenderOutputKind,
    RenderSpec,
    VideoRenderer,
)

# Shared by the generated Root.tsx and the resolve/render steps.
COMPOSITION_ID = "RenderedVideo"

SOURCE_FILE = "Video.tsx"
ROOT_FILE = "Root.tsx"
ENTRY_FILE = "index.ts"

_RENDERED_PATTERN = re.compile(r"Rendered\s+(\d+)\s*/\s*(\d+)")


class RemotionAdapter(VideoRenderer):
    """
    Remotion rendering adapter.

    `project_dir` must hold a Node project with `remotion` and `@remotion/cli`
    installed; its node_modules is linked into each job's source directory.
    """

    def __init__(
        self,
        project_dir: Optional[str] = None,
        npx_path: str = "npx",
        codec: str = "h264",
        timeout_seconds: Optional[float] = None,
    ):
        self.project_dir = Path(project_dir or os.getcwd())
        self.npx_path = npx_path
        self.codec = codec
        self.timeout_seconds = timeout_seconds
        logger.info(f"[Remotion] Initialized with project dir: {self.project_dir}")

    def get_engine_name(self) -> RenderEngine:
        return RenderEngine.COMPOSITION

    async def render(
        self,
        spec: RenderSpec,
        workspace: WorkspacePaths,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderOutput:
        start_time = time.time()
        progress = ProgressReporter(on_progress, tag="Remotion")

        logger.info(f"[Remotion] Starting render: {spec.job_id}")
        logger.info(f"  Frames: {spec.frame_count} @ {spec.fps}fps, {spec.width}x{spec.height}")

        entry_point = self.materialize(spec, workspace)
        progress(0.05)

        spec.check_cancelled()
        await self._bundle(entry_point, workspace.bundle_dir)
        progress(0.10)

        spec.check_cancelled()
        await self._resolve_composition(workspace.bundle_dir)
        progress(0.15)

        spec.check_cancelled()
        await self._render_media(spec, workspace, progress)

        output_path = workspace.output_path
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise RenderError(f"Remotion produced no output at {output_path}")

        progress(1.0)
        logger.info(
            f"[Remotion] Render complete: {output_path} ({time.time() - start_time:.2f}s)"
        )
        return RenderOutput(
            kind=RenderOutputKind.ENCODED_FILE,
            path=output_path,
            frame_count=spec.frame_count,
            engine_used=RenderEngine.COMPOSITION,
        )

    def materialize(self, spec: RenderSpec, workspace: WorkspacePaths) -> Path:
        """Write the caller's component and the generated entry stub; return the entry path."""
        source_dir = workspace.source_dir
        entry_point = source_dir / ENTRY_FILE
        node_modules = self.project_dir / "node_modules"
        try:
            source_dir.mkdir(parents=True, exist_ok=True)
            (source_dir / SOURCE_FILE).write_text(spec.source_code, encoding="utf-8")
            (source_dir / ROOT_FILE).write_text(self._build_root_code(spec), encoding="utf-8")
            entry_point.write_text(self._build_entry_code(), encoding="utf-8")

            if node_modules.is_dir():
                os.symlink(node_modules, source_dir / "node_modules", target_is_directory=True)
            else:
                logger.warning(f"[Remotion] No node_modules in {self.project_dir}, imports may not resolve")
        except OSError as e:
            logger.error(f"[Remotion] Could not write project files: {e}")
            raise RenderError(f"Remotion materialize failed: {e}") from e

        logger.info(f"[Remotion] Generated entry point: {entry_point}")
        return entry_point

    def _build_root_code(self, spec: RenderSpec) -> str:
        component = Path(SOURCE_FILE).stem
        return f"""import React from 'react';
import {{Composition}} from 'remotion';
import VideoComposition from './{component}';

export const RemotionRoot: React.FC = () => {{
  return (
    <Composition
      id="{COMPOSITION_ID}"
      component={{VideoComposition}}
      durationInFrames={{{spec.frame_count}}}
      fps={{{spec.fps}}}
      width={{{spec.width}}}
      height={{{spec.height}}}
    />
  );
}};
"""

    def _build_entry_code(self) -> str:
        root_module = Path(ROOT_FILE).stem
        return f"""import {{registerRoot}} from 'remotion';
import {{RemotionRoot}} from './{root_module}';

registerRoot(RemotionRoot);
"""

    async def _run_cli(self, args: List[str], step: str, on_line=None):
        cmd = [self.npx_path, "remotion", *args]
        logger.info(f"[Remotion] Running: {' '.join(cmd)}")
        try:
            result = await run_process(
                cmd,
                cwd=str(self.project_dir),
                timeout=self.timeout_seconds,
                on_stdout_line=on_line,
            )
        except FileNotFoundError as e:
            raise RenderError(f"Remotion {step} failed: {self.npx_path} not found") from e
        except ProcessTimeoutError as e:
            raise RenderError(f"Remotion {step} failed: {e}") from e

        if result.returncode != 0:
            error_msg = result.error_tail()
            logger.error(f"[Remotion] {step} failed: {error_msg}")
            raise RenderError(f"Remotion {step} failed: {error_msg}")
        return result

    async def _bundle(self, entry_point: Path, bundle_dir: Path) -> None:
        await self._run_cli(
            ["bundle", str(entry_point), "--out-dir", str(bundle_dir)],
            step="bundle",
        )
        if not bundle_dir.is_dir():
            raise RenderError(f"Remotion bundle failed: no bundle at {bundle_dir}")

    async def _resolve_composition(self, bundle_dir: Path) -> None:
        result = await self._run_cli(
            ["compositions", str(bundle_dir), "--quiet"],
            step="composition lookup",
        )
        available = result.stdout.split()
        if COMPOSITION_ID not in available:
            raise RenderError(
                f"Composition '{COMPOSITION_ID}' not found in bundle. Available: {available}"
            )

    async def _render_media(
        self,
        spec: RenderSpec,
        workspace: WorkspacePaths,
        progress: ProgressReporter,
    ) -> None:
        def on_line(line: str) -> None:
            match = _RENDERED_PATTERN.search(line)
            if match:
                done, total = int(match.group(1)), int(match.group(2))
                if total > 0:
                    progress(0.15 + 0.80 * done / total)

        await self._run_cli(
            [
                "render",
                str(workspace.bundle_dir),
                COMPOSITION_ID,
                str(workspace.output_path),
                "--codec", self.codec,
            ],
            step="render",
            on_line=on_line,
        )
