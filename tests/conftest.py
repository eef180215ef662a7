"""
Shared fixtures: fake engines, local storage and a wired orchestrator.
"""
import asyncio
import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import ServiceSettings
from services.render_job.errors import EncodeError, RenderError
from services.render_job.models import RenderEngine
from services.render_job.orchestrator import RenderJobOrchestrator
from services.storage import LocalDirectoryUploader
from services.video_renderer import (
    RenderOutput,
    RenderOutputKind,
    VideoRenderer,
    frame_filename,
    list_frames,
)
from services.video_renderer.remotion_adapter import COMPOSITION_ID
from shared.process_runner import ProcessResult

SECRET = "test-secret"
STORAGE_BASE_URL = "https://storage.test/videos"


class FakeRenderer(VideoRenderer):
    """Writes fake frames or a fake encoded file into the workspace."""

    def __init__(self, engine: RenderEngine, fail: bool = False, frames_short_by: int = 0, delay: float = 0):
        self.engine = engine
        self.fail = fail
        self.frames_short_by = frames_short_by
        self.delay = delay
        self.calls = []

    def get_engine_name(self) -> RenderEngine:
        return self.engine

    async def render(self, spec, workspace, on_progress=None):
        self.calls.append({"spec": spec, "workspace": workspace})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RenderError("Bundling failed: syntax error in composition")

        if self.engine == RenderEngine.COMPOSITION:
            workspace.output_path.write_bytes(b"fake-mp4")
            if on_progress:
                on_progress(1.0)
            return RenderOutput(
                kind=RenderOutputKind.ENCODED_FILE,
                path=workspace.output_path,
                frame_count=spec.frame_count,
                engine_used=self.engine,
            )

        count = spec.frame_count - self.frames_short_by
        for i in range(count):
            (workspace.frames_dir / frame_filename(i)).write_bytes(b"png")
            if on_progress:
                on_progress((i + 1) / spec.frame_count)
        return RenderOutput(
            kind=RenderOutputKind.FRAME_SEQUENCE,
            path=workspace.frames_dir,
            frame_count=count,
            engine_used=self.engine,
        )


class FakeEncoder:
    """Records how many frames existed when encoding started."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def encode(self, frames_dir, fps, output_path, expected_frames=None):
        self.calls.append({
            "frames_dir": Path(frames_dir),
            "fps": fps,
            "frames_present": len(list_frames(Path(frames_dir))),
            "expected_frames": expected_frames,
        })
        if self.fail:
            raise EncodeError("Encoding failed (exit 1): invalid frame data")
        Path(output_path).write_bytes(b"encoded-mp4")


class FakeRemotionCli:
    """Stands in for `npx remotion`; fails the named step when asked."""

    def __init__(self, fail_step=None, compositions=(COMPOSITION_ID,), write_output=True):
        self.fail_step = fail_step
        self.compositions = list(compositions)
        self.write_output = write_output
        self.commands = []

    async def __call__(self, cmd, cwd=None, timeout=None, env=None, on_stdout_line=None):
        self.commands.append(list(cmd))
        step = cmd[2]
        if step == self.fail_step:
            return ProcessResult(1, [], ["Error: Unexpected token (3:14)"])

        if step == "bundle":
            bundle_dir = cmd[cmd.index("--out-dir") + 1]
            os.makedirs(bundle_dir, exist_ok=True)
            return ProcessResult(0, ["Bundled"], [])
        if step == "compositions":
            return ProcessResult(0, self.compositions, [])
        if step == "render":
            total = 60
            for done in (15, 30, 45, 60):
                if on_stdout_line:
                    on_stdout_line(f"Rendered {done}/{total}")
            if self.write_output:
                with open(cmd[5], "wb") as f:
                    f.write(b"mp4-bytes")
            return ProcessResult(0, [f"Rendered {total}/{total}"], [])
        raise AssertionError(f"unexpected command {cmd}")


class RecordingUploader(LocalDirectoryUploader):
    def __init__(self, root, base_url=None):
        super().__init__(root, base_url)
        self.keys = []

    async def upload(self, data, key, content_type):
        self.keys.append(key)
        return await super().upload(data, key, content_type)


@pytest.fixture
def work_root(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def settings(tmp_path, work_root):
    return ServiceSettings(
        render_secret=SECRET,
        work_root=work_root,
        default_engine="frame_capture",
        max_concurrent_jobs=4,
        storage_backend="local",
        local_storage_dir=tmp_path / "storage",
        local_storage_base_url=STORAGE_BASE_URL,
    )


@pytest.fixture
def renderers():
    return {
        RenderEngine.COMPOSITION: FakeRenderer(RenderEngine.COMPOSITION),
        RenderEngine.FRAME_CAPTURE: FakeRenderer(RenderEngine.FRAME_CAPTURE),
    }


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def uploader(tmp_path):
    return RecordingUploader(tmp_path / "storage", STORAGE_BASE_URL)


@pytest.fixture
def orchestrator(settings, renderers, encoder, uploader):
    return RenderJobOrchestrator(
        settings=settings,
        renderers=renderers,
        encoder=encoder,
        uploader=uploader,
    )


@pytest.fixture
def client(orchestrator):
    from app import app

    app.config["TESTING"] = True
    app.config["ORCHESTRATOR"] = orchestrator
    with app.test_client() as client:
        yield client
    app.config.pop("ORCHESTRATOR", None)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {SECRET}"}


def workspace_entries(work_root: Path) -> list:
    """Everything left under the scratch root."""
    if not work_root.exists():
        return []
    return list(work_root.iterdir())
