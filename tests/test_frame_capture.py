"""
Tests for the frame capture adapter against a scripted Playwright double.
"""
import asyncio
import threading

import pytest
from playwright.async_api import Error as PlaywrightError

from services.render_job.errors import JobCancelledError, RenderError
from services.render_job.workspace import WorkspaceManager
from services.video_renderer import frame_capture_adapter
from services.video_renderer.base import RenderOutputKind, RenderSpec
from services.video_renderer.frame_capture_adapter import (
    FRAME_PATTERN,
    FrameCaptureAdapter,
    build_document,
    frame_filename,
    list_frames,
)


class FakePage:
    def __init__(self, fail_on_frame=None, skip_write=False):
        self.fail_on_frame = fail_on_frame
        self.skip_write = skip_write
        self.viewport = None
        self.content = None
        self.screenshots = []

    async def set_content(self, html, wait_until=None, timeout=None):
        self.content = html

    async def wait_for_timeout(self, ms):
        pass

    async def screenshot(self, path, type="png"):
        if self.fail_on_frame is not None and len(self.screenshots) == self.fail_on_frame:
            raise PlaywrightError("boom")
        self.screenshots.append(path)
        if not self.skip_write:
            with open(path, "wb") as f:
                f.write(b"\x89PNG")


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self, viewport=None):
        self.page.viewport = viewport
        return self.page

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser):
        self.browser = browser
        self.launch_args = None

    async def launch(self, headless=True, args=None):
        self.launch_args = args
        return self.browser


class FakePlaywright:
    def __init__(self, page):
        self.browser = FakeBrowser(page)
        self.chromium = FakeChromium(self.browser)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def workspace(tmp_path):
    return WorkspaceManager(tmp_path / "work").acquire("job-fc")


def install(monkeypatch, page):
    fake = FakePlaywright(page)
    monkeypatch.setattr(frame_capture_adapter, "async_playwright", lambda: fake)
    return fake


def make_spec(frames=12, fps=120, cancel_event=None):
    return RenderSpec(
        job_id="job-fc",
        source_code="const AnimatedVideo = () => React.createElement('div');",
        width=320,
        height=240,
        frame_count=frames,
        fps=fps,
        cancel_event=cancel_event,
    )


def test_frame_names_sort_in_capture_order():
    names = [frame_filename(i) for i in (0, 9, 10, 99, 100, 12345)]
    assert names == sorted(names)
    assert frame_filename(7) == "frame-00007.png"
    assert FRAME_PATTERN % 7 == frame_filename(7)


def test_document_embeds_program_and_config():
    html = build_document(make_spec(frames=60, fps=30))
    assert "const AnimatedVideo" in html
    assert '"durationInFrames": 60' in html
    assert "width: 320px" in html
    assert "React.createElement(AnimatedVideo)" in html


def test_captures_exact_frame_count(monkeypatch, workspace):
    page = FakePage()
    fake = install(monkeypatch, page)
    updates = []

    output = asyncio.run(FrameCaptureAdapter().render(make_spec(frames=12), workspace, updates.append))

    frames = list_frames(workspace.frames_dir)
    assert len(frames) == 12
    assert [f.name for f in frames] == [frame_filename(i) for i in range(12)]
    assert output.kind == RenderOutputKind.FRAME_SEQUENCE
    assert output.needs_encoding
    assert output.frame_count == 12
    assert page.viewport == {"width": 320, "height": 240}
    assert (workspace.source_dir / "index.html").exists()
    assert fake.browser.closed
    assert updates == sorted(updates)
    assert updates[-1] == 1.0


def test_progress_reported_per_decile(monkeypatch, workspace):
    install(monkeypatch, FakePage())
    updates = []
    asyncio.run(FrameCaptureAdapter().render(make_spec(frames=100), workspace, updates.append))
    # ten decile updates plus the final completion report
    assert len(updates) == 11
    assert updates[0] == pytest.approx(0.1)


def test_playwright_failure_becomes_render_error(monkeypatch, workspace):
    fake = install(monkeypatch, FakePage(fail_on_frame=3))
    with pytest.raises(RenderError, match="boom"):
        asyncio.run(FrameCaptureAdapter().render(make_spec(), workspace))
    assert fake.browser.closed


def test_missing_screenshot_file_fails(monkeypatch, workspace):
    install(monkeypatch, FakePage(skip_write=True))
    with pytest.raises(RenderError, match="not written"):
        asyncio.run(FrameCaptureAdapter().render(make_spec(), workspace))


def test_cancellation_stops_capture(monkeypatch, workspace):
    fake = install(monkeypatch, FakePage())
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(JobCancelledError):
        asyncio.run(FrameCaptureAdapter().render(make_spec(cancel_event=cancel), workspace))
    assert fake.browser.page.screenshots == []
    assert fake.browser.closed


def test_sandbox_flags(monkeypatch, workspace):
    assert "--no-sandbox" not in FrameCaptureAdapter().browser_args()
    fake = install(monkeypatch, FakePage())
    asyncio.run(FrameCaptureAdapter(no_sandbox=True).render(make_spec(frames=2), workspace))
    assert "--no-sandbox" in fake.chromium.launch_args
