"""
Tests for the Remotion composition adapter with a scripted CLI.
"""
import asyncio

import pytest

from conftest import FakeRemotionCli
from services.render_job.errors import RenderError
from services.render_job.workspace import WorkspaceManager
from services.video_renderer import remotion_adapter
from services.video_renderer.base import RenderOutputKind, RenderSpec
from services.video_renderer.remotion_adapter import COMPOSITION_ID, RemotionAdapter
from shared.process_runner import ProcessTimeoutError


@pytest.fixture
def workspace(tmp_path):
    return WorkspaceManager(tmp_path / "work").acquire("job-rm")


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "remotion-project"
    (project / "node_modules" / "remotion").mkdir(parents=True)
    return project


def make_spec():
    return RenderSpec(
        job_id="job-rm",
        source_code="export default function Video() { return null; }",
        width=640,
        height=480,
        frame_count=60,
        fps=30,
    )


def install(monkeypatch, cli):
    monkeypatch.setattr(remotion_adapter, "run_process", cli)
    return cli


def test_render_runs_bundle_resolve_render(monkeypatch, workspace, project_dir):
    cli = install(monkeypatch, FakeRemotionCli())
    updates = []
    adapter = RemotionAdapter(project_dir=str(project_dir), npx_path="npx")

    output = asyncio.run(adapter.render(make_spec(), workspace, updates.append))

    assert [c[2] for c in cli.commands] == ["bundle", "compositions", "render"]
    render_cmd = cli.commands[2]
    assert render_cmd[3:6] == [str(workspace.bundle_dir), COMPOSITION_ID, str(workspace.output_path)]
    assert render_cmd[-2:] == ["--codec", "h264"]
    assert output.kind == RenderOutputKind.ENCODED_FILE
    assert not output.needs_encoding
    assert output.path == workspace.output_path
    assert updates == sorted(updates)
    assert updates[-1] == 1.0


def test_materialize_writes_entry_and_links_modules(workspace, project_dir):
    adapter = RemotionAdapter(project_dir=str(project_dir))
    entry = adapter.materialize(make_spec(), workspace)

    root_code = (workspace.source_dir / "Root.tsx").read_text()
    assert entry.read_text().count("registerRoot(RemotionRoot)") == 1
    assert f'id="{COMPOSITION_ID}"' in root_code
    assert "durationInFrames={60}" in root_code
    assert "width={640}" in root_code
    assert (workspace.source_dir / "Video.tsx").read_text() == make_spec().source_code
    assert (workspace.source_dir / "node_modules").is_symlink()


def test_bundle_failure(monkeypatch, workspace, project_dir):
    install(monkeypatch, FakeRemotionCli(fail_step="bundle"))
    adapter = RemotionAdapter(project_dir=str(project_dir))
    with pytest.raises(RenderError, match="Remotion bundle failed: Error: Unexpected token"):
        asyncio.run(adapter.render(make_spec(), workspace))


def test_missing_composition(monkeypatch, workspace, project_dir):
    install(monkeypatch, FakeRemotionCli(compositions=["SomethingElse"]))
    adapter = RemotionAdapter(project_dir=str(project_dir))
    with pytest.raises(RenderError, match="not found in bundle"):
        asyncio.run(adapter.render(make_spec(), workspace))


def test_empty_output_fails(monkeypatch, workspace, project_dir):
    install(monkeypatch, FakeRemotionCli(write_output=False))
    adapter = RemotionAdapter(project_dir=str(project_dir))
    with pytest.raises(RenderError, match="no output"):
        asyncio.run(adapter.render(make_spec(), workspace))


def test_timeout_becomes_render_error(monkeypatch, workspace, project_dir):
    async def hanging(cmd, **kwargs):
        raise ProcessTimeoutError("npx timed out after 5s")

    install(monkeypatch, hanging)
    adapter = RemotionAdapter(project_dir=str(project_dir), timeout_seconds=5)
    with pytest.raises(RenderError, match="timed out"):
        asyncio.run(adapter.render(make_spec(), workspace))


def test_missing_npx(monkeypatch, workspace, project_dir):
    async def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    install(monkeypatch, missing)
    adapter = RemotionAdapter(project_dir=str(project_dir), npx_path="/nope/npx")
    with pytest.raises(RenderError, match="not found"):
        asyncio.run(adapter.render(make_spec(), workspace))


def test_node_modules_link_failure_becomes_render_error(monkeypatch, workspace, project_dir):
    cli = install(monkeypatch, FakeRemotionCli())
    (workspace.source_dir / "node_modules").write_text("already here")
    adapter = RemotionAdapter(project_dir=str(project_dir))

    with pytest.raises(RenderError, match="materialize failed"):
        asyncio.run(adapter.render(make_spec(), workspace))
    assert cli.commands == []
