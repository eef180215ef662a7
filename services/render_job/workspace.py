"""
Workspace Manager
=================
Allocates and tears down the isolated scratch directory tree of a job.

Layout under the configured root:

    render-<job_id>/
        src/          generated source and entry files
        frames/       captured raster frames (frame capture only)
        bundle/       engine bundle output (composition only)
        output.mp4    final encoded file
"""

import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from loguru import logger

from .errors import WorkspaceError


@dataclass(frozen=True)
class WorkspacePaths:
    """Paths of one job's workspace."""
    root: Path
    source_dir: Path
    frames_dir: Path
    bundle_dir: Path
    output_path: Path


class WorkspaceManager:
    """Creates one exclusively owned directory tree per job under `root`."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def paths_for(self, job_id: str) -> WorkspacePaths:
        job_root = self.root / f"render-{job_id}"
        return WorkspacePaths(
            root=job_root,
            source_dir=job_root / "src",
            frames_dir=job_root / "frames",
            bundle_dir=job_root / "bundle",
            output_path=job_root / "output.mp4",
        )

    def acquire(self, job_id: str) -> WorkspacePaths:
        """
        Create the workspace tree for `job_id`.

        The job root is created exclusively: an existing directory means
        another job owns it, and it is left untouched.

        Raises:
            WorkspaceError: If the tree could not be created
        """
        paths = self.paths_for(job_id)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            paths.root.mkdir(exist_ok=False)
        except FileExistsError:
            raise WorkspaceError(f"Workspace already exists: {paths.root}")
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace {paths.root}: {e}") from e

        try:
            paths.source_dir.mkdir()
            paths.frames_dir.mkdir()
        except OSError as e:
            self.release(paths)
            raise WorkspaceError(f"Could not create workspace {paths.root}: {e}") from e

        logger.debug(f"[Workspace] Acquired {paths.root}")
        return paths

    def release(self, paths: WorkspacePaths) -> None:
        """
        Recursively remove the workspace. Safe on missing or partial trees.

        Raises:
            WorkspaceError: If the tree exists but could not be removed
        """
        if not paths.root.exists() and not paths.root.is_symlink():
            return
        try:
            # rmtree unlinks symlinks found inside the tree without following them
            shutil.rmtree(paths.root)
        except FileNotFoundError:
            return
        except OSError as e:
            raise WorkspaceError(f"Could not remove workspace {paths.root}: {e}") from e
        logger.debug(f"[Workspace] Released {paths.root}")

    @contextmanager
    def session(self, job_id: str) -> Iterator[WorkspacePaths]:
        """Acquire a workspace and release it on every exit path."""
        paths = self.acquire(job_id)
        try:
            yield paths
        finally:
            try:
                self.release(paths)
            except WorkspaceError as e:
                logger.error(f"[Workspace] Teardown failed for job {job_id}: {e}")
