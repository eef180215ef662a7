"""
Render service configuration.
"""
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Service settings
SERVICE_NAME = "render-service"
SERVICE_VERSION = "1.0.0"
SERVICE_PORT = int(os.getenv("PORT", 3000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Request limits
MAX_CONTENT_LENGTH = 50 * 1024 * 1024
MAX_SOURCE_CHARS = 2_000_000
MAX_DIMENSION = 4096
MAX_FPS = 120
MAX_TOTAL_FRAMES = 18_000
DEFAULT_FPS = 30
DEFAULT_DURATION_SECONDS = 30
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080

RESOLUTION_PRESETS = {
    "1080p": (1920, 1080),
    "720p": (1280, 720),
    "480p": (854, 480),
}

# External tools
NPX_PATH = os.getenv("NPX_PATH", "npx")
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServiceSettings:
    """Settings injected into the render job orchestrator."""
    render_secret: str = ""
    work_root: Path = Path(tempfile.gettempdir())
    default_engine: str = "frame_capture"
    max_concurrent_jobs: int = 2

    # Composition backend
    remotion_project_dir: Path = Path.cwd()
    remotion_codec: str = "h264"
    npx_path: str = NPX_PATH

    # Frame capture backend
    browser_no_sandbox: bool = False
    page_load_timeout_ms: int = 60_000
    settle_ms: int = 1000

    # Encoder
    ffmpeg_path: str = FFMPEG_PATH
    ffprobe_path: str = FFPROBE_PATH
    encode_crf: int = 23
    encode_preset: str = "medium"

    process_timeout_seconds: float = 1800.0

    # Storage
    storage_backend: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    storage_bucket: str = "videos"
    local_storage_dir: Optional[Path] = None
    local_storage_base_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        local_dir = os.getenv("LOCAL_STORAGE_DIR")
        return cls(
            render_secret=os.getenv("RENDER_SECRET", ""),
            work_root=Path(os.getenv("RENDER_WORK_ROOT", tempfile.gettempdir())),
            default_engine=os.getenv("RENDER_ENGINE", "frame_capture"),
            max_concurrent_jobs=int(os.getenv("MAX_CONCURRENT_JOBS", 2)),
            remotion_project_dir=Path(os.getenv("REMOTION_PROJECT_DIR", os.getcwd())),
            remotion_codec=os.getenv("REMOTION_CODEC", "h264"),
            npx_path=NPX_PATH,
            browser_no_sandbox=_env_flag("BROWSER_NO_SANDBOX"),
            page_load_timeout_ms=int(os.getenv("PAGE_LOAD_TIMEOUT_MS", 60_000)),
            settle_ms=int(os.getenv("SETTLE_MS", 1000)),
            ffmpeg_path=FFMPEG_PATH,
            ffprobe_path=FFPROBE_PATH,
            encode_crf=int(os.getenv("ENCODE_CRF", 23)),
            encode_preset=os.getenv("ENCODE_PRESET", "medium"),
            process_timeout_seconds=float(os.getenv("PROCESS_TIMEOUT_SECONDS", 1800)),
            storage_backend=os.getenv("STORAGE_BACKEND", "supabase").lower(),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            storage_bucket=os.getenv("STORAGE_BUCKET", "videos"),
            local_storage_dir=Path(local_dir) if local_dir else None,
            local_storage_base_url=os.getenv("LOCAL_STORAGE_BASE_URL"),
        )
