"""
FFmpeg Encoder
==============
Turns a captured frame sequence into an H.264 MP4.
"""

from pathlib import Path
from typing import List, Optional

from loguru import logger

from services.render_job.errors import EncodeError
from services.video_renderer.frame_capture_adapter import FRAME_PATTERN, frame_filename
from shared.process_runner import ProcessTimeoutError, run_process


class FfmpegEncoder:
    """
    Invokes ffmpeg on a sequentially named frame directory.

    The output is checked after encoding: a missing or empty file, or one
    whose video packet count differs from the expected frame count, fails.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        crf: int = 23,
        preset: str = "medium",
        timeout_seconds: Optional[float] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.crf = crf
        self.preset = preset
        self.timeout_seconds = timeout_seconds

    def build_command(self, frames_dir: Path, fps: int, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_path, "-y",
            "-loglevel", "error",
            "-framerate", str(fps),
            "-i", str(Path(frames_dir) / FRAME_PATTERN),
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            # yuv420p needs even dimensions
            "-vf", "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            "-movflags", "+faststart",
            str(output_path),
        ]

    async def encode(
        self,
        frames_dir: Path,
        fps: int,
        output_path: Path,
        expected_frames: Optional[int] = None,
    ) -> None:
        """
        Encode `frames_dir/frame-%05d.png` at `fps` into `output_path`.

        Raises:
            EncodeError: On a nonzero exit, timeout, missing binary or bad output
        """
        frames_dir = Path(frames_dir)
        output_path = Path(output_path)

        if not (frames_dir / frame_filename(0)).exists():
            raise EncodeError(f"No frames to encode in {frames_dir}")

        cmd = self.build_command(frames_dir, fps, output_path)
        logger.info(f"[ffmpeg] Encoding video: {' '.join(cmd)}")

        try:
            result = await run_process(cmd, timeout=self.timeout_seconds)
        except FileNotFoundError as e:
            raise EncodeError(f"ffmpeg not installed ({self.ffmpeg_path})") from e
        except ProcessTimeoutError as e:
            raise EncodeError(f"Encoding failed: {e}") from e

        if result.returncode != 0:
            error_msg = result.error_tail()
            logger.error(f"[ffmpeg] Encode error: {error_msg}")
            raise EncodeError(f"Encoding failed (exit {result.returncode}): {error_msg}")

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncodeError(f"Encoder produced no output at {output_path}")

        if expected_frames is not None:
            encoded = await self.count_frames(output_path)
            if encoded != expected_frames:
                raise EncodeError(
                    f"Encoded video is truncated: {encoded}/{expected_frames} frames"
                )

        logger.info(f"[ffmpeg] Video encoded: {output_path}")

    async def count_frames(self, video_path: Path) -> int:
        """Count video packets with ffprobe."""
        cmd = [
            self.ffprobe_path, "-v", "error",
            "-select_streams", "v:0",
            "-count_packets",
            "-show_entries", "stream=nb_read_packets",
            "-of", "csv=p=0",
            str(video_path),
        ]
        try:
            result = await run_process(cmd, timeout=self.timeout_seconds)
        except FileNotFoundError as e:
            raise EncodeError(f"ffprobe not installed ({self.ffprobe_path})") from e
        except ProcessTimeoutError as e:
            raise EncodeError(f"Frame count probe failed: {e}") from e

        if result.returncode != 0:
            raise EncodeError(f"Frame count probe failed: {result.error_tail()}")
        try:
            return int(result.stdout.strip().split(",")[0])
        except ValueError:
            raise EncodeError(f"Unexpected ffprobe output: {result.stdout!r}")
