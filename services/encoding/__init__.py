"""
Encoding Services

FFmpeg encoding of captured frame sequences.
"""

from .ffmpeg_encoder import FfmpegEncoder

__all__ = ["FfmpegEncoder"]
