"""Video generation executors."""

from vidqueue.backends.base import VideoArtifact, VideoExecutor
from vidqueue.backends.gemini import GeminiVideoExecutor

__all__ = ["GeminiVideoExecutor", "VideoArtifact", "VideoExecutor"]
