"""Tests for vidqueue.backends.gemini.

The Gemini API is replaced by an ``httpx.MockTransport``; polling sleeps are
recorded instead of awaited.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from tests.helpers import make_job
from vidqueue.backends.gemini import GeminiVideoExecutor
from vidqueue.core.config import GeminiConfig
from vidqueue.core.errors import (
    ArtifactDownloadError,
    GenerationError,
    MissingArtifactError,
    MissingSourceImageError,
    PollTimeoutError,
    SubmissionError,
)
from vidqueue.core.models import InputType, SourceImage

OPERATION = "models/veo-2.0-generate-001/operations/op-123"
VIDEO_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"
CDN_URI = "https://storage.example.com/videos/abc.mp4"

Reply = tuple[int, dict[str, Any] | None]


def _done(uri: str | None = VIDEO_URI) -> dict[str, Any]:
    samples = [{"video": {"uri": uri}}] if uri else []
    return {
        "name": OPERATION,
        "done": True,
        "response": {"generateVideoResponse": {"generatedSamples": samples}},
    }


def _reply(reply: Reply) -> httpx.Response:
    status, body = reply
    if body is None:
        return httpx.Response(status)
    return httpx.Response(status, json=body)


class FakeGemini:
    """Programmable stand-in for the Gemini REST endpoints."""

    def __init__(self) -> None:
        self.submit_response: Reply = (200, {"name": OPERATION})
        self.poll_responses: list[Reply] = [(200, _done())]
        self.download_status = 200
        self.download_redirect: str | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith(":predictLongRunning"):
            return _reply(self.submit_response)
        if path.endswith("/operations/op-123"):
            if len(self.poll_responses) > 1:
                return _reply(self.poll_responses.pop(0))
            return _reply(self.poll_responses[0])
        if request.url.host == "storage.example.com":
            return httpx.Response(200, content=b"cdn-bytes", headers={"content-type": "video/mp4"})
        if path.endswith("files/abc:download"):
            if self.download_redirect is not None:
                return httpx.Response(302, headers={"location": self.download_redirect})
            if self.download_status != 200:
                return httpx.Response(self.download_status)
            return httpx.Response(
                200, content=b"mp4-bytes", headers={"content-type": "video/mp4"},
            )
        return httpx.Response(404, json={"error": {"message": f"no route {path}"}})


# ─── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def sleeps() -> list[float]:
    return []


def _executor(
    gemini: FakeGemini,
    sleeps: list[float],
    output_dir: Path,
    **config: Any,
) -> GeminiVideoExecutor:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return GeminiVideoExecutor(
        GeminiConfig(**config),
        output_dir,
        api_key="test-key",
        transport=httpx.MockTransport(gemini.handler),
        sleep=fake_sleep,
    )


# ─── Request building ──────────────────────────────────────────────────


class TestBuildRequest:
    """predictLongRunning request bodies."""

    def test_text_to_video(self, tmp_path: Path):
        executor = GeminiVideoExecutor(GeminiConfig(), tmp_path, api_key="k")
        body = executor.build_request(make_job("A fox", aspect_ratio="9:16", number_of_outputs=2))
        assert body == {
            "instances": [{"prompt": "A fox"}],
            "parameters": {"aspectRatio": "9:16", "sampleCount": 2},
        }

    def test_image_to_video_encodes_image(self, tmp_path: Path):
        executor = GeminiVideoExecutor(GeminiConfig(), tmp_path, api_key="k")
        image = SourceImage(data=b"\x89PNG", mime_type="image/png")
        job = make_job("Animate", input_type=InputType.IMAGE_TO_VIDEO, source_image=image)

        instance = executor.build_request(job)["instances"][0]

        assert instance["image"] == {
            "bytesBase64Encoded": base64.b64encode(b"\x89PNG").decode("ascii"),
            "mimeType": "image/png",
        }

    def test_image_to_video_without_image(self, tmp_path: Path):
        executor = GeminiVideoExecutor(GeminiConfig(), tmp_path, api_key="k")
        job = make_job("Animate", input_type=InputType.IMAGE_TO_VIDEO)
        with pytest.raises(MissingSourceImageError):
            executor.build_request(job)


# ─── Execution ─────────────────────────────────────────────────────────


class TestExecute:
    """Submit, poll, download."""

    @pytest.mark.asyncio
    async def test_happy_path(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        gemini.poll_responses = [
            (200, {"name": OPERATION, "done": False}),
            (200, _done()),
        ]
        executor = _executor(gemini, sleeps, tmp_path, poll_interval_seconds=10)
        job = make_job("A fox", model="veo-3.0-fast-preview")

        artifact = await executor.execute(job)
        await executor.close()

        assert artifact.uri == str(tmp_path / f"{job.id}.mp4")
        assert artifact.size_bytes == len(b"mp4-bytes")
        assert (tmp_path / f"{job.id}.mp4").read_bytes() == b"mp4-bytes"
        assert sleeps == [10, 10]

        submit = gemini.requests[0]
        # The alias resolves to the API model name
        assert submit.url.path == "/v1beta/models/veo-2.0-generate-001:predictLongRunning"
        assert submit.headers["x-goog-api-key"] == "test-key"
        assert json.loads(submit.content)["instances"] == [{"prompt": "A fox"}]

    @pytest.mark.asyncio
    async def test_missing_api_key(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        executor = GeminiVideoExecutor(GeminiConfig(), tmp_path)
        with pytest.raises(SubmissionError, match="GEMINI_API_KEY"):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_submit_rejected(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        gemini.submit_response = (400, {"error": {"message": "Invalid prompt"}})
        executor = _executor(gemini, sleeps, tmp_path)
        with pytest.raises(SubmissionError, match="Video generation request failed: HTTP 400: Invalid prompt"):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_operation_error(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        gemini.poll_responses = [
            (200, {
                "name": OPERATION, "done": True, "error": {"message": "quota exceeded"},
            }),
        ]
        executor = _executor(gemini, sleeps, tmp_path)
        with pytest.raises(GenerationError, match="Video generation failed: quota exceeded"):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_no_download_link(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        gemini.poll_responses = [(200, _done(uri=None))]
        executor = _executor(gemini, sleeps, tmp_path)
        with pytest.raises(MissingArtifactError, match="no download link was found"):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_download_failure_leaves_no_file(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
    ):
        gemini.download_status = 403
        executor = _executor(gemini, sleeps, tmp_path)
        job = make_job()
        with pytest.raises(ArtifactDownloadError, match="Failed to download video: HTTP 403"):
            await executor.execute(job)
        assert not (tmp_path / f"{job.id}.mp4").exists()

    @pytest.mark.asyncio
    async def test_write_error_leaves_no_file(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ):
        class FullDisk:
            def __init__(self, path: Path, mode: str) -> None:
                self._file = open(path, mode)

            def __enter__(self) -> FullDisk:
                return self

            def __exit__(self, *exc_info: object) -> None:
                self._file.close()

            def write(self, data: bytes) -> int:
                raise OSError(28, "No space left on device")

        monkeypatch.setattr("vidqueue.backends.gemini.open", FullDisk, raising=False)
        executor = _executor(gemini, sleeps, tmp_path)
        job = make_job()

        with pytest.raises(ArtifactDownloadError, match="No space left on device"):
            await executor.execute(job)
        assert not (tmp_path / f"{job.id}.mp4").exists()

    @pytest.mark.asyncio
    async def test_api_key_not_sent_to_redirect_host(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
    ):
        gemini.download_redirect = CDN_URI
        executor = _executor(gemini, sleeps, tmp_path)

        artifact = await executor.execute(make_job())

        assert artifact.size_bytes == len(b"cdn-bytes")
        api_download, cdn_download = gemini.requests[-2:]
        assert api_download.url.path.endswith("files/abc:download")
        assert api_download.headers["x-goog-api-key"] == "test-key"
        assert cdn_download.url.host == "storage.example.com"
        assert "x-goog-api-key" not in cdn_download.headers

    @pytest.mark.asyncio
    async def test_redirect_loop_fails(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
    ):
        gemini.download_redirect = VIDEO_URI
        executor = _executor(gemini, sleeps, tmp_path)
        job = make_job()
        with pytest.raises(ArtifactDownloadError, match="redirects"):
            await executor.execute(job)
        assert not (tmp_path / f"{job.id}.mp4").exists()


    @pytest.mark.asyncio
    async def test_transient_poll_errors_are_retried(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
    ):
        gemini.poll_responses = [
            (503, None),
            (200, _done()),
        ]
        executor = _executor(gemini, sleeps, tmp_path, poll_interval_seconds=1)

        artifact = await executor.execute(make_job())

        assert artifact.path is not None and artifact.path.exists()
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_poll_client_error_fails(
        self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path,
    ):
        gemini.poll_responses = [(404, {"error": {"message": "gone"}})]
        executor = _executor(gemini, sleeps, tmp_path)
        with pytest.raises(GenerationError, match="HTTP 404: gone"):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_poll_timeout(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        gemini.poll_responses = [(200, {"name": OPERATION, "done": False})]
        executor = _executor(gemini, sleeps, tmp_path, max_poll_attempts=3)
        with pytest.raises(PollTimeoutError, match="after 3 status checks"):
            await executor.execute(make_job())
        assert len(sleeps) == 3

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, gemini: FakeGemini, sleeps: list[float], tmp_path: Path):
        executor = _executor(gemini, sleeps, tmp_path)
        await executor.execute(make_job())
        await executor.close()
        await executor.close()
