"""Gemini (Veo) video generation executor using httpx.

Runs one job end to end against the Generative Language REST API:

1. ``POST models/{model}:predictLongRunning`` starts a long-running operation.
2. ``GET {operation name}`` is polled every ``poll_interval_seconds`` until the
   operation reports ``done``.
3. The first generated sample's video URI is downloaded to
   ``<output_dir>/<job_id>.mp4``.

Transient polling failures (timeouts, connection errors, 5xx) are retried on
the next poll. Everything else becomes an ``ExecutionError`` subclass.
"""

from __future__ import annotations

import asyncio
import base64
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx

from vidqueue.backends.base import VideoArtifact, VideoExecutor
from vidqueue.core.config import GeminiConfig
from vidqueue.core.errors import (
    ArtifactDownloadError,
    GenerationError,
    MissingArtifactError,
    MissingSourceImageError,
    PollTimeoutError,
    SubmissionError,
)
from vidqueue.core.logging import get_logger
from vidqueue.core.models import InputType, Job

_logger = get_logger("backend.gemini")

_API_KEY_HEADER = "x-goog-api-key"
_DOWNLOAD_CHUNK_BYTES = 1024 * 1024
_MAX_REDIRECTS = 5


class GeminiVideoExecutor(VideoExecutor):
    """Executor for Veo models served by the Gemini API.

    The HTTP client is created lazily and reused across jobs so concurrent
    jobs share one connection pool.
    """

    def __init__(
        self,
        config: GeminiConfig,
        output_dir: Path,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._output_dir = output_dir
        self._api_key = api_key or os.environ.get(config.api_key_env, "")
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

        if not self._api_key:
            _logger.warning(
                "gemini.api_key_missing",
                env_var=config.api_key_env,
                msg="Jobs will fail until an API key is configured",
            )

    @property
    def name(self) -> str:
        return "gemini"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/") + "/",
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # ─── Execution ─────────────────────────────────────────────────

    async def execute(self, job: Job) -> VideoArtifact:
        if not self._api_key:
            raise SubmissionError(
                f"API key not set. Export {self._config.api_key_env} and retry."
            )
        client = await self._get_client()
        payload = self.build_request(job)
        model = self._config.api_model(job.model)

        operation = await self._submit(client, model, payload)
        _logger.info(
            "gemini.operation_started",
            operation=operation.get("name"),
            api_model=model,
        )
        operation = await self._wait_for_operation(client, operation)

        uri = self._extract_video_uri(operation)
        return await self._download(client, uri, job.id)

    def build_request(self, job: Job) -> dict[str, Any]:
        """Build the predictLongRunning request body for a job.

        Raises:
            MissingSourceImageError: For an image-to-video job with no image.
        """
        instance: dict[str, Any] = {"prompt": job.prompt}
        if job.input_type == InputType.IMAGE_TO_VIDEO:
            if job.source_image is None:
                raise MissingSourceImageError(
                    "Image-to-Video generation requires a source image."
                )
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(job.source_image.data).decode("ascii"),
                "mimeType": job.source_image.mime_type,
            }
        return {
            "instances": [instance],
            "parameters": {
                "aspectRatio": job.aspect_ratio,
                "sampleCount": job.number_of_outputs,
            },
        }

    async def _submit(
        self,
        client: httpx.AsyncClient,
        model: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            response = await client.post(
                f"models/{model}:predictLongRunning", json=payload, headers=self._auth_headers(),
            )
        except httpx.RequestError as e:
            raise SubmissionError(f"Video generation request failed: {e}") from e
        if not response.is_success:
            raise SubmissionError(
                f"Video generation request failed: HTTP {response.status_code}: "
                f"{_error_text(response)}"
            )
        operation: dict[str, Any] = response.json()
        if not operation.get("name") and not operation.get("done"):
            raise SubmissionError("Video generation request returned no operation.")
        return operation

    async def _wait_for_operation(
        self,
        client: httpx.AsyncClient,
        operation: dict[str, Any],
    ) -> dict[str, Any]:
        name = operation.get("name", "")
        attempts = 0
        while not operation.get("done"):
            max_attempts = self._config.max_poll_attempts
            if max_attempts is not None and attempts >= max_attempts:
                raise PollTimeoutError(
                    f"Video generation did not finish after {attempts} status checks."
                )
            await self._sleep(self._config.poll_interval_seconds)
            attempts += 1
            operation = await self._poll(client, name, operation, attempts)
        return operation

    async def _poll(
        self,
        client: httpx.AsyncClient,
        name: str,
        previous: dict[str, Any],
        attempt: int,
    ) -> dict[str, Any]:
        try:
            response = await client.get(name, headers=self._auth_headers())
        except httpx.RequestError as e:
            _logger.debug("gemini.poll_retry", attempt=attempt, error=str(e))
            return previous
        if response.status_code >= 500:
            _logger.debug(
                "gemini.poll_retry", attempt=attempt, status_code=response.status_code,
            )
            return previous
        if not response.is_success:
            raise GenerationError(
                f"Video generation failed: HTTP {response.status_code}: "
                f"{_error_text(response)}"
            )
        _logger.debug("gemini.polled", attempt=attempt)
        result: dict[str, Any] = response.json()
        return result

    @staticmethod
    def _extract_video_uri(operation: dict[str, Any]) -> str:
        error = operation.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise GenerationError(f"Video generation failed: {message}")

        response = operation.get("response") or {}
        samples = (response.get("generateVideoResponse") or {}).get("generatedSamples") or []
        uri = ((samples[0] if samples else {}).get("video") or {}).get("uri")
        if not uri:
            raise MissingArtifactError(
                "Video generation completed, but no download link was found."
            )
        if len(samples) > 1:
            _logger.info("gemini.extra_samples_ignored", samples=len(samples))
        return str(uri)

    async def _download(
        self,
        client: httpx.AsyncClient,
        uri: str,
        job_id: str,
    ) -> VideoArtifact:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / f"{job_id}.mp4"
        size = 0
        try:
            response = await self._open_download(client, httpx.URL(uri))
            try:
                if not response.is_success:
                    raise ArtifactDownloadError(
                        f"Failed to download video: HTTP {response.status_code} "
                        f"{response.reason_phrase}"
                    )
                content_type = response.headers.get("content-type", "video/mp4")
                with open(path, "wb") as f:
                    async for chunk in response.aiter_bytes(_DOWNLOAD_CHUNK_BYTES):
                        f.write(chunk)
                        size += len(chunk)
            finally:
                await response.aclose()
        except (httpx.RequestError, OSError) as e:
            path.unlink(missing_ok=True)
            raise ArtifactDownloadError(f"Failed to download video: {e}") from e
        except ArtifactDownloadError:
            path.unlink(missing_ok=True)
            raise

        _logger.info("gemini.video_downloaded", path=str(path), size_bytes=size)
        return VideoArtifact(
            uri=str(path),
            path=path,
            content_type=content_type.split(";")[0].strip(),
            size_bytes=size,
        )

    async def _open_download(self, client: httpx.AsyncClient, url: httpx.URL) -> httpx.Response:
        """Send the download request, following redirects by hand.

        The API key only goes to the API's own origin; a redirect to a
        storage host is fetched without it.
        """
        for _ in range(_MAX_REDIRECTS + 1):
            request = client.build_request("GET", url, headers=self._auth_headers(url))
            response = await client.send(request, stream=True)
            if not response.is_redirect:
                return response
            await response.aclose()
            url = response.url.join(response.headers["location"])
            _logger.debug("gemini.download_redirected", host=url.host)
        raise ArtifactDownloadError(
            f"Failed to download video: more than {_MAX_REDIRECTS} redirects"
        )

    def _auth_headers(self, url: httpx.URL | None = None) -> dict[str, str]:
        if url is not None and url.is_absolute_url:
            base = httpx.URL(self._config.base_url)
            if (url.scheme, url.host, url.port) != (base.scheme, base.host, base.port):
                return {}
        return {_API_KEY_HEADER: self._api_key}


def _error_text(response: httpx.Response) -> str:
    """Best-effort error message from an API error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message", ""))[:200]
    return response.text[:200]


__all__ = ["GeminiVideoExecutor"]
