import asyncio
from typing import Any, Callable, Optional, Sequence, Union

import aiohttp
from loguru import logger
from render_job_client.errors import (
    InvalidHandleError,
    JobFailedError,
    MissingOutputError,
    PollTimeoutError,
    ResponseParseError,
    TransientQueryError,
    UploadError,
)
from render_job_client.models import (
    Artifact,
    JobHandle,
    JobStatus,
    PollingConfig,
    StatusPayload,
    SubmissionConfig,
)
from yarl import URL

DEFAULT_CONFIG_FILENAME = "config.json"
# Browsers name unnamed multipart blobs the same way
DEFAULT_FILE_FILENAME = "blob"

ArtifactLike = Union[Artifact, bytes, str]


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _session_options(request_timeout: Optional[float]) -> dict:
    if request_timeout is None:
        return {}
    return {"timeout": aiohttp.ClientTimeout(total=request_timeout)}


class RenderJobClient:
    def __init__(
        self,
        base_url: str,
        polling: Optional[PollingConfig] = None,
        submission: Optional[SubmissionConfig] = None,
        on_status_change: Optional[Callable[[StatusPayload], Any]] = None,
    ):
        self.base_url = URL(base_url.rstrip("/") + "/")
        self.polling = polling or PollingConfig()
        self.submission = submission or SubmissionConfig()
        self.logger = logger
        self.on_status_change = on_status_change

    def _resolve(self, url: str) -> str:
        """Resolves a relative endpoint against the base URL; absolute URLs pass through"""
        return str(self.base_url.join(URL(url)))

    @staticmethod
    def _build_form(config: ArtifactLike, files: Sequence[ArtifactLike]) -> aiohttp.FormData:
        if not isinstance(config, Artifact):
            config = Artifact(content=config)

        form = aiohttp.FormData()
        form.add_field(
            "config",
            config.content,
            filename=config.filename or DEFAULT_CONFIG_FILENAME,
            content_type=config.content_type,
        )
        for artifact in files:
            if not isinstance(artifact, Artifact):
                artifact = Artifact(content=artifact)
            form.add_field(
                "files[]",
                artifact.content,
                filename=artifact.filename or DEFAULT_FILE_FILENAME,
                content_type=artifact.content_type,
            )
        return form

    @staticmethod
    async def _read_json_object(response: aiohttp.ClientResponse) -> dict:
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            raise ResponseParseError(f"Response from {response.url} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ResponseParseError(
                f"Expected a JSON object from {response.url}, got {type(data).__name__}"
            )
        return data

    async def submit(
        self,
        config: ArtifactLike,
        files: Sequence[ArtifactLike] = (),
        submission: Optional[SubmissionConfig] = None,
    ) -> JobHandle:
        """Uploads the job configuration and its files, returning a handle to the new job.

        Exactly one request is sent; retrying a failed upload is up to the caller.
        """
        submission = submission or self.submission
        url = self._resolve(submission.endpoint)
        form = self._build_form(config, files)

        async with aiohttp.ClientSession(**_session_options(submission.request_timeout)) as session:
            async with session.post(url, data=form) as response:
                if not _is_success(response.status):
                    self.logger.error(f"Upload to {url} failed: {response.status} {response.reason}")
                    raise UploadError(response.status, response.reason)

                data = await self._read_json_object(response)

        handle = JobHandle.from_response(data)
        if not handle.is_pollable:
            self.logger.warning(f"Submission response from {url} has no job id or status url")
        else:
            self.logger.info(f"Submitted job {handle.id} ({len(files)} files), status at {handle.status_url}")
        return handle

    async def _get_status_once(
        self, session: aiohttp.ClientSession, url: str, start_time: float, attempt: int
    ) -> StatusPayload:
        """Queries the status url once and wraps the body with its attempt number and elapsed time"""
        try:
            async with session.get(url) as response:
                if not _is_success(response.status):
                    raise TransientQueryError(response.status, response.reason, url)

                data = await self._read_json_object(response)
                elapsed_time = asyncio.get_event_loop().time() - start_time
                return StatusPayload.from_response(data, elapsed_time, attempt)
        except TransientQueryError as e:
            self.logger.error(f"HTTP error {e.status} at {url}: {e.reason}")
            raise
        except ResponseParseError as e:
            self.logger.error(f"Unparseable status at {url}: {e}")
            raise

    async def _handle_status_change(
        self, status_payload: StatusPayload, last_status: Optional[JobStatus]
    ) -> None:
        if self.on_status_change is None or last_status == status_payload.status:
            return
        self.logger.debug(f"Job moved from {last_status} to {status_payload.raw_status}")
        await self.on_status_change(status_payload)

    async def _wait_before_retry(self, polling: PollingConfig) -> None:
        delay = polling.poll_interval_ms / 1000
        self.logger.debug(f"Job not finished, waiting {delay:.2f}s before next attempt")
        await asyncio.sleep(delay)

    async def poll(self, handle: JobHandle, polling: Optional[PollingConfig] = None) -> StatusPayload:
        """Poll the job's status endpoint until it is done or failed.

        Non-success responses, transport faults and unparseable bodies are tolerated
        up to `max_consecutive_failures` in a row; the next one is re-raised. A job
        reporting failure raises `JobFailedError` at once. Running out of
        `max_attempts` raises `PollTimeoutError`.
        """
        polling = polling or self.polling
        if not handle.is_pollable:
            raise InvalidHandleError("Job handle has neither an id nor a status url")

        url = self._resolve(handle.status_url)
        start_time = asyncio.get_event_loop().time()
        consecutive_failures = 0
        last_status = None

        async with aiohttp.ClientSession(**_session_options(polling.request_timeout)) as session:
            for attempt in range(1, polling.max_attempts + 1):
                try:
                    status_payload = await self._get_status_once(session, url, start_time, attempt)
                except (
                    aiohttp.ClientError,
                    asyncio.TimeoutError,
                    TransientQueryError,
                    ResponseParseError,
                ) as query_error:
                    consecutive_failures += 1
                    self.logger.warning(
                        f"Status query {attempt} for job {handle.id} failed "
                        f"({consecutive_failures} in a row): {query_error!r}"
                    )
                    if consecutive_failures > polling.max_consecutive_failures:
                        raise
                else:
                    consecutive_failures = 0
                    await self._handle_status_change(status_payload, last_status)
                    last_status = status_payload.status

                    if status_payload.status == JobStatus.done:
                        self.logger.info(f"Job {handle.id} done after {attempt} attempts")
                        return status_payload
                    if status_payload.status == JobStatus.failed:
                        self.logger.info(f"Job {handle.id} failed: {status_payload.error}")
                        raise JobFailedError(status_payload)

                if attempt < polling.max_attempts:
                    await self._wait_before_retry(polling)

        raise PollTimeoutError(polling.max_attempts)

    async def render(
        self,
        config: ArtifactLike,
        files: Sequence[ArtifactLike] = (),
        submission: Optional[SubmissionConfig] = None,
        polling: Optional[PollingConfig] = None,
    ) -> StatusPayload:
        """Submit a job and wait for its output"""
        handle = await self.submit(config, files, submission)
        status_payload = await self.poll(handle, polling)
        if not status_payload.output_url:
            raise MissingOutputError(status_payload)
        return status_payload
