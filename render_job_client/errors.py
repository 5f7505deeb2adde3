from typing import Optional

from render_job_client.models import StatusPayload


class RenderJobError(Exception):
    """Base class for every error raised by the render job client"""


class UploadError(RenderJobError):
    def __init__(self, status: int, reason: Optional[str]):
        self.status = status
        self.reason = reason
        super().__init__(f"Upload failed: {status} {reason or ''}".rstrip())


class ResponseParseError(RenderJobError):
    pass


class InvalidHandleError(RenderJobError):
    pass


class TransientQueryError(RenderJobError):
    """A single status query returned a non-success HTTP status"""

    def __init__(self, status: int, reason: Optional[str], url: str):
        self.status = status
        self.reason = reason
        self.url = url
        super().__init__(f"Status poll failed: {status} {reason or ''}".rstrip())


class JobFailedError(RenderJobError):
    """The remote job itself reported failure"""

    def __init__(self, payload: StatusPayload):
        self.payload = payload
        super().__init__(payload.error or "unknown")


class PollTimeoutError(RenderJobError, TimeoutError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Job did not finish within {attempts} polling attempts")


class MissingOutputError(RenderJobError):
    """The job finished but the server did not provide an output locator"""

    def __init__(self, payload: StatusPayload):
        self.payload = payload
        super().__init__("Job finished without an output_url")
