from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SUBMIT_ENDPOINT = "/render"
STATUS_PATH_TEMPLATE = "/render/{id}/status"


def _first_present(data: Mapping[str, Any], keys: Iterable[str]) -> Optional[Any]:
    """Return the first value under `keys` that is neither missing, None nor empty"""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def status_url_for(job_id: str) -> str:
    return STATUS_PATH_TEMPLATE.format(id=job_id)


class JobStatus(str, Enum):
    pending = "pending"
    done = "done"
    failed = "failed"

    @classmethod
    def from_raw(cls, value: Any) -> "JobStatus":
        """Normalize a server status string; unknown values mean still in progress"""
        if value in ("done", "completed"):
            return cls.done
        if value in ("error", "failed"):
            return cls.failed
        return cls.pending


class Artifact(BaseModel):
    content: Union[bytes, str]
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "Artifact":
        path = Path(path)
        return cls(content=path.read_bytes(), filename=path.name, content_type=content_type)


class JobHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    status_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_status_url(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("status_url") and data.get("id"):
            data = {**data, "status_url": status_url_for(data["id"])}
        return data

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "JobHandle":
        job_id = _first_present(data, ("id", "job_id"))
        status_url = _first_present(data, ("status_url", "statusUrl"))
        return cls(
            id=str(job_id) if job_id is not None else None,
            status_url=str(status_url) if status_url is not None else None,
        )

    @property
    def is_pollable(self) -> bool:
        return bool(self.status_url)


class StatusPayload(BaseModel):
    status: JobStatus
    raw_status: Optional[str] = None
    output_url: Optional[str] = None
    error: Optional[str] = None
    raw_response: dict
    elapsed_time: float
    attempt: int

    @classmethod
    def from_response(
        cls, data: Mapping[str, Any], elapsed_time: float, attempt: int
    ) -> "StatusPayload":
        raw_status = data.get("status")
        output_url = _first_present(data, ("output_url", "outputUrl"))
        error = data.get("error")
        return cls(
            status=JobStatus.from_raw(raw_status),
            raw_status=raw_status if isinstance(raw_status, str) else None,
            output_url=str(output_url) if output_url is not None else None,
            error=str(error) if error is not None else None,
            raw_response=dict(data),
            elapsed_time=elapsed_time,
            attempt=attempt,
        )


class PollingConfig(BaseModel):
    poll_interval_ms: int = Field(default=2000, ge=0)
    max_attempts: int = Field(default=300, ge=1)
    max_consecutive_failures: int = Field(default=10, ge=0)
    request_timeout: Optional[float] = None  # seconds, per status query


class SubmissionConfig(BaseModel):
    endpoint: str = DEFAULT_SUBMIT_ENDPOINT
    request_timeout: Optional[float] = None
