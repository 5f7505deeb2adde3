import pytest
from pydantic import ValidationError
from render_job_client.models import (
    Artifact,
    JobHandle,
    JobStatus,
    PollingConfig,
    StatusPayload,
    SubmissionConfig,
)


@pytest.mark.parametrize(
    "response",
    [
        {"id": "abc", "status_url": "/jobs/abc"},
        {"job_id": "abc", "status_url": "/jobs/abc"},
        {"id": "abc", "statusUrl": "/jobs/abc"},
        {"job_id": "abc", "statusUrl": "/jobs/abc"},
    ],
)
def test_handle_from_aliased_response(response):
    """Every spelling of the id and status url fields gives the same handle."""
    handle = JobHandle.from_response(response)

    assert handle == JobHandle(id="abc", status_url="/jobs/abc")
    assert handle.is_pollable


def test_handle_field_precedence():
    handle = JobHandle.from_response(
        {"id": "first", "job_id": "second", "status_url": "/a", "statusUrl": "/b"}
    )

    assert handle.id == "first"
    assert handle.status_url == "/a"


def test_handle_derives_status_url_from_id():
    handle = JobHandle.from_response({"id": "abc"})

    assert handle.status_url == "/render/abc/status"


def test_handle_skips_empty_values():
    handle = JobHandle.from_response({"id": "", "job_id": 42, "status_url": ""})

    assert handle.id == "42"
    assert handle.status_url == "/render/42/status"


def test_handle_without_id_or_status_url():
    handle = JobHandle.from_response({"message": "queued"})

    assert handle.id is None
    assert handle.status_url is None
    assert not handle.is_pollable


def test_handle_is_immutable():
    handle = JobHandle(id="abc")

    with pytest.raises(ValidationError):
        handle.status_url = "/elsewhere"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("done", JobStatus.done),
        ("completed", JobStatus.done),
        ("error", JobStatus.failed),
        ("failed", JobStatus.failed),
        ("pending", JobStatus.pending),
        ("running", JobStatus.pending),
        ("DONE", JobStatus.pending),
        (None, JobStatus.pending),
        (3, JobStatus.pending),
    ],
)
def test_status_normalization(raw, expected):
    assert JobStatus.from_raw(raw) == expected


def test_status_payload_from_response():
    payload = StatusPayload.from_response(
        {"status": "completed", "outputUrl": "/out.mp4"}, elapsed_time=1.5, attempt=4
    )

    assert payload.status == JobStatus.done
    assert payload.raw_status == "completed"
    assert payload.output_url == "/out.mp4"
    assert payload.error is None
    assert payload.attempt == 4
    assert payload.raw_response == {"status": "completed", "outputUrl": "/out.mp4"}


def test_status_payload_prefers_snake_case_output_url():
    payload = StatusPayload.from_response(
        {"status": "done", "output_url": "/a.mp4", "outputUrl": "/b.mp4"},
        elapsed_time=0.0,
        attempt=1,
    )

    assert payload.output_url == "/a.mp4"


def test_config_defaults():
    polling = PollingConfig()
    submission = SubmissionConfig()

    assert polling.poll_interval_ms == 2000
    assert polling.max_attempts == 300
    assert polling.max_consecutive_failures == 10
    assert submission.endpoint == "/render"


def test_config_rejects_zero_attempts():
    with pytest.raises(ValidationError):
        PollingConfig(max_attempts=0)


def test_artifact_from_path(tmp_path):
    path = tmp_path / "overlay.png"
    path.write_bytes(b"\x89PNG")

    artifact = Artifact.from_path(path, content_type="image/png")

    assert artifact.filename == "overlay.png"
    assert artifact.content == b"\x89PNG"
    assert artifact.content_type == "image/png"
