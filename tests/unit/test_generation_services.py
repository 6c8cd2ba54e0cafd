"""Tests for the in-memory and HTTP Generation Service clients."""

import json

import httpx
import pytest

from novelforge_generation import (
    GenerationServiceConfig,
    HttpGenerationService,
    InMemoryGenerationService,
    JobNotFoundError,
    NetworkError,
    ServerRejectedError,
)
from novelforge_schemas import JobKind, JobStatus, JobStatusReport


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _http(handler) -> HttpGenerationService:
    config = GenerationServiceConfig(backend="http", base_url="http://backend.test", api_token="tok")
    return HttpGenerationService(config, transport=httpx.MockTransport(handler))


async def test_memory_status_before_submit_is_not_found() -> None:
    service = InMemoryGenerationService()
    with pytest.raises(JobNotFoundError):
        await service.get_job_status(JobKind.OUTLINE, "p1")


async def test_memory_keeps_one_active_job_per_scope() -> None:
    service = InMemoryGenerationService()
    first = await service.submit_job(JobKind.OUTLINE, "p1")
    second = await service.submit_job(JobKind.OUTLINE, "p1")
    other = await service.submit_job(JobKind.OUTLINE, "p2")
    assert first.job_id == second.job_id
    assert second.message == "outline already in progress"
    assert other.job_id != first.job_id


async def test_memory_status_is_idempotent_without_progress() -> None:
    service = InMemoryGenerationService()
    await service.submit_job(JobKind.CHAPTERS, "b1")
    first = await service.get_job_status(JobKind.CHAPTERS, "b1")
    second = await service.get_job_status(JobKind.CHAPTERS, "b1")
    assert first == second
    assert first.status is JobStatus.PENDING


async def test_memory_auto_completes_after_configured_polls() -> None:
    service = InMemoryGenerationService(auto_complete_after=2)
    await service.submit_job(JobKind.ANALYTICS, "b1", {"depth": "full"})
    report = await service.get_job_status(JobKind.ANALYTICS, "b1")
    assert report.status is JobStatus.PROCESSING
    assert report.progress == 50.0
    report = await service.get_job_status(JobKind.ANALYTICS, "b1")
    assert report.status is JobStatus.COMPLETED
    assert report.result["params"] == {"depth": "full"}


async def test_memory_terminal_jobs_do_not_change() -> None:
    service = InMemoryGenerationService()
    await service.submit_job(JobKind.OUTLINE, "p1")
    service.update_job(JobKind.OUTLINE, "p1", JobStatus.FAILED, error="nope")
    service.script(JobKind.OUTLINE, "p1", [JobStatusReport(status=JobStatus.COMPLETED)])
    report = await service.get_job_status(JobKind.OUTLINE, "p1")
    assert report.status is JobStatus.FAILED
    assert report.error == "nope"


async def test_http_submit_uses_kind_specific_route() -> None:
    seen: list[tuple[str, str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content or b"{}")))
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(202, json={"jobId": "job-9", "message": "Follow-up generation started"})

    service = _http(handler)
    receipt = await service.submit_job(JobKind.FOLLOW_UP, "b1", {"count": 3})
    await service.aclose()
    assert receipt.job_id == "job-9"
    assert seen == [("POST", "/api/completion/book/b1/follow-up/generate", {"count": 3})]


async def test_http_generic_route_for_outline() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"status": "running", "progress": {"percent": 40}})

    service = _http(handler)
    report = await service.get_job_status(JobKind.OUTLINE, "p1")
    await service.aclose()
    assert paths == ["/api/generation/outline/p1"]
    assert report.status is JobStatus.PROCESSING
    assert report.progress == 40.0


async def test_http_submit_rejection_is_verbatim() -> None:
    service = _http(lambda request: httpx.Response(400, json={"error": {"message": "Book is not complete"}}))
    with pytest.raises(ServerRejectedError) as excinfo:
        await service.submit_job(JobKind.FOLLOW_UP, "b1")
    await service.aclose()
    assert str(excinfo.value) == "Book is not complete"
    assert excinfo.value.status_code == 400


async def test_http_submit_without_job_id_is_rejected() -> None:
    service = _http(lambda request: httpx.Response(200, json={"message": "ok"}))
    with pytest.raises(ServerRejectedError):
        await service.submit_job(JobKind.COHERENCE, "p1")
    await service.aclose()


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("queued", JobStatus.PENDING),
        ("generating", JobStatus.PROCESSING),
        ("complete", JobStatus.COMPLETED),
        ("error", JobStatus.FAILED),
        ("mystery", JobStatus.PROCESSING),
    ],
)
async def test_http_status_vocabulary_is_normalised(raw: str, expected: JobStatus) -> None:
    service = _http(lambda request: httpx.Response(200, json={"status": raw, "error": "bad"}))
    report = await service.get_job_status(JobKind.COHERENCE, "p1")
    await service.aclose()
    assert report.status is expected


async def test_http_completed_without_result_uses_payload() -> None:
    service = _http(
        lambda request: httpx.Response(200, json={"status": "completed", "jobId": "j1", "score": 87})
    )
    report = await service.get_job_status(JobKind.ORIGINALITY, "p1")
    await service.aclose()
    assert report.result == {"score": 87}
    assert report.job_id == "j1"


@pytest.mark.parametrize(
    "response",
    [httpx.Response(404), httpx.Response(200, json={"status": "none"})],
)
async def test_http_missing_job_is_not_found(response: httpx.Response) -> None:
    service = _http(lambda request: response)
    with pytest.raises(JobNotFoundError):
        await service.get_job_status(JobKind.EDITORIAL_REPORT, "p1")
    await service.aclose()


async def test_http_transport_failures_are_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    service = _http(handler)
    with pytest.raises(NetworkError):
        await service.get_job_status(JobKind.OUTLINE, "p1")
    with pytest.raises(NetworkError):
        await service.submit_job(JobKind.OUTLINE, "p1")
    await service.aclose()


async def test_http_server_errors_on_status_are_transient() -> None:
    service = _http(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(NetworkError):
        await service.get_job_status(JobKind.ANALYTICS, "b1")
    await service.aclose()


async def test_http_request_errors_are_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("bad gzip stream", request=request)

    service = _http(handler)
    with pytest.raises(NetworkError):
        await service.submit_job(JobKind.CHAPTERS, "b1")
    with pytest.raises(NetworkError):
        await service.get_job_status(JobKind.CHAPTERS, "b1")
    await service.aclose()
