"""Tests for record stores and snapshot normalisation."""

import httpx
import pytest

from novelforge_generation import GenerationConfigError, NetworkError
from novelforge_schemas import WorkflowStep

from services.workflow.app.snapshot import (
    RECORD_STORE_ENV_VAR,
    HttpRecordStore,
    InMemoryRecordStore,
    SnapshotAdapter,
    build_snapshot,
    create_record_store,
    resolve_book_id,
)
from tests.utils.records import BOOK_ID, PROJECT_ID, chapter_records, outline_record, project_record


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _store(stage: str = "outline", chapters: int = 0, **kwargs) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.projects[PROJECT_ID] = project_record(stage, **kwargs)
    if stage in ("outline", "chapters"):
        store.outlines[BOOK_ID] = outline_record()
    store.chapters[BOOK_ID] = chapter_records(chapters)
    return store


async def test_load_builds_snapshot_from_records() -> None:
    snapshot = await SnapshotAdapter(_store(chapters=2)).load(PROJECT_ID)
    assert snapshot is not None
    assert snapshot.project_id == PROJECT_ID
    assert snapshot.book_id == BOOK_ID
    assert snapshot.title == "The Glass Orchard"
    assert snapshot.logline == "A gardener grows memories."
    assert snapshot.story_bible.characters[0].is_protagonist
    assert snapshot.story_bible.world[0].category == "location"
    assert snapshot.plot_layers[0].type == "main"
    assert snapshot.outline is not None
    assert snapshot.outline.total_chapters == 3
    assert [act.chapter_count for act in snapshot.outline.acts] == [2, 1]
    assert snapshot.written_chapter_numbers == frozenset({1, 2})


async def test_missing_project_yields_none() -> None:
    assert await SnapshotAdapter(InMemoryRecordStore()).load("missing") is None


async def test_artifacts_are_read_from_project_and_completion() -> None:
    store = _store("chapters", chapters=3, artifacts=["analytics", "bogus"])
    store.completion[BOOK_ID] = {"completedChapters": 3, "totalChapters": 3, "artifacts": ["follow-up"]}
    snapshot = await SnapshotAdapter(store).load(PROJECT_ID)
    assert snapshot is not None
    assert snapshot.artifacts == frozenset({WorkflowStep.ANALYTICS, WorkflowStep.FOLLOW_UP})
    assert snapshot.completion.completed_chapters == 3


async def test_optional_fetch_failures_are_treated_as_absent() -> None:
    class FlakyStore(InMemoryRecordStore):
        async def get_outline(self, book_id):
            raise NetworkError("outline service down")

    store = FlakyStore()
    store.projects[PROJECT_ID] = project_record("plots")
    snapshot = await SnapshotAdapter(store).load(PROJECT_ID)
    assert snapshot is not None
    assert snapshot.outline is None


def test_malformed_records_degrade_quietly() -> None:
    snapshot = build_snapshot(
        {
            "id": 7,
            "title": "   ",
            "story_bible": {"characters": "nobody", "world": ["Harbour", 3, {"name": "Guild", "type": "Faction"}]},
            "plot_structure": {"plot_layers": None},
        },
        outline={"structure": {"acts": ["not-an-act", {"chapters": [{}, {}]}]}},
        chapters=[{"chapter_number": "x", "content": ""}, None],
        completion={"completedChapters": 9, "totalChapters": 2},
    )
    assert snapshot.project_id == "7"
    assert snapshot.title is None
    assert snapshot.story_bible.characters == ()
    assert [element.name for element in snapshot.story_bible.world] == ["Harbour", "Guild"]
    assert snapshot.story_bible.world[1].category == "faction"
    assert snapshot.plot_layers == ()
    assert snapshot.outline is not None
    assert snapshot.outline.total_chapters == 2
    assert snapshot.written_chapter_numbers == frozenset()
    assert snapshot.completion.completed_chapters == 2


def test_resolve_book_id_prefers_explicit_field() -> None:
    assert resolve_book_id({"book_id": "b-2", "books": [{"id": "b-1"}]}) == "b-2"
    assert resolve_book_id({"books": [{"id": "b-1"}]}) == "b-1"
    assert resolve_book_id({"books": []}) is None


async def test_http_record_store_reads_backend_routes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer secret"
        path = request.url.path
        if path == f"/api/projects/{PROJECT_ID}":
            return httpx.Response(200, json=project_record("outline"))
        if path == f"/api/outlines/book/{BOOK_ID}":
            return httpx.Response(200, json={"outline": outline_record()})
        if path == f"/api/chapters/book/{BOOK_ID}":
            return httpx.Response(200, json={"chapters": chapter_records(1)})
        if path == f"/api/completion/book/{BOOK_ID}/status":
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(500)

    store = HttpRecordStore(
        "http://backend.test", api_token="secret", transport=httpx.MockTransport(handler)
    )
    snapshot = await SnapshotAdapter(store).load(PROJECT_ID)
    await store.aclose()
    assert snapshot is not None
    assert snapshot.outline is not None
    assert snapshot.outline.total_chapters == 3
    assert snapshot.written_chapter_numbers == frozenset({1})
    assert snapshot.completion.total_chapters == 0


async def test_http_record_store_surfaces_project_errors() -> None:
    store = HttpRecordStore(
        "http://backend.test", transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )
    with pytest.raises(NetworkError):
        await SnapshotAdapter(store).load(PROJECT_ID)
    await store.aclose()


async def test_http_record_store_maps_request_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("truncated body", request=request)

    store = HttpRecordStore("http://backend.test", transport=httpx.MockTransport(handler))
    with pytest.raises(NetworkError):
        await store.get_project(PROJECT_ID)
    await store.aclose()


def test_create_record_store_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(RECORD_STORE_ENV_VAR, raising=False)
    assert isinstance(create_record_store(), InMemoryRecordStore)

    monkeypatch.setenv(RECORD_STORE_ENV_VAR, "http")
    monkeypatch.setenv("NOVELFORGE_API_URL", "http://backend.test")
    assert isinstance(create_record_store(), HttpRecordStore)

    monkeypatch.setenv(RECORD_STORE_ENV_VAR, "sqlite")
    with pytest.raises(GenerationConfigError):
        create_record_store()
