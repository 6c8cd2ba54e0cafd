"""Fetch project records and normalise them into an immutable ProjectSnapshot."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional, Sequence

import httpx

from novelforge_generation import (
    GenerationConfigError,
    GenerationServiceConfig,
    NetworkError,
    load_generation_config,
)
from novelforge_schemas import (
    ChapterSnapshot,
    Character,
    CompletionCounters,
    OutlineAct,
    OutlineSnapshot,
    PlotLayer,
    ProjectSnapshot,
    StoryBible,
    WorkflowStep,
    WorldElement,
)

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

RECORD_STORE_ENV_VAR = "NOVELFORGE_RECORD_STORE"
DEFAULT_RECORD_STORE = "memory"

_WORLD_CATEGORIES = {"locations": "location", "factions": "faction", "systems": "system"}


class RecordStore(ABC):
    """Read-only persistence collaborator feeding the snapshot adapter.

    Each getter returns ``None`` (or an empty list) when the record has not
    been created yet; absence is the normal state of a young project.
    """

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Record]: ...

    @abstractmethod
    async def get_outline(self, book_id: str) -> Optional[Record]: ...

    @abstractmethod
    async def get_chapters(self, book_id: str) -> list[Record]: ...

    @abstractmethod
    async def get_completion_status(self, book_id: str) -> Optional[Record]: ...

    async def aclose(self) -> None:
        """Release transport resources; a no-op for in-process stores."""


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed store for tests and offline development."""

    def __init__(self) -> None:
        self.projects: dict[str, dict[str, Any]] = {}
        self.outlines: dict[str, dict[str, Any]] = {}
        self.chapters: dict[str, list[dict[str, Any]]] = {}
        self.completion: dict[str, dict[str, Any]] = {}

    async def get_project(self, project_id: str) -> Optional[Record]:
        return self.projects.get(project_id)

    async def get_outline(self, book_id: str) -> Optional[Record]:
        return self.outlines.get(book_id)

    async def get_chapters(self, book_id: str) -> list[Record]:
        return list(self.chapters.get(book_id, []))

    async def get_completion_status(self, book_id: str) -> Optional[Record]:
        return self.completion.get(book_id)


class HttpRecordStore(RecordStore):
    """Reads records from the NovelForge backend REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds, headers=headers, transport=transport
        )

    async def get_project(self, project_id: str) -> Optional[Record]:
        return await self._get_json(f"/api/projects/{project_id}")

    async def get_outline(self, book_id: str) -> Optional[Record]:
        payload = await self._get_json(f"/api/outlines/book/{book_id}")
        if isinstance(payload, Mapping) and isinstance(payload.get("outline"), Mapping):
            return payload["outline"]
        return payload

    async def get_chapters(self, book_id: str) -> list[Record]:
        payload = await self._get_json(f"/api/chapters/book/{book_id}")
        if isinstance(payload, Mapping):
            payload = payload.get("chapters")
        return [item for item in payload or [] if isinstance(item, Mapping)]

    async def get_completion_status(self, book_id: str) -> Optional[Record]:
        return await self._get_json(f"/api/completion/book/{book_id}/status")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Record store request failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.is_error:
            raise NetworkError(f"GET {path} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError:
            return None


class SnapshotAdapter:
    """Builds a fresh :class:`ProjectSnapshot` from the record store."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def load(self, project_id: str, book_id: str | None = None) -> ProjectSnapshot | None:
        """Return the project's snapshot, or ``None`` when the project does not exist.

        Failures fetching the project itself propagate. Failures fetching the
        outline, chapters or completion counters are logged and treated as
        absent data, which can only lock more steps.
        """

        project = await self._store.get_project(project_id)
        if not isinstance(project, Mapping):
            return None

        book_id = book_id or resolve_book_id(project)
        outline: Any = None
        chapters: Any = []
        completion: Any = None
        if book_id:
            outline = await self._fetch_optional("outline", self._store.get_outline(book_id))
            chapters = await self._fetch_optional("chapters", self._store.get_chapters(book_id))
            completion = await self._fetch_optional(
                "completion", self._store.get_completion_status(book_id)
            )
        return build_snapshot(project, outline, chapters, completion, book_id=book_id)

    @staticmethod
    async def _fetch_optional(label: str, pending) -> Any:
        try:
            return await pending
        except NetworkError:
            logger.warning("Treating %s as absent after fetch failure", label, exc_info=True)
            return None


def resolve_book_id(project: Record) -> str | None:
    book_id = project.get("book_id")
    if book_id:
        return str(book_id)
    books = project.get("books")
    if isinstance(books, Sequence) and not isinstance(books, (str, bytes)):
        for book in books:
            if isinstance(book, Mapping) and book.get("id"):
                return str(book["id"])
    return None


def build_snapshot(
    project: Record,
    outline: Any = None,
    chapters: Any = None,
    completion: Any = None,
    *,
    book_id: str | None = None,
) -> ProjectSnapshot:
    """Normalise raw records into a snapshot without raising on missing or malformed fields."""

    concept = _mapping(project.get("story_concept"))
    story_dna = _mapping(project.get("story_dna"))
    bible = _mapping(project.get("story_bible"))
    plot_structure = _mapping(project.get("plot_structure"))

    return ProjectSnapshot(
        project_id=str(project.get("id") or ""),
        book_id=book_id,
        title=_text(project.get("title")),
        genre=_text(project.get("genre")) or _text(story_dna.get("genre")),
        logline=_text(concept.get("logline")) or _text(project.get("logline")),
        synopsis=_text(concept.get("synopsis")) or _text(project.get("description")),
        story_bible=StoryBible(
            characters=tuple(_characters(bible.get("characters"))),
            world=tuple(_world(bible.get("world"))),
        ),
        plot_layers=tuple(_plot_layers(plot_structure.get("plot_layers"))),
        outline=_outline(outline),
        chapters=tuple(_chapters(chapters)),
        completion=_completion(completion),
        artifacts=frozenset(_artifacts(project, completion)),
    )


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _items(value: Any) -> list[Any]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return list(value)
    return []


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _characters(raw: Any) -> Iterable[Character]:
    for item in _items(raw):
        if isinstance(item, Mapping):
            yield Character(name=_text(item.get("name")) or "", role=_text(item.get("role")))


def _world(raw: Any) -> Iterable[WorldElement]:
    if isinstance(raw, Mapping):
        for key, category in _WORLD_CATEGORIES.items():
            for item in _items(raw.get(key)):
                name = _text(item.get("name")) if isinstance(item, Mapping) else _text(item)
                yield WorldElement(name=name or "", category=category)
        return
    for item in _items(raw):
        if isinstance(item, Mapping):
            category = _text(item.get("type")) or _text(item.get("category")) or "location"
            yield WorldElement(name=_text(item.get("name")) or "", category=category.lower())
        elif _text(item):
            yield WorldElement(name=_text(item) or "")


def _plot_layers(raw: Any) -> Iterable[PlotLayer]:
    for item in _items(raw):
        if isinstance(item, Mapping):
            yield PlotLayer(name=_text(item.get("name")) or "", type=_text(item.get("type")))


def _outline(raw: Any) -> OutlineSnapshot | None:
    if not isinstance(raw, Mapping):
        return None
    structure = _mapping(raw.get("structure"))
    acts = []
    for index, act in enumerate(_items(structure.get("acts") or raw.get("acts")), start=1):
        if not isinstance(act, Mapping):
            continue
        number = _count(act.get("number")) or index
        acts.append(OutlineAct(number=number, chapter_count=len(_items(act.get("chapters")))))
    total = _count(raw.get("total_chapters")) or sum(act.chapter_count for act in acts)
    return OutlineSnapshot(acts=tuple(acts), total_chapters=total)


def _chapters(raw: Any) -> Iterable[ChapterSnapshot]:
    for index, item in enumerate(_items(raw), start=1):
        if not isinstance(item, Mapping):
            continue
        content = item.get("content")
        has_content = isinstance(content, str) and len(content) > 0
        word_count = _count(item.get("word_count"))
        if not word_count and has_content:
            word_count = len(content.split())
        yield ChapterSnapshot(
            number=_count(item.get("chapter_number")) or index,
            has_content=has_content,
            word_count=word_count,
        )


def _completion(raw: Any) -> CompletionCounters:
    data = _mapping(raw)
    total = _count(data.get("totalChapters", data.get("total_chapters")))
    completed = min(_count(data.get("completedChapters", data.get("completed_chapters"))), total)
    return CompletionCounters(
        completed_chapters=completed,
        total_chapters=total,
        total_word_count=_count(data.get("totalWordCount", data.get("total_word_count"))),
        is_complete=bool(data.get("isComplete", data.get("is_complete", False))),
    )


def _artifacts(*sources: Any) -> Iterable[WorkflowStep]:
    valid = {step.value: step for step in WorkflowStep}
    for source in sources:
        for item in _items(_mapping(source).get("artifacts")):
            step = valid.get(str(item))
            if step is not None:
                yield step


def create_record_store(config: GenerationServiceConfig | None = None) -> RecordStore:
    """Build the record store named by ``NOVELFORGE_RECORD_STORE``.

    The ``http`` store shares the backend URL, token and timeout with the
    generation client configuration.
    """

    backend = os.getenv(RECORD_STORE_ENV_VAR, DEFAULT_RECORD_STORE).strip().lower()
    backend = backend or DEFAULT_RECORD_STORE
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "http":
        config = config or load_generation_config()
        if not config.base_url:
            raise GenerationConfigError("NOVELFORGE_API_URL is required for the http record store")
        return HttpRecordStore(
            config.base_url,
            api_token=config.api_token,
            timeout_seconds=config.timeout_seconds,
        )
    raise GenerationConfigError(f"Unsupported record store: {backend}")
