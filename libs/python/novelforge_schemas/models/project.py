"""Immutable point-in-time views of a project's creation progress."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import WorkflowStep


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Character(_Frozen):
    name: str = ""
    role: Optional[str] = None

    @property
    def is_protagonist(self) -> bool:
        role = (self.role or "").lower()
        return "protagonist" in role or "main character" in role


class WorldElement(_Frozen):
    name: str = ""
    category: str = Field("location", description="location, faction, system or other")


class StoryBible(_Frozen):
    characters: tuple[Character, ...] = ()
    world: tuple[WorldElement, ...] = ()


class PlotLayer(_Frozen):
    name: str = ""
    type: Optional[str] = None


class OutlineAct(_Frozen):
    number: int = Field(..., ge=1)
    chapter_count: int = Field(0, ge=0)


class OutlineSnapshot(_Frozen):
    acts: tuple[OutlineAct, ...] = ()
    total_chapters: int = Field(0, ge=0)


class ChapterSnapshot(_Frozen):
    number: int = Field(..., ge=1)
    has_content: bool = False
    word_count: int = Field(0, ge=0)


class CompletionCounters(_Frozen):
    """Book completion counters reported by the persistence layer."""

    completed_chapters: int = Field(0, ge=0)
    total_chapters: int = Field(0, ge=0)
    total_word_count: int = Field(0, ge=0)
    is_complete: bool = False


class ProjectSnapshot(_Frozen):
    """Read-only aggregate consumed by the prerequisite graph.

    Collections are tuples and frozensets so that a snapshot can be hashed,
    compared structurally and shared between evaluations without copying.
    """

    project_id: str
    book_id: Optional[str] = None
    title: Optional[str] = None
    genre: Optional[str] = None
    logline: Optional[str] = None
    synopsis: Optional[str] = None
    story_bible: StoryBible = Field(default_factory=StoryBible)
    plot_layers: tuple[PlotLayer, ...] = ()
    outline: Optional[OutlineSnapshot] = None
    chapters: tuple[ChapterSnapshot, ...] = ()
    completion: CompletionCounters = Field(default_factory=CompletionCounters)
    artifacts: frozenset[WorkflowStep] = frozenset()

    @property
    def written_chapter_numbers(self) -> frozenset[int]:
        return frozenset(chapter.number for chapter in self.chapters if chapter.has_content)

    def has_artifact(self, step: WorkflowStep) -> bool:
        return step in self.artifacts
