"""Pydantic models for everything the content generation gateway returns.

Generated JSON is validated here, immediately at the gateway boundary, so the
session engine only ever sees well-formed content. Field aliases follow the
camelCase keys the model is asked to produce.
"""
from __future__ import annotations

import datetime
import re
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from lex_tutor.errors import EmptyGenerationResult, GenerationFailed

StudyMode = Literal["flashcards", "quiz", "learn", "memory_palace"]
STUDY_MODES: tuple[str, ...] = ("flashcards", "quiz", "learn", "memory_palace")
SHUFFLED_MODES = ("flashcards", "quiz")

LearningStyle = Literal["memorization", "understanding", "mastery"]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


# ========================================
# Study content
# ========================================

class Flashcard(_Schema):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)


class QuizQuestion(_Schema):
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=4, max_length=4)
    correct_answer: str = Field(alias="correctAnswer")
    explanation: str = ""
    hint: str | None = None

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "QuizQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of the options")
        return self


class LearningStep(_Schema):
    concept: str
    example: str = Field(validation_alias=AliasChoices("example", "sanskritExample"))
    explanation: str = Field(validation_alias=AliasChoices("explanation", "englishExplanation"))
    mnemonic: str


class TableChunk(_Schema):
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class _PalaceStep(_Schema):
    title: str
    explanation: str
    table_chunk: TableChunk | None = Field(default=None, alias="tableChunk")


class IntroductionStep(_PalaceStep):
    step_type: Literal["introduction"] = Field(alias="stepType")


class PatternStep(_PalaceStep):
    step_type: Literal["pattern"] = Field(alias="stepType")


class ChunkStep(_PalaceStep):
    step_type: Literal["chunk"] = Field(alias="stepType")


class RecallStep(_PalaceStep):
    step_type: Literal["recall"] = Field(alias="stepType")
    recall_question: QuizQuestion = Field(alias="recallQuestion")


class ReviewStep(_PalaceStep):
    step_type: Literal["review"] = Field(alias="stepType")


MemoryPalaceStep = Annotated[
    Union[IntroductionStep, PatternStep, ChunkStep, RecallStep, ReviewStep],
    Field(discriminator="step_type"),
]

_ITEM_ADAPTERS: dict[str, TypeAdapter] = {
    "flashcards": TypeAdapter(list[Flashcard]),
    "quiz": TypeAdapter(list[QuizQuestion]),
    "learn": TypeAdapter(list[LearningStep]),
    "memory_palace": TypeAdapter(list[MemoryPalaceStep]),
}


# ========================================
# Syllabus
# ========================================

class Topic(_Schema):
    name: str = Field(min_length=1)
    sub_topics: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("subTopics", "sub_topics"),
        serialization_alias="subTopics",
    )

    @field_validator("sub_topics", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return value or []


class Section(_Schema):
    id: str = Field(min_length=1)
    title: str
    native_title: str = Field(
        default="",
        validation_alias=AliasChoices("nativeTitle", "sanskritTitle", "native_title"),
        serialization_alias="nativeTitle",
    )
    description: str = ""
    topics: list[Topic] = Field(default_factory=list)

    def topic_names(self) -> list[str]:
        """Main topics followed by their sub-topics, in syllabus order."""
        return [name for t in self.topics for name in (t.name, *t.sub_topics)]


_SECTIONS_ADAPTER = TypeAdapter(list[Section])


# ========================================
# Planning
# ========================================

class TimeEstimate(_Schema):
    estimate: str = Field(validation_alias=AliasChoices("estimate", "timeEstimate"))
    reasoning: str = ""


class ScheduleItem(_Schema):
    date: str
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    activity: str

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        return datetime.date.fromisoformat(value.strip()).isoformat()

    @field_validator("start_time", "end_time")
    @classmethod
    def _hh_mm(cls, value: str) -> str:
        match = _TIME_RE.match(value.strip())
        if not match:
            raise ValueError(f"expected HH:MM, got {value!r}")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if minutes > 59 or hours > 24 or (hours == 24 and minutes > 0):
            raise ValueError(f"time out of range: {value!r}")
        return f"{hours:02d}:{minutes:02d}"


class OptimizedSchedule(_Schema):
    items: list[ScheduleItem] = Field(
        validation_alias=AliasChoices("schedule", "items"),
        serialization_alias="schedule",
    )
    reasoning: str = ""

    @field_validator("items")
    @classmethod
    def _chronological(cls, items: list[ScheduleItem]) -> list[ScheduleItem]:
        return sorted(items, key=lambda i: (i.date, i.start_time))


# ========================================
# Assistant chat
# ========================================

class NavigateCommand(_Schema):
    name: Literal["navigate"]
    section_id: str = Field(alias="sectionId")


class GenerateCommand(_Schema):
    name: Literal["generate"]
    study_mode: StudyMode = Field(alias="studyMode")
    topic: str = Field(min_length=1)


class OpenModalCommand(_Schema):
    name: Literal["open_modal"]
    modal: Literal["stats", "syllabus"]


class AnswerOnlyCommand(_Schema):
    name: Literal["answer_only"]


AssistantCommand = Annotated[
    Union[NavigateCommand, GenerateCommand, OpenModalCommand, AnswerOnlyCommand],
    Field(discriminator="name"),
]


class AssistantReply(_Schema):
    response_text: str = Field(alias="responseText")
    command: AssistantCommand


# ========================================
# Boundary validation
# ========================================

def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(p) for p in first["loc"]) or "response"
    return f"{location}: {first['msg']}"


def parse_study_items(mode: str, payload: Any) -> list:
    """Validate generated study content for ``mode``. Empty content is rejected."""
    adapter = _ITEM_ADAPTERS.get(mode)
    if adapter is None:
        raise GenerationFailed(f"Unknown study mode '{mode}'")
    if not payload:
        raise EmptyGenerationResult(f"{mode.replace('_', ' ')} content")
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        raise GenerationFailed(f"Malformed {mode} content ({_describe(e)})") from e


def parse_sections(payload: Any) -> list[Section]:
    if not payload:
        raise EmptyGenerationResult("syllabus sections")
    try:
        return _SECTIONS_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise GenerationFailed(f"Malformed syllabus ({_describe(e)})") from e


def parse_model(model: type[BaseModel], payload: Any, what: str):
    if not payload:
        raise EmptyGenerationResult(what)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise GenerationFailed(f"Malformed {what} ({_describe(e)})") from e


def parse_schedule(payload: Any) -> OptimizedSchedule:
    schedule = parse_model(OptimizedSchedule, payload, "schedule")
    if not schedule.items:
        raise EmptyGenerationResult("schedule")
    return schedule


def dump_sections(sections: list[Section]) -> list[dict]:
    return [s.model_dump(by_alias=True) for s in sections]
