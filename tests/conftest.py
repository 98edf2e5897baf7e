from datetime import date

import pytest

from lex_tutor.gateway import ContentGenerationGateway
from lex_tutor.library import StudyLibrary
from lex_tutor.progress import ProgressTracker
from lex_tutor.schemas import AssistantReply, TimeEstimate, parse_model, parse_schedule, parse_sections
from lex_tutor.stats import StatsAggregator
from lex_tutor.storage import KeyValueStore
from lex_tutor.syllabus import SyllabusState

FLASHCARDS = [
    {"front": "What is Sandhi?", "back": "Joining of sounds"},
    {"front": "What is Samas?", "back": "Compounding of words"},
    {"front": "What is Pratyaya?", "back": "A suffix"},
]

QUIZ = [
    {"question": "Q1", "options": ["a1", "b1", "c1", "d1"], "correctAnswer": "a1", "explanation": "e1", "hint": "h1"},
    {"question": "Q2", "options": ["a2", "b2", "c2", "d2"], "correctAnswer": "b2", "explanation": "e2"},
    {"question": "Q3", "options": ["a3", "b3", "c3", "d3"], "correctAnswer": "c3", "explanation": "e3"},
]

LEARN = [
    {"concept": "Vowel Sandhi", "sanskritExample": "विद्या + आलयः = विद्यालयः",
     "englishExplanation": "Two vowels merge", "mnemonic": "a + a = aa"},
    {"concept": "Visarga Sandhi", "example": "नमः + ते = नमस्ते",
     "explanation": "Visarga becomes s", "mnemonic": "hiss before t"},
]

PALACE = [
    {"stepType": "introduction", "title": "Meet the table", "explanation": "We will learn rama."},
    {"stepType": "chunk", "title": "Singular", "explanation": "First column",
     "tableChunk": {"headers": ["Case", "Singular"], "rows": [["Nom", "रामः"]]}},
    {"stepType": "recall", "title": "Quick check", "explanation": "Recall the nominative",
     "recallQuestion": {"question": "Nominative singular?", "options": ["रामः", "रामौ", "रामाः", "रामम्"],
                        "correctAnswer": "रामः"}},
    {"stepType": "review", "title": "Full table", "explanation": "All together",
     "tableChunk": {"headers": ["Case", "Singular"], "rows": [["Nom", "रामः"], ["Acc", "रामम्"]]}},
]

SECTIONS = [
    {"id": "1", "title": "Grammar", "nativeTitle": "व्याकरणम्", "description": "Rules",
     "topics": [{"name": "Sandhi", "subTopics": ["Vowel Sandhi"]}, {"name": "Samas"}]},
    {"id": "2", "title": "Reading", "topics": [{"name": "Lesson 1"}]},
]

SCHEDULE = {
    "schedule": [
        {"date": "2025-03-02", "startTime": "09:00", "endTime": "10:00", "activity": "Samas"},
        {"date": "2025-03-01", "startTime": "14:00", "endTime": "15:00", "activity": "Sandhi"},
        {"date": "2025-03-01", "startTime": "09:00", "endTime": "10:00", "activity": "Lesson 1"},
    ],
    "reasoning": "Weak topics first.",
}


class FakeGateway(ContentGenerationGateway):
    """In-memory gateway returning canned JSON payloads."""

    def __init__(self):
        self.items = {"flashcards": FLASHCARDS, "quiz": QUIZ, "learn": LEARN, "memory_palace": PALACE}
        self.sections = SECTIONS
        self.schedules = [SCHEDULE]
        self.reply = {"responseText": "Let's go!", "command": {"name": "answer_only"}}
        self.answer = "Great question! Sandhi joins sounds."
        self.error = None
        self.release = None
        self.calls = []

    async def _maybe_wait(self):
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error

    async def generate(self, mode, topic, files, custom_instructions=""):
        self.calls.append(("generate", mode, topic, files, custom_instructions))
        await self._maybe_wait()
        return self.items[mode]

    async def analyze_syllabus(self, files):
        self.calls.append(("analyze_syllabus", files))
        await self._maybe_wait()
        return parse_sections(self.sections)

    async def solve_doubt(self, topic, files, question):
        self.calls.append(("solve_doubt", topic, files, question))
        await self._maybe_wait()
        return self.answer

    async def estimate_time(self, remaining_topics, stats, style):
        self.calls.append(("estimate_time", remaining_topics, stats, style))
        await self._maybe_wait()
        return parse_model(TimeEstimate, {"timeEstimate": "approx. 3 hours", "reasoning": "You got this"}, "estimate")

    async def propose_schedule(self, remaining_topics, stats, start, end):
        self.calls.append(("propose_schedule", remaining_topics, stats, start, end))
        await self._maybe_wait()
        return parse_schedule(self.schedules.pop(0))

    async def revise_schedule(self, current, request):
        self.calls.append(("revise_schedule", current, request))
        await self._maybe_wait()
        return parse_schedule(self.schedules.pop(0))

    async def chat(self, user_input, sections):
        self.calls.append(("chat", user_input, sections))
        await self._maybe_wait()
        return parse_model(AssistantReply, self.reply, "assistant reply")


class FakeClock:
    def __init__(self, today: date):
        self.current = today

    def __call__(self) -> date:
        return self.current


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def store(tmp_db):
    return KeyValueStore(tmp_db)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock(date(2025, 3, 1))


@pytest.fixture
def stats(store, clock):
    return StatsAggregator(store, today=clock)


@pytest.fixture
def progress(store):
    return ProgressTracker(store)


@pytest.fixture
def library(tmp_db):
    return StudyLibrary(tmp_db)


@pytest.fixture
def syllabus(store, progress, library):
    return SyllabusState(store, progress, library)
