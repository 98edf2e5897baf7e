"""Syllabus sections: the built-in curriculum, custom uploads and completion."""
import json
from functools import lru_cache
from pathlib import Path

from loguru import logger

from lex_tutor.errors import GenerationFailed
from lex_tutor.library import StudyLibrary
from lex_tutor.progress import ProgressTracker
from lex_tutor.schemas import Section, dump_sections, parse_sections
from lex_tutor.storage import KeyValueStore

CONTENT_DIR = Path(__file__).parent / "content"

SECTIONS_KEY = "sections"
IS_CUSTOM_KEY = "isSyllabusCustom"
HAS_SEEN_WELCOME_KEY = "hasSeenWelcome"


@lru_cache
def _default_payload() -> tuple:
    data = json.loads((CONTENT_DIR / "default_syllabus.json").read_text(encoding="utf-8"))
    return tuple(data["sections"])


def default_sections() -> list[Section]:
    return parse_sections(list(_default_payload()))


def flatten_topics(sections: list[Section]) -> list[str]:
    """Every topic and sub-topic name across ``sections``, in syllabus order."""
    return [name for section in sections for name in section.topic_names()]


def find_section(sections: list[Section], section_id: str) -> Section | None:
    for section in sections:
        if section.id == section_id:
            return section
    return None


def completion_summary(sections: list[Section], completed: set[str]) -> dict:
    """How much of the syllabus is done, and which topics remain.

    Completed names that are not part of ``sections`` are ignored here but
    left in storage.
    """
    all_topics = list(dict.fromkeys(flatten_topics(sections)))
    done = [t for t in all_topics if t in completed]
    remaining = [t for t in all_topics if t not in completed]
    percent = len(done) / len(all_topics) * 100 if all_topics else 0.0
    return {
        "completed": len(done),
        "total": len(all_topics),
        "percent": round(percent, 1),
        "remaining": remaining,
    }


class SyllabusState:
    """Which sections a user studies from: the built-in syllabus or their own."""

    def __init__(self, store: KeyValueStore, progress: ProgressTracker, library: StudyLibrary):
        self.store = store
        self.progress = progress
        self.library = library

    def load(self, username: str) -> tuple[list[Section], bool]:
        """Return ``(sections, is_custom)``."""
        stored = self.store.get(username, SECTIONS_KEY)
        is_custom = self.store.get(username, IS_CUSTOM_KEY)
        if stored and is_custom is True:
            try:
                return parse_sections(stored), True
            except GenerationFailed as e:
                logger.warning(f"Stored syllabus for '{username}' is unreadable, using default: {e}")
        return default_sections(), False

    def replace(self, username: str, sections: list[Section]) -> list[Section]:
        """Adopt an analysed syllabus. Progress and attached files start over."""
        self.store.set(username, SECTIONS_KEY, dump_sections(sections))
        self.store.set(username, IS_CUSTOM_KEY, True)
        self.progress.clear(username)
        self.library.clear(username)
        return sections

    def revert(self, username: str) -> list[Section]:
        self.store.remove_many(username, [SECTIONS_KEY, IS_CUSTOM_KEY])
        self.progress.clear(username)
        self.library.clear(username)
        return default_sections()

    def consume_welcome(self, username: str) -> bool:
        """True exactly once per user: the first time they sign in."""
        if self.store.get(username, HAS_SEEN_WELCOME_KEY) is True:
            return False
        self.store.set(username, HAS_SEEN_WELCOME_KEY, True)
        return True
