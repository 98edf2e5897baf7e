"""Per-user set of completed topic names."""
from lex_tutor.storage import KeyValueStore

PROGRESS_KEY = "progress"


class ProgressTracker:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_completed(self, username: str) -> set[str]:
        stored = self.store.get(username, PROGRESS_KEY)
        if not isinstance(stored, dict):
            return set()
        topics = stored.get("completedTopics")
        if not isinstance(topics, list):
            return set()
        return {t for t in topics if isinstance(t, str)}

    def _save(self, username: str, completed: set[str]) -> None:
        self.store.set(username, PROGRESS_KEY, {"completedTopics": sorted(completed)})

    def toggle(self, username: str, topic_name: str) -> set[str]:
        """Mark ``topic_name`` done, or undo it if it already was."""
        completed = self.get_completed(username)
        if topic_name in completed:
            completed.discard(topic_name)
        else:
            completed.add(topic_name)
        self._save(username, completed)
        return completed

    def clear(self, username: str) -> set[str]:
        completed: set[str] = set()
        self._save(username, completed)
        return completed
