"""Data classes for locally persisted state."""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class User:
    username: str


@dataclass
class TopicPerformance:
    correct: int = 0
    total: int = 0


@dataclass
class UserStats:
    total_sessions: int = 0
    quizzes_taken: int = 0
    total_correct: int = 0
    total_questions: int = 0
    streak: int = 0
    last_session_date: Optional[date] = None
    topic_performance: dict[str, TopicPerformance] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize to the stored JSON layout."""
        return {
            "totalSessions": self.total_sessions,
            "quizzesTaken": self.quizzes_taken,
            "totalCorrect": self.total_correct,
            "totalQuestions": self.total_questions,
            "streak": self.streak,
            "lastSessionDate": self.last_session_date.isoformat() if self.last_session_date else None,
            "topicPerformance": {
                topic: {"correct": perf.correct, "total": perf.total}
                for topic, perf in self.topic_performance.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserStats":
        """Build stats from stored JSON. Raises KeyError/TypeError/ValueError on malformed data."""
        last = data.get("lastSessionDate")
        return cls(
            total_sessions=int(data.get("totalSessions", 0)),
            quizzes_taken=int(data.get("quizzesTaken", 0)),
            total_correct=int(data.get("totalCorrect", 0)),
            total_questions=int(data.get("totalQuestions", 0)),
            streak=int(data.get("streak", 0)),
            # Stored values may carry a time component from older writers
            last_session_date=date.fromisoformat(last[:10]) if last else None,
            topic_performance={
                topic: TopicPerformance(int(perf["correct"]), int(perf["total"]))
                for topic, perf in (data.get("topicPerformance") or {}).items()
            },
        )


@dataclass(frozen=True)
class QuizOutcome:
    topic: str
    score: int
    total: int


@dataclass(frozen=True)
class StudyFile:
    id: str
    name: str
    mime_type: str
    content: str  # raw text for text/* files, base64 otherwise

    @property
    def is_text(self) -> bool:
        return self.mime_type.startswith("text/")
