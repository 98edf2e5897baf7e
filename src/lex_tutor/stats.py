"""Session history aggregation: streaks, running totals and accuracy."""
from datetime import date, timedelta
from typing import Callable, Optional

from loguru import logger

from lex_tutor.models import QuizOutcome, TopicPerformance, UserStats
from lex_tutor.storage import KeyValueStore

STATS_KEY = "stats"

SESSION_TYPES = ("quiz", "flashcards", "learn", "memory_palace")


class StatsAggregator:
    def __init__(self, store: KeyValueStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    def get_stats(self, username: str) -> UserStats:
        stored = self.store.get(username, STATS_KEY)
        if not isinstance(stored, dict):
            return UserStats()
        try:
            return UserStats.from_dict(stored)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed stats for '{username}': {e}")
            return UserStats()

    def record_session(
        self, username: str, session_type: str, outcome: Optional[QuizOutcome] = None
    ) -> UserStats:
        """Count one finished session and fold a quiz outcome into the totals."""
        if outcome is not None and not 0 <= outcome.score <= outcome.total:
            raise ValueError(f"Invalid quiz outcome {outcome.score}/{outcome.total}")

        stats = self.get_stats(username)
        today = self.today()
        last = stats.last_session_date

        if last is None or last != today:
            if last == today - timedelta(days=1):
                stats.streak += 1
            else:
                stats.streak = 1
            stats.last_session_date = today

        stats.total_sessions += 1

        if session_type == "quiz" and outcome is not None:
            stats.quizzes_taken += 1
            stats.total_correct += outcome.score
            stats.total_questions += outcome.total
            perf = stats.topic_performance.setdefault(outcome.topic, TopicPerformance())
            perf.correct += outcome.score
            perf.total += outcome.total

        self.store.set(username, STATS_KEY, stats.to_dict())
        logger.debug(f"Recorded {session_type} session for '{username}' (streak {stats.streak})")
        return stats


def overall_accuracy(stats: UserStats) -> float | None:
    """Percentage of quiz questions answered correctly, or None when there are none."""
    if stats.total_questions == 0:
        return None
    return stats.total_correct / stats.total_questions * 100


def topic_accuracy(perf: TopicPerformance) -> float | None:
    if perf.total == 0:
        return None
    return perf.correct / perf.total * 100


def rank_topics(stats: UserStats) -> list[dict]:
    """Topics sorted weakest first; unscored topics sort as 0%. Ties keep insertion order."""
    ranked = [
        {
            "topic": topic,
            "accuracy": topic_accuracy(perf),
            "correct": perf.correct,
            "total": perf.total,
        }
        for topic, perf in stats.topic_performance.items()
    ]
    return sorted(ranked, key=lambda r: r["accuracy"] or 0.0)
