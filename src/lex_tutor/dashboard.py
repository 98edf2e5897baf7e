"""Dashboard greetings, goals and accuracy display helpers."""
from typing import Optional

from lex_tutor.models import UserStats
from lex_tutor.stats import overall_accuracy, rank_topics


def get_greeting(hour: int) -> str:
    if hour < 12:
        return "Good morning"
    elif hour < 18:
        return "Good afternoon"
    return "Good evening"


def daily_goal(stats: Optional[UserStats]) -> str:
    if stats is not None and stats.streak > 0:
        return f"Keep up your {stats.streak}-day streak! Let's complete one more topic today."
    return "Let's kick off a new study streak by tackling one topic today!"


def get_accuracy_color(accuracy: Optional[float]) -> str:
    if accuracy is None:
        return "dim"
    if accuracy >= 75:
        return "green"
    elif accuracy >= 50:
        return "yellow"
    return "red"


def format_accuracy(accuracy: Optional[float]) -> str:
    if accuracy is None:
        return "N/A"
    return f"{accuracy:.0f}%"


def progress_bar(percent: float, width: int = 20) -> str:
    filled = int(round(percent / 100 * width))
    filled = max(0, min(width, filled))
    return "█" * filled + "░" * (width - filled)


def get_stats_summary(stats: UserStats) -> dict:
    """Headline numbers plus per-topic rows, weakest topic first."""
    return {
        "total_sessions": stats.total_sessions,
        "quizzes_taken": stats.quizzes_taken,
        "streak": stats.streak,
        "accuracy": format_accuracy(overall_accuracy(stats)),
        "topics": [
            {**row, "color": get_accuracy_color(row["accuracy"])}
            for row in rank_topics(stats)
        ],
    }
