import random

import pytest

from conftest import FLASHCARDS, LEARN, PALACE, QUIZ
from lex_tutor.schemas import Flashcard, RecallStep, parse_study_items
from lex_tutor.session import AnswerState, StudySession


def _quiz(rng=None, **kwargs):
    return StudySession("quiz", "Sandhi", parse_study_items("quiz", QUIZ), rng=rng or random.Random(7), **kwargs)


def _answer(session, correct):
    question = session.current_item
    if correct:
        option = question.correct_answer
    else:
        option = next(o for o in question.options if o != question.correct_answer)
    return session.select(option)


def test_quiz_scores_and_reports_once():
    reports = []
    session = _quiz(on_quiz_complete=lambda *args: reports.append(args))
    _answer(session, True)
    _answer(session, False)
    _answer(session, True)
    assert session.finished
    assert session.score == 2
    assert reports == [("Sandhi", 2, 3)]
    session.next()
    session.close()
    assert reports == [("Sandhi", 2, 3)]


def test_quiz_auto_advances_after_answer():
    session = _quiz()
    first = session.current_item
    state = _answer(session, True)
    assert state == AnswerState(selected=first.correct_answer, correct=True)
    assert session.index == 1


def test_first_answer_is_final():
    session = _quiz(auto_advance=False)
    wrong = _answer(session, False)
    again = session.select(session.current_item.correct_answer)
    assert again == wrong
    assert session.score == 0


def test_answer_stays_locked_after_going_back():
    session = _quiz()
    _answer(session, True)
    session.prev()
    assert session.current_answer.correct
    session.select("anything")
    assert session.score == 1
    assert session.index == 0


def test_quiz_without_auto_advance_needs_next():
    reports = []
    session = _quiz(auto_advance=False, on_quiz_complete=lambda *args: reports.append(args))
    for _ in range(3):
        _answer(session, True)
        session.next()
    assert session.finished
    assert reports == [("Sandhi", 3, 3)]


def test_shuffle_is_stable_within_a_session():
    session = StudySession("flashcards", "Sandhi", parse_study_items("flashcards", FLASHCARDS), rng=random.Random(3))
    order = session.items
    session.next()
    session.prev()
    session.flip()
    session.next()
    assert session.items == order
    assert sorted(c.front for c in order) == sorted(c["front"] for c in FLASHCARDS)


def test_shuffle_depends_on_rng_seed():
    items = parse_study_items("quiz", QUIZ * 4)
    a = StudySession("quiz", "t", items, rng=random.Random(1)).items
    b = StudySession("quiz", "t", items, rng=random.Random(1)).items
    assert a == b


def test_learn_and_palace_keep_generated_order():
    learn = StudySession("learn", "Sandhi", parse_study_items("learn", LEARN), rng=random.Random(1))
    assert [s.concept for s in learn.items] == [s["concept"] for s in LEARN]
    palace = StudySession("memory_palace", "Rama", parse_study_items("memory_palace", PALACE))
    assert [s.step_type for s in palace.items] == [s["stepType"] for s in PALACE]


def test_flashcard_flip_is_per_card():
    session = StudySession("flashcards", "Sandhi", [Flashcard(front="f1", back="b1"), Flashcard(front="f2", back="b2")])
    assert session.flip() is True
    session.next()
    assert session.is_flipped() is False
    session.prev()
    assert session.is_flipped() is True


def test_prev_clamps_at_start():
    session = StudySession("learn", "Sandhi", parse_study_items("learn", LEARN))
    session.prev()
    assert session.index == 0


def test_finishing_non_quiz_session_fires_on_complete():
    completed = []
    session = StudySession(
        "flashcards", "Sandhi", parse_study_items("flashcards", FLASHCARDS),
        on_complete=lambda mode, topic: completed.append((mode, topic)),
    )
    for _ in range(3):
        session.next()
    assert not session.active
    assert completed == [("flashcards", "Sandhi")]
    session.next()
    assert completed == [("flashcards", "Sandhi")]


def test_closing_early_does_not_report():
    completed = []
    session = StudySession("learn", "Sandhi", parse_study_items("learn", LEARN),
                           on_complete=lambda *args: completed.append(args))
    session.close()
    session.next()
    assert completed == []
    assert session.current_item is None


def test_palace_recall_is_not_scored():
    session = StudySession("memory_palace", "Rama", parse_study_items("memory_palace", PALACE))
    assert session.select("रामः") is None
    session.next()
    session.next()
    step = session.current_item
    assert isinstance(step, RecallStep)
    state = session.select("रामौ")
    assert state.correct is False
    assert session.select("रामः") == state
    assert session.score == 0
    assert session.index == 2


def test_select_outside_quiz_is_ignored():
    session = StudySession("learn", "Sandhi", parse_study_items("learn", LEARN))
    assert session.select("anything") is None
    assert session.answers == {}


def test_empty_session_is_inert():
    session = StudySession("flashcards", "Sandhi", [])
    assert session.current_item is None
    assert session.flip() is False
    assert session.select("x") is None


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        StudySession("essay", "Sandhi", [])
