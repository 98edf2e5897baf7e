import pytest

from conftest import PALACE, SECTIONS
from lex_tutor.errors import EmptyGenerationResult, GenerationFailed
from lex_tutor.schemas import (
    AnswerOnlyCommand,
    AssistantReply,
    ChunkStep,
    GenerateCommand,
    IntroductionStep,
    LearningStep,
    NavigateCommand,
    OpenModalCommand,
    RecallStep,
    ReviewStep,
    TimeEstimate,
    dump_sections,
    parse_model,
    parse_schedule,
    parse_sections,
    parse_study_items,
)


def test_learning_step_accepts_legacy_field_names():
    step = LearningStep.model_validate({
        "concept": "c", "sanskritExample": "e", "englishExplanation": "x", "mnemonic": "m",
    })
    assert (step.example, step.explanation) == ("e", "x")


def test_quiz_answer_must_be_an_option():
    with pytest.raises(GenerationFailed):
        parse_study_items("quiz", [{"question": "Q", "options": ["a", "b", "c", "d"], "correctAnswer": "e"}])


def test_quiz_needs_four_options():
    with pytest.raises(GenerationFailed, match="options"):
        parse_study_items("quiz", [{"question": "Q", "options": ["a", "b", "c"], "correctAnswer": "a"}])


def test_palace_steps_are_tagged():
    steps = parse_study_items("memory_palace", PALACE)
    assert [type(s) for s in steps] == [IntroductionStep, ChunkStep, RecallStep, ReviewStep]
    assert steps[1].table_chunk.rows == [["Nom", "रामः"]]
    assert steps[0].table_chunk is None


def test_recall_step_requires_question():
    with pytest.raises(GenerationFailed):
        parse_study_items("memory_palace", [{"stepType": "recall", "title": "t", "explanation": "x"}])


def test_unknown_step_type_rejected():
    with pytest.raises(GenerationFailed):
        parse_study_items("memory_palace", [{"stepType": "dance", "title": "t", "explanation": "x"}])


def test_empty_items_rejected():
    with pytest.raises(EmptyGenerationResult):
        parse_study_items("flashcards", [])


def test_unknown_mode_rejected():
    with pytest.raises(GenerationFailed):
        parse_study_items("essay", [{"front": "a", "back": "b"}])


def test_sections_round_trip_through_storage_layout():
    sections = parse_sections(SECTIONS)
    assert sections[0].native_title == "व्याकरणम्"
    assert sections[0].topic_names() == ["Sandhi", "Vowel Sandhi", "Samas"]
    dumped = dump_sections(sections)
    assert dumped[0]["nativeTitle"] == "व्याकरणम्"
    assert dumped[0]["topics"][0]["subTopics"] == ["Vowel Sandhi"]
    assert parse_sections(dumped) == sections


def test_sections_accept_null_sub_topics_and_legacy_title():
    sections = parse_sections([{
        "id": "A", "title": "Grammar", "sanskritTitle": "व्याकरणम्",
        "topics": [{"name": "Sandhi", "subTopics": None}],
    }])
    assert sections[0].native_title == "व्याकरणम्"
    assert sections[0].topics[0].sub_topics == []


def test_empty_sections_rejected():
    with pytest.raises(EmptyGenerationResult):
        parse_sections([])


def test_schedule_is_sorted_and_normalized():
    schedule = parse_schedule({"schedule": [
        {"date": "2025-03-02", "startTime": "9:00", "endTime": "10:00", "activity": "b"},
        {"date": "2025-03-01", "startTime": "13:00", "endTime": "14:00", "activity": "a"},
    ]})
    assert [i.activity for i in schedule.items] == ["a", "b"]
    assert schedule.items[1].start_time == "09:00"
    assert schedule.model_dump(by_alias=True)["schedule"][0]["startTime"] == "13:00"


@pytest.mark.parametrize("item", [
    {"date": "March 1", "startTime": "09:00", "endTime": "10:00", "activity": "x"},
    {"date": "2025-03-01", "startTime": "9am", "endTime": "10:00", "activity": "x"},
    {"date": "2025-03-01", "startTime": "09:75", "endTime": "10:00", "activity": "x"},
    {"date": "2025-03-01", "startTime": "24:59", "endTime": "10:00", "activity": "x"},
])
def test_bad_schedule_items_rejected(item):
    with pytest.raises(GenerationFailed):
        parse_schedule({"schedule": [item]})


def test_midnight_end_of_day_allowed():
    schedule = parse_schedule({"schedule": [
        {"date": "2025-03-01", "startTime": "23:00", "endTime": "24:00", "activity": "Late review"},
    ]})
    assert schedule.items[0].end_time == "24:00"


def test_empty_schedule_rejected():
    with pytest.raises(EmptyGenerationResult):
        parse_schedule({"schedule": [], "reasoning": "nothing"})


def test_time_estimate_alias():
    estimate = parse_model(TimeEstimate, {"timeEstimate": "about 3 hours", "reasoning": "ok"}, "estimate")
    assert estimate.estimate == "about 3 hours"


@pytest.mark.parametrize("command, expected", [
    ({"name": "navigate", "sectionId": "C"}, NavigateCommand),
    ({"name": "generate", "studyMode": "quiz", "topic": "Sandhi"}, GenerateCommand),
    ({"name": "open_modal", "modal": "stats"}, OpenModalCommand),
    ({"name": "answer_only"}, AnswerOnlyCommand),
])
def test_assistant_commands(command, expected):
    reply = parse_model(AssistantReply, {"responseText": "hi", "command": command}, "reply")
    assert isinstance(reply.command, expected)


def test_generate_command_needs_known_mode():
    with pytest.raises(GenerationFailed):
        parse_model(AssistantReply, {
            "responseText": "hi",
            "command": {"name": "generate", "studyMode": "essay", "topic": "Sandhi"},
        }, "reply")
