"""Content generation gateway: the only place that talks to the language model.

``ContentGenerationGateway`` is the capability the rest of the tutor depends
on. ``GeminiGateway`` implements it with Google's Gemini API, asking for JSON
and validating every response with the models in ``lex_tutor.schemas``. Any
failure, a timeout included, surfaces as ``GenerationFailed``.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import google.generativeai as genai
from loguru import logger

from lex_tutor.errors import EmptyGenerationResult, GenerationFailed
from lex_tutor.models import StudyFile, UserStats
from lex_tutor.schemas import (
    AssistantReply,
    OptimizedSchedule,
    Section,
    TimeEstimate,
    parse_model,
    parse_schedule,
    parse_sections,
    parse_study_items,
)
from lex_tutor.stats import overall_accuracy, topic_accuracy

TUTOR_PERSONA = (
    "You are Lex, an AI tutor for {subject}. Your student feels overwhelmed and avoids studying. "
    "Make learning feel easy, achievable and confidence-building. Your tone is sharp, modern and encouraging."
)

CUSTOM_INSTRUCTIONS = """

CRITICAL USER INSTRUCTIONS (HIGHEST PRIORITY): follow these exactly, they override every other directive:
"{instructions}\""""

MODE_PROMPTS = {
    "flashcards": (
        'Generate 5 key flashcards for the topic "{topic}". Focus on the most important concepts '
        "to build a foundation.\n"
        'Return a JSON array of objects: {{"front": string, "back": string}}.'
    ),
    "quiz": (
        'Create a short 3-question multiple-choice quiz on "{topic}". Start with a very easy question '
        "to build momentum. Give each question a short hint that guides without giving the answer away.\n"
        'Return a JSON array of objects: {{"question": string, "options": [exactly 4 strings], '
        '"correctAnswer": string copied exactly from options, "explanation": string, "hint": string}}.'
    ),
    "learn": (
        'Create a "Learn & Memorize" module of 3-5 simple steps for the topic "{topic}". Each step '
        "teaches one main point with an example, a plain-English explanation and a memorable mnemonic.\n"
        'Return a JSON array of objects: {{"concept": string, "example": string, '
        '"explanation": string, "mnemonic": string}}.'
    ),
    "memory_palace": (
        'The student wants to memorize the table for "{topic}" (for example a declension or '
        "conjugation table). Build a step-by-step Memory Palace tutorial of 6-10 steps:\n"
        "- start with one 'introduction' step;\n"
        "- use 'pattern' steps to reveal recurring suffixes, stems or rules as eureka moments;\n"
        "- use 'chunk' steps to show one small part of the table at a time;\n"
        "- follow a chunk or pattern with a 'recall' step holding one simple multiple-choice question;\n"
        "- end with exactly one 'review' step showing the complete table.\n"
        'Return a JSON array of objects: {{"stepType": "introduction"|"pattern"|"chunk"|"recall"|"review", '
        '"title": string, "explanation": string, '
        '"tableChunk": {{"headers": [string], "rows": [[string]]}} (optional), '
        '"recallQuestion": {{"question": string, "options": [exactly 4 strings], '
        '"correctAnswer": string copied exactly from options, "explanation": string}} (required for recall steps)}}.'
    ),
}

SYLLABUS_PROMPT = """You are a curriculum analysis expert for {subject}. Read the syllabus document(s) below and extract the curriculum.
- Group it into logical sections (for example Grammar, Literature).
- List the main topics of each section, and any sub-topics under their parent topic.
- Ignore exam rules, general instructions and unrelated content.
- Give each section an English title and a title in the original language (repeat the English title if there is none).
Return a JSON array of objects: {{"id": short unique string such as "A" or "1", "title": string, "nativeTitle": string, "description": one sentence, "topics": [{{"name": string, "subTopics": [string]}}]}}."""

DOUBT_PROMPT = """You are Lex, a sharp and friendly tutor for {subject}. A student studying "{topic}" has a question. Open with a short positive affirmation, then break the answer into small, easy steps with simple language and analogies. Plain text only, no markdown.
Question: "{question}\""""

LEARNING_STYLES = {
    "memorization": "The goal is quick memorization: learn key facts, vocabulary and rules fast for an upcoming test.",
    "understanding": "The goal is conceptual understanding: grasp the why behind each concept, not just memorize it.",
    "mastery": "The goal is deep mastery: understand everything thoroughly and recall all key information perfectly.",
}

ESTIMATE_PROMPT = """As an expert academic coach, estimate how long a student needs to learn these remaining {subject} topics: {topics}.
{style}
{performance}
Give a realistic, encouraging estimate in a concise form (for example "approx. 8-10 hours" or "about 2-3 focused evenings"); this is one subject among several, so avoid estimates of many weeks.
Return a JSON object: {{"timeEstimate": string, "reasoning": one short encouraging sentence}}."""

SCHEDULE_PROMPT = """You are an expert academic coach for a {subject} student. Create a detailed hour-by-hour study schedule from {start} to {end}.
The student still has to master: {topics}.
If the period spans several days, include a 1-hour lunch break around 13:00 and a 45-minute dinner break around 19:00 each day. For a single day or a few hours, place short 10-15 minute breaks between study blocks. Split large topics into manageable blocks.
{performance}
Return a JSON object: {{"schedule": [{{"date": "YYYY-MM-DD", "startTime": "HH:MM", "endTime": "HH:MM", "activity": string}}], "reasoning": one short motivating sentence}}."""

REVISE_PROMPT = """You are an adaptive schedule assistant. Mirror the tone of the user's request in your reply.
Current schedule (JSON):
{schedule}

Request: "{request}"

Modify the schedule to accommodate the request (add a "Break" item for a break, shift times to move a session) and return the entire updated schedule.
Return a JSON object: {{"schedule": [{{"date": "YYYY-MM-DD", "startTime": "HH:MM", "endTime": "HH:MM", "activity": string}}], "reasoning": a one-sentence confirmation of the change}}."""

ASSISTANT_INSTRUCTION = """You are Lex, an encouraging and proactive AI study buddy for {subject}.
- Suggest next steps, not just answers. Praise effort and keep things simple.
- Stay on {subject}; gently redirect anything else using the "answer_only" command.
- Drive the app: "generate" to create study aids, "navigate" to open a section, "open_modal" to show stats or syllabus options.
- Plain text only, no markdown.

AVAILABLE SYLLABUS:
{syllabus}

Return a JSON object: {{"responseText": string, "command": {{"name": "navigate"|"generate"|"open_modal"|"answer_only", "sectionId": string (navigate), "studyMode": "flashcards"|"quiz"|"learn"|"memory_palace" (generate), "topic": exact topic name from the syllabus (generate), "modal": "stats"|"syllabus" (open_modal)}}}}."""


class ContentGenerationGateway(ABC):
    """Everything the tutor asks of a generative model."""

    @abstractmethod
    async def generate(
        self, mode: str, topic: str, files: list[StudyFile], custom_instructions: str = ""
    ) -> list:
        ...

    @abstractmethod
    async def analyze_syllabus(self, files: list[StudyFile]) -> list[Section]:
        ...

    @abstractmethod
    async def solve_doubt(self, topic: str, files: list[StudyFile], question: str) -> str:
        ...

    @abstractmethod
    async def estimate_time(
        self, remaining_topics: list[str], stats: Optional[UserStats], style: str
    ) -> TimeEstimate:
        ...

    @abstractmethod
    async def propose_schedule(
        self, remaining_topics: list[str], stats: Optional[UserStats], start: datetime, end: datetime
    ) -> OptimizedSchedule:
        ...

    @abstractmethod
    async def revise_schedule(self, current: OptimizedSchedule, request: str) -> OptimizedSchedule:
        ...

    @abstractmethod
    async def chat(self, user_input: str, sections: list[Section]) -> AssistantReply:
        ...


def material_parts(files: list[StudyFile]) -> list:
    """Text notes as one prompt part, binary files as inline blobs."""
    parts: list = []
    notes = "\n\n".join(f"--- FILE: {f.name} ---\n{f.content}" for f in files if f.is_text)
    if notes:
        parts.append(notes)
    for f in files:
        if f.is_text:
            continue
        try:
            data = base64.b64decode(f.content, validate=True)
        except (binascii.Error, ValueError):
            logger.warning(f"Skipping {f.name}: content is not valid base64")
            continue
        parts.append({"mime_type": f.mime_type, "data": data})
    return parts


def _performance_summary(stats: Optional[UserStats]) -> str:
    if stats is None or stats.total_questions == 0:
        return "Assume an average learning pace."
    accuracy = overall_accuracy(stats)
    return (
        f"Student performance: {stats.quizzes_taken} quizzes taken, {accuracy:.0f}% overall accuracy. "
        "Higher accuracy suggests a faster pace."
    )


def _topic_performance_summary(stats: Optional[UserStats]) -> str:
    if stats is None or not stats.topic_performance:
        return "There is no performance data yet, so balance the time across all topics."
    lines = ["Prioritize topics where their accuracy is lower:"]
    for topic, perf in stats.topic_performance.items():
        accuracy = topic_accuracy(perf)
        lines.append(f"- {topic}: {'N/A' if accuracy is None else f'{accuracy:.0f}%'} accuracy")
    return "\n".join(lines)


def _format_moment(moment: datetime) -> str:
    return moment.strftime("%A, %B %d, %Y %I:%M %p")


class GeminiGateway(ContentGenerationGateway):
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        timeout: float = 60.0,
        subject: str = "Sanskrit",
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.subject = subject
        if api_key:
            genai.configure(api_key=api_key)

    async def _request(
        self, what: str, parts: list, json_mode: bool = True, system_instruction: str | None = None
    ) -> Any:
        if not self.api_key:
            raise GenerationFailed("No Google API key configured. Set GOOGLE_API_KEY to use AI features.")
        model = genai.GenerativeModel(self.model_name, system_instruction=system_instruction)
        config = genai.GenerationConfig(response_mime_type="application/json") if json_mode else None
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(parts, generation_config=config),
                timeout=self.timeout,
            )
            text = (response.text or "").strip()
        except asyncio.TimeoutError as e:
            logger.error(f"Gemini request to {what} timed out after {self.timeout}s")
            raise GenerationFailed(f"Failed to {what}: the request timed out.") from e
        except Exception as e:
            logger.error(f"Gemini request to {what} failed: {e}")
            raise GenerationFailed(f"Failed to {what}. Details: {e}") from e

        if not text:
            raise EmptyGenerationResult("response")
        if not json_mode:
            return text
        try:
            return json.loads(text)
        except ValueError as e:
            raise GenerationFailed(f"Failed to {what}: the response was not valid JSON.") from e

    async def generate(
        self, mode: str, topic: str, files: list[StudyFile], custom_instructions: str = ""
    ) -> list:
        if mode not in MODE_PROMPTS:
            raise GenerationFailed(f"Unknown study mode '{mode}'")
        prompt = TUTOR_PERSONA.format(subject=self.subject) + "\n\n" + MODE_PROMPTS[mode].format(topic=topic)
        if custom_instructions.strip():
            prompt += CUSTOM_INSTRUCTIONS.format(instructions=custom_instructions.strip())
        if files:
            prompt += "\n\nBase the content on the following study materials, keeping it aligned with the topic:"
        else:
            prompt += f"\n\nBase the content on your expert knowledge of the {self.subject} curriculum. Keep every example accurate."
        payload = await self._request("generate study aids", [prompt, *material_parts(files)])
        return parse_study_items(mode, payload)

    async def analyze_syllabus(self, files: list[StudyFile]) -> list[Section]:
        parts: list = [SYLLABUS_PROMPT.format(subject=self.subject)]
        for f in files:
            parts.append(f"\n\n--- START OF DOCUMENT: {f.name} ---\n")
            parts.extend(material_parts([f]))
            parts.append(f"\n--- END OF DOCUMENT: {f.name} ---\n")
        payload = await self._request("analyze syllabus", parts)
        return parse_sections(payload)

    async def solve_doubt(self, topic: str, files: list[StudyFile], question: str) -> str:
        prompt = DOUBT_PROMPT.format(subject=self.subject, topic=topic, question=question)
        if files:
            prompt += "\n\nBase your answer on the topic and the study materials below:"
        return await self._request("answer the question", [prompt, *material_parts(files)], json_mode=False)

    async def estimate_time(
        self, remaining_topics: list[str], stats: Optional[UserStats], style: str
    ) -> TimeEstimate:
        if style not in LEARNING_STYLES:
            raise GenerationFailed(f"Unknown learning style '{style}'")
        prompt = ESTIMATE_PROMPT.format(
            subject=self.subject,
            topics=", ".join(remaining_topics),
            style=LEARNING_STYLES[style],
            performance=_performance_summary(stats),
        )
        payload = await self._request("estimate completion time", [prompt])
        return parse_model(TimeEstimate, payload, "time estimate")

    async def propose_schedule(
        self, remaining_topics: list[str], stats: Optional[UserStats], start: datetime, end: datetime
    ) -> OptimizedSchedule:
        prompt = SCHEDULE_PROMPT.format(
            subject=self.subject,
            start=_format_moment(start),
            end=_format_moment(end),
            topics=", ".join(remaining_topics),
            performance=_topic_performance_summary(stats),
        )
        payload = await self._request("generate schedule", [prompt])
        return parse_schedule(payload)

    async def revise_schedule(self, current: OptimizedSchedule, request: str) -> OptimizedSchedule:
        schedule_json = json.dumps(current.model_dump(by_alias=True)["schedule"], ensure_ascii=False)
        prompt = REVISE_PROMPT.format(schedule=schedule_json, request=request)
        payload = await self._request("customize schedule", [prompt])
        return parse_schedule(payload)

    async def chat(self, user_input: str, sections: list[Section]) -> AssistantReply:
        syllabus = [
            {"id": s.id, "title": s.title, "topics": s.topic_names()}
            for s in sections
        ]
        instruction = ASSISTANT_INSTRUCTION.format(
            subject=self.subject,
            syllabus=json.dumps(syllabus, indent=2, ensure_ascii=False),
        )
        payload = await self._request(
            "get a response from the assistant",
            [f'User\'s message: "{user_input}"'],
            system_instruction=instruction,
        )
        return parse_model(AssistantReply, payload, "assistant reply")
