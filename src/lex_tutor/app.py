"""Interactive CLI application."""
import asyncio
import time
from datetime import datetime, timedelta
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from lex_tutor.auth import CredentialStore
from lex_tutor.config import Settings, get_settings
from lex_tutor.dashboard import (
    daily_goal,
    format_accuracy,
    get_accuracy_color,
    get_greeting,
    get_stats_summary,
    progress_bar,
)
from lex_tutor.errors import LexTutorError
from lex_tutor.gateway import LEARNING_STYLES, ContentGenerationGateway, GeminiGateway
from lex_tutor.library import HOME_SECTION, StudyLibrary, load_syllabus_files
from lex_tutor.logging_setup import configure_logging
from lex_tutor.models import QuizOutcome, User
from lex_tutor.progress import ProgressTracker
from lex_tutor.schedule import ScheduleMerger
from lex_tutor.schemas import (
    STUDY_MODES,
    GenerateCommand,
    NavigateCommand,
    OpenModalCommand,
    OptimizedSchedule,
    RecallStep,
    Section,
    TableChunk,
)
from lex_tutor.session import AnswerState, StudySession, StudySessionEngine
from lex_tutor.stats import StatsAggregator
from lex_tutor.storage import KeyValueStore
from lex_tutor.syllabus import SyllabusState, completion_summary, find_section, flatten_topics

console = Console()

MODE_LABELS = {
    "flashcards": "Flashcards",
    "quiz": "Quiz",
    "learn": "Learn & Memorize",
    "memory_palace": "Memory Palace",
}
OPTION_KEYS = ["a", "b", "c", "d"]
DATETIME_FORMAT = "%Y-%m-%d %H:%M"


class TutorContext:
    """Stores, gateway and signed-in user shared by every command."""

    def __init__(self, settings: Settings, gateway: ContentGenerationGateway):
        self.settings = settings
        self.gateway = gateway
        self.store = KeyValueStore(settings.db_path)
        self.credentials = CredentialStore(self.store)
        self.progress = ProgressTracker(self.store)
        self.stats = StatsAggregator(self.store)
        self.library = StudyLibrary(settings.db_path)
        self.syllabus = SyllabusState(self.store, self.progress, self.library)
        self.engine = StudySessionEngine(
            gateway,
            on_quiz_complete=self._record_quiz,
            on_complete=self._record_session,
        )
        self.schedule = ScheduleMerger(gateway)
        self.loop = asyncio.new_event_loop()

        self.user: Optional[User] = None
        self.sections: list[Section] = []
        self.is_custom = False
        self.section_id = HOME_SECTION

    @property
    def username(self) -> str:
        return self.user.username

    def run(self, coro):
        return self.loop.run_until_complete(coro)

    def sign_in(self, user: User) -> None:
        self.user = user
        self.sections, self.is_custom = self.syllabus.load(user.username)
        self.section_id = HOME_SECTION
        self.schedule = ScheduleMerger(self.gateway)
        logger.info(f"Signed in as '{user.username}'")

    def sign_out(self) -> None:
        self.engine.close()
        self.credentials.log_out()
        self.user = None
        self.sections = []
        self.is_custom = False
        self.section_id = HOME_SECTION

    def current_section(self) -> Optional[Section]:
        return find_section(self.sections, self.section_id)

    def close(self) -> None:
        self.engine.close()
        self.loop.close()

    def _record_quiz(self, topic: str, score: int, total: int) -> None:
        self.stats.record_session(self.username, "quiz", QuizOutcome(topic, score, total))

    def _record_session(self, mode: str, topic: str) -> None:
        self.stats.record_session(self.username, mode)


# ========================================
# Screens
# ========================================

def show_banner():
    console.print(Panel(
        "[bold]Lex[/bold]\n[dim]Your AI study buddy[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_welcome(user: User):
    console.print(Panel(
        f"Hi {user.username}! I'm Lex.\n\n"
        "Pick a section, choose a topic and I'll turn it into flashcards, a quick quiz, "
        "a bite-sized lesson or a memory palace. Mark topics done as you go, and ask me "
        "anything from the home screen.\n\n"
        "[dim]Tip: upload your own syllabus with 'syllabus'.[/dim]",
        title="Welcome aboard", border_style="magenta",
    ))


def show_menu(ctx: TutorContext):
    section = ctx.current_section()
    where = section.title if section else "Home"
    console.print(f"\n[bold]Commands[/bold] [dim](section: {where})[/dim]")
    commands = [
        ("home", "Dashboard and chat with Lex"),
        ("sections", "Browse sections and mark topics done"),
        ("study", "Flashcards, quiz, lesson or memory palace"),
        ("ask", "Ask Lex a question about a topic"),
        ("stats", "Your study statistics"),
        ("plan", "Progress, time estimate and schedule"),
        ("files", "Study files for this section"),
        ("syllabus", "Upload or reset your syllabus"),
        ("logout", "Sign out"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<10}[/cyan] {desc}")


def show_dashboard(ctx: TutorContext):
    stats = ctx.stats.get_stats(ctx.username)
    summary = completion_summary(ctx.sections, ctx.progress.get_completed(ctx.username))
    greeting = get_greeting(datetime.now().hour)
    console.print(Panel(
        f"[bold]{greeting}, {ctx.username}![/bold]\n\n"
        f"[magenta]Today's goal:[/magenta] {daily_goal(stats)}\n\n"
        f"Syllabus: {progress_bar(summary['percent'])} {summary['percent']}% "
        f"({summary['completed']}/{summary['total']} topics)",
        title="Dashboard", border_style="blue",
    ))


def render_table_chunk(chunk: TableChunk, title: str = "") -> Table:
    table = Table(title=title or None)
    for header in chunk.headers:
        table.add_column(header)
    for row in chunk.rows:
        table.add_row(*row)
    return table


def render_schedule(schedule: OptimizedSchedule, title: str) -> Table:
    table = Table(title=title, caption=schedule.reasoning or None)
    table.add_column("Date", style="cyan")
    table.add_column("Time", justify="right")
    table.add_column("Activity")
    for item in schedule.items:
        table.add_row(item.date, f"{item.start_time}-{item.end_time}", item.activity)
    return table


def choose_topic(ctx: TutorContext) -> Optional[str]:
    section = ctx.current_section()
    topics = section.topic_names() if section else flatten_topics(ctx.sections)
    if not topics:
        console.print("[yellow]No topics in this section.[/yellow]")
        return None
    for i, name in enumerate(topics, 1):
        console.print(f"  [cyan]{i:>2}[/cyan]) {name}")
    choice = IntPrompt.ask("Select topic", choices=[str(i) for i in range(1, len(topics) + 1)])
    return topics[choice - 1]


# ========================================
# Study sessions
# ========================================

def _show_result(state: AnswerState, correct_answer: str, explanation: str = ""):
    if state.correct:
        console.print("[green]Correct![/green]")
    else:
        console.print(f"[red]Incorrect.[/red] Answer: [green]{correct_answer}[/green]")
    if explanation:
        console.print(f"[dim]{explanation}[/dim]")


def _print_options(options: list[str]):
    for key, option in zip(OPTION_KEYS, options):
        console.print(f"  [cyan]{key})[/cyan] {option}")


def _nav(prompt: str = "n=next, p=previous, q=quit") -> str:
    return Prompt.ask(f"[dim]{prompt}[/dim]", choices=["n", "p", "q"], default="n")


def _flashcard_step(session: StudySession) -> Optional[str]:
    card = session.current_item
    flipped = session.is_flipped()
    console.print(Panel(
        card.back if flipped else card.front,
        title=f"Card {session.index + 1}/{session.total}" + (" (back)" if flipped else ""),
        border_style="green" if flipped else "cyan",
    ))
    return Prompt.ask("[dim]f=flip, n=next, p=previous, q=quit[/dim]", choices=["f", "n", "p", "q"], default="f")


def _quiz_step(ctx: TutorContext, session: StudySession) -> Optional[str]:
    question = session.current_item
    console.print(f"\n[bold]Q{session.index + 1}/{session.total}.[/bold] {question.question}\n")
    _print_options(question.options)

    answered = session.current_answer
    if answered is not None:
        _show_result(answered, question.correct_answer, question.explanation)
        return _nav()

    choices = OPTION_KEYS + ["p", "q"] + (["h"] if question.hint else [])
    choice = Prompt.ask("\nYour answer", choices=choices)
    if choice == "h":
        console.print(f"[yellow]Hint: {question.hint}[/yellow]")
        choice = Prompt.ask("Your answer", choices=OPTION_KEYS + ["p", "q"])
    if choice in ("p", "q"):
        return choice

    state = session.select(question.options[OPTION_KEYS.index(choice)])
    _show_result(state, question.correct_answer, question.explanation)
    if session.active:
        time.sleep(ctx.settings.quiz_advance_delay)
    return None


def _learn_step(session: StudySession) -> Optional[str]:
    step = session.current_item
    console.print(Panel(
        f"[bold]{step.example}[/bold]\n\n{step.explanation}\n\n[magenta]Mnemonic:[/magenta] {step.mnemonic}",
        title=f"Step {session.index + 1}/{session.total}: {step.concept}",
        border_style="cyan",
    ))
    return _nav()


def _palace_step(session: StudySession) -> Optional[str]:
    step = session.current_item
    console.print(Panel(
        step.explanation,
        title=f"Step {session.index + 1}/{session.total}: {step.title}",
        subtitle=step.step_type,
        border_style="magenta",
    ))
    if step.table_chunk is not None and step.table_chunk.headers:
        console.print(render_table_chunk(step.table_chunk))

    if isinstance(step, RecallStep):
        question = step.recall_question
        console.print(f"\n[bold]Quick recall:[/bold] {question.question}\n")
        _print_options(question.options)
        state = session.current_answer
        if state is None:
            choice = Prompt.ask("Your answer", choices=OPTION_KEYS + ["n", "p", "q"])
            if choice not in OPTION_KEYS:
                return choice
            state = session.select(question.options[OPTION_KEYS.index(choice)])
        _show_result(state, question.correct_answer, question.explanation)
    return _nav()


def run_study_session(ctx: TutorContext, session: StudySession) -> None:
    label = MODE_LABELS[session.mode]
    console.print(f"\n[bold]{label}[/bold]: {session.topic} ({session.total} items)\n")
    quit_early = False
    while session.active:
        if session.mode == "flashcards":
            action = _flashcard_step(session)
        elif session.mode == "quiz":
            action = _quiz_step(ctx, session)
        elif session.mode == "learn":
            action = _learn_step(session)
        else:
            action = _palace_step(session)

        if action == "f":
            session.flip()
        elif action == "n":
            session.next()
        elif action == "p":
            session.prev()
        elif action == "q":
            ctx.engine.close()
            quit_early = True

    if session.finished:
        pct = session.score / session.total * 100 if session.total else 0.0
        color = get_accuracy_color(pct)
        console.print(f"\n[bold]Quiz complete! Score: {session.score}/{session.total} "
                      f"([{color}]{pct:.0f}%[/{color}])[/bold]\n")
    elif quit_early:
        console.print("[dim]Session closed.[/dim]")
    else:
        console.print(f"[green]Finished {label} for {session.topic}![/green]")


# ========================================
# Commands
# ========================================

def cmd_study(ctx: TutorContext, topic: Optional[str] = None, mode: Optional[str] = None,
              instructions: Optional[str] = None):
    topic = topic or choose_topic(ctx)
    if topic is None:
        return
    mode = mode or Prompt.ask("Study mode", choices=list(STUDY_MODES), default="flashcards")
    if instructions is None:
        instructions = Prompt.ask("Custom instructions [dim](optional)[/dim]", default="")
    files = ctx.library.files_for(ctx.username, ctx.section_id)
    with console.status(f"Lex is preparing your {MODE_LABELS[mode]}..."):
        session = ctx.run(ctx.engine.start(mode, topic, files, instructions))
    if session is None:
        return
    run_study_session(ctx, session)


def dispatch_command(ctx: TutorContext, command) -> None:
    if isinstance(command, NavigateCommand):
        section = find_section(ctx.sections, command.section_id)
        if section is None:
            console.print(f"[yellow]I couldn't find section '{command.section_id}'.[/yellow]")
            return
        ctx.section_id = section.id
        show_section(ctx, section)
    elif isinstance(command, GenerateCommand):
        cmd_study(ctx, topic=command.topic, mode=command.study_mode, instructions="")
    elif isinstance(command, OpenModalCommand):
        if command.modal == "stats":
            cmd_stats(ctx)
        else:
            cmd_syllabus(ctx)


def cmd_home(ctx: TutorContext):
    ctx.section_id = HOME_SECTION
    show_dashboard(ctx)
    message = Prompt.ask("Chat with Lex [dim](Enter to skip)[/dim]", default="").strip()
    if not message:
        return
    with console.status("Lex is thinking..."):
        reply = ctx.run(ctx.gateway.chat(message, ctx.sections))
    console.print(Panel(reply.response_text, title="Lex", border_style="magenta"))
    dispatch_command(ctx, reply.command)


def show_section(ctx: TutorContext, section: Section):
    completed = ctx.progress.get_completed(ctx.username)
    table = Table(title=f"{section.id}. {section.title}", caption=section.description or None)
    table.add_column("#", justify="right")
    table.add_column("Topic")
    table.add_column("Done", justify="center")
    for i, name in enumerate(section.topic_names(), 1):
        table.add_row(str(i), name, "[green]✓[/green]" if name in completed else "")
    console.print(table)


def cmd_sections(ctx: TutorContext):
    completed = ctx.progress.get_completed(ctx.username)
    table = Table(title="Your syllabus" + (" (custom)" if ctx.is_custom else ""))
    table.add_column("ID", style="cyan")
    table.add_column("Section")
    table.add_column("Progress", justify="right")
    for s in ctx.sections:
        names = set(s.topic_names())
        table.add_row(s.id, f"{s.title} [dim]{s.native_title}[/dim]", f"{len(names & completed)}/{len(names)}")
    console.print(table)

    section_id = Prompt.ask("Open section", choices=[s.id for s in ctx.sections] + [HOME_SECTION],
                            default=HOME_SECTION)
    ctx.section_id = section_id
    section = ctx.current_section()
    if section is None:
        return

    while True:
        show_section(ctx, section)
        names = section.topic_names()
        choice = Prompt.ask("Toggle topic # [dim](Enter to go back)[/dim]", default="").strip()
        if not choice:
            break
        if not choice.isdigit() or not 1 <= int(choice) <= len(names):
            console.print("[red]Pick a topic number from the list.[/red]")
            continue
        ctx.progress.toggle(ctx.username, names[int(choice) - 1])


def cmd_ask(ctx: TutorContext):
    topic = choose_topic(ctx)
    if topic is None:
        return
    question = Prompt.ask("Your question").strip()
    if not question:
        return
    files = ctx.library.files_for(ctx.username, ctx.section_id)
    with console.status("Lex is thinking..."):
        answer = ctx.run(ctx.gateway.solve_doubt(topic, files, question))
    console.print(Panel(answer, title=f"Lex on {topic}", border_style="magenta"))


def cmd_stats(ctx: TutorContext):
    summary = get_stats_summary(ctx.stats.get_stats(ctx.username))
    console.print(Panel(
        f"Sessions: [bold]{summary['total_sessions']}[/bold]  |  "
        f"Quizzes: [bold]{summary['quizzes_taken']}[/bold]  |  "
        f"Streak: [bold]{summary['streak']}[/bold] days  |  "
        f"Accuracy: [bold]{summary['accuracy']}[/bold]",
        title="Your Stats", border_style="blue",
    ))
    if not summary["topics"]:
        console.print("[dim]Take a quiz to see how you do per topic.[/dim]")
        return
    table = Table(title="Topic Performance (weakest first)")
    table.add_column("Topic", style="cyan")
    table.add_column("Questions", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("")
    for row in summary["topics"]:
        color = row["color"]
        table.add_row(
            row["topic"],
            str(row["total"]),
            f"[{color}]{format_accuracy(row['accuracy'])}[/{color}]",
            progress_bar(row["accuracy"] or 0.0, width=10),
        )
    console.print(table)


def cmd_syllabus(ctx: TutorContext):
    kind = "custom" if ctx.is_custom else "default"
    console.print(f"\nYou are using the [bold]{kind}[/bold] syllabus ({len(ctx.sections)} sections).")
    choices = ["upload", "revert", "back"] if ctx.is_custom else ["upload", "back"]
    action = Prompt.ask("Syllabus", choices=choices, default="back")

    if action == "upload":
        raw = Prompt.ask("Syllabus file paths [dim](comma separated)[/dim]")
        paths = [p.strip() for p in raw.split(",") if p.strip()]
        files = load_syllabus_files(paths)
        with console.status("Lex is reading your syllabus..."):
            sections = ctx.run(ctx.gateway.analyze_syllabus(files))
        for s in sections:
            console.print(f"  [cyan]{s.id}[/cyan]) {s.title}: {len(s.topic_names())} topics")
        if Confirm.ask("Use this syllabus? Progress and study files will be reset"):
            ctx.sections = ctx.syllabus.replace(ctx.username, sections)
            ctx.is_custom = True
            ctx.section_id = sections[0].id if sections else HOME_SECTION
            console.print("[green]Syllabus updated![/green]")
    elif action == "revert":
        if Confirm.ask("Revert to the default syllabus? Progress and study files will be reset"):
            ctx.sections = ctx.syllabus.revert(ctx.username)
            ctx.is_custom = False
            ctx.section_id = HOME_SECTION
            console.print("[green]Back on the default syllabus.[/green]")


def cmd_files(ctx: TutorContext):
    section = ctx.current_section()
    if section is None:
        console.print("[yellow]Open a section first ('sections') to manage its files.[/yellow]")
        return
    files = ctx.library.list_files(ctx.username, section.id)
    table = Table(title=f"Study files: {section.title}")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    for i, f in enumerate(files, 1):
        table.add_row(str(i), f.name, f.mime_type)
    console.print(table)

    action = Prompt.ask("Files", choices=["add", "remove", "back"], default="back")
    if action == "add":
        path = Prompt.ask("File path")
        study_file = ctx.library.import_file(ctx.username, section.id, path)
        console.print(f"[green]Attached {study_file.name} ({study_file.mime_type})[/green]")
    elif action == "remove" and files:
        choice = IntPrompt.ask("Remove file #", choices=[str(i) for i in range(1, len(files) + 1)])
        removed = files[choice - 1]
        ctx.library.remove(ctx.username, removed.id)
        console.print(f"[green]Removed {removed.name}[/green]")


def _ask_datetime(label: str, default: datetime) -> datetime:
    value = Prompt.ask(f"{label} [dim](YYYY-MM-DD HH:MM)[/dim]", default=default.strftime(DATETIME_FORMAT))
    try:
        return datetime.strptime(value.strip(), DATETIME_FORMAT)
    except ValueError as e:
        raise ValueError(f"Expected a date like 2025-03-01 09:00, got {value!r}") from e


def cmd_plan(ctx: TutorContext):
    completed = ctx.progress.get_completed(ctx.username)
    summary = completion_summary(ctx.sections, completed)
    console.print(Panel(
        f"{progress_bar(summary['percent'])} [bold]{summary['percent']}%[/bold] "
        f"({summary['completed']}/{summary['total']} topics done)",
        title="Syllabus Progress", border_style="blue",
    ))
    remaining = summary["remaining"]
    choices = ["estimate", "schedule"] if remaining else []
    if ctx.schedule.accepted is not None:
        choices += ["view", "customize"]
    if not remaining:
        console.print("[green]Every topic is done. Amazing work![/green]")
        if not choices:
            return

    stats = ctx.stats.get_stats(ctx.username)
    action = Prompt.ask("Plan", choices=choices + ["back"], default="back")

    if action == "estimate":
        style = Prompt.ask("Learning style", choices=list(LEARNING_STYLES), default="understanding")
        with console.status("Lex is estimating..."):
            estimate = ctx.run(ctx.gateway.estimate_time(remaining, stats, style))
        console.print(Panel(f"[bold]{estimate.estimate}[/bold]\n\n{estimate.reasoning}",
                            title="Time to finish", border_style="magenta"))
    elif action == "schedule":
        now = datetime.now().replace(second=0, microsecond=0)
        start = _ask_datetime("Start", now)
        end = _ask_datetime("End", start + timedelta(hours=3))
        with console.status("Lex is planning your schedule..."):
            schedule = ctx.run(ctx.schedule.propose(remaining, stats, start, end))
        console.print(render_schedule(schedule, "Your Study Schedule"))
    elif action == "view":
        console.print(render_schedule(ctx.schedule.accepted, "Your Study Schedule"))
    elif action == "customize":
        request = Prompt.ask("What should change?")
        with console.status("Lex is adjusting your schedule..."):
            candidate = ctx.run(ctx.schedule.request_revision(request))
        console.print(render_schedule(candidate, "Preview"))
        if Confirm.ask("Apply these changes?"):
            ctx.schedule.apply()
            console.print("[green]Schedule updated.[/green]")
        else:
            ctx.schedule.discard()
            console.print("[dim]Kept your current schedule.[/dim]")


def auth_flow(ctx: TutorContext) -> Optional[User]:
    while True:
        action = Prompt.ask("\nLog in or sign up", choices=["login", "signup", "quit"], default="login")
        if action == "quit":
            return None
        username = Prompt.ask("Username").strip()
        password = Prompt.ask("Password", password=True)
        if not username or not password:
            console.print("[red]Username and password are required.[/red]")
            continue
        try:
            if action == "signup":
                ctx.credentials.sign_up(username, password)
                console.print(f"[green]Account created. Welcome, {username}![/green]")
            return ctx.credentials.log_in(username, password)
        except LexTutorError as e:
            console.print(f"[red]{e}[/red]")


def run_loop(ctx: TutorContext):
    while True:
        if ctx.user is None:
            user = ctx.credentials.check_session() or auth_flow(ctx)
            if user is None:
                break
            ctx.sign_in(user)
            if ctx.syllabus.consume_welcome(user.username):
                show_welcome(user)
            show_dashboard(ctx)

        show_menu(ctx)
        choice = Prompt.ask("\n[bold]>[/bold]", default="home").strip().lower()
        try:
            if choice == "home":
                cmd_home(ctx)
            elif choice == "sections":
                cmd_sections(ctx)
            elif choice == "study":
                cmd_study(ctx)
            elif choice == "ask":
                cmd_ask(ctx)
            elif choice == "stats":
                cmd_stats(ctx)
            elif choice == "plan":
                cmd_plan(ctx)
            elif choice == "files":
                cmd_files(ctx)
            elif choice == "syllabus":
                cmd_syllabus(ctx)
            elif choice == "logout":
                ctx.sign_out()
                console.print("[dim]Signed out.[/dim]")
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Keep that streak going![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            ctx.engine.close()
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (LexTutorError, ValueError) as e:
            console.print(f"[red]{e}[/red]")
        except Exception as e:
            logger.exception(f"Command '{choice}' failed")
            console.print(f"[red]Error: {e}[/red]")


def main():
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    if not settings.google_api_key:
        console.print("[yellow]No GOOGLE_API_KEY set. AI features will be unavailable.[/yellow]")
    gateway = GeminiGateway(
        settings.google_api_key,
        model_name=settings.model_name,
        timeout=settings.request_timeout,
        subject=settings.subject,
    )
    ctx = TutorContext(settings, gateway)
    show_banner()
    try:
        run_loop(ctx)
    finally:
        ctx.close()


if __name__ == "__main__":
    main()
