"""
Typer CLI for bacdz-tutor.

Commands:
    bactutor specialties                     - List baccalaureate tracks
    bactutor subjects SPECIALTY              - Subjects offered to a track
    bactutor curriculum SUBJECT              - Units/lessons visible to a track
    bactutor study                           - Interactive study session
    bactutor study --teacher                 - Interactive session as a teacher
    bactutor login [--oauth]                 - Sign in (profile follows the account)
    bactutor signup                          - Create an account
    bactutor logout                          - Sign out
    bactutor gradebook list                  - Show the gradebook
    bactutor gradebook add NAME              - Add a student
    bactutor gradebook mark ID SUBJECT 14.5  - Set a mark (--assessment for assessment marks)
    bactutor gradebook note ID SUBJECT TEXT  - Set an assessment note
    bactutor gradebook remove ID             - Remove a student

Usage:
    bactutor curriculum math --specialty "Lettres et Philosophie"
    bactutor study
"""

from __future__ import annotations

import os
import sys

# Fix Windows encoding issues for Arabic output
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import asyncio
from typing import Optional

import httpx
import typer
from loguru import logger
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from bactutor.cli.render import render_gradebook, render_state, render_units
from bactutor.curriculum.catalog import CurriculumCatalog
from bactutor.curriculum.filter import CurriculumFilter
from bactutor.curriculum.filter_rules import load_filter_rules
from bactutor.curriculum.models import Specialty, UserRole
from bactutor.errors import CatalogError, GradebookError, NavigationError, ProfileStoreError
from bactutor.generation.gemini_client import GeminiBackend
from bactutor.generation.modes import AIMode
from bactutor.generation.orchestrator import GenerationOrchestrator
from bactutor.integrations.identity import AuthSession, SupabaseAuthClient
from bactutor.integrations.local_cache import LocalPreferenceCache
from bactutor.integrations.profile_store import SqlProfileStore
from bactutor.quiz.engine import QuizPhase
from bactutor.session.navigation import NavigationStep, TeacherAction
from bactutor.session.state import SessionState, resolve_profile_key
from bactutor.teacher.gradebook import Gradebook
from config import Settings, get_settings

app = typer.Typer(
    help="bacdz-tutor: baccalaureate study companion powered by Gemini",
    no_args_is_help=True,
)
gradebook_app = typer.Typer(help="Teacher gradebook")
app.add_typer(gradebook_app, name="gradebook")

console = Console()


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """Builds collaborators once per command, lazily."""

    def __init__(self, settings: Settings | None = None, auth_transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self.auth_transport = auth_transport
        self._catalog = None
        self._filter = None
        self._profile_store = None
        self._local_cache = None
        self._backend = None
        self._identity = None

    @property
    def catalog(self) -> CurriculumCatalog:
        if self._catalog is None:
            self._catalog = CurriculumCatalog.from_yaml(self.settings.catalog_path)
        return self._catalog

    @property
    def curriculum_filter(self) -> CurriculumFilter:
        if self._filter is None:
            self._filter = CurriculumFilter(load_filter_rules(self.settings.filter_rules_path))
        return self._filter

    @property
    def profile_store(self) -> SqlProfileStore:
        if self._profile_store is None:
            self._profile_store = SqlProfileStore(self.settings.database_url)
        return self._profile_store

    @property
    def local_cache(self) -> LocalPreferenceCache:
        if self._local_cache is None:
            self._local_cache = LocalPreferenceCache(self.settings.local_cache_path)
        return self._local_cache

    @property
    def backend(self) -> GeminiBackend:
        if self._backend is None:
            self._backend = GeminiBackend(api_key=self.settings.gemini_api_key)
        return self._backend

    @property
    def identity(self) -> SupabaseAuthClient | None:
        if self._identity is None and self.settings.has_supabase_configured:
            client = SupabaseAuthClient(
                self.settings.supabase_url,
                self.settings.supabase_anon_key,
                redirect_url=self.settings.auth_redirect_url,
                transport=self.auth_transport,
            )
            cached = self.local_cache.auth_session
            if cached:
                try:
                    client.restore_session(AuthSession.from_dict(cached))
                except KeyError:
                    logger.warning("Cached auth session is incomplete; signing in again is required")
                    self.local_cache.save_auth_session(None)
            client.on_auth_state_change(self._remember_session)
            self._identity = client
        return self._identity

    def _remember_session(self, event: str, session: AuthSession | None) -> None:
        logger.debug(f"Auth state change: {event}")
        self.local_cache.save_auth_session(session.to_dict() if session else None)

    @property
    def profile_key(self) -> str:
        return resolve_profile_key(self.identity, self.local_cache)

    async def select_credential(self) -> bool:
        """Ask for a Gemini API key interactively."""
        console.print("[yellow]Gemini rejected the current API key.[/yellow]")
        key = Prompt.ask("Gemini API key (empty to cancel)", password=True, default="", show_default=False)
        if not key.strip():
            return False
        self.backend.set_api_key(key.strip())
        return True

    def session(self) -> SessionState:
        orchestrator = GenerationOrchestrator(
            self.backend, settings=self.settings, credential_selector=self.select_credential
        )
        state = SessionState(
            self.catalog,
            self.curriculum_filter,
            orchestrator,
            settings=self.settings,
            profile_store=self.profile_store,
            local_cache=self.local_cache,
            identity=self.identity,
        )
        state.start()
        return state


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


def _parse_specialty(value: str) -> Specialty:
    specialty = Specialty.parse(value)
    if specialty is None:
        _fail(f"Unknown specialty: {value}")
    return specialty


# ========================================
# Curriculum commands
# ========================================


@app.command("specialties")
def specialties_cmd():
    """List the baccalaureate tracks."""
    try:
        catalog = CLIContext().catalog
    except CatalogError as e:
        _fail(str(e))

    table = Table(title="الشعب")
    table.add_column("id", style="dim")
    table.add_column("Name")
    for info in catalog.specialties():
        table.add_row(info.id.value, f"{info.icon} {info.name}")
    console.print(table)


@app.command("subjects")
def subjects_cmd(specialty: str = typer.Argument(..., help="Specialty id, e.g. 'Mathématiques'")):
    """List the subjects offered to a specialty."""
    resolved = _parse_specialty(specialty)
    ctx = CLIContext()
    table = Table(title=f"المواد - {resolved.value}")
    table.add_column("id", style="dim")
    table.add_column("Subject")
    table.add_column("Lessons", justify="right")
    for subject in ctx.catalog.subjects_for(resolved):
        count = ctx.curriculum_filter.visible_lesson_count(subject, resolved)
        table.add_row(subject.id, f"{subject.icon} {subject.name}", str(count))
    console.print(table)


@app.command("curriculum")
def curriculum_cmd(
    subject_id: str = typer.Argument(..., help="Subject id, e.g. 'math'"),
    specialty: Optional[str] = typer.Option(None, "--specialty", "-s", help="Specialty id"),
    role: UserRole = typer.Option(UserRole.STUDENT, "--role", "-r", help="student or teacher"),
):
    """Show the units and lessons visible for a subject."""
    ctx = CLIContext()
    subject = ctx.catalog.subject(subject_id)
    if subject is None:
        _fail(f"Unknown subject: {subject_id}")
    units = ctx.curriculum_filter.visible_units(subject, specialty, role)
    if not units:
        console.print("[yellow]No visible lessons.[/yellow]")
        return
    console.print(render_units(units, title=subject.name))


# ========================================
# Account commands
# ========================================


def _require_identity(ctx: CLIContext) -> SupabaseAuthClient:
    identity = ctx.identity
    if identity is None:
        _fail("Accounts are not configured (set SUPABASE_URL and SUPABASE_ANON_KEY).")
    return identity


async def _auth_call(identity: SupabaseAuthClient, call):
    try:
        return await call
    finally:
        await identity.close()


@app.command("login")
def login_cmd(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Account email"),
    oauth: bool = typer.Option(False, "--oauth", help="Sign in with Google in a browser"),
):
    """Sign in; the profile and gradebook then follow the account."""
    identity = _require_identity(CLIContext())
    if oauth:
        console.print(f"Open this URL in a browser:\n{identity.oauth_url()}")
        redirect = Prompt.ask("Paste the URL you were redirected to")
        result = asyncio.run(_auth_call(identity, identity.sign_in_with_redirect(redirect)))
    else:
        email = email or Prompt.ask("Email")
        password = Prompt.ask("Password", password=True)
        result = asyncio.run(_auth_call(identity, identity.sign_in_with_password(email, password)))

    if not result.ok:
        _fail(f"Sign-in failed: {result.error}")
    console.print(f"[green][OK][/green] Signed in as {result.session.email or result.session.user_id}")


@app.command("signup")
def signup_cmd(email: Optional[str] = typer.Option(None, "--email", "-e", help="Account email")):
    """Create an account."""
    identity = _require_identity(CLIContext())
    email = email or Prompt.ask("Email")
    password = Prompt.ask("Password", password=True)
    result = asyncio.run(_auth_call(identity, identity.sign_up(email, password)))

    if not result.ok:
        _fail(f"Sign-up failed: {result.error}")
    if result.needs_confirmation:
        console.print("[yellow]Check your inbox to confirm the address, then run 'bactutor login'.[/yellow]")
    else:
        console.print(f"[green][OK][/green] Signed in as {result.session.email or result.session.user_id}")


@app.command("logout")
def logout_cmd():
    """Sign out of the current account."""
    identity = _require_identity(CLIContext())
    if identity.get_session() is None:
        console.print("[dim]Not signed in.[/dim]")
        return
    asyncio.run(_auth_call(identity, identity.sign_out()))
    console.print("[green][OK][/green] Signed out")


# ========================================
# Interactive study session
# ========================================


@app.command("study")
def study_cmd(
    teacher: bool = typer.Option(False, "--teacher", help="Start directly in the teacher role"),
):
    """Start an interactive study session."""
    ctx = CLIContext()
    if not ctx.settings.has_gemini_configured:
        console.print("[yellow]GEMINI_API_KEY is not set; you will be asked for a key on first use.[/yellow]")
    state = ctx.session()
    if teacher and state.step == NavigationStep.ROLE_SELECTION:
        state.choose_role(UserRole.TEACHER)
    asyncio.run(_study_loop(state))


def _pick(options: list[str], prompt: str = ">") -> str | None:
    """Numbered choice -> option, or the raw answer for commands."""
    answer = Prompt.ask(prompt).strip()
    if answer.isdigit() and 1 <= int(answer) <= len(options):
        return options[int(answer) - 1]
    return answer


async def _study_loop(state: SessionState) -> None:
    console.print("[dim]q = quit, b = back, logout = sign out[/dim]")
    while True:
        console.print(render_state(state))
        try:
            keep_going = await _handle_step(state)
        except (NavigationError, GradebookError) as e:
            console.print(f"[red]{e}[/red]")
            continue
        if not keep_going:
            break
    if state.identity is not None:
        await state.identity.close()


async def _handle_step(state: SessionState) -> bool:
    step = state.step
    catalog = state.catalog

    if step == NavigationStep.ROLE_SELECTION:
        answer = _pick(["student", "teacher"])
        if answer == "q":
            return False
        state.choose_role(answer)
        return True

    if step == NavigationStep.SPECIALTY:
        answer = _pick([s.id.value for s in catalog.specialties()])
        if answer == "q":
            return False
        if answer == "b" and state.role == UserRole.TEACHER:
            state.open_dashboard()
        else:
            state.pick_specialty(answer)
        return True

    if step == NavigationStep.SUBJECT:
        subjects = catalog.subjects_for(state.context.specialty.id if state.context.specialty else None)
        answer = _pick([s.id for s in subjects])
        if answer == "q":
            return False
        if answer == "b":
            state.change_specialty()
        else:
            state.pick_subject(answer)
        return True

    if step == NavigationStep.LESSON:
        answer = Prompt.ask("lesson id").strip()
        if answer == "q":
            return False
        if answer == "b":
            if state.role == UserRole.TEACHER:
                state.open_dashboard()
            else:
                state.change_subject()
        else:
            state.pick_lesson(answer)
        return True

    if step == NavigationStep.MODE:
        answer = _pick([m.value for m in state.available_modes()])
        if answer == "q":
            return False
        if answer == "b":
            state.change_lesson()
        else:
            with console.status("..."):
                await state.pick_mode(AIMode(answer))
        return True

    if step == NavigationStep.CHAT:
        return await _handle_chat(state)

    if step == NavigationStep.QUIZ:
        return await _handle_quiz(state)

    if step == NavigationStep.EXERCISES:
        answer = Prompt.ask("s = solution, n = new sheet, r = retry, b = back").strip()
        if answer == "q":
            return False
        if answer == "b":
            state.change_mode()
        elif answer == "s":
            with console.status("..."):
                await state.toggle_exercise_solution()
        elif answer == "n":
            with console.status("..."):
                await state.regenerate_exercises()
        elif answer == "r":
            await state.retry()
        return True

    if step == NavigationStep.EXAM_BUILDER:
        answer = Prompt.ask("semester 1/2/3, s = solution, b = back").strip()
        if answer == "q":
            return False
        if answer == "b":
            if state.role == UserRole.TEACHER:
                state.open_dashboard()
            else:
                state.change_mode()
        elif answer == "s":
            state.toggle_exam_solution()
        elif answer in ("1", "2", "3"):
            with console.status("..."):
                await state.build_exam(int(answer))
        return True

    if step == NavigationStep.DOCUMENT_UPLOAD:
        answer = Prompt.ask("file path").strip()
        if answer == "q":
            return False
        if answer == "b":
            state.change_specialty()
        else:
            with console.status("..."):
                await state.upload_document(answer)
        return True

    if step == NavigationStep.TEACHER_SUBJECT_SELECTION:
        specialty = _pick([s.id.value for s in catalog.specialties() if s.id != Specialty.PERSONAL_DOCUMENT])
        if specialty == "q":
            return False
        subjects = catalog.subjects_for(specialty)
        if not subjects:
            raise NavigationError(f"Unknown specialty: {specialty}")
        for i, subject in enumerate(subjects, 1):
            console.print(f"  {i}. {subject.icon} {subject.name} [dim]({subject.id})[/dim]")
        subject_id = _pick([s.id for s in subjects])
        state.configure_teacher(specialty, subject_id)
        return True

    if step == NavigationStep.TEACHER_DASHBOARD:
        answer = _pick([a.value for a in TeacherAction])
        if answer == "q":
            return False
        if answer == "logout":
            await state.logout()
        else:
            state.teacher_action(answer)
        return True

    if step == NavigationStep.PROGRAM_UPLOAD:
        answer = Prompt.ask("file path, d = delete, b = back").strip()
        if answer == "q":
            return False
        if answer == "b":
            state.open_dashboard()
        elif answer == "d":
            state.delete_program()
        else:
            state.upload_program(answer)
        return True

    if step == NavigationStep.GRADEBOOK:
        return _handle_gradebook(state)

    return False


async def _handle_chat(state: SessionState) -> bool:
    answer = Prompt.ask("message (/1-/3 suggestion, /r retry, /b back)").strip()
    if answer in ("/q", "q"):
        return False
    if answer == "/b":
        state.change_mode()
    elif answer == "/r":
        with console.status("..."):
            await state.retry()
    elif answer == "/logout":
        await state.logout()
    elif answer.startswith("/") and answer[1:].isdigit():
        with console.status("..."):
            await state.pick_suggestion(int(answer[1:]) - 1)
    else:
        with console.status("..."):
            await state.send_message(answer)
    return True


async def _handle_quiz(state: SessionState) -> bool:
    quiz = state.quiz
    if quiz is None:
        answer = Prompt.ask("r = retry, b = back").strip()
        if answer == "r":
            with console.status("..."):
                await state.retry()
        elif answer == "b":
            state.change_mode()
        return answer != "q"

    if quiz.phase == QuizPhase.ANSWERING:
        answer = Prompt.ask("answer 1-4").strip()
        if answer == "q":
            return False
        if answer == "b":
            state.change_mode()
        elif answer.isdigit():
            state.answer_quiz(int(answer) - 1)
        return True

    answer = Prompt.ask("v = review, n = new quiz, b = back").strip()
    if answer == "q":
        return False
    if answer == "v":
        state.review_quiz()
    elif answer == "n":
        with console.status("..."):
            await state.retake_quiz()
    elif answer == "b":
        state.change_mode()
    return True


def _handle_gradebook(state: SessionState) -> bool:
    answer = Prompt.ask("a NAME | m ID MARK | e ID MARK | n ID NOTE | x ID | b").strip()
    if answer == "q":
        return False
    if answer == "b":
        state.open_dashboard()
        return True

    command, _, rest = answer.partition(" ")
    subject_id = state.teacher_subject_id or ""
    book = state.gradebook
    if command == "a":
        book.add_student(rest)
    elif command in ("m", "e", "n", "x"):
        ref, _, value = rest.partition(" ")
        entry = book.find(ref)
        if entry is None:
            raise GradebookError(f"Unknown student: {ref}")
        if command == "m":
            book.set_mark(entry.student_id, subject_id, value)
        elif command == "e":
            book.set_assessment_mark(entry.student_id, subject_id, value)
        elif command == "n":
            book.set_assessment_note(entry.student_id, subject_id, value)
        else:
            book.remove_student(entry.student_id)
    return True


# ========================================
# Gradebook commands
# ========================================


def _load_gradebook(ctx: CLIContext) -> tuple[Gradebook, str]:
    key = ctx.profile_key
    try:
        profile = ctx.profile_store.get_profile(key)
    except ProfileStoreError as e:
        _fail(str(e))
    entries = profile.gradebook if profile else []

    def persist(updated):
        ctx.profile_store.upsert_profile(key, {"gradebook": updated})

    return Gradebook(entries, on_change=persist), key


def _resolve_student(book: Gradebook, ref: str) -> str:
    entry = book.find(ref)
    if entry is None:
        _fail(f"Unknown student: {ref}")
    return entry.student_id


@gradebook_app.command("list")
def gradebook_list(
    subject_id: Optional[str] = typer.Option(None, "--subject", help="Show marks for one subject"),
):
    """Show all students."""
    book, _ = _load_gradebook(CLIContext())
    if not len(book):
        console.print("[dim]No students yet.[/dim]")
        return
    console.print(render_gradebook(book.entries, subject_id))


@gradebook_app.command("add")
def gradebook_add(name: str = typer.Argument(..., help="Student name")):
    """Add a student."""
    book, _ = _load_gradebook(CLIContext())
    try:
        entry = book.add_student(name)
    except (GradebookError, ProfileStoreError) as e:
        _fail(str(e))
    console.print(f"[green][OK][/green] Added {entry.name} ({entry.student_id})")


@gradebook_app.command("mark")
def gradebook_mark(
    student: str = typer.Argument(..., help="Student id or name"),
    subject_id: str = typer.Argument(..., help="Subject id"),
    value: str = typer.Argument(..., help="Mark between 0 and 20"),
    assessment: bool = typer.Option(False, "--assessment", help="Set the assessment mark instead"),
):
    """Set a mark."""
    book, _ = _load_gradebook(CLIContext())
    student_id = _resolve_student(book, student)
    try:
        if assessment:
            entry = book.set_assessment_mark(student_id, subject_id, value)
            mark = entry.assessment_marks[subject_id]
        else:
            entry = book.set_mark(student_id, subject_id, value)
            mark = entry.marks[subject_id]
    except (GradebookError, ProfileStoreError) as e:
        _fail(str(e))
    console.print(f"[green][OK][/green] {entry.name} / {subject_id}: {mark:g}")


@gradebook_app.command("note")
def gradebook_note(
    student: str = typer.Argument(..., help="Student id or name"),
    subject_id: str = typer.Argument(..., help="Subject id"),
    note: str = typer.Argument(..., help="Assessment note"),
):
    """Set an assessment note."""
    book, _ = _load_gradebook(CLIContext())
    student_id = _resolve_student(book, student)
    try:
        entry = book.set_assessment_note(student_id, subject_id, note)
    except (GradebookError, ProfileStoreError) as e:
        _fail(str(e))
    console.print(f"[green][OK][/green] {entry.name} / {subject_id}: {note}")


@gradebook_app.command("remove")
def gradebook_remove(student: str = typer.Argument(..., help="Student id or name")):
    """Remove a student."""
    book, _ = _load_gradebook(CLIContext())
    student_id = _resolve_student(book, student)
    try:
        book.remove_student(student_id)
    except (GradebookError, ProfileStoreError) as e:
        _fail(str(e))
    console.print(f"[green][OK][/green] Removed {student}")


# ========================================
# Entry Point
# ========================================


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format="<level>{message}</level>")
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        )


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
