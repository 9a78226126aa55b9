"""
Session state machine.

SessionState owns the navigation step, the resolved context
(specialty, subject, lesson), the active mode and every artifact produced
for that context: chat transcript, quiz session, exercise sheet, exam.

Rules enforced here:
- events are only accepted from the steps listed in EVENT_SOURCES;
  anything else is a NavigationError (a caller bug, not a user error)
- generation is never issued without a resolved context; such attempts
  are logged and ignored
- one outstanding generation per slot; duplicates are ignored
- every context change bumps an epoch; results that arrive for an older
  epoch are dropped
- artifacts are committed only after the orchestrator returns a valid
  result; failures leave the step and prior artifacts as they were and
  set `notice`
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from bactutor.curriculum.catalog import CurriculumCatalog, document_subject
from bactutor.curriculum.filter import CurriculumFilter
from bactutor.curriculum.models import Lesson, Specialty, Unit, UserRole
from bactutor.errors import (
    ContextIncompleteError,
    ExtractionError,
    GenerationError,
    NavigationError,
    ProfileStoreError,
    SecondaryGenerationError,
)
from bactutor.generation import prompts
from bactutor.generation.modes import AIMode, ArtifactSlot, modes_for, strategy_for
from bactutor.generation.orchestrator import GenerationOrchestrator, GenerationRequest
from bactutor.integrations.pdf_extractor import extract_text
from bactutor.quiz.engine import QuizEngine, QuizSession
from bactutor.session.navigation import (
    ExamArtifact,
    ExerciseArtifact,
    Message,
    MessageRole,
    NavigationStep,
    Notice,
    SessionContext,
    TeacherAction,
    allowed_from,
)
from bactutor.teacher.gradebook import Gradebook, GradebookEntry
from config import Settings, get_settings

T = TypeVar("T")

SOLUTION_SLOT = "solution"
EXAM_PLACEHOLDER = Lesson(id="placeholder", title="امتحان فصلي")


def resolve_profile_key(identity, local_cache) -> str:
    """Signed-in user id, else the local install id, else "anonymous"."""
    session = identity.get_session() if identity is not None else None
    if session is not None:
        return session.user_id
    if local_cache is not None:
        return local_cache.local_id
    return "anonymous"


class SessionState:
    """Navigation and artifact state for one learner or teacher."""

    def __init__(
        self,
        catalog: CurriculumCatalog,
        curriculum_filter: CurriculumFilter,
        orchestrator: GenerationOrchestrator,
        *,
        settings: Settings | None = None,
        quiz_engine: QuizEngine | None = None,
        profile_store=None,
        local_cache=None,
        identity=None,
        extractor: Callable[[Path | str], str] = extract_text,
    ):
        self.catalog = catalog
        self.curriculum_filter = curriculum_filter
        self.orchestrator = orchestrator
        self.settings = settings or get_settings()
        self.quiz_engine = quiz_engine or QuizEngine(orchestrator)
        self.profile_store = profile_store
        self.local_cache = local_cache
        self.identity = identity
        self.extractor = extractor

        self._epoch = 0
        self._generating: set[tuple[str, int]] = set()
        self._reset()

    def _reset(self) -> None:
        single_role = self.settings.single_role_mode
        self.step = NavigationStep.SPECIALTY if single_role else NavigationStep.ROLE_SELECTION
        self.role: UserRole | None = UserRole.STUDENT if single_role else None
        self.context = SessionContext()
        self.teacher_specialty: Specialty | None = None
        self.teacher_subject_id: str | None = None
        self.program_text: str | None = None
        self.gradebook = Gradebook(on_change=self._persist_gradebook)
        self._clear_artifacts()

    def _clear_artifacts(self) -> None:
        self.mode: AIMode | None = None
        self.messages: list[Message] = []
        self.quiz: QuizSession | None = None
        self.exercise: ExerciseArtifact | None = None
        self.exam: ExamArtifact | None = None
        self.notice: Notice | None = None
        self._pending_message: str | None = None
        self._last_semester: int | None = None
        self._epoch += 1

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def profile_key(self) -> str:
        return resolve_profile_key(self.identity, self.local_cache)

    @property
    def has_teacher_preferences(self) -> bool:
        return self.teacher_specialty is not None and self.teacher_subject_id is not None

    def is_generating(self, slot: str | ArtifactSlot | None = None) -> bool:
        """Loading flag for a slot (or any slot) in the current context."""
        if slot is None:
            return any(epoch == self._epoch for _, epoch in self._generating)
        name = slot.value if isinstance(slot, ArtifactSlot) else slot
        return (name, self._epoch) in self._generating

    def available_modes(self) -> tuple[AIMode, ...]:
        return modes_for(self.role)

    def visible_units(self) -> list[Unit]:
        subject = self.context.subject
        if subject is None:
            return []
        specialty = self.context.specialty.id if self.context.specialty else None
        return self.curriculum_filter.visible_units(subject, specialty, self.role or UserRole.STUDENT)

    def _require(self, event: str) -> None:
        if not allowed_from(event, self.step):
            raise NavigationError(f"'{event}' is not valid from step '{self.step.value}'")

    # =========================================================================
    # Startup and persistence
    # =========================================================================

    def start(self) -> None:
        """Load cached preferences, then the stored profile on top."""
        specialty, subject_id, program = None, None, None
        if self.local_cache is not None:
            specialty, subject_id = self.local_cache.teacher_preferences()
            program = self.local_cache.program_text

        entries: list[GradebookEntry] = []
        if self.profile_store is not None:
            try:
                profile = self.profile_store.get_profile(self.profile_key)
            except ProfileStoreError as e:
                logger.error(f"Profile load failed, continuing with local preferences: {e}")
                profile = None
            if profile is not None:
                specialty = profile.teacher_specialty or specialty
                subject_id = profile.teacher_subject_id or subject_id
                program = profile.program_text or program
                entries = profile.gradebook

        self.teacher_specialty = specialty
        self.teacher_subject_id = subject_id
        self.program_text = program
        self.gradebook = Gradebook(entries, on_change=self._persist_gradebook)
        logger.debug(
            f"Session started for {self.profile_key}: teacher prefs={self.has_teacher_preferences}, "
            f"program={'yes' if program else 'no'}, students={len(entries)}"
        )

    def _persist(self, **fields) -> None:
        if self.profile_store is None:
            return
        try:
            self.profile_store.upsert_profile(self.profile_key, fields)
        except ProfileStoreError as e:
            logger.error(f"Profile write failed: {e}")
            self.notice = Notice("تعذر حفظ التغييرات. حاول مرة أخرى.", retryable=True)

    def _persist_gradebook(self, entries: list[GradebookEntry]) -> None:
        self._persist(gradebook=entries)

    # =========================================================================
    # Generation plumbing
    # =========================================================================

    def _request(self, **overrides) -> GenerationRequest:
        return GenerationRequest(
            mode=self.mode,
            specialty=self.context.specialty,
            subject=self.context.subject,
            lesson=self.context.lesson,
            program_text=self.program_text,
            **overrides,
        )

    async def _run(self, slot: str, call: Callable[[], Awaitable[T]]) -> T | None:
        """
        Run one generation for `slot` under the mutual-exclusion and
        staleness rules. Returns None when nothing should be committed.
        """
        if not self.context.is_resolved:
            logger.info(f"Refusing {slot} generation: context is not resolved")
            return None

        key = (slot, self._epoch)
        if key in self._generating:
            logger.info(f"Ignoring {slot} request: one is already in flight")
            return None

        epoch = self._epoch
        self._generating.add(key)
        self.notice = None
        try:
            result = await call()
        except ContextIncompleteError as e:
            logger.info(f"Generation refused: {e.message}")
            return None
        except SecondaryGenerationError:
            return None
        except GenerationError as e:
            if epoch == self._epoch:
                self.notice = Notice.from_error(e)
            return None
        finally:
            self._generating.discard(key)

        if epoch != self._epoch:
            logger.info(f"Discarding stale {slot} result (context changed)")
            return None
        return result

    async def _open_chat(self, message: str | None = None) -> None:
        result = await self._run(
            ArtifactSlot.CHAT.value, lambda: self.orchestrator.generate(self._request(message=message))
        )
        if result is not None:
            self.messages.append(
                Message.create(MessageRole.ASSISTANT, result.text, self.mode, result.suggestions)
            )

    async def _generate_exercises(self) -> None:
        result = await self._run(
            ArtifactSlot.EXERCISES.value, lambda: self.orchestrator.generate(self._request())
        )
        if result is not None:
            self.exercise = ExerciseArtifact(prompt_text=result.text)

    async def _generate_quiz(self) -> None:
        session = await self._run(ArtifactSlot.QUIZ.value, lambda: self.quiz_engine.generate(self._request()))
        if session is not None:
            self.quiz = session

    # =========================================================================
    # Student flow
    # =========================================================================

    def choose_role(self, role: UserRole | str) -> None:
        self._require("choose_role")
        self.role = UserRole(role)
        if self.role == UserRole.STUDENT:
            self.step = NavigationStep.SPECIALTY
        elif self.has_teacher_preferences:
            self.step = NavigationStep.TEACHER_DASHBOARD
        else:
            self.step = NavigationStep.TEACHER_SUBJECT_SELECTION
        self._persist(role=self.role)

    def pick_specialty(self, specialty: Specialty | str) -> None:
        self._require("pick_specialty")
        info = self.catalog.specialty_info(specialty)
        if info is None:
            raise NavigationError(f"Unknown specialty: {specialty}")
        self.context = SessionContext(specialty=info)
        self._clear_artifacts()
        if info.id == Specialty.PERSONAL_DOCUMENT:
            self.step = NavigationStep.DOCUMENT_UPLOAD
        else:
            self.step = NavigationStep.SUBJECT

    def pick_subject(self, subject_id: str) -> None:
        self._require("pick_subject")
        subject = self.catalog.subject(subject_id)
        if subject is None:
            raise NavigationError(f"Unknown subject: {subject_id}")
        specialty = self.context.specialty
        if specialty is not None and not subject.offered_to(specialty.id):
            raise NavigationError(f"Subject '{subject_id}' is not offered to {specialty.id.value}")
        self.context = SessionContext(specialty=specialty, subject=subject)
        self._clear_artifacts()
        self.step = NavigationStep.LESSON

    def pick_lesson(self, lesson_id: str) -> None:
        self._require("pick_lesson")
        lesson = next(
            (lesson for unit in self.visible_units() for lesson in unit.lessons if lesson.id == lesson_id),
            None,
        )
        if lesson is None:
            raise NavigationError(f"Lesson '{lesson_id}' is not visible here")
        self.context = replace(self.context, lesson=lesson)
        self._clear_artifacts()
        self.step = NavigationStep.MODE

    async def pick_mode(self, mode: AIMode | str) -> None:
        self._require("pick_mode")
        mode = AIMode(mode)
        if mode not in self.available_modes():
            raise NavigationError(f"Mode '{mode.value}' is not offered to {self.role}")
        if not self.context.is_resolved:
            logger.info(f"Refusing mode '{mode.value}': context is not resolved")
            return

        self._clear_artifacts()
        self.mode = mode
        slot = strategy_for(mode).slot

        if slot == ArtifactSlot.EXAM:
            self.step = NavigationStep.EXAM_BUILDER
        elif slot == ArtifactSlot.QUIZ:
            self.step = NavigationStep.QUIZ
            await self._generate_quiz()
        elif slot == ArtifactSlot.EXERCISES:
            self.step = NavigationStep.EXERCISES
            await self._generate_exercises()
        else:
            self.step = NavigationStep.CHAT
            await self._open_chat()

    async def send_message(self, text: str) -> None:
        """Send learner text; user and assistant messages are committed together."""
        self._require("send_message")
        text = text.strip()
        if not text:
            return

        history = tuple((m.role.value, m.content) for m in self.messages)
        self._pending_message = text
        result = await self._run(
            ArtifactSlot.CHAT.value,
            lambda: self.orchestrator.generate(self._request(message=text, history=history)),
        )
        if result is None:
            return
        self._pending_message = None
        self.messages.append(Message.create(MessageRole.USER, text, self.mode))
        self.messages.append(Message.create(MessageRole.ASSISTANT, result.text, self.mode, result.suggestions))

    async def pick_suggestion(self, index: int) -> None:
        """Send one of the last assistant message's suggestions."""
        last = next((m for m in reversed(self.messages) if m.role == MessageRole.ASSISTANT), None)
        if last is None or not 0 <= index < len(last.suggestions):
            raise NavigationError(f"No suggestion #{index}")
        await self.send_message(last.suggestions[index])

    def answer_quiz(self, option_index: int) -> bool:
        self._require("answer_quiz")
        if self.quiz is None:
            raise NavigationError("No quiz loaded")
        return self.quiz.submit_answer(option_index)

    def review_quiz(self) -> None:
        self._require("review_quiz")
        if self.quiz is None:
            raise NavigationError("No quiz loaded")
        self.quiz.open_review()

    async def retake_quiz(self) -> None:
        """Discard the current quiz and request a new one."""
        self._require("retake_quiz")
        if self.is_generating(ArtifactSlot.QUIZ):
            return
        self.quiz = None
        await self._generate_quiz()

    async def regenerate_exercises(self) -> None:
        self._require("regenerate_exercises")
        if self.is_generating(ArtifactSlot.EXERCISES):
            return
        self.exercise = None
        await self._generate_exercises()

    async def toggle_exercise_solution(self) -> None:
        """Show/hide the model solution, generating it on first reveal."""
        self._require("toggle_exercise_solution")
        sheet = self.exercise
        if sheet is None:
            raise NavigationError("No exercise sheet loaded")

        if sheet.solution_revealed:
            self.exercise = replace(sheet, solution_revealed=False)
            return

        if sheet.solution_text is None:
            solution = await self._run(
                SOLUTION_SLOT, lambda: self.orchestrator.generate_solution(sheet.prompt_text)
            )
            if solution is None or self.exercise is not sheet:
                return
            sheet = replace(sheet, solution_text=solution)

        self.exercise = replace(sheet, solution_revealed=True)

    async def upload_document(self, path: Path | str) -> None:
        """Personal-document track: ground a chat in an uploaded file."""
        self._require("upload_document")
        try:
            text = self.extractor(path)
        except ExtractionError as e:
            logger.warning(f"Document upload failed: {e}")
            self.notice = Notice.from_error(e)
            return

        subject = document_subject(Path(path).stem, text)
        self.context = SessionContext(
            specialty=self.context.specialty or self.catalog.specialty_info(Specialty.PERSONAL_DOCUMENT),
            subject=subject,
            lesson=subject.curriculum[0].lessons[0],
        )
        self._clear_artifacts()
        self.mode = AIMode.FAST
        self.step = NavigationStep.CHAT
        await self._open_chat(prompts.DOCUMENT_EXPLAIN_PROMPT)

    async def retry(self) -> None:
        """Re-issue the primary generation of the current step after a failure."""
        if self.step == NavigationStep.CHAT:
            if self._pending_message:
                await self.send_message(self._pending_message)
            elif not self.messages:
                message = prompts.DOCUMENT_EXPLAIN_PROMPT if self.context.lesson.content else None
                await self._open_chat(message)
        elif self.step == NavigationStep.QUIZ and self.quiz is None:
            await self._generate_quiz()
        elif self.step == NavigationStep.EXERCISES and self.exercise is None:
            await self._generate_exercises()
        elif self.step == NavigationStep.EXAM_BUILDER and self._last_semester is not None:
            await self.build_exam(self._last_semester)

    # =========================================================================
    # "Change" transitions (valid from any step)
    # =========================================================================

    def change_specialty(self) -> None:
        self._require("change_specialty")
        self.context = SessionContext()
        self._clear_artifacts()
        self.step = NavigationStep.SPECIALTY

    def change_subject(self) -> None:
        self._require("change_subject")
        if self.context.specialty is None:
            raise NavigationError("Pick a specialty first")
        self.context = SessionContext(specialty=self.context.specialty)
        self._clear_artifacts()
        self.step = NavigationStep.SUBJECT

    def change_lesson(self) -> None:
        self._require("change_lesson")
        if self.context.subject is None:
            raise NavigationError("Pick a subject first")
        self.context = replace(self.context, lesson=None)
        self._clear_artifacts()
        self.step = NavigationStep.LESSON

    def change_mode(self) -> None:
        self._require("change_mode")
        if self.context.lesson is None:
            raise NavigationError("Pick a lesson first")
        self._clear_artifacts()
        self.step = NavigationStep.MODE

    async def logout(self) -> None:
        """Back to the initial step with nothing carried over."""
        self._require("logout")
        if self.identity is not None:
            await self.identity.sign_out()
        self._reset()
        self.start()
        logger.info("Logged out")

    # =========================================================================
    # Teacher flow
    # =========================================================================

    def configure_teacher(self, specialty: Specialty | str, subject_id: str) -> None:
        self._require("configure_teacher")
        info = self.catalog.specialty_info(specialty)
        subject = self.catalog.subject(subject_id)
        if info is None or subject is None:
            raise NavigationError(f"Unknown specialty/subject: {specialty}/{subject_id}")
        if not subject.offered_to(info.id):
            raise NavigationError(f"Subject '{subject_id}' is not offered to {info.id.value}")

        self.teacher_specialty = info.id
        self.teacher_subject_id = subject.id
        if self.local_cache is not None:
            self.local_cache.save_teacher_preferences(info.id, subject.id)
        self._persist(teacher_specialty=info.id, teacher_subject_id=subject.id)
        self.step = NavigationStep.TEACHER_DASHBOARD

    def teacher_action(self, action: TeacherAction | str) -> None:
        self._require("teacher_action")
        action = TeacherAction(action)

        if action == TeacherAction.GRADEBOOK:
            self.step = NavigationStep.GRADEBOOK
            return
        if action == TeacherAction.UPLOAD_PROGRAM:
            self.step = NavigationStep.PROGRAM_UPLOAD
            return
        if action == TeacherAction.SETTINGS:
            self.step = NavigationStep.TEACHER_SUBJECT_SELECTION
            return

        info = self.catalog.specialty_info(self.teacher_specialty) if self.teacher_specialty else None
        subject = self.catalog.subject(self.teacher_subject_id) if self.teacher_subject_id else None
        if info is None or subject is None:
            raise NavigationError("Teacher subject and specialty are not configured")

        self.context = SessionContext(specialty=info, subject=subject)
        self._clear_artifacts()
        if action == TeacherAction.PREPARE_LESSON:
            self.step = NavigationStep.LESSON
            return

        # Exam covers a whole semester; the lesson only completes the context
        units = self.visible_units()
        first = units[0].lessons[0] if units else EXAM_PLACEHOLDER
        self.context = replace(self.context, lesson=first)
        self.mode = AIMode.EXAM_BUILDER
        self.step = NavigationStep.EXAM_BUILDER

    def open_dashboard(self) -> None:
        self._require("open_dashboard")
        if self.role != UserRole.TEACHER:
            raise NavigationError("The dashboard is for teachers")
        self.context = SessionContext()
        self._clear_artifacts()
        self.step = (
            NavigationStep.TEACHER_DASHBOARD
            if self.has_teacher_preferences
            else NavigationStep.TEACHER_SUBJECT_SELECTION
        )

    async def build_exam(self, semester: int) -> None:
        self._require("build_exam")
        if semester not in (1, 2, 3):
            raise NavigationError(f"Semester must be 1, 2 or 3, got {semester}")
        if self.mode is None:
            self.mode = AIMode.EXAM_BUILDER
        self._last_semester = semester

        lessons = self.catalog.lessons_for_semester(self.visible_units(), semester)
        if not lessons:
            self.notice = Notice(f"لا توجد دروس محددة للفصل {semester} في هذه المادة.")
            return

        request = self._request(semester=semester, semester_lessons=tuple(lessons))
        result = await self._run(ArtifactSlot.EXAM.value, lambda: self.orchestrator.generate(request))
        if result is not None:
            exam = result.exam
            self.exam = ExamArtifact(semester=semester, exam_text=exam.exam_text, solution_text=exam.solution_text)

    def toggle_exam_solution(self) -> None:
        self._require("toggle_exam_solution")
        if self.exam is None:
            raise NavigationError("No exam generated")
        self.exam = replace(self.exam, solution_revealed=not self.exam.solution_revealed)

    def upload_program(self, path: Path | str) -> bool:
        """Extract a yearly program and keep it as grounding. False on failure."""
        self._require("upload_program")
        try:
            text = self.extractor(path)
        except ExtractionError as e:
            logger.warning(f"Program upload failed: {e}")
            self.notice = Notice.from_error(e)
            return False

        self.program_text = text
        if self.local_cache is not None:
            self.local_cache.save_program_text(text)
        self.notice = Notice("تم تحميل البرنامج السنوي بنجاح!")
        self._persist(program_text=text)
        self.step = NavigationStep.TEACHER_DASHBOARD
        return True

    def delete_program(self) -> None:
        self._require("delete_program")
        self.program_text = None
        if self.local_cache is not None:
            self.local_cache.save_program_text(None)
        self._persist(program_text=None)
