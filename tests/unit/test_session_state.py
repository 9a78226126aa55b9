"""
Unit tests for the session state machine.

Tests cover:
- Event/step validity (every event fired from every step it is not valid from)
- Transition clearing of context and artifacts
- Chat, quiz, exercises and document flows with success and failure
- Staleness and per-slot mutual exclusion for in-flight generations
- Teacher flow: configuration, lesson plans, exams, yearly program
- Persistence through the profile store and local cache
"""

import asyncio
import inspect

import pytest

from bactutor.curriculum.models import Specialty, UserRole
from bactutor.errors import ErrorKind, NavigationError, ProviderFailureError
from bactutor.generation.modes import AIMode, ArtifactSlot
from bactutor.generation.orchestrator import GenerationOrchestrator
from bactutor.generation.schemas import SUGGESTIONS_SCHEMA
from bactutor.integrations.local_cache import LocalPreferenceCache
from bactutor.integrations.profile_store import SqlProfileStore
from bactutor.quiz.engine import QuizPhase
from bactutor.session.navigation import EVENT_SOURCES, MessageRole, NavigationStep
from bactutor.session.state import SessionState


def open_lesson(session, specialty="Mathématiques", subject="math", lesson="ml1"):
    session.choose_role(UserRole.STUDENT)
    session.pick_specialty(specialty)
    session.pick_subject(subject)
    session.pick_lesson(lesson)


def open_teacher(session, specialty="Mathématiques", subject="math"):
    session.choose_role(UserRole.TEACHER)
    session.configure_teacher(specialty, subject)


class GatedBackend:
    """Backend whose calls block until `gate` is set."""

    def __init__(self, response="رد"):
        self.gate = asyncio.Event()
        self.response = response
        self.calls = []

    async def generate(self, profile, prompt, schema=None):
        self.calls.append(prompt)
        await self.gate.wait()
        if schema is SUGGESTIONS_SCHEMA:
            return '{"suggestions": []}'
        return self.response


@pytest.fixture
def gated(catalog, curriculum_filter, settings):
    backend = GatedBackend()
    orchestrator = GenerationOrchestrator(backend, settings=settings)
    return backend, SessionState(catalog, curriculum_filter, orchestrator, settings=settings)


async def _chat_with_failed_follow_up(session, backend, make_quiz, make_exam):
    open_lesson(session)
    await session.pick_mode(AIMode.FAST)
    backend.queue(ProviderFailureError("down"))
    await session.send_message("سؤال")
    assert session.messages and session.notice is not None


async def _quiz_in_progress(session, backend, make_quiz, make_exam):
    open_lesson(session)
    backend.queue(make_quiz())
    await session.pick_mode(AIMode.QUIZ)
    session.answer_quiz(0)
    assert session.quiz is not None


async def _exercise_with_solution(session, backend, make_quiz, make_exam):
    open_lesson(session)
    await session.pick_mode(AIMode.EXERCISES)
    await session.toggle_exercise_solution()
    assert session.exercise.solution_revealed


async def _semester_exam(session, backend, make_quiz, make_exam):
    open_teacher(session)
    session.teacher_action("build_exam")
    backend.queue(make_exam())
    await session.build_exam(1)
    assert session.exam is not None


ARTIFACT_SETUPS = {
    "chat": _chat_with_failed_follow_up,
    "quiz": _quiz_in_progress,
    "exercises": _exercise_with_solution,
    "exam": _semester_exam,
}

STEP_FOR_ARTIFACT = {
    "chat": NavigationStep.CHAT,
    "quiz": NavigationStep.QUIZ,
    "exercises": NavigationStep.EXERCISES,
    "exam": NavigationStep.EXAM_BUILDER,
}


# =============================================================================
# Event validity
# =============================================================================

EVENT_CALLS = {
    "choose_role": lambda s: s.choose_role("student"),
    "pick_specialty": lambda s: s.pick_specialty("Mathématiques"),
    "pick_subject": lambda s: s.pick_subject("math"),
    "pick_lesson": lambda s: s.pick_lesson("ml1"),
    "pick_mode": lambda s: s.pick_mode("fast"),
    "send_message": lambda s: s.send_message("سؤال"),
    "answer_quiz": lambda s: s.answer_quiz(0),
    "review_quiz": lambda s: s.review_quiz(),
    "retake_quiz": lambda s: s.retake_quiz(),
    "toggle_exercise_solution": lambda s: s.toggle_exercise_solution(),
    "regenerate_exercises": lambda s: s.regenerate_exercises(),
    "build_exam": lambda s: s.build_exam(1),
    "toggle_exam_solution": lambda s: s.toggle_exam_solution(),
    "upload_document": lambda s: s.upload_document("cours.txt"),
    "configure_teacher": lambda s: s.configure_teacher("Mathématiques", "math"),
    "teacher_action": lambda s: s.teacher_action("gradebook"),
    "upload_program": lambda s: s.upload_program("programme.txt"),
    "delete_program": lambda s: s.delete_program(),
}

INVALID_PAIRS = [
    (event, step)
    for event, sources in EVENT_SOURCES.items()
    if sources is not None
    for step in NavigationStep
    if step not in sources
]


class TestEventValidity:
    def test_every_restricted_event_has_a_call(self):
        restricted = {e for e, sources in EVENT_SOURCES.items() if sources is not None}
        assert restricted == set(EVENT_CALLS)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event,step", INVALID_PAIRS, ids=[f"{e}@{s.value}" for e, s in INVALID_PAIRS])
    async def test_event_rejected_outside_its_steps(self, session, backend, event, step):
        session.step = step
        with pytest.raises(NavigationError):
            result = EVENT_CALLS[event](session)
            if inspect.isawaitable(result):
                await result
        assert session.step == step
        assert backend.calls == []


# =============================================================================
# Student navigation
# =============================================================================


class TestNavigation:
    def test_initial_step(self, session):
        assert session.step == NavigationStep.ROLE_SELECTION
        assert session.role is None

    def test_single_role_mode_starts_at_specialty(self, catalog, curriculum_filter, orchestrator, settings):
        settings.single_role_mode = True
        state = SessionState(catalog, curriculum_filter, orchestrator, settings=settings)
        assert state.step == NavigationStep.SPECIALTY
        assert state.role == UserRole.STUDENT

    def test_happy_path_to_mode(self, session):
        open_lesson(session)
        assert session.step == NavigationStep.MODE
        assert session.context.is_resolved
        assert session.context.lesson.id == "ml1"

    def test_personal_document_specialty_goes_to_upload(self, session):
        session.choose_role("student")
        session.pick_specialty(Specialty.PERSONAL_DOCUMENT)
        assert session.step == NavigationStep.DOCUMENT_UPLOAD

    def test_unknown_specialty(self, session):
        session.choose_role("student")
        with pytest.raises(NavigationError):
            session.pick_specialty("Bac Inconnu")

    def test_subject_not_offered(self, session):
        session.choose_role("student")
        session.pick_specialty("Mathématiques")
        with pytest.raises(NavigationError):
            session.pick_subject("accounting")
        assert session.step == NavigationStep.SUBJECT

    def test_hidden_lesson_cannot_be_picked(self, session):
        session.choose_role("student")
        session.pick_specialty("Sciences Expérimentales")
        session.pick_subject("math")
        assert "m6" not in [u.id for u in session.visible_units()]
        with pytest.raises(NavigationError):
            session.pick_lesson("ml13")

    def test_math_track_sees_arithmetic(self, session):
        open_lesson(session, lesson="ml13")
        assert session.context.lesson.id == "ml13"

    @pytest.mark.asyncio
    async def test_student_cannot_pick_teacher_mode(self, session, backend):
        open_lesson(session)
        with pytest.raises(NavigationError):
            await session.pick_mode(AIMode.LESSON_PLAN)
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unresolved_context_never_generates(self, session, backend):
        session.step = NavigationStep.MODE
        await session.pick_mode(AIMode.FAST)
        assert backend.calls == []
        assert session.step == NavigationStep.MODE
        assert session.messages == []


class TestTransitionClearing:
    @pytest.mark.asyncio
    async def test_change_lesson_clears_artifacts(self, session, backend, make_quiz):
        open_lesson(session)
        backend.queue(make_quiz())
        await session.pick_mode(AIMode.QUIZ)
        assert session.quiz is not None

        session.change_lesson()

        assert session.step == NavigationStep.LESSON
        assert session.context.lesson is None
        assert session.context.subject.id == "math"
        assert session.quiz is None
        assert session.mode is None

    @pytest.mark.asyncio
    async def test_change_mode_keeps_lesson(self, session):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        assert session.messages

        session.change_mode()

        assert session.step == NavigationStep.MODE
        assert session.context.lesson.id == "ml1"
        assert session.messages == []

    def test_change_subject(self, session):
        open_lesson(session)
        session.change_subject()
        assert session.step == NavigationStep.SUBJECT
        assert session.context.subject is None
        assert session.context.lesson is None
        assert session.context.specialty.id == Specialty.MATHEMATICS

    def test_change_specialty(self, session):
        open_lesson(session)
        session.change_specialty()
        assert session.step == NavigationStep.SPECIALTY
        assert session.context.specialty is None
        assert session.context.subject is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["change_subject", "change_specialty"])
    @pytest.mark.parametrize("step", ["chat", "quiz", "exercises", "exam"])
    async def test_change_clears_every_artifact(self, session, backend, make_quiz, make_exam, step, event):
        await ARTIFACT_SETUPS[step](session, backend, make_quiz, make_exam)
        assert session.step == STEP_FOR_ARTIFACT[step]
        before = session.epoch

        getattr(session, event)()

        assert session.context.lesson is None
        assert session.context.subject is None
        assert session.messages == []
        assert session.quiz is None
        assert session.exercise is None
        assert session.exam is None
        assert session.mode is None
        assert session.notice is None
        assert session.epoch > before
        if event == "change_specialty":
            assert session.step == NavigationStep.SPECIALTY
            assert session.context.specialty is None
        else:
            assert session.step == NavigationStep.SUBJECT
            assert session.context.specialty is not None

    def test_change_without_prerequisite(self, session):
        session.choose_role("student")
        with pytest.raises(NavigationError):
            session.change_subject()
        with pytest.raises(NavigationError):
            session.change_lesson()
        with pytest.raises(NavigationError):
            session.change_mode()

    def test_context_change_bumps_epoch(self, session):
        open_lesson(session)
        before = session.epoch
        session.change_mode()
        assert session.epoch > before

    @pytest.mark.asyncio
    async def test_logout_resets_everything(self, session):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)

        await session.logout()

        assert session.step == NavigationStep.ROLE_SELECTION
        assert session.role is None
        assert not session.context.is_resolved
        assert session.messages == []


# =============================================================================
# Chat
# =============================================================================


class TestChat:
    @pytest.mark.asyncio
    async def test_opening_explanation(self, session, backend):
        open_lesson(session)
        backend.queue("شرح النهايات")

        await session.pick_mode(AIMode.FAST)

        assert session.step == NavigationStep.CHAT
        assert len(session.messages) == 1
        message = session.messages[0]
        assert message.role == MessageRole.ASSISTANT
        assert message.content == "شرح النهايات"
        assert message.mode == AIMode.FAST
        assert len(message.suggestions) == 3

    @pytest.mark.asyncio
    async def test_send_message_commits_both_messages(self, session, backend):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        backend.queue("الجواب")

        await session.send_message("  ما هي النهاية؟ ")

        assert [m.role for m in session.messages] == [
            MessageRole.ASSISTANT,
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]
        assert session.messages[1].content == "ما هي النهاية؟"
        assert session.messages[2].content == "الجواب"

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_step_and_transcript(self, session, backend):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        backend.queue(ProviderFailureError("503 Service Unavailable"))

        await session.send_message("سؤال")

        assert session.step == NavigationStep.CHAT
        assert len(session.messages) == 1
        assert session.notice.kind == ErrorKind.PROVIDER_FAILURE
        assert session.notice.retryable

    @pytest.mark.asyncio
    async def test_retry_resends_pending_message(self, session, backend):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        backend.queue(ProviderFailureError("down"), "الجواب")
        await session.send_message("سؤال")

        await session.retry()

        assert [m.content for m in session.messages[1:]] == ["سؤال", "الجواب"]
        assert session.notice is None

    @pytest.mark.asyncio
    async def test_suggestion_failure_is_invisible(self, session, backend):
        backend.suggestions = ProviderFailureError("quota")
        open_lesson(session)

        await session.pick_mode(AIMode.THINK)

        assert session.messages[0].suggestions == ()
        assert session.notice is None

    @pytest.mark.asyncio
    async def test_pick_suggestion_sends_it(self, session, backend):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        backend.queue("جواب المتابعة")

        await session.pick_suggestion(1)

        assert session.messages[1].content == "مثال آخر"
        assert session.messages[2].content == "جواب المتابعة"

    @pytest.mark.asyncio
    async def test_pick_missing_suggestion(self, session):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        with pytest.raises(NavigationError):
            await session.pick_suggestion(7)

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self, session, backend):
        open_lesson(session)
        await session.pick_mode(AIMode.FAST)
        calls = len(backend.calls)
        await session.send_message("   ")
        assert len(backend.calls) == calls


# =============================================================================
# Quiz and exercises
# =============================================================================


class TestQuizFlow:
    @pytest.mark.asyncio
    async def test_full_quiz(self, session, backend, make_quiz):
        open_lesson(session)
        backend.queue(make_quiz(correct=2))
        await session.pick_mode(AIMode.QUIZ)

        for i in range(10):
            session.answer_quiz(2 if i < 7 else 0)

        assert session.quiz.phase == QuizPhase.RESULT
        assert session.quiz.score_label == "7/10"
        session.review_quiz()
        assert session.quiz.phase == QuizPhase.REVIEW
        assert session.quiz.score_label == "7/10"

    @pytest.mark.asyncio
    async def test_invalid_quiz_surfaces_after_one_retry(self, session, backend, make_quiz):
        open_lesson(session)
        backend.queue(make_quiz(bad_index=5), make_quiz(bad_index=5))

        await session.pick_mode(AIMode.QUIZ)

        assert session.step == NavigationStep.QUIZ
        assert session.quiz is None
        assert session.notice.kind == ErrorKind.SCHEMA_INVALID
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_retry_after_invalid_quiz(self, session, backend, make_quiz):
        open_lesson(session)
        backend.queue("{}", "{}", make_quiz())
        await session.pick_mode(AIMode.QUIZ)

        await session.retry()

        assert session.quiz is not None
        assert session.notice is None

    @pytest.mark.asyncio
    async def test_retake_replaces_quiz(self, session, backend, make_quiz):
        open_lesson(session)
        backend.queue(make_quiz(correct=0), make_quiz(correct=3))
        await session.pick_mode(AIMode.QUIZ)
        session.answer_quiz(0)

        await session.retake_quiz()

        assert session.quiz.current_index == 0
        assert session.quiz.quiz.questions[0].correct_answer_index == 3


class TestExercises:
    @pytest.mark.asyncio
    async def test_solution_generated_on_first_reveal(self, session, backend):
        open_lesson(session)
        backend.queue("التمرين 1", "الحل 1")
        await session.pick_mode(AIMode.EXERCISES)
        assert session.exercise.prompt_text == "التمرين 1"
        assert session.exercise.solution_text is None

        await session.toggle_exercise_solution()
        assert session.exercise.solution_revealed
        assert session.exercise.solution_text == "الحل 1"
        assert "التمرين 1" in backend.calls[-1][1]

        await session.toggle_exercise_solution()
        await session.toggle_exercise_solution()
        assert session.exercise.solution_revealed
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_solution_failure_is_silent(self, session, backend):
        open_lesson(session)
        backend.queue("التمرين 1", ProviderFailureError("down"))
        await session.pick_mode(AIMode.EXERCISES)

        await session.toggle_exercise_solution()

        assert session.exercise.prompt_text == "التمرين 1"
        assert not session.exercise.solution_revealed
        assert session.notice is None

    @pytest.mark.asyncio
    async def test_regenerate(self, session, backend):
        open_lesson(session)
        backend.queue("الأول", "الثاني")
        await session.pick_mode(AIMode.EXERCISES)
        await session.regenerate_exercises()
        assert session.exercise.prompt_text == "الثاني"


# =============================================================================
# In-flight generations
# =============================================================================


class TestInFlight:
    @pytest.mark.asyncio
    async def test_result_for_old_context_discarded(self, gated):
        backend, session = gated
        open_lesson(session)

        task = asyncio.create_task(session.pick_mode(AIMode.FAST))
        await asyncio.sleep(0)
        assert session.is_generating(ArtifactSlot.CHAT)

        session.change_mode()
        backend.gate.set()
        await task

        assert session.step == NavigationStep.MODE
        assert session.messages == []
        assert session.notice is None
        assert not session.is_generating()

    @pytest.mark.asyncio
    async def test_duplicate_request_ignored(self, gated):
        backend, session = gated
        open_lesson(session)

        task = asyncio.create_task(session.pick_mode(AIMode.EXERCISES))
        await asyncio.sleep(0)
        await session.regenerate_exercises()
        assert len(backend.calls) == 1

        backend.gate.set()
        await task
        assert session.exercise.prompt_text == "رد"


# =============================================================================
# Personal documents
# =============================================================================


class TestDocumentUpload:
    @pytest.mark.asyncio
    async def test_upload_opens_grounded_chat(self, session, backend, tmp_path):
        path = tmp_path / "cours.txt"
        path.write_text("الخلية هي الوحدة الأساسية للحياة", encoding="utf-8")
        session.choose_role("student")
        session.pick_specialty(Specialty.PERSONAL_DOCUMENT)
        backend.queue("شرح الملف")

        await session.upload_document(path)

        assert session.step == NavigationStep.CHAT
        assert session.context.subject.name == "cours"
        assert session.messages[0].content == "شرح الملف"
        assert "الخلية هي الوحدة الأساسية للحياة" in backend.primary_calls[0][1]

    @pytest.mark.asyncio
    async def test_extraction_failure_keeps_step(self, session, backend, tmp_path):
        session.choose_role("student")
        session.pick_specialty(Specialty.PERSONAL_DOCUMENT)

        await session.upload_document(tmp_path / "missing.pdf")

        assert session.step == NavigationStep.DOCUMENT_UPLOAD
        assert session.notice.kind == ErrorKind.EXTRACTION_FAILURE
        assert backend.calls == []


# =============================================================================
# Teacher flow
# =============================================================================


class TestTeacherFlow:
    def test_teacher_without_preferences_configures_first(self, session):
        session.choose_role(UserRole.TEACHER)
        assert session.step == NavigationStep.TEACHER_SUBJECT_SELECTION

    def test_configure_then_dashboard(self, session):
        open_teacher(session)
        assert session.step == NavigationStep.TEACHER_DASHBOARD
        assert session.teacher_specialty == Specialty.MATHEMATICS
        assert session.teacher_subject_id == "math"

    def test_configure_rejects_subject_not_offered(self, session):
        session.choose_role(UserRole.TEACHER)
        with pytest.raises(NavigationError):
            session.configure_teacher("Mathématiques", "accounting")
        assert session.step == NavigationStep.TEACHER_SUBJECT_SELECTION

    @pytest.mark.asyncio
    async def test_lesson_plan(self, session, backend):
        open_teacher(session)
        session.teacher_action("prepare_lesson")
        assert session.step == NavigationStep.LESSON
        assert AIMode.LESSON_PLAN in session.available_modes()
        session.pick_lesson("ml13")
        backend.queue("## الكفاءة المستهدفة")

        await session.pick_mode(AIMode.LESSON_PLAN)

        assert session.step == NavigationStep.CHAT
        assert session.messages[0].content == "## الكفاءة المستهدفة"
        assert backend.suggestion_calls == []

    @pytest.mark.asyncio
    async def test_build_exam(self, session, backend, make_exam):
        open_teacher(session)
        session.teacher_action("build_exam")
        assert session.step == NavigationStep.EXAM_BUILDER
        backend.queue(make_exam("موضوع الفصل الثاني", "الحل المفصل"))

        await session.build_exam(2)

        assert session.exam.semester == 2
        assert session.exam.exam_text == "موضوع الفصل الثاني"
        assert not session.exam.solution_revealed
        session.toggle_exam_solution()
        assert session.exam.solution_revealed

    @pytest.mark.asyncio
    async def test_exam_uses_visible_curriculum(self, session, backend, make_exam, catalog):
        open_teacher(session, specialty="Sciences Expérimentales")
        session.teacher_action("build_exam")
        backend.queue(make_exam())

        await session.build_exam(3)

        prompt = backend.calls[0][1]
        math = catalog.subject("math")
        assert math.find_lesson("ml11").title in prompt
        assert math.find_lesson("ml13").title not in prompt

    @pytest.mark.asyncio
    async def test_empty_semester_makes_no_call(self, session, backend):
        open_teacher(session, subject="islamic")
        session.teacher_action("build_exam")

        await session.build_exam(3)

        assert session.exam is None
        assert session.notice is not None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_invalid_semester(self, session):
        open_teacher(session)
        session.teacher_action("build_exam")
        with pytest.raises(NavigationError):
            await session.build_exam(4)

    @pytest.mark.asyncio
    async def test_program_grounds_exercises(self, session, backend, tmp_path):
        path = tmp_path / "programme.txt"
        path.write_text("الأسبوع 1: النهايات", encoding="utf-8")
        open_teacher(session)
        session.teacher_action("upload_program")

        assert session.upload_program(path) is True
        assert session.step == NavigationStep.TEACHER_DASHBOARD
        assert session.program_text == "الأسبوع 1: النهايات"

        session.teacher_action("prepare_lesson")
        session.pick_lesson("ml1")
        await session.pick_mode(AIMode.EXERCISES)
        assert "الأسبوع 1: النهايات" in backend.calls[0][1]

    def test_failed_program_upload_keeps_previous(self, session, tmp_path):
        open_teacher(session)
        session.program_text = "قديم"
        session.teacher_action("upload_program")

        assert session.upload_program(tmp_path / "missing.pdf") is False
        assert session.program_text == "قديم"
        assert session.step == NavigationStep.PROGRAM_UPLOAD

    def test_delete_program(self, session):
        open_teacher(session)
        session.program_text = "برنامج"
        session.delete_program()
        assert session.program_text is None

    def test_dashboard_is_teacher_only(self, session):
        open_lesson(session)
        with pytest.raises(NavigationError):
            session.open_dashboard()

    def test_gradebook_action(self, session):
        open_teacher(session)
        session.teacher_action("gradebook")
        assert session.step == NavigationStep.GRADEBOOK
        session.gradebook.add_student("أمين")
        session.open_dashboard()
        assert session.step == NavigationStep.TEACHER_DASHBOARD
        assert len(session.gradebook) == 1


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    @pytest.fixture
    def stores(self, settings):
        store = SqlProfileStore(settings.database_url)
        cache = LocalPreferenceCache(settings.local_cache_path)
        yield store, cache
        cache.close()

    def make(self, catalog, curriculum_filter, orchestrator, settings, stores):
        store, cache = stores
        state = SessionState(
            catalog, curriculum_filter, orchestrator, settings=settings, profile_store=store, local_cache=cache
        )
        state.start()
        return state

    def test_teacher_preferences_survive_restart(self, catalog, curriculum_filter, orchestrator, settings, stores):
        first = self.make(catalog, curriculum_filter, orchestrator, settings, stores)
        open_teacher(first, subject="physics")
        first.gradebook.add_student("ليلى")

        second = self.make(catalog, curriculum_filter, orchestrator, settings, stores)
        second.choose_role(UserRole.TEACHER)

        assert second.step == NavigationStep.TEACHER_DASHBOARD
        assert second.teacher_subject_id == "physics"
        assert [e.name for e in second.gradebook.entries] == ["ليلى"]

    def test_profile_keyed_by_local_id(self, catalog, curriculum_filter, orchestrator, settings, stores):
        state = self.make(catalog, curriculum_filter, orchestrator, settings, stores)
        open_teacher(state)
        store, cache = stores
        profile = store.get_profile(cache.local_id)
        assert profile.role == UserRole.TEACHER
        assert profile.teacher_specialty == Specialty.MATHEMATICS

    def test_malformed_stored_profile_does_not_block_start(
        self, catalog, curriculum_filter, orchestrator, settings, stores
    ):
        store, cache = stores
        cache.save_teacher_preferences(Specialty.MATHEMATICS, "math")
        store.upsert_profile(cache.local_id, {"teacher_subject_id": "physics"})
        with store.engine.begin() as conn:
            conn.exec_driver_sql("UPDATE profiles SET role = 'admin'")

        state = self.make(catalog, curriculum_filter, orchestrator, settings, stores)

        assert state.step == NavigationStep.ROLE_SELECTION
        assert state.teacher_subject_id == "math"
