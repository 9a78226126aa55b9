"""
Rich rendering of a SessionState.

`render_state` is a pure function of the session: it reads state and
returns a renderable, nothing else. The interactive loop prints whatever
it returns after every event.
"""

from __future__ import annotations

from rich import box
from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bactutor.curriculum.models import Unit
from bactutor.generation.modes import strategy_for
from bactutor.quiz.engine import QuizPhase, QuizSession
from bactutor.session.navigation import MessageRole, NavigationStep, TeacherAction
from bactutor.teacher.gradebook import GradebookEntry

THEME = {
    "primary": "cyan",
    "accent": "magenta",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "dim": "dim",
}

TEACHER_ACTION_LABELS = {
    TeacherAction.PREPARE_LESSON: "تحضير درس",
    TeacherAction.BUILD_EXAM: "بناء امتحان فصلي",
    TeacherAction.GRADEBOOK: "دفتر التنقيط",
    TeacherAction.UPLOAD_PROGRAM: "البرنامج السنوي",
    TeacherAction.SETTINGS: "تغيير المادة/الشعبة",
}


def render_state(state) -> RenderableType:
    parts: list[RenderableType] = [_header(state)]

    renderer = _RENDERERS.get(state.step)
    if renderer is not None:
        parts.append(renderer(state))

    if state.is_generating():
        parts.append(Text("… جاري التوليد", style=THEME["dim"]))
    if state.notice is not None:
        style = THEME["error"] if state.notice.kind else THEME["success"]
        hint = "  (retry)" if state.notice.retryable else ""
        parts.append(Text(state.notice.message + hint, style=style))
    return Group(*parts)


def _header(state) -> RenderableType:
    ctx = state.context
    crumbs = [
        ctx.specialty.name if ctx.specialty else None,
        ctx.subject.name if ctx.subject else None,
        ctx.lesson.title if ctx.lesson else None,
        strategy_for(state.mode).label if state.mode else None,
    ]
    trail = " › ".join(c for c in crumbs if c) or "bacdz-tutor"
    return Text(trail, style=f"bold {THEME['primary']}")


def _numbered(title: str, rows: list[tuple[str, str]]) -> Table:
    table = Table(title=title, box=box.SIMPLE, show_header=False)
    table.add_column("#", style=THEME["accent"], justify="right")
    table.add_column("item")
    table.add_column("id", style=THEME["dim"])
    for i, (label, ident) in enumerate(rows, 1):
        table.add_row(str(i), label, ident)
    return table


def render_units(units: list[Unit], title: str = "الدروس") -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Unit", style=THEME["primary"])
    table.add_column("S", justify="center")
    table.add_column("Lesson")
    table.add_column("id", style=THEME["dim"])
    for unit in units:
        for i, lesson in enumerate(unit.lessons):
            table.add_row(unit.title if i == 0 else "", str(unit.semester) if i == 0 else "", lesson.title, lesson.id)
    return table


def render_gradebook(entries: list[GradebookEntry], subject_id: str | None = None) -> Table:
    table = Table(title="دفتر التنقيط", box=box.ROUNDED)
    table.add_column("id", style=THEME["dim"])
    table.add_column("Student")
    table.add_column("Mark", justify="right")
    table.add_column("Assessment", justify="right")
    table.add_column("Note")
    for entry in entries:
        if subject_id:
            mark = entry.marks.get(subject_id)
            assess = entry.assessment_marks.get(subject_id)
            note = entry.assessment_notes.get(subject_id, "")
        else:
            mark = assess = None
            note = ", ".join(f"{k}: {v}" for k, v in entry.assessment_notes.items())
        table.add_row(
            entry.student_id,
            entry.name,
            "" if mark is None else f"{mark:g}",
            "" if assess is None else f"{assess:g}",
            note,
        )
    return table


# =============================================================================
# Step renderers
# =============================================================================


def _role(state) -> RenderableType:
    return _numbered("من أنت؟", [("طالب", "student"), ("أستاذ", "teacher")])


def _specialty(state) -> RenderableType:
    return _numbered("اختر شعبتك", [(f"{s.icon} {s.name}", s.id.value) for s in state.catalog.specialties()])


def _subject(state) -> RenderableType:
    specialty = state.context.specialty
    subjects = state.catalog.subjects_for(specialty.id if specialty else None)
    return _numbered("اختر المادة", [(f"{s.icon} {s.name}", s.id) for s in subjects])


def _lesson(state) -> RenderableType:
    return render_units(state.visible_units())


def _mode(state) -> RenderableType:
    rows = []
    for mode in state.available_modes():
        strategy = strategy_for(mode)
        rows.append((f"{strategy.icon} {strategy.label}", mode.value))
    return _numbered("اختر طريقة المراجعة", rows)


def _chat(state) -> RenderableType:
    panels: list[RenderableType] = []
    for message in state.messages:
        if message.role == MessageRole.USER:
            panels.append(Panel(message.content, title="أنت", border_style=THEME["accent"]))
        else:
            panels.append(Panel(Markdown(message.content), title="الأستاذ", border_style=THEME["primary"]))
    if state.messages and state.messages[-1].suggestions:
        lines = [f"{i}. {s}" for i, s in enumerate(state.messages[-1].suggestions, 1)]
        panels.append(Text("\n".join(lines), style=THEME["dim"]))
    return Group(*panels) if panels else Text("")


def _quiz_view(quiz: QuizSession) -> RenderableType:
    if quiz.phase == QuizPhase.ANSWERING:
        question = quiz.current_question
        body = "\n".join(f"{i}. {option}" for i, option in enumerate(question.options, 1))
        return Panel(
            f"{question.question}\n\n{body}",
            title=f"{quiz.quiz.title}  ({quiz.current_index + 1}/{quiz.total})",
            border_style=THEME["primary"],
        )

    if quiz.phase == QuizPhase.RESULT:
        return Panel(
            Text(f"النتيجة: {quiz.score_label}", style=f"bold {THEME['success']}", justify="center"),
            title=quiz.quiz.title,
        )

    table = Table(title=f"مراجعة: {quiz.score_label}", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Answer")
    table.add_column("Explanation", style=THEME["dim"])
    for i, question in enumerate(quiz.quiz.questions):
        answer = quiz.answers[i]
        style = THEME["success"] if quiz.is_correct(i) else THEME["error"]
        chosen = question.options[answer] if answer is not None else "-"
        table.add_row(str(i + 1), question.question, Text(chosen, style=style), question.explanation)
    return table


def _quiz(state) -> RenderableType:
    return _quiz_view(state.quiz) if state.quiz is not None else Text("")


def _exercises(state) -> RenderableType:
    sheet = state.exercise
    if sheet is None:
        return Text("")
    parts: list[RenderableType] = [Panel(Markdown(sheet.prompt_text), title="موضوع التمارين")]
    if sheet.solution_revealed and sheet.solution_text:
        parts.append(Panel(Markdown(sheet.solution_text), title="الحل النموذجي", border_style=THEME["success"]))
    return Group(*parts)


def _exam(state) -> RenderableType:
    exam = state.exam
    if exam is None:
        return Text("اختر الفصل (1، 2 أو 3)", style=THEME["dim"])
    parts: list[RenderableType] = [Panel(Markdown(exam.exam_text), title=f"امتحان الفصل {exam.semester}")]
    if exam.solution_revealed:
        parts.append(Panel(Markdown(exam.solution_text), title="الحل", border_style=THEME["success"]))
    return Group(*parts)


def _document_upload(state) -> RenderableType:
    return Text("أدخل مسار ملف PDF أو نص لشرحه", style=THEME["dim"])


def _teacher_subject(state) -> RenderableType:
    return Text("اختر الشعبة ثم المادة التي تدرّسها", style=THEME["dim"])


def _dashboard(state) -> RenderableType:
    rows = [(label, action.value) for action, label in TEACHER_ACTION_LABELS.items()]
    program = "✔ البرنامج السنوي محمّل" if state.program_text else "✘ لا يوجد برنامج سنوي"
    return Group(_numbered("لوحة الأستاذ", rows), Text(program, style=THEME["dim"]))


def _program_upload(state) -> RenderableType:
    status = f"{len(state.program_text)} حرف" if state.program_text else "لا يوجد"
    return Text(f"البرنامج الحالي: {status}", style=THEME["dim"])


def _gradebook(state) -> RenderableType:
    return render_gradebook(state.gradebook.entries, state.teacher_subject_id)


_RENDERERS = {
    NavigationStep.ROLE_SELECTION: _role,
    NavigationStep.SPECIALTY: _specialty,
    NavigationStep.SUBJECT: _subject,
    NavigationStep.LESSON: _lesson,
    NavigationStep.MODE: _mode,
    NavigationStep.CHAT: _chat,
    NavigationStep.QUIZ: _quiz,
    NavigationStep.EXERCISES: _exercises,
    NavigationStep.EXAM_BUILDER: _exam,
    NavigationStep.DOCUMENT_UPLOAD: _document_upload,
    NavigationStep.TEACHER_SUBJECT_SELECTION: _teacher_subject,
    NavigationStep.TEACHER_DASHBOARD: _dashboard,
    NavigationStep.PROGRAM_UPLOAD: _program_upload,
    NavigationStep.GRADEBOOK: _gradebook,
}
