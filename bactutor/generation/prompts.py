"""
Prompt templates for the tutor.

All learner-facing output is Modern Standard Arabic (right-to-left). The
notation register is chosen per subject from configuration: scientific
subjects get LaTeX markers between `$...$`, literary subjects are told to
avoid mathematical notation altogether.
"""

from __future__ import annotations

from typing import Iterable, Sequence

SYSTEM_INSTRUCTION = """أنت أستاذ جزائري خبير في التحضير لشهادة البكالوريا.
- اكتب دائماً بلغة عربية فصحى سليمة وواضحة، من اليمين إلى اليسار.
- التزم بالمنهاج الرسمي الجزائري للسنة الثالثة ثانوي.
- كن دقيقاً ومنظماً، واستعمل العناوين والنقاط عند الحاجة."""

MATH_NOTATION = "استخدم تنسيق LaTeX للرموز الرياضية والفيزيائية، وضع الصيغ بين علامتي دولار هكذا: `$صيغتي هنا$`."
PROSE_NOTATION = "هذه مادة أدبية، تجنب تماماً استخدام أي رموز رياضية أو LaTeX. ركز على جودة اللغة العربية."

LESSON_PLAN_SECTIONS = (
    "الكفاءة المستهدفة",
    "مؤشرات الكفاءة",
    "الوسائل التعليمية",
    "الوضعية الانطلاقية",
    "بناء التعلمات",
    "التقويم",
    "الواجب المنزلي",
)

DOCUMENT_EXPLAIN_PROMPT = (
    "اشرح لي محتوى هذا الملف بالتفصيل وبطريقة سهلة جداً للفهم، وكأني طالب مبتدئ. "
    "قسم الشرح إلى نقاط واضحة ومفصلة. بعد الشرح، اقترح علي أسئلة لأختبر فهمي."
)

# Extra steer per chat mode, prepended to the learner's request
MODE_PREAMBLES = {
    "fast": "",
    "think": "فكر خطوة بخطوة قبل الإجابة، ووضح تسلسل الاستدلال بدقة.",
    "search": "استعن بمصادر حديثة وموثوقة عند الحاجة، واذكرها باختصار.",
    "analyze": "قدم تحليلاً معمقاً يربط المفاهيم ببعضها ويبرز أخطاء الفهم الشائعة.",
}

ROLE_LABELS = {"user": "الطالب", "assistant": "الأستاذ"}


def notation_instruction(math_notation: bool) -> str:
    return MATH_NOTATION if math_notation else PROSE_NOTATION


def with_grounding(prompt: str, grounding: str | None) -> str:
    """Prefix a prompt with source material the answer must rely on."""
    if not grounding:
        return prompt
    return f'بناءً على المحتوى التالي من الملف المرفق:\n\n"""\n{grounding}\n"""\n\n{prompt}'


def lesson_context(lesson_title: str, subject_name: str) -> str:
    """Grounding line used when a lesson has no content of its own."""
    return f'السياق: درس "{lesson_title}" في مادة {subject_name}.'


def _exclusive_block(content: str | None, what: str) -> str:
    if not content:
        return ""
    return f'اعتمد حصرياً على المحتوى التالي في صياغة {what}:\n"""\n{content}\n"""\n'


def _program_block(program_text: str | None) -> str:
    if not program_text:
        return ""
    return f'التزم بالبرنامج السنوي التالي للأستاذ:\n"""\n{program_text}\n"""\n'


def explain_prompt(lesson_title: str, subject_name: str, specialty_name: str) -> str:
    return (
        f'أنت أستاذ جزائري خبير. اشرح لي درس "{lesson_title}" في مادة {subject_name} '
        f"لشعبة {specialty_name} بأسلوب مبسط وشيق جداً."
    )


def chat_prompt(
    mode: str,
    message: str,
    *,
    math_notation: bool,
    history: Sequence[tuple[str, str]] = (),
) -> str:
    """Learner message plus recent transcript and register constraints."""
    parts = []
    preamble = MODE_PREAMBLES.get(mode, "")
    if preamble:
        parts.append(preamble)
    parts.append(notation_instruction(math_notation))
    if history:
        lines = [f"{ROLE_LABELS.get(role, role)}: {content}" for role, content in history]
        parts.append("المحادثة السابقة:\n" + "\n".join(lines))
    parts.append(message)
    return "\n\n".join(parts)


def exercises_prompt(
    lesson_title: str,
    subject_name: str,
    specialty_name: str,
    *,
    math_notation: bool,
    lesson_content: str | None = None,
    program_text: str | None = None,
) -> str:
    return f"""أنت أستاذ خبير ومتميز في البكالوريا الجزائرية.
{_exclusive_block(lesson_content, "التمارين")}{_program_block(program_text)}
قم بكتابة موضوع امتحان نموذجي كامل لدرس "{lesson_title}" في مادة {subject_name} لشعبة {specialty_name}.
1. الموضوع يتكون من 3 تمارين متدرجة الصعوبة.
2. لغة عربية فصحى سليمة.
3. {notation_instruction(math_notation)}
لا تكتب الحل."""


def solution_prompt(exercise_text: str) -> str:
    return f"قدم الحل النموذجي المفصل لموضوع التمارين التالي: \n\n{exercise_text}"


def quiz_prompt(
    lesson_title: str,
    subject_name: str,
    specialty_name: str,
    *,
    math_notation: bool,
    lesson_content: str | None = None,
    program_text: str | None = None,
    question_count: int = 10,
) -> str:
    return (
        f"أنت أستاذ خبير ومصحح دقيق في البكالوريا الجزائرية. "
        f"{_exclusive_block(lesson_content, 'الأسئلة')}{_program_block(program_text)}"
        f'قم بتوليد اختبار MCQ احترافي مكون من {question_count} أسئلة دقيقة لدرس "{lesson_title}" '
        f"في مادة {subject_name} لشعبة {specialty_name}.\n"
        f"لكل سؤال 4 خيارات بالضبط، و correctAnswerIndex هو رقم الخيار الصحيح من 0 إلى 3، مع شرح قصير.\n"
        f"يجب أن تكون الأسئلة متنوعة وتحاكي نمط البكالوريا. {notation_instruction(math_notation)} "
        f"أجب بتنسيق JSON فقط."
    )


def lesson_plan_prompt(
    lesson_title: str,
    subject_name: str,
    specialty_name: str,
    *,
    math_notation: bool,
    program_text: str | None = None,
) -> str:
    headings = "\n".join(f"## {title}" for title in LESSON_PLAN_SECTIONS)
    return f"""أنت مفتش تربوي وأستاذ خبير في التعليم الثانوي الجزائري.
{_program_block(program_text)}
حضّر مذكرة بيداغوجية كاملة لدرس "{lesson_title}" في مادة {subject_name} لشعبة {specialty_name}.
التزم بالعناوين التالية بهذا الترتيب ودون إضافة عناوين أخرى:
{headings}
{notation_instruction(math_notation)}"""


def exam_prompt(
    subject_name: str,
    specialty_name: str,
    semester: int,
    lesson_titles: Iterable[str],
    *,
    math_notation: bool,
) -> str:
    lessons = "\n".join(f"- {title}" for title in lesson_titles)
    return f"""أنت أستاذ خبير في إعداد مواضيع البكالوريا الجزائرية.
أعد امتحان الفصل {semester} في مادة {subject_name} لشعبة {specialty_name}، يغطي الدروس التالية:
{lessons}
يتكون الامتحان من تمارين متنوعة مع سلم تنقيط على 20.
{notation_instruction(math_notation)}
أجب بتنسيق JSON فقط: examText يحتوي نص الامتحان كاملاً، و solutionText يحتوي الحل النموذجي المفصل."""


def suggestions_prompt(reply: str, lesson_title: str, count: int = 3) -> str:
    excerpt = reply[:1500]
    return (
        f'بناءً على الشرح السابق لدرس "{lesson_title}":\n"""\n{excerpt}\n"""\n'
        f"اقترح {count} أسئلة قصيرة ومهمة يمكن للطالب طرحها للمتابعة. "
        f'أجب بتنسيق JSON: {{ "suggestions": ["سؤال 1", "سؤال 2", "سؤال 3"] }}'
    )
