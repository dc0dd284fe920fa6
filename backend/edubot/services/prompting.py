"""System prompt assembly for the academic assistant."""

from collections.abc import Sequence

from edubot.db.models import ChatMessage, ChatRole
from edubot.services.context_builder import AcademicSnapshot, LecturerSnapshot, StudentSnapshot

PERSONA = (
    "You are a student performance assistant. Answer concisely, in markdown, "
    "with actionable next steps."
)

TITLE_PROMPT = (
    "Generate a very short, concise title (max 5 words) for a chat conversation "
    "based on the first user message provided. Do not use quotes, periods, or "
    "prefixes like 'Title:'. Just the words."
)

_TITLE_STRIP = "\"'`*.!: "

COMMON_REQUESTS = [
    "Common requests to support:",
    "- Grade lookups, GPA explanations, missing scores, and recent graded assessments.",
    "- Predictions for target scores; study plans/schedules; learning resources.",
    "- Lecturer analytics: distributions, averages, at-risk lists, reweighting ideas, feedback templates.",
    "- Assessment help: weight splits, rubrics, sample exam questions.",
]

HARD_CONSTRAINTS = [
    "Hard constraints (do not violate):",
    "- Do NOT fabricate or infer averages, medians, distributions, final grades, at-risk lists, "
    "or hypothetical outcomes unless provided.",
    "- If a requested statistic is missing, explicitly say it is unavailable, name the missing "
    "computation, describe how it would be computed, and offer qualitative guidance only.",
    "- Predictions are allowed only when all weights/current scores are provided, or when a "
    "weighted average AND remaining weight are provided. Otherwise, ask for the missing inputs "
    "and explain the formula; label any assumption clearly.",
    "- For lecturer prompts: you may discuss trends/patterns/completeness, but do NOT report "
    "averages/distributions/percent-below/rankings unless given. Instead, state what is needed "
    "from backend computations.",
    "- For students: do NOT infer subject-level performance without provided subject averages; "
    "list ungraded/unrecorded assessments instead of guessing scores.",
    "- Prefer correctness over completeness; be transparent about limitations; suggest the next "
    "actionable step (e.g., record grades, provide weights, fetch analytics) when blocked.",
]

RESPONSE_STYLE = [
    "Response style:",
    "- Answer in natural, conversational paragraphs.",
    "- Use bullet points ONLY for listing items.",
    "- NEVER start your entire response with a bullet point.",
    "- Be brief and clear, including numbers/percentages when known.",
    "- If data is missing, say so and list what is needed to answer accurately.",
    "- Offer a next step when appropriate (e.g., record grades, verify subject code).",
]

LECTURER_GUIDELINES = [
    "- You are advising a lecturer; focus on class-wide insights, distributions, at-risk "
    "students, and assessment planning.",
    "- Use student number or name and recent grades when asked about specific students; "
    "highlight missing data and suggest actions (record grades, verify weights).",
]

STUDENT_GUIDELINES = [
    "- For students: cite GPA, recent assessments, and weights; list missing grades or unknown "
    "assessments explicitly.",
    "- If asked for predictions, use available weights/scores; if missing, state the assumption "
    "or ask for the needed numbers.",
]


def render_history(messages: Sequence[ChatMessage], max_messages: int) -> list[str]:
    """
    Flatten stored messages into ``User: …`` / ``Assistant: …`` lines.

    Only the most recent ``max_messages`` are kept; a leading marker line
    records how many earlier messages were left out.
    """
    omitted = max(len(messages) - max_messages, 0)
    kept = messages[omitted:]
    lines = []
    if omitted:
        lines.append(f"[{omitted} earlier messages omitted]")
    for message in kept:
        speaker = "User" if message.role == ChatRole.USER.value else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return lines


def _joined(label: str, items: list[str]) -> list[str]:
    return [f"{label}: {'; '.join(items)}"] if items else []


def _snapshot_sections(snapshot: AcademicSnapshot) -> tuple[list[str], list[str]]:
    """Role-specific data lines and guidelines."""
    if isinstance(snapshot, StudentSnapshot):
        data = [f"GPA/Stats: {snapshot.gpa_summary}"]
        data += _joined("Subjects", snapshot.subjects)
        data += _joined("Assessments", snapshot.assessments)
        data += _joined("Grades", snapshot.grades)
        return data, STUDENT_GUIDELINES
    if isinstance(snapshot, LecturerSnapshot):
        data = [f"GPA/Stats: {snapshot.stats}"]
        data += _joined("Subjects", snapshot.subjects)
        data += _joined("Assessments", snapshot.assessments)
        data += _joined("Students", snapshot.students)
        data += _joined("Recent grades", snapshot.recent_grades)
        return data, LECTURER_GUIDELINES
    raise TypeError(f"Unsupported snapshot type: {type(snapshot).__name__}")


def build_system_prompt(snapshot: AcademicSnapshot, history: list[str]) -> str:
    """Assemble the system prompt from the snapshot and the rendered history."""
    data, guidelines = _snapshot_sections(snapshot)

    sections = [PERSONA, f"User profile: {snapshot.profile}"]
    if history:
        sections += ["", "Recent conversation history:", *history, ""]
    sections += data
    sections += ["", *COMMON_REQUESTS]
    sections += ["", *HARD_CONSTRAINTS]
    sections += ["", *RESPONSE_STYLE]
    sections += ["", "Guidelines:", *guidelines]
    return "\n".join(sections)


def clean_title(raw: str, max_words: int = 5) -> str:
    """Strip quoting, ``Title:`` prefixes and trailing punctuation; clamp word count."""
    lines = raw.strip().splitlines()
    title = lines[0].strip(_TITLE_STRIP) if lines else ""
    if title.lower().startswith("title:"):
        title = title[len("title:"):].strip(_TITLE_STRIP)
    return " ".join(title.split()[:max_words])
