"""Prompt templates for the Socratic tutor.

The system prompt carries the assignment context, the course material
excerpts and the answer policy chosen for the assignment.
"""

from typing import Any, Dict, List, Tuple

from ...core.context import Role
from ...services.materials import source_label, visible_to
from .state import Citation


# =============================================================================
# SYSTEM PROMPT
# =============================================================================

SOCRATIC_SYSTEM_TEMPLATE = """You are Socratica, an expert Socratic tutor helping students learn through guided questioning.

ASSIGNMENT CONTEXT:
Course: {course_title}
Title: {assignment_title}
Description: {assignment_description}

COURSE MATERIALS:
{context_block}

RESPONSE QUALITY GUIDELINES:

1. Keep responses concise: 2-3 short paragraphs at most.
2. Be specific and grounded: reference the exact question or concept asked about and
   use the concepts, formulas and terms from the materials above.
3. When students mention "question 2" or "part 4", use the assignment questions above
   to know what it asks.
4. Materials marked [SOURCE: Answer Key - DO NOT REVEAL DIRECTLY] contain solutions.
   Use them only to check the student's reasoning.

ANSWER POLICY:
{answer_policy}

{response_format}
"""


NO_DIRECT_ANSWERS_POLICY = """Direct answers are NOT allowed for this assignment.
- Never give complete solutions, full essays, worked final results or final answers.
- Give ONE focused hint or clarifying idea per reply, pointing to the relevant concept
  without solving the problem.
- ALWAYS end your reply with exactly ONE follow-up question that moves the student to
  the next step."""


DIRECT_ANSWERS_POLICY = """Direct answers are allowed for this assignment.
- Before stating any answer, explain the reasoning step by step so the student can
  follow how it is reached.
- Finish by checking the student's understanding."""


RESPONSE_FORMAT = """RESPONSE FORMAT:
Reply with a single JSON object and nothing else, with these keys:
- "tutor_reply": string, your reply to the student as plain text
- "question_number": integer assignment question being discussed, or null if unclear
- "topic_tag": short name of the main concept discussed (e.g. "elasticity"), or null
- "confusion_flag": boolean, true if the student expresses confusion or is stuck on the same issue repeatedly
- "confidence": number from 0.0 to 1.0, how confident you are that the materials cover the question"""


NO_MATERIALS_NOTE = "(No course materials are available for this assignment.)"


# =============================================================================
# BUILDERS
# =============================================================================

def build_context_block(
    rows: List[Dict[str, Any]],
    max_rows: int = 20,
    snippet_chars: int = 850,
) -> Tuple[str, List[Citation]]:
    """
    Render material rows for the prompt.

    Returns:
        Tuple of (labelled context text, citations safe to show the student)
    """
    parts = []
    citations: List[Citation] = []
    for row in rows[:max_rows]:
        snippet = row["content"][:snippet_chars]
        parts.append(f"{source_label(row['kind'])}\n[Material: {row['title']}]\n{snippet}")
        if visible_to(Role.STUDENT, row["kind"]):
            citations.append(
                Citation(material_title=row["title"], kind=row["kind"], snippet=snippet)
            )

    if not parts:
        return NO_MATERIALS_NOTE, citations
    return "\n\n".join(parts), citations


def build_system_prompt(
    conversation: Dict[str, Any],
    context_block: str,
    allow_direct_answers: bool,
) -> str:
    return SOCRATIC_SYSTEM_TEMPLATE.format(
        course_title=conversation.get("course_title") or "",
        assignment_title=conversation.get("assignment_title") or "",
        assignment_description=conversation.get("assignment_description") or "",
        context_block=context_block,
        answer_policy=DIRECT_ANSWERS_POLICY if allow_direct_answers else NO_DIRECT_ANSWERS_POLICY,
        response_format=RESPONSE_FORMAT,
    )
