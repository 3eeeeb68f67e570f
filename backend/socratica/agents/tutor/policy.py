"""Post-processing guardrail for assignments that forbid direct answers."""

import re

# Phrases that announce a worked solution
ANSWER_REVEAL_RE = re.compile(
    r"\b(?:(?:the\s+)?final\s+answer|complete\s+solution|full\s+solution|"
    r"here\s+is\s+the\s+(?:answer|solution)|the\s+answer\s+is|the\s+solution\s+is)\b",
    re.IGNORECASE,
)

# A terminator only ends a sentence when followed by whitespace or the end
_SENTENCE_RE = re.compile(r"(?:[^.!?\n]|[.!?](?=\S))+[.!?]*[ \t]*|[.!?]+[ \t]*|\n+")

FALLBACK_GUIDANCE = "Let's work through this together instead of jumping to the answer."
FOLLOW_UP_QUESTION = "What do you think the next step should be?"


def reveals_answer(text: str) -> bool:
    return bool(ANSWER_REVEAL_RE.search(text or ""))


def ends_with_question(text: str) -> bool:
    return (text or "").rstrip().endswith("?")


def enforce_socratic_policy(reply: str) -> str:
    """
    Make a reply safe for a no-direct-answers assignment.

    Statements announcing a final answer or solution are dropped, and the
    reply always ends with a follow-up question. Questions are kept even when
    they mention the answer ("What do you think the answer is?").
    """
    kept = [
        piece for piece in _SENTENCE_RE.findall(reply or "")
        if ends_with_question(piece) or not reveals_answer(piece)
    ]
    text = "".join(kept).strip()
    # Collapse blank lines left behind by removed sentences
    text = re.sub(r"\n{3,}", "\n\n", text)

    if not text:
        text = FALLBACK_GUIDANCE
    if not ends_with_question(text):
        text = f"{text}\n\n{FOLLOW_UP_QUESTION}"
    return text
