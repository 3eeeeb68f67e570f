"""Tutor agent - Socratic tutoring turns.

Each student message runs through a short linear LangGraph that stores the
message, assembles bounded history and course material into a Socratic
prompt, asks the model for a structured JSON reply, enforces the answer
policy and stores the tutor reply.
"""

from .graph import TutorGraph, respond
from .policy import enforce_socratic_policy
from .state import TutorReply, TutorTurnState, create_initial_turn_state

__all__ = [
    "TutorGraph",
    "respond",
    "enforce_socratic_policy",
    "TutorReply",
    "TutorTurnState",
    "create_initial_turn_state",
]
