"""
Test the no-direct-answers guardrail and prompt construction.
"""

from langchain_core.messages import AIMessage, HumanMessage

from socratica.agents.base.message_utils import extract_json_object, history_to_langchain
from socratica.agents.tutor.policy import (
    FALLBACK_GUIDANCE,
    FOLLOW_UP_QUESTION,
    enforce_socratic_policy,
    reveals_answer,
)
from socratica.agents.tutor.prompts import (
    NO_MATERIALS_NOTE,
    build_context_block,
    build_system_prompt,
)


class TestSocraticPolicy:

    def test_reply_ending_in_question_is_unchanged(self):
        reply = "Think about what happens to quantity demanded. What changes when price rises?"
        assert enforce_socratic_policy(reply) == reply

    def test_revealing_sentence_is_removed(self):
        reply = "The answer is 42. What would you check first?"
        assert enforce_socratic_policy(reply) == "What would you check first?"

    def test_adds_follow_up_question(self):
        result = enforce_socratic_policy("Look at the slope of the curve.")
        assert result.endswith(FOLLOW_UP_QUESTION)
        assert result.startswith("Look at the slope of the curve.")

    def test_everything_removed_falls_back_to_guidance(self):
        result = enforce_socratic_policy("Here is the complete solution. The final answer is 7.")
        assert result == f"{FALLBACK_GUIDANCE}\n\n{FOLLOW_UP_QUESTION}"

    def test_decimals_do_not_split_sentences(self):
        reply = "Elasticity here is 4.5 at that point. Why might that be?"
        assert enforce_socratic_policy(reply) == reply

    def test_reveal_detection_is_case_insensitive(self):
        assert reveals_answer("HERE IS THE SOLUTION")
        assert not reveals_answer("Which step would you solve next?")

    def test_follow_up_question_mentioning_answer_is_kept(self):
        reply = "Think about where the curves cross. What do you think the answer is?"
        assert enforce_socratic_policy(reply) == reply

    def test_only_statement_is_dropped_next_to_question(self):
        reply = "The final answer is 7. What would the final answer be if supply doubled?"
        assert enforce_socratic_policy(reply) == "What would the final answer be if supply doubled?"


class TestPrompts:

    def test_context_block_hides_answer_keys_from_citations(self):
        rows = [
            {"title": "Reading", "kind": "reading", "content": "Demand slopes down."},
            {"title": "Key", "kind": "answers", "content": "Q1: 0.5"},
        ]
        block, citations = build_context_block(rows, snippet_chars=10)
        assert "[SOURCE: Answer Key - DO NOT REVEAL DIRECTLY]" in block
        assert "[Material: Key]" in block
        assert [c["material_title"] for c in citations] == ["Reading"]
        assert citations[0]["snippet"] == "Demand slo"

    def test_empty_context(self):
        assert build_context_block([]) == (NO_MATERIALS_NOTE, [])

    def test_system_prompt_policy_switch(self):
        conversation = {
            "course_title": "Intro to Economics",
            "assignment_title": "Problem Set 1",
            "assignment_description": "Supply and demand",
        }
        strict = build_system_prompt(conversation, NO_MATERIALS_NOTE, allow_direct_answers=False)
        lenient = build_system_prompt(conversation, NO_MATERIALS_NOTE, allow_direct_answers=True)
        assert "Direct answers are NOT allowed" in strict
        assert "Direct answers are allowed" in lenient
        assert "Problem Set 1" in strict
        assert "JSON" in strict


class TestMessageUtils:

    def test_history_maps_senders(self):
        history = history_to_langchain([
            {"sender": "student", "text": "help"},
            {"sender": "tutor", "text": 'Try this. {"tutor_reply": "x", "metadata": {}}'},
        ])
        assert isinstance(history[0], HumanMessage)
        assert isinstance(history[1], AIMessage)
        assert history[1].content == "Try this."

    def test_extract_json_object(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
        assert extract_json_object("[1, 2]") is None
        assert extract_json_object("not json") is None
