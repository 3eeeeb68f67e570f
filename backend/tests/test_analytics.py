"""
Test classroom analytics: KPIs, histograms and the students-needing-help list.
"""

from typing import Optional

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import register_user, tutor_payload
from socratica.db.base import get_session
from socratica.db.models import Message
from socratica.services.analytics import build_snapshot, empty_snapshot


EMPTY_KPIS = {
    "confused_pct": 0,
    "students_needing_help": 0,
    "top_question": None,
    "top_topic": None,
    "grounded_rate": 100,
}


async def add_message(
    conversation_id: int,
    sender: str,
    text: str = "msg",
    created_at: Optional[str] = None,
    **tags,
) -> int:
    async with get_session() as session:
        message = Message(conversation_id=conversation_id, sender=sender, text=text, **tags)
        if created_at is not None:
            message.created_at = created_at
        session.add(message)
        await session.commit()
        return message.id


async def fetch(client: AsyncClient, headers: dict, course: dict, assignment: dict, **bounds):
    return await client.post(
        "/api/v1/analytics",
        headers=headers,
        json={"course_id": course["id"], "assignment_id": assignment["id"], **bounds},
    )


def row(i, student_id=1, sender="student", created_at=None, **tags):
    return {
        "id": i,
        "conversation_id": student_id,
        "student_id": student_id,
        "sender": sender,
        "text": f"message {i}",
        "created_at": created_at or f"2025-01-01T00:00:{i:02d}",
        "question_number": tags.get("question_number"),
        "topic_tag": tags.get("topic_tag"),
        "confusion_flag": tags.get("confusion_flag"),
        "grounded_flag": tags.get("grounded_flag"),
    }


class TestBuildSnapshot:

    def test_empty_snapshot(self):
        snapshot = empty_snapshot()
        assert snapshot["kpis"] == EMPTY_KPIS
        assert snapshot["by_question"] == []
        assert snapshot["topics"] == []
        assert snapshot["students"] == []

    def test_half_confused_scenario(self):
        rows = [
            row(1),
            row(2, confusion_flag=True, question_number=3),
            row(3, confusion_flag=True, topic_tag="supply and demand"),
            row(4, confusion_flag=False),
        ]
        snapshot = build_snapshot(rows, {1: "Ada"})

        assert snapshot["kpis"]["confused_pct"] == 50
        assert snapshot["by_question"] == [{"question": 3, "confused": 1}]
        assert snapshot["kpis"]["top_question"] == 3
        assert snapshot["kpis"]["top_topic"] == "supply and demand"
        assert snapshot["kpis"]["students_needing_help"] == 1

    def test_rounding_is_half_up(self):
        rows = [row(i, confusion_flag=(i == 1)) for i in range(1, 9)]
        # 1 of 8 is 12.5%
        assert build_snapshot(rows, {})["kpis"]["confused_pct"] == 13

    def test_grounded_rate_trusts_missing_flags(self):
        rows = [
            row(1, sender="tutor", grounded_flag=True),
            row(2, sender="tutor", grounded_flag=None),
            row(3, sender="tutor", grounded_flag=False),
            row(4, sender="tutor", grounded_flag=False),
        ]
        snapshot = build_snapshot(rows, {})
        assert snapshot["kpis"]["grounded_rate"] == 50
        # No student messages at all
        assert snapshot["kpis"]["confused_pct"] == 0

    def test_topics_capped_and_ranked_with_key_tie_break(self):
        topics = ["f", "e", "d", "c", "b", "a", "a"]
        rows = [row(i, confusion_flag=True, topic_tag=t) for i, t in enumerate(topics, start=1)]
        snapshot = build_snapshot(rows, {})

        assert snapshot["topics"] == [
            {"topic": "a", "confused": 2},
            {"topic": "b", "confused": 1},
            {"topic": "c", "confused": 1},
            {"topic": "d", "confused": 1},
            {"topic": "e", "confused": 1},
        ]

    def test_questions_not_truncated_and_ignore_unconfused(self):
        rows = [row(i, confusion_flag=True, question_number=i) for i in range(1, 8)]
        rows.append(row(20, confusion_flag=False, question_number=1))
        snapshot = build_snapshot(rows, {})
        assert [q["question"] for q in snapshot["by_question"]] == [1, 2, 3, 4, 5, 6, 7]
        assert all(q["confused"] == 1 for q in snapshot["by_question"])

    def test_students_keep_latest_confused_message(self):
        rows = [
            row(1, student_id=1, confusion_flag=True, question_number=1),
            row(2, student_id=2, confusion_flag=True, topic_tag="tax"),
            row(3, student_id=1, confusion_flag=True, question_number=2),
            row(4, student_id=3, confusion_flag=False),
        ]
        rows[2]["text"] = "x" * 150
        snapshot = build_snapshot(rows, {1: "Ada"})

        students = snapshot["students"]
        assert [s["student_id"] for s in students] == [1, 2]
        assert students[0]["question"] == 2
        assert students[0]["student_name"] == "Ada"
        assert students[0]["last_message"] == "x" * 100
        assert students[1]["student_name"] == "Unknown"
        assert snapshot["kpis"]["students_needing_help"] == 2

    def test_is_pure(self):
        rows = [row(i, confusion_flag=i % 2 == 0, topic_tag="t", question_number=i % 3) for i in range(1, 12)]
        assert build_snapshot(rows, {1: "Ada"}) == build_snapshot(list(rows), {1: "Ada"})


@pytest.mark.asyncio
class TestAnalyticsApi:

    async def test_no_conversations_returns_zeroed_snapshot(
        self, async_client: AsyncClient, auth_headers_teacher: dict, course: dict, assignment: dict
    ):
        response = await fetch(async_client, auth_headers_teacher, course, assignment)
        assert response.status_code == 200
        data = response.json()
        assert data["kpis"] == EMPTY_KPIS
        assert data["by_question"] == []
        assert data["topics"] == []
        assert data["students"] == []

    async def test_aggregates_stored_messages(
        self,
        async_client: AsyncClient,
        auth_headers_teacher: dict,
        course: dict,
        assignment: dict,
        conversation: dict,
    ):
        cid = conversation["id"]
        await add_message(cid, "student", "hello")
        await add_message(cid, "student", "stuck on 3", confusion_flag=True, question_number=3)
        await add_message(cid, "student", "what is supply", confusion_flag=True, topic_tag="supply and demand")
        await add_message(cid, "student", "ok", confusion_flag=False)
        await add_message(cid, "tutor", "hint", grounded_flag=True)

        response = await fetch(async_client, auth_headers_teacher, course, assignment)
        data = response.json()

        assert data["kpis"]["confused_pct"] == 50
        assert data["kpis"]["grounded_rate"] == 100
        assert data["by_question"] == [{"question": 3, "confused": 1}]
        assert data["kpis"]["top_question"] == 3
        assert data["students"][0]["student_name"] == "Sam Student"
        assert data["students"][0]["conversation_id"] == cid
        assert data["totals"]["messages"] == 5

        again = await fetch(async_client, auth_headers_teacher, course, assignment)
        assert again.json() == data

    async def test_time_bounds_are_inclusive(
        self,
        async_client: AsyncClient,
        auth_headers_teacher: dict,
        course: dict,
        assignment: dict,
        conversation: dict,
    ):
        cid = conversation["id"]
        await add_message(cid, "student", "early", created_at="2025-01-01T09:00:00", confusion_flag=True)
        await add_message(cid, "student", "edge", created_at="2025-01-02T09:00:00", confusion_flag=False)
        await add_message(cid, "student", "late", created_at="2025-01-03T09:00:00", confusion_flag=False)

        response = await fetch(
            async_client, auth_headers_teacher, course, assignment,
            **{"from": "2025-01-02T09:00:00Z", "to": "2025-01-03T09:00:00Z"},
        )
        data = response.json()
        assert data["totals"]["student_messages"] == 2
        assert data["kpis"]["confused_pct"] == 0

    async def test_inverted_range_rejected(
        self, async_client: AsyncClient, auth_headers_teacher: dict, course: dict, assignment: dict
    ):
        response = await fetch(
            async_client, auth_headers_teacher, course, assignment,
            **{"from": "2025-02-01T00:00:00", "to": "2025-01-01T00:00:00"},
        )
        assert response.status_code == 400

    async def test_only_course_teacher_may_query(
        self, async_client: AsyncClient, enrolled_student: dict, course: dict, assignment: dict
    ):
        response = await fetch(async_client, enrolled_student["headers"], course, assignment)
        assert response.status_code == 403

        other = await register_user(async_client, "other@example.com", "teacher")
        response = await fetch(async_client, other["headers"], course, assignment)
        assert response.status_code == 403

    async def test_tutor_turn_question_appears_only_when_confused(
        self,
        async_client: AsyncClient,
        auth_headers_teacher: dict,
        enrolled_student: dict,
        course: dict,
        assignment: dict,
        conversation: dict,
        stub_llm,
    ):
        stub_llm.responses.extend([
            tutor_payload(question_number=4, confusion_flag=False),
            tutor_payload(question_number=5, confusion_flag=True),
        ])
        for text in ("question 4 is fine", "question 5 makes no sense"):
            response = await async_client.post(
                "/api/v1/tutor/respond",
                headers=enrolled_student["headers"],
                json={"message": text, "conversation_id": conversation["id"]},
            )
            assert response.status_code == 200

        data = (await fetch(async_client, auth_headers_teacher, course, assignment)).json()
        assert data["by_question"] == [{"question": 5, "confused": 1}]
        assert data["kpis"]["grounded_rate"] == 0
        assert data["kpis"]["students_needing_help"] == 1

    async def test_accepts_camel_case_body(
        self,
        async_client: AsyncClient,
        auth_headers_teacher: dict,
        course: dict,
        assignment: dict,
        conversation: dict,
    ):
        await add_message(conversation["id"], "student", "stuck", confusion_flag=True, question_number=1)

        response = await async_client.post(
            "/api/v1/analytics",
            headers=auth_headers_teacher,
            json={
                "courseId": course["id"],
                "assignmentId": assignment["id"],
                "from": "2000-01-01T00:00:00Z",
            },
        )
        assert response.status_code == 200, response.text
        assert response.json()["by_question"] == [{"question": 1, "confused": 1}]

    async def test_read_failure_returns_single_error(
        self,
        async_client: AsyncClient,
        auth_headers_teacher: dict,
        course: dict,
        assignment: dict,
        conversation: dict,
        monkeypatch: pytest.MonkeyPatch,
    ):
        await add_message(conversation["id"], "student", "stuck", confusion_flag=True)
        original_execute = AsyncSession.execute

        async def failing_execute(self, statement, *args, **kwargs):
            if "FROM messages" in str(statement):
                raise OperationalError("SELECT messages", {}, Exception("connection lost"))
            return await original_execute(self, statement, *args, **kwargs)

        monkeypatch.setattr(AsyncSession, "execute", failing_execute)

        response = await fetch(async_client, auth_headers_teacher, course, assignment)

        assert response.status_code == 500
        assert set(response.json()) == {"error"}
